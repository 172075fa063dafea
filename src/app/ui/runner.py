"""
Event-loop runner for the Streamlit participant app.

Streamlit re-executes the script top to bottom on every interaction, on its own thread.
The run controller, on the other hand, owns asyncio tasks (scenario loads, progress
retries) that must keep running between reruns. LoopRunner keeps one asyncio loop alive
on a daemon thread per browser session; the script submits work to it and waits for the
result with a timeout.

Notes:
    - All controller calls (including plain ticks) go through the runner, so controller
      state is only ever touched from the loop thread.
    - Stored in ``st.session_state``; one runner per participant session.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

__all__ = ["LoopRunner"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopRunner:
    """
    Background asyncio loop with blocking submit helpers.

    Args:
        timeout_s (float): Default upper bound when waiting for a submitted coroutine.
    """

    def __init__(self, timeout_s: float = 60.0) -> None:
        self.timeout_s = timeout_s
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="lablab-loop", daemon=True
        )
        self._thread.start()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive() and not self._loop.is_closed()

    def run(self, coro: Coroutine[Any, Any, T], timeout_s: float | None = None) -> T:
        """Run a coroutine on the loop and block for its result (exceptions propagate)."""
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return fut.result(timeout=self.timeout_s if timeout_s is None else timeout_s)

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Call a synchronous function on the loop thread and return its result."""

        async def _call() -> T:
            return fn(*args)

        return self.run(_call())

    def stop(self) -> None:
        """Stop the loop and join its thread."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5.0)
        if self._thread.is_alive():
            logger.warning("event loop thread did not stop within 5s")
            return
        self._loop.close()
