"""
Per-stage-visit session objects.

Every time the controller shows a stage it opens a StageVisit. Retry loops, fetches and
other background work started for that stage are owned by the visit; closing the visit
cancels them and marks it stale. Code that resumes after an ``await`` calls
``ensure_current()`` before touching stage state, so a response that arrives after the
participant moved on is discarded instead of applied.

Retry counters and fetch outcomes live on the visit and disappear with it; nothing
carries over between two visits of different stages (or two visits of the same stage
after a reload).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from typing import Any

from lablab.core.errors import StageCancelled

__all__ = ["StageVisit"]

logger = logging.getLogger(__name__)


class StageVisit:
    """
    Cancellation scope for one visit of one stage.

    Attributes:
        stage_id (str): Stage being shown.
        index (int): Position of the stage in the run order.
        token (str): Unique id of this visit (for logs).
        current (bool): False once the visit was closed.
        outcomes (dict[str, Any]): Fetch outcomes recorded by the stage's gate.
    """

    def __init__(self, stage_id: str, index: int) -> None:
        self.stage_id = stage_id
        self.index = index
        self.token = uuid.uuid4().hex[:12]
        self.current = True
        self.outcomes: dict[str, Any] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def ensure_current(self) -> None:
        """
        Raises:
            StageCancelled: If the visit has been closed.
        """
        if not self.current:
            raise StageCancelled(f"stage {self.stage_id!r} visit {self.token} is no longer current")

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start a task owned by this visit; it is cancelled when the visit closes."""
        self.ensure_current()
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def tasks(self) -> tuple[asyncio.Task[Any], ...]:
        return tuple(self._tasks)

    async def wait(self) -> None:
        """Wait for every owned task; failures are logged, cancellations ignored."""
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, StageCancelled):
                logger.error("stage %s task failed: %r", self.stage_id, r)

    def close(self) -> None:
        """Mark the visit stale and cancel its pending tasks (idempotent)."""
        if not self.current:
            return
        self.current = False
        for task in list(self._tasks):
            task.cancel()
        logger.debug("closed visit %s of stage %s", self.token, self.stage_id)

    def __repr__(self) -> str:
        return f"StageVisit(stage_id={self.stage_id!r}, index={self.index}, current={self.current})"
