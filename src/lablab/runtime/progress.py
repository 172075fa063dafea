"""
Ordered, non-blocking progress persistence.

The controller hands every stage transition to a ProgressWriter before it shows the
next stage. ``submit`` makes one bounded attempt to land the update (and anything queued
before it) and reports whether it did. On failure the update stays queued, a single
background task retries the backlog with backoff, and the participant moves on: a
progress write that did not land is logged, never shown.

Updates land in submission order: while a backlog exists, new updates queue behind it.
Each update is a merge (monotonic status, append-only completed stages), so replaying the
backlog after a partial failure converges on the same record.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from lablab.core.policy import RetryPolicy
from lablab.core.schema import ParticipantProgress, ProgressUpdate

from .protocols import ProgressStore

__all__ = ["ProgressWriter"]

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ProgressWriter:
    """
    Queue of progress updates for one (experiment, participant).

    Args:
        store (ProgressStore): Collaborator that merges updates.
        experiment_id (str): Experiment being run.
        participant_id (str): Participant whose record is written.
        policy (RetryPolicy): Background retry schedule.
        write_timeout_s (float): Bound on each write.
        sleep: Awaitable sleep (injected by tests).
    """

    def __init__(
        self,
        store: ProgressStore,
        experiment_id: str,
        participant_id: str,
        policy: RetryPolicy,
        write_timeout_s: float,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self.experiment_id = experiment_id
        self.participant_id = participant_id
        self._policy = policy
        self._write_timeout_s = write_timeout_s
        self._sleep = sleep
        self._pending: deque[ProgressUpdate] = deque()
        self._lock = asyncio.Lock()
        self._retry_task: asyncio.Task[None] | None = None
        self.last_record: ParticipantProgress | None = None
        self.failed_writes = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def retrying(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    async def submit(self, update: ProgressUpdate) -> bool:
        """
        Queue an update and try to flush once.

        Returns:
            bool: True if the queue (including this update) landed.
        """
        self._pending.append(update)
        if self.retrying:
            logger.debug("progress update queued behind %d pending", len(self._pending) - 1)
            return False
        if await self._flush():
            return True
        self._start_retry()
        return False

    async def _flush(self) -> bool:
        async with self._lock:
            while self._pending:
                update = self._pending[0]
                try:
                    record = await asyncio.wait_for(
                        self._store.record(self.experiment_id, self.participant_id, update),
                        timeout=self._write_timeout_s,
                    )
                except Exception as exc:  # noqa: BLE001 - logged and retried in the background
                    self.failed_writes += 1
                    logger.warning(
                        "progress write for %s/%s failed (%d pending): %r",
                        self.experiment_id,
                        self.participant_id,
                        len(self._pending),
                        exc,
                    )
                    return False
                self._pending.popleft()
                self.last_record = record
            return True

    def _start_retry(self) -> None:
        if self.retrying:
            return
        self._retry_task = asyncio.get_running_loop().create_task(
            self._retry_loop(), name=f"progress-retry-{self.participant_id}"
        )

    async def _retry_loop(self) -> None:
        for attempt in range(1, self._policy.max_attempts + 1):
            await self._sleep(self._policy.delay_for(attempt))
            if await self._flush():
                logger.info(
                    "progress backlog for %s/%s flushed after %d retr%s",
                    self.experiment_id,
                    self.participant_id,
                    attempt,
                    "y" if attempt == 1 else "ies",
                )
                return
        logger.error(
            "giving up on %d progress update(s) for %s/%s; they will be retried on the next write",
            len(self._pending),
            self.experiment_id,
            self.participant_id,
        )

    async def drain(self) -> bool:
        """
        Wait for the background retry (if any), then try once more.

        Returns:
            bool: True if nothing is left pending.
        """
        if self._retry_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._retry_task
        if self._pending:
            await self._flush()
        return not self._pending

    async def close(self) -> None:
        """Cancel background retries; queued updates are dropped with a warning."""
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._retry_task
        if self._pending:
            logger.warning(
                "closing progress writer for %s/%s with %d unsent update(s)",
                self.experiment_id,
                self.participant_id,
                len(self._pending),
            )
