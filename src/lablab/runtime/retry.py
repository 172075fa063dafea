"""
Resilient fetch for scenario and wallet data.

``fetch_with_fallback`` runs a collaborator call under a RetryPolicy:

- every attempt is bounded by ``policy.attempt_timeout_s``; a timeout is a failure
  like any other;
- failed attempts are retried after ``policy.delay_for(attempt)`` (exponential,
  capped), for at most ``policy.max_attempts`` attempts (never more than 10);
- a 503 stops retrying at once;
- once retries are exhausted (or after a 503) the ``fallback`` value is returned and
  the substitution is logged at WARNING so operators can spot a struggling backend;
- a 404 is not retried and not substituted: DataNotFound propagates;
- the stage visit is checked after every await; a stale visit raises StageCancelled
  and nothing is returned.

Payloads are validated with ``parse`` inside the attempt, so a malformed document
is retried and eventually substituted exactly like a transport error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from lablab.core.constants import NOT_FOUND, SERVICE_UNAVAILABLE
from lablab.core.errors import DataNotFound, DataSourceError, TransientDataError
from lablab.core.policy import RetryPolicy

from .session import StageVisit

__all__ = ["FetchOutcome", "fetch_with_fallback"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """
    Result of a resilient fetch.

    Attributes:
        value (T): Parsed collaborator data, or the fallback value.
        used_fallback (bool): True when ``value`` is the fallback.
        attempts (int): Attempts made (1..policy.max_attempts).
        last_error (TransientDataError | None): Last failure seen, if any.
    """

    value: T
    used_fallback: bool
    attempts: int
    last_error: TransientDataError | None = None


def _as_transient(exc: Exception, label: str, timeout_s: float) -> TransientDataError:
    if isinstance(exc, DataSourceError):
        return TransientDataError(f"{label}: {exc}", status=exc.status)
    if isinstance(exc, TimeoutError):
        return TransientDataError(f"{label}: no response within {timeout_s:g}s")
    if isinstance(exc, ValidationError):
        return TransientDataError(f"{label}: malformed payload ({exc.error_count()} errors)")
    return TransientDataError(f"{label}: {type(exc).__name__}: {exc}")


async def fetch_with_fallback(
    fetch: Callable[[], Awaitable[Any]],
    parse: Callable[[Any], T],
    fallback: Callable[[], T],
    policy: RetryPolicy,
    visit: StageVisit | None = None,
    label: str = "data",
    sleep: Sleep = asyncio.sleep,
) -> FetchOutcome[T]:
    """
    Fetch and parse collaborator data, retrying then substituting a fallback.

    Args:
        fetch: Zero-arg coroutine factory performing one collaborator call.
        parse: Validates the raw payload (pydantic errors count as transient).
        fallback: Builds the substitute value.
        policy (RetryPolicy): Attempts, per-attempt timeout and backoff.
        visit (StageVisit | None): Owning stage visit, checked after every await.
        label (str): Name used in log lines.
        sleep: Awaitable sleep (injected by tests).

    Returns:
        FetchOutcome[T]: Parsed value or fallback, with attempt accounting.

    Raises:
        DataNotFound: The collaborator reported 404.
        StageCancelled: The visit was closed while the fetch was in flight.
    """
    last_error: TransientDataError | None = None
    attempts = 0

    for attempt in range(1, policy.max_attempts + 1):
        if visit is not None:
            visit.ensure_current()
        attempts = attempt
        try:
            raw = await asyncio.wait_for(fetch(), timeout=policy.attempt_timeout_s)
            value = parse(raw)
        except DataSourceError as exc:
            if exc.status == NOT_FOUND:
                raise DataNotFound(f"{label}: not found") from exc
            last_error = _as_transient(exc, label, policy.attempt_timeout_s)
        except Exception as exc:  # noqa: BLE001 - any collaborator failure is transient here
            last_error = _as_transient(exc, label, policy.attempt_timeout_s)
        else:
            if visit is not None:
                visit.ensure_current()
            if attempt > 1:
                logger.info("%s fetched on attempt %d", label, attempt)
            return FetchOutcome(value=value, used_fallback=False, attempts=attempt)

        if visit is not None:
            visit.ensure_current()
        if last_error.status == SERVICE_UNAVAILABLE:
            logger.info("%s: service unavailable, not retrying", label)
            break
        if attempt < policy.max_attempts:
            delay = policy.delay_for(attempt)
            logger.info(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label,
                attempt,
                policy.max_attempts,
                last_error,
                delay,
            )
            await sleep(delay)

    if visit is not None:
        visit.ensure_current()
    logger.warning(
        "%s unavailable after %d attempt(s); substituting fallback data (%s)",
        label,
        attempts,
        last_error,
    )
    return FetchOutcome(value=fallback(), used_fallback=True, attempts=attempts, last_error=last_error)
