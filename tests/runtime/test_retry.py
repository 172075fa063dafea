from __future__ import annotations

import asyncio
from typing import Any

import pytest

from lablab.core.errors import DataNotFound, DataSourceError, StageCancelled
from lablab.core.policy import RetryPolicy
from lablab.core.schema import Scenario
from lablab.runtime.retry import fetch_with_fallback
from lablab.runtime.session import StageVisit

POLICY = RetryPolicy(max_attempts=4, base_delay_s=0.5, max_delay_s=2.0, attempt_timeout_s=0.2)


class Scripted:
    """Zero-arg fetch that raises or returns the scripted items in order."""

    def __init__(self, *items: Any) -> None:
        self.items = list(items)
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, Exception):
            raise item
        return item


def _identity(x: Any) -> Any:
    return x


def _fallback() -> str:
    return "fallback"


@pytest.mark.asyncio
async def test_first_attempt_success(sleep) -> None:
    fetch = Scripted("live")
    out = await fetch_with_fallback(fetch, _identity, _fallback, POLICY, sleep=sleep)
    assert out.value == "live"
    assert not out.used_fallback
    assert out.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(sleep) -> None:
    fetch = Scripted(ConnectionError("reset"), DataSourceError("boom", status=500), "live")
    out = await fetch_with_fallback(fetch, _identity, _fallback, POLICY, sleep=sleep)
    assert out.value == "live"
    assert out.attempts == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_exhaustion_substitutes_fallback_with_capped_backoff(sleep) -> None:
    fetch = Scripted(ConnectionError("down"))
    out = await fetch_with_fallback(fetch, _identity, _fallback, POLICY, sleep=sleep)
    assert out.value == "fallback"
    assert out.used_fallback
    assert out.attempts == 4
    assert fetch.calls == 4
    assert sleep.delays == [0.5, 1.0, 2.0]
    assert out.last_error is not None
    assert "ConnectionError" in str(out.last_error)


@pytest.mark.asyncio
async def test_service_unavailable_is_not_retried(sleep) -> None:
    fetch = Scripted(DataSourceError("maintenance", status=503))
    out = await fetch_with_fallback(fetch, _identity, _fallback, POLICY, sleep=sleep)
    assert out.used_fallback
    assert out.attempts == 1
    assert fetch.calls == 1
    assert sleep.delays == []
    assert out.last_error is not None and out.last_error.status == 503


@pytest.mark.asyncio
async def test_not_found_propagates_without_retry(sleep) -> None:
    fetch = Scripted(DataSourceError("missing", status=404))
    with pytest.raises(DataNotFound):
        await fetch_with_fallback(fetch, _identity, _fallback, POLICY, sleep=sleep)
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_attempt_timeout_counts_as_failure(sleep) -> None:
    async def hangs() -> str:
        await asyncio.sleep(5)
        return "late"

    policy = RetryPolicy(max_attempts=2, base_delay_s=0.1, max_delay_s=0.1, attempt_timeout_s=0.01)
    out = await fetch_with_fallback(hangs, _identity, _fallback, policy, sleep=sleep)
    assert out.used_fallback
    assert out.attempts == 2
    assert "no response" in str(out.last_error)


@pytest.mark.asyncio
async def test_malformed_payload_is_retried_then_parsed(sleep, scenario_doc) -> None:
    fetch = Scripted({"id": "sc1", "rounds": 0}, scenario_doc)
    out = await fetch_with_fallback(fetch, Scenario.model_validate, _fallback, POLICY, sleep=sleep)
    assert not out.used_fallback
    assert out.attempts == 2
    assert isinstance(out.value, Scenario)
    assert out.value.rounds == 3


@pytest.mark.asyncio
async def test_response_for_stale_visit_is_discarded(sleep) -> None:
    visit = StageVisit("market", 0)

    async def leaves_stage() -> str:
        visit.close()
        return "live"

    with pytest.raises(StageCancelled):
        await fetch_with_fallback(leaves_stage, _identity, _fallback, POLICY, visit=visit, sleep=sleep)


@pytest.mark.asyncio
async def test_attempt_budget_is_capped_at_ten(sleep) -> None:
    fetch = Scripted(ConnectionError("down"))
    policy = RetryPolicy(max_attempts=50, base_delay_s=0.0, max_delay_s=0.0)
    out = await fetch_with_fallback(fetch, _identity, _fallback, policy, sleep=sleep)
    assert out.attempts == 10
    assert fetch.calls == 10
