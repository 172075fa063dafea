from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

import pytest

from lablab.core.constants import NOT_FOUND
from lablab.core.errors import DataSourceError
from lablab.core.policy import RetryPolicy
from lablab.core.schema import (
    ParticipantProgress,
    ProgressUpdate,
    SurveyResponse,
    apply_progress_update,
)
from lablab.io.config import LabSettings
from lablab.runtime.controller import ExperimentRunController


class FakeExperimentStore:
    def __init__(self, docs: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.docs = dict(docs or {})
        self.error = error
        self.calls = 0

    async def get_experiment(self, experiment_id: str) -> Any:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if experiment_id not in self.docs:
            raise DataSourceError(f"experiment {experiment_id} not found", status=NOT_FOUND)
        return self.docs[experiment_id]


class FakeScenarioSource:
    """
    Scripted scenario/wallet source.

    ``scenario_errors`` / ``wallet_errors`` are raised one per call (in order) before the
    stored document is returned; ``always_fail`` is raised on every call.
    """

    def __init__(
        self,
        scenarios: dict[str, Any] | None = None,
        wallets: dict[str, Any] | None = None,
        scenario_errors: list[Exception] | None = None,
        wallet_errors: list[Exception] | None = None,
        always_fail: Exception | None = None,
    ) -> None:
        self.scenarios = dict(scenarios or {})
        self.wallets = dict(wallets or {})
        self.scenario_errors = list(scenario_errors or [])
        self.wallet_errors = list(wallet_errors or [])
        self.always_fail = always_fail
        self.scenario_calls = 0
        self.wallet_calls = 0

    async def get_scenario(self, scenario_id: str) -> Any:
        self.scenario_calls += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.scenario_errors:
            raise self.scenario_errors.pop(0)
        if scenario_id not in self.scenarios:
            raise DataSourceError("scenario not found", status=NOT_FOUND)
        return self.scenarios[scenario_id]

    async def get_wallet_assets(self, wallet_id: str) -> Any:
        self.wallet_calls += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.wallet_errors:
            raise self.wallet_errors.pop(0)
        if wallet_id not in self.wallets:
            raise DataSourceError("wallet not found", status=NOT_FOUND)
        return self.wallets[wallet_id]


class MemoryProgressStore:
    """In-memory progress store; ``fail_next`` makes the next N writes raise."""

    def __init__(self, records: dict[tuple[str, str], ParticipantProgress] | None = None) -> None:
        self.records = dict(records or {})
        self.updates: list[ProgressUpdate] = []
        self.fail_next = 0
        self.always_fail = False

    async def get_progress(self, experiment_id: str, participant_id: str) -> ParticipantProgress | None:
        return self.records.get((experiment_id, participant_id))

    async def record(
        self, experiment_id: str, participant_id: str, update: ProgressUpdate
    ) -> ParticipantProgress:
        if self.always_fail or self.fail_next > 0:
            self.fail_next = max(0, self.fail_next - 1)
            raise ConnectionError("progress store offline")
        key = (experiment_id, participant_id)
        current = self.records.get(key) or ParticipantProgress.new(participant_id, experiment_id)
        merged = apply_progress_update(current, update)
        self.records[key] = merged
        self.updates.append(update)
        return merged

    def completion_writes(self) -> int:
        return sum(1 for u in self.updates if u.status is not None and u.status.value == "completed")


class MemorySurveyResponseStore:
    def __init__(self) -> None:
        self.responses: dict[tuple[str, str, str], SurveyResponse] = {}
        self.fail_next = 0
        self.submits = 0

    async def submit(
        self, experiment_id: str, stage_id: str, participant_id: str, answers: dict[str, Any]
    ) -> SurveyResponse:
        self.submits += 1
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ConnectionError("response store offline")
        resp = SurveyResponse(
            experiment_id=experiment_id,
            stage_id=stage_id,
            participant_id=participant_id,
            answers=dict(answers),
        )
        self.responses[(experiment_id, stage_id, participant_id)] = resp
        return resp

    async def get_response(
        self, experiment_id: str, stage_id: str, participant_id: str
    ) -> SurveyResponse | None:
        return self.responses.get((experiment_id, stage_id, participant_id))


class RecordingSleep:
    """Awaitable sleep that returns immediately and records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


SCENARIO_DOC: dict[str, Any] = {
    "id": "sc1",
    "walletId": "w1",
    "rounds": 3,
    "roundDuration": 5,
    "assetPrices": [
        {"assetId": "a1", "symbol": "ACME", "prices": [10.0, 12.0]},
        {"assetId": "a2", "symbol": "GLBX", "prices": [5.0, 4.0, 6.0]},
    ],
}

WALLET_DOC: list[dict[str, Any]] = [
    {"id": "a1", "symbol": "ACME", "name": "Acme", "amount": 2},
    {"id": "a2", "symbol": "GLBX", "name": "Globex", "amount": 10},
]

THREE_STAGE_EXPERIMENT: dict[str, Any] = {
    "id": "exp1",
    "name": "Three stages",
    "stages": [
        {"id": "intro", "type": "instructions", "title": "Intro", "order": 0, "content": "Hi"},
        {"id": "rest", "type": "break", "title": "Rest", "order": 1, "durationSeconds": 5},
        {
            "id": "ask",
            "type": "survey",
            "title": "Ask",
            "order": 2,
            "questions": [{"id": "q1", "text": "Why?", "type": "text", "required": True}],
        },
    ],
}

SCENARIO_EXPERIMENT: dict[str, Any] = {
    "id": "exp2",
    "name": "Market",
    "stages": [
        {"id": "market", "type": "scenario", "title": "Market", "order": 0, "scenarioId": "sc1"},
        {"id": "bye", "type": "instructions", "title": "Bye", "order": 1},
    ],
}


@pytest.fixture
def fast_settings() -> LabSettings:
    policy = RetryPolicy(max_attempts=4, base_delay_s=0.5, max_delay_s=2.0, attempt_timeout_s=0.5)
    return LabSettings(
        root_dir="unused",
        fetch_retry=policy,
        progress_retry=RetryPolicy(max_attempts=3, base_delay_s=1.0, max_delay_s=4.0, attempt_timeout_s=0.5),
        write_timeout_s=0.5,
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def progress_store() -> MemoryProgressStore:
    return MemoryProgressStore()


@pytest.fixture
def response_store() -> MemorySurveyResponseStore:
    return MemorySurveyResponseStore()


@pytest.fixture
def scenario_doc() -> dict[str, Any]:
    return copy.deepcopy(SCENARIO_DOC)


@pytest.fixture
def wallet_doc() -> list[dict[str, Any]]:
    return copy.deepcopy(WALLET_DOC)


@pytest.fixture
def three_stage_doc() -> dict[str, Any]:
    return copy.deepcopy(THREE_STAGE_EXPERIMENT)


@pytest.fixture
def scenario_experiment_doc() -> dict[str, Any]:
    return copy.deepcopy(SCENARIO_EXPERIMENT)


@pytest.fixture
def make_experiments() -> Callable[..., FakeExperimentStore]:
    def _make(docs: dict[str, Any] | None = None, error: Exception | None = None) -> FakeExperimentStore:
        if docs is None:
            docs = {
                THREE_STAGE_EXPERIMENT["id"]: copy.deepcopy(THREE_STAGE_EXPERIMENT),
                SCENARIO_EXPERIMENT["id"]: copy.deepcopy(SCENARIO_EXPERIMENT),
            }
        return FakeExperimentStore(docs, error=error)

    return _make


@pytest.fixture
def experiments(make_experiments: Callable[..., FakeExperimentStore]) -> FakeExperimentStore:
    return make_experiments()


@pytest.fixture
def make_source() -> Callable[..., FakeScenarioSource]:
    def _make(**kwargs: Any) -> FakeScenarioSource:
        kwargs.setdefault("scenarios", {"sc1": copy.deepcopy(SCENARIO_DOC)})
        kwargs.setdefault("wallets", {"w1": copy.deepcopy(WALLET_DOC)})
        return FakeScenarioSource(**kwargs)

    return _make


@pytest.fixture
def scenario_source(make_source: Callable[..., FakeScenarioSource]) -> FakeScenarioSource:
    return make_source()


@pytest.fixture
def make_controller(
    experiments: FakeExperimentStore,
    scenario_source: FakeScenarioSource,
    progress_store: MemoryProgressStore,
    response_store: MemorySurveyResponseStore,
    fast_settings: LabSettings,
    sleep: RecordingSleep,
) -> Callable[..., ExperimentRunController]:
    """Controller factory; keyword arguments override the default collaborators."""

    def _make(**kwargs: Any) -> ExperimentRunController:
        return ExperimentRunController(
            kwargs.pop("participant_id", "p1"),
            kwargs.pop("experiments", experiments),
            kwargs.pop("data_source", scenario_source),
            kwargs.pop("progress", progress_store),
            kwargs.pop("responses", response_store),
            settings=kwargs.pop("settings", fast_settings),
            sleep=kwargs.pop("sleep", sleep),
        )

    return _make
