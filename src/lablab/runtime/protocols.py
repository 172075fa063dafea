"""
Collaborator interfaces the run controller depends on.

The controller treats every collaborator as a black box reachable only through these
async protocols. Raw documents are returned from reads and validated by the runtime,
so a malformed payload is handled by the same retry/fallback path as a timeout.

Failure contract
- Raise ``lablab.core.errors.DataSourceError(status=404)`` for a missing document.
- Raise ``DataSourceError(status=503)`` (or any other status) for service failures.
- Any other exception, including ``asyncio.TimeoutError``, counts as a transport failure.

Implementations: lablab.io.stores (file-backed); tests use in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from lablab.core.schema import ParticipantProgress, ProgressUpdate, SurveyResponse
from lablab.core.typing import AnswerMap, ExperimentId, ParticipantId, ScenarioId, StageId, WalletId

__all__ = ["ExperimentStore", "ScenarioDataSource", "ProgressStore", "SurveyResponseStore"]


@runtime_checkable
class ExperimentStore(Protocol):
    async def get_experiment(self, experiment_id: ExperimentId) -> Any: ...


@runtime_checkable
class ScenarioDataSource(Protocol):
    async def get_scenario(self, scenario_id: ScenarioId) -> Any: ...

    async def get_wallet_assets(self, wallet_id: WalletId) -> Any: ...


@runtime_checkable
class ProgressStore(Protocol):
    async def get_progress(
        self, experiment_id: ExperimentId, participant_id: ParticipantId
    ) -> ParticipantProgress | None: ...

    async def record(
        self, experiment_id: ExperimentId, participant_id: ParticipantId, update: ProgressUpdate
    ) -> ParticipantProgress: ...


@runtime_checkable
class SurveyResponseStore(Protocol):
    async def submit(
        self,
        experiment_id: ExperimentId,
        stage_id: StageId,
        participant_id: ParticipantId,
        answers: AnswerMap,
    ) -> SurveyResponse: ...

    async def get_response(
        self, experiment_id: ExperimentId, stage_id: StageId, participant_id: ParticipantId
    ) -> SurveyResponse | None: ...
