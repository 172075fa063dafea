"""
File-backed implementations of the runtime's external collaborators.

Each store is an async facade over DocumentStore; blocking file IO is offloaded with
``asyncio.to_thread`` so the runtime's event loop keeps ticking while a read or write
is in flight.

Contracts
- FileExperimentStore / FileScenarioSource return raw documents (dicts/lists); the
  runtime validates them. A missing document raises DataSourceError(status=404) and
  an unreadable one DataSourceError(status=None).
- FileProgressStore merges updates with ``apply_progress_update`` (monotonic status,
  append-only completed stages) and returns the stored record.
- FileSurveyResponseStore writes the full answer map on each submit; a resubmission
  replaces the previous document.

Notes
- The progress record is only ever written by its participant's own session, so the
  read-merge-write in ``record`` needs no lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from lablab.core.constants import NOT_FOUND
from lablab.core.errors import DataSourceError
from lablab.core.schema import (
    ParticipantProgress,
    ProgressUpdate,
    SurveyResponse,
    apply_progress_update,
)
from lablab.core.serde import from_document, to_document
from lablab.core.typing import AnswerMap

from .config import LabSettings
from .documents import DocumentStore
from .errors import IoConfigError, IoReadError
from .paths import Collection

__all__ = [
    "FileExperimentStore",
    "FileScenarioSource",
    "FileProgressStore",
    "FileSurveyResponseStore",
    "normalize_wallet_assets",
]

logger = logging.getLogger(__name__)


def _read_or_raise(docs: DocumentStore, collection: Collection, doc_id: str) -> Any:
    try:
        doc = docs.get(collection, doc_id)
    except (IoReadError, IoConfigError) as exc:
        raise DataSourceError(str(exc)) from exc
    if doc is None:
        raise DataSourceError(f"{collection.value}/{doc_id} not found", status=NOT_FOUND)
    return doc


def normalize_wallet_assets(doc: Any) -> Any:
    """
    Return the asset list of a wallet document.

    Wallets are stored either as ``{"assets": [...]}`` or as a bare list. Anything else
    is returned unchanged so the caller's validation rejects it.
    """
    if isinstance(doc, dict) and "assets" in doc:
        return doc["assets"]
    return doc


class FileExperimentStore:
    """
    Experiment definitions from ``<root>/experiments``.

    Survey stages that reference a survey document (``surveyId``) but carry no inline
    questions get the questions of ``<root>/surveys/<surveyId>.json`` filled in.
    """

    def __init__(self, settings: LabSettings) -> None:
        self._docs = DocumentStore(settings)

    def _load(self, experiment_id: str) -> dict[str, Any]:
        doc = _read_or_raise(self._docs, Collection.EXPERIMENTS, experiment_id)
        if not isinstance(doc, dict):
            return doc
        stages = doc.get("stages")
        if isinstance(stages, list):
            doc["stages"] = [self._inline_survey(s) for s in stages]
        return doc

    def _inline_survey(self, stage: Any) -> Any:
        if not isinstance(stage, dict) or stage.get("type") != "survey":
            return stage
        survey_id = stage.get("surveyId") or stage.get("survey_id")
        if stage.get("questions") or not survey_id:
            return stage
        try:
            survey = self._docs.get(Collection.SURVEYS, str(survey_id))
        except (IoReadError, IoConfigError) as exc:
            raise DataSourceError(str(exc)) from exc
        if isinstance(survey, dict) and isinstance(survey.get("questions"), list):
            return {**stage, "questions": survey["questions"]}
        logger.warning("survey %s referenced by stage %s has no questions", survey_id, stage.get("id"))
        return stage

    async def get_experiment(self, experiment_id: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._load, experiment_id)


class FileScenarioSource:
    """Scenario and wallet documents from ``<root>/scenarios`` and ``<root>/wallets``."""

    def __init__(self, settings: LabSettings) -> None:
        self._docs = DocumentStore(settings)

    async def get_scenario(self, scenario_id: str) -> Any:
        return await asyncio.to_thread(_read_or_raise, self._docs, Collection.SCENARIOS, scenario_id)

    async def get_wallet_assets(self, wallet_id: str) -> Any:
        doc = await asyncio.to_thread(_read_or_raise, self._docs, Collection.WALLETS, wallet_id)
        return normalize_wallet_assets(doc)


class FileProgressStore:
    """Participant progress records under ``<root>/progress/<experiment_id>``."""

    def __init__(self, settings: LabSettings) -> None:
        self._docs = DocumentStore(settings)

    def _get(self, experiment_id: str, participant_id: str) -> ParticipantProgress | None:
        doc = self._docs.get(Collection.PROGRESS, participant_id, experiment_id)
        return None if doc is None else from_document(ParticipantProgress, doc)

    def _record(
        self, experiment_id: str, participant_id: str, update: ProgressUpdate
    ) -> ParticipantProgress:
        current = self._get(experiment_id, participant_id) or ParticipantProgress.new(
            participant_id, experiment_id
        )
        merged = apply_progress_update(current, update)
        self._docs.put(Collection.PROGRESS, participant_id, to_document(merged), experiment_id)
        return merged

    async def get_progress(
        self, experiment_id: str, participant_id: str
    ) -> ParticipantProgress | None:
        return await asyncio.to_thread(self._get, experiment_id, participant_id)

    async def record(
        self, experiment_id: str, participant_id: str, update: ProgressUpdate
    ) -> ParticipantProgress:
        return await asyncio.to_thread(self._record, experiment_id, participant_id, update)

    def all_progress(self) -> list[ParticipantProgress]:
        """Every stored record (synchronous; used by reports)."""
        out: list[ParticipantProgress] = []
        for experiment_id in self._docs.subdirs(Collection.PROGRESS):
            for participant_id in self._docs.ids(Collection.PROGRESS, experiment_id):
                rec = self._get(experiment_id, participant_id)
                if rec is not None:
                    out.append(rec)
        return out


class FileSurveyResponseStore:
    """Survey answer maps under ``<root>/survey_responses/<experiment_id>/<stage_id>``."""

    def __init__(self, settings: LabSettings) -> None:
        self._docs = DocumentStore(settings)

    def _submit(self, response: SurveyResponse) -> SurveyResponse:
        self._docs.put(
            Collection.SURVEY_RESPONSES,
            response.participant_id,
            to_document(response),
            response.experiment_id,
            response.stage_id,
        )
        return response

    def _get(self, experiment_id: str, stage_id: str, participant_id: str) -> SurveyResponse | None:
        doc = self._docs.get(Collection.SURVEY_RESPONSES, participant_id, experiment_id, stage_id)
        return None if doc is None else from_document(SurveyResponse, doc)

    async def submit(
        self, experiment_id: str, stage_id: str, participant_id: str, answers: AnswerMap
    ) -> SurveyResponse:
        response = SurveyResponse(
            experiment_id=experiment_id,
            stage_id=stage_id,
            participant_id=participant_id,
            answers=dict(answers),
        )
        return await asyncio.to_thread(self._submit, response)

    async def get_response(
        self, experiment_id: str, stage_id: str, participant_id: str
    ) -> SurveyResponse | None:
        return await asyncio.to_thread(self._get, experiment_id, stage_id, participant_id)

    def all_responses(self) -> list[SurveyResponse]:
        """Every stored response (synchronous; used by reports)."""
        out: list[SurveyResponse] = []
        for experiment_id in self._docs.subdirs(Collection.SURVEY_RESPONSES):
            for stage_id in self._docs.subdirs(Collection.SURVEY_RESPONSES, experiment_id):
                for participant_id in self._docs.ids(
                    Collection.SURVEY_RESPONSES, experiment_id, stage_id
                ):
                    rec = self._get(experiment_id, stage_id, participant_id)
                    if rec is not None:
                        out.append(rec)
        return out
