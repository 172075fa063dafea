"""
Experiment Run Controller: one participant's walk through one experiment.

Phases (lablab.core.grammar.RunPhase)
- loading -> welcome (definition loaded) | load_failed (LoadError; ``retry_load``).
- welcome -> running on ``begin()``; a completed progress record goes straight to done.
- running: one stage at a time, in ``order``. ``advance(stage_id)`` requires the
  stage's gate; the transition is persisted before the next stage is shown.
- done: completion (status=completed) is written at most once per session and never
  re-written when resuming a completed record.

Failure policy
- Experiment definition missing or unreachable: LoadError, no fallback.
- Scenario/wallet data: retried then substituted (see runtime.retry); the participant
  sees a dismissible notice.
- Survey write: PersistenceError, the stage stays current and may be resubmitted.
- Progress write: logged and retried in the background (runtime.progress); never
  blocks the participant.

Concurrency
- Single event loop. Work started for a stage is owned by its StageVisit and cancelled
  when the participant leaves the stage.
- One stage transition at a time: ``advance`` or ``skip_unavailable_scenario`` issued
  while another is still persisting raises RunStateError.

Examples:
    >>> ctl = ExperimentRunController("p1", experiments, source, progress, responses)  # doctest: +SKIP
    >>> await ctl.load_experiment("demo_experiment")  # doctest: +SKIP
    >>> await ctl.begin()  # doctest: +SKIP
    >>> ctl.acknowledge(); await ctl.advance(ctl.current_stage.id)  # doctest: +SKIP
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from lablab.core.constants import NOT_FOUND
from lablab.core.errors import (
    DataSourceError,
    GateNotSatisfied,
    LoadError,
    RunStateError,
    StageCancelled,
    StageMismatch,
)
from lablab.core.grammar import ProgressStatus, RunPhase
from lablab.core.schema import Experiment, ParticipantProgress, ProgressUpdate, SurveyResponse
from lablab.core.typing import AnswerValue, QuestionId
from lablab.io.config import LabSettings

from .gates import InstructionsGate, ScenarioGate, StageGate, SurveyGate, gate_for
from .progress import ProgressWriter
from .protocols import ExperimentStore, ProgressStore, ScenarioDataSource, SurveyResponseStore
from .session import StageVisit

__all__ = ["ExperimentRunController", "Notice"]

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class Notice:
    """Non-blocking, dismissible message for the participant."""

    key: str
    stage_id: str
    message: str


class ExperimentRunController:
    """
    Participant-facing run state for one experiment.

    Args:
        participant_id (str): Participant running the experiment.
        experiments (ExperimentStore): Experiment definitions.
        data_source (ScenarioDataSource): Scenario and wallet data (unreliable).
        progress (ProgressStore): Participant progress records.
        responses (SurveyResponseStore): Survey answer maps.
        settings (LabSettings | None): Retry policies and timeouts; defaults if None.
        sleep: Awaitable sleep used for backoff (injected by tests).

    Attributes:
        phase (RunPhase): Current phase.
        experiment (Experiment | None): Loaded definition (cached for the session).
        current_index (int): Index of the current stage while running.
        load_error (LoadError | None): Last load failure.
        progress_record (ParticipantProgress | None): Last known persisted record.
    """

    def __init__(
        self,
        participant_id: str,
        experiments: ExperimentStore,
        data_source: ScenarioDataSource,
        progress: ProgressStore,
        responses: SurveyResponseStore,
        settings: LabSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.participant_id = participant_id
        self._experiments = experiments
        self._data_source = data_source
        self._progress = progress
        self._responses = responses
        self.settings = settings or LabSettings()
        self._sleep = sleep

        self.phase = RunPhase.LOADING
        self.experiment: Experiment | None = None
        self.experiment_id: str | None = None
        self.load_error: LoadError | None = None
        self.progress_record: ParticipantProgress | None = None
        self.current_index = 0
        self._resume_index = 0
        self._visit: StageVisit | None = None
        self._gate: StageGate | None = None
        self._writer: ProgressWriter | None = None
        self._finished_stage_id: str | None = None
        self._completion_written = False
        self._advancing = False
        self._notices: dict[str, Notice] = {}
        self._dismissed: set[str] = set()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_experiment(self, experiment_id: str) -> Experiment:
        """
        Load the experiment definition (once per session) and the participant's record.

        Returns:
            Experiment: The validated definition.

        Raises:
            LoadError: ``not_found`` if the store reports 404, otherwise ``unreachable``
                (timeouts, service failures, an invalid definition). Phase becomes
                load_failed; no fallback definition is ever substituted.
        """
        if self.experiment is not None and self.experiment.id == experiment_id:
            return self.experiment

        self.experiment_id = experiment_id
        self.phase = RunPhase.LOADING
        self.load_error = None
        timeout_s = self.settings.fetch_retry.attempt_timeout_s
        try:
            raw = await asyncio.wait_for(
                self._experiments.get_experiment(experiment_id), timeout=timeout_s
            )
            experiment = Experiment.model_validate(raw)
        except DataSourceError as exc:
            kind = "not_found" if exc.status == NOT_FOUND else "unreachable"
            raise self._fail_load(LoadError(experiment_id, kind, str(exc))) from exc
        except TimeoutError as exc:
            raise self._fail_load(
                LoadError(experiment_id, "unreachable", f"no response within {timeout_s:g}s")
            ) from exc
        except ValidationError as exc:
            raise self._fail_load(
                LoadError(experiment_id, "unreachable", f"invalid definition: {exc.error_count()} errors")
            ) from exc
        except Exception as exc:  # noqa: BLE001 - transport failures are "unreachable"
            raise self._fail_load(LoadError(experiment_id, "unreachable", repr(exc))) from exc

        self.experiment = experiment
        self._writer = ProgressWriter(
            self._progress,
            experiment.id,
            self.participant_id,
            self.settings.progress_retry,
            self.settings.write_timeout_s,
            sleep=self._sleep,
        )
        record = await self._read_progress(experiment.id)
        self.progress_record = record
        self._resume_from(experiment, record)
        logger.info(
            "loaded experiment %s for %s (%d stages, phase=%s)",
            experiment.id,
            self.participant_id,
            len(experiment.stages),
            self.phase.value,
        )
        return experiment

    async def retry_load(self) -> Experiment:
        """Retry the last failed ``load_experiment``."""
        if self.experiment_id is None:
            raise RunStateError("no experiment load to retry")
        return await self.load_experiment(self.experiment_id)

    def _fail_load(self, err: LoadError) -> LoadError:
        self.load_error = err
        self.phase = RunPhase.LOAD_FAILED
        logger.warning("%s", err)
        return err

    async def _read_progress(self, experiment_id: str) -> ParticipantProgress | None:
        try:
            return await asyncio.wait_for(
                self._progress.get_progress(experiment_id, self.participant_id),
                timeout=self.settings.write_timeout_s,
            )
        except Exception as exc:  # noqa: BLE001 - a missing record only means "start fresh"
            logger.warning(
                "could not read progress for %s/%s; starting from the first stage: %r",
                experiment_id,
                self.participant_id,
                exc,
            )
            return None

    def _resume_from(self, experiment: Experiment, record: ParticipantProgress | None) -> None:
        self._resume_index = 0
        if record is None:
            self.phase = RunPhase.WELCOME
            return
        if record.status is ProgressStatus.COMPLETED:
            # Re-enter the terminal screen without re-firing completion.
            self._completion_written = True
            self.current_index = len(experiment.stages) - 1
            self.phase = RunPhase.DONE
            return
        idx = experiment.stage_index(record.current_stage_id) if record.current_stage_id else None
        if idx is None:
            done = set(record.completed_stages)
            # Every stage done but never completed: land on the last one.
            idx = next(
                (i for i, s in enumerate(experiment.stages) if s.id not in done),
                len(experiment.stages) - 1,
            )
        self._resume_index = idx
        self.phase = RunPhase.WELCOME

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    @property
    def current_stage(self) -> Any:
        if self.experiment is None or self.phase is not RunPhase.RUNNING:
            return None
        return self.experiment.stages[self.current_index]

    @property
    def gate(self) -> StageGate | None:
        return self._gate if self.phase is RunPhase.RUNNING else None

    @property
    def visit(self) -> StageVisit | None:
        return self._visit

    @property
    def resume_index(self) -> int:
        return self._resume_index

    @property
    def is_resuming(self) -> bool:
        return self._resume_index > 0

    async def begin(self) -> None:
        """
        Leave the welcome screen and show the first (or resumed) stage.

        Raises:
            RunStateError: If the controller is not on the welcome screen.
        """
        if self.phase is not RunPhase.WELCOME or self.experiment is None:
            raise RunStateError(f"cannot begin from phase {self.phase.value}")
        stage = self.experiment.stages[self._resume_index]
        await self._persist(
            ProgressUpdate(status=ProgressStatus.IN_PROGRESS, current_stage_id=stage.id)
        )
        self.phase = RunPhase.RUNNING
        self._enter_stage(self._resume_index)

    def _require_experiment(self) -> Experiment:
        if self.experiment is None:
            raise RunStateError(f"no experiment loaded (phase {self.phase.value})")
        return self.experiment

    def _enter_stage(self, index: int) -> None:
        experiment = self._require_experiment()
        if self._visit is not None:
            self._visit.close()
        stage = experiment.stages[index]
        self.current_index = index
        self._visit = StageVisit(stage.id, index)
        self._gate = gate_for(
            stage,
            data_source=self._data_source,
            responses=self._responses,
            fetch_policy=self.settings.fetch_retry,
            write_timeout_s=self.settings.write_timeout_s,
            sleep=self._sleep,
        )
        if isinstance(self._gate, ScenarioGate):
            self._visit.spawn(self._load_scenario(self._gate, self._visit), name=f"load-{stage.id}")
        logger.debug("entered stage %s (%d/%d)", stage.id, index + 1, len(experiment.stages))

    async def _load_scenario(self, gate: ScenarioGate, visit: StageVisit) -> None:
        try:
            await gate.load(visit)
        except StageCancelled:
            logger.debug("discarded scenario load for stale visit %s", visit.token)
            return
        if gate.used_fallback:
            self._add_notice(
                Notice(
                    key=f"fallback:{visit.stage_id}",
                    stage_id=visit.stage_id,
                    message="Live market data is unavailable; sample data is shown instead.",
                )
            )

    async def wait_stage_ready(self) -> None:
        """Wait for background work of the current stage (e.g., scenario loading)."""
        if self._visit is not None:
            await self._visit.wait()

    def tick(self, seconds: int = 1) -> bool:
        """
        Forward a clock tick to the current stage's gate.

        Returns:
            bool: Whether the current gate is satisfied after the tick.
        """
        if self.phase is not RunPhase.RUNNING or self._gate is None:
            return False
        self._gate.tick(seconds)
        return self._gate.satisfied

    def acknowledge(self) -> None:
        """Acknowledge the current instructions stage."""
        self._require_gate(InstructionsGate).acknowledge()

    def set_answer(self, question_id: QuestionId, value: AnswerValue | None) -> None:
        self._require_gate(SurveyGate).set_answer(question_id, value)

    async def submit_survey(self) -> SurveyResponse:
        """
        Validate and persist the current survey's answers.

        Raises:
            SurveyValidationError: Required questions unanswered; nothing written.
            PersistenceError: The write failed; resubmit to retry.
            RunStateError: The current stage is not a survey.
            StageCancelled: The participant left the stage while the write was pending.
        """
        gate = self._require_gate(SurveyGate)
        experiment = self._require_experiment()
        visit = self._visit
        response = await gate.submit(experiment.id, self.participant_id)
        if visit is not None:
            visit.ensure_current()
        return response

    def _require_gate(self, cls: type[Any]) -> Any:
        if self.phase is not RunPhase.RUNNING or not isinstance(self._gate, cls):
            current = self._gate.kind.value if self._gate is not None else self.phase.value
            raise RunStateError(f"current stage is {current}, not {cls.kind.value}")
        return self._gate

    async def advance(self, stage_id: str) -> None:
        """
        Complete the current stage and move to the next one (or finish).

        Raises:
            RunStateError: Not running, or another transition is still in flight.
            StageMismatch: ``stage_id`` is not the current stage.
            GateNotSatisfied: The current stage's gate does not hold; nothing changes.
        """
        stage = self._check_current(stage_id)
        if self._gate is None or not self._gate.satisfied:
            raise GateNotSatisfied(f"stage {stage_id!r} is not complete")
        await self._finish_stage(stage.id)

    async def skip_unavailable_scenario(self, stage_id: str) -> None:
        """
        Leave a scenario stage whose scenario could not be loaded at all.

        Raises:
            GateNotSatisfied: The stage is not an unavailable scenario.
        """
        self._check_current(stage_id)
        if not (isinstance(self._gate, ScenarioGate) and self._gate.skippable):
            raise GateNotSatisfied(f"stage {stage_id!r} cannot be skipped")
        logger.warning("participant %s skipped unavailable scenario stage %s", self.participant_id, stage_id)
        await self._finish_stage(stage_id)

    def _check_current(self, stage_id: str) -> Any:
        if self.phase is not RunPhase.RUNNING:
            raise RunStateError(f"cannot advance from phase {self.phase.value}")
        if self._advancing:
            raise RunStateError(f"stage {stage_id!r} is already being left")
        stage = self.current_stage
        if stage.id != stage_id:
            raise StageMismatch(f"current stage is {stage.id!r}, not {stage_id!r}")
        return stage

    async def _finish_stage(self, stage_id: str) -> None:
        experiment = self._require_experiment()
        # One transition at a time; a repeated "continue" during the write is rejected.
        self._advancing = True
        try:
            nxt = self.current_index + 1
            if nxt < len(experiment.stages):
                # Persist before showing the next stage.
                await self._persist(
                    ProgressUpdate(
                        completed_stage_id=stage_id,
                        current_stage_id=experiment.stages[nxt].id,
                    )
                )
                self._enter_stage(nxt)
                return
            self._finished_stage_id = stage_id
            await self.complete()
        finally:
            self._advancing = False

    async def complete(self) -> bool:
        """
        Enter the done phase, writing status=completed at most once.

        Returns:
            bool: True if this call issued the completion write.

        Raises:
            RunStateError: Stages remain.
        """
        if self._completion_written:
            self._close_visit()
            self.phase = RunPhase.DONE
            return False
        if self._finished_stage_id is None:
            raise RunStateError("cannot complete: stages remain")
        self._completion_written = True
        self._close_visit()
        self.phase = RunPhase.DONE
        await self._persist(
            ProgressUpdate(status=ProgressStatus.COMPLETED, completed_stage_id=self._finished_stage_id)
        )
        logger.info("participant %s completed experiment %s", self.participant_id, self.experiment_id)
        return True

    async def _persist(self, update: ProgressUpdate) -> bool:
        if self._writer is None:
            raise RunStateError("no experiment loaded; nothing to persist")
        landed = await self._writer.submit(update)
        if self._writer.last_record is not None:
            self.progress_record = self._writer.last_record
        return landed

    # ------------------------------------------------------------------
    # Notices and teardown
    # ------------------------------------------------------------------

    def _add_notice(self, notice: Notice) -> None:
        if notice.key not in self._dismissed:
            self._notices[notice.key] = notice

    @property
    def notices(self) -> tuple[Notice, ...]:
        return tuple(self._notices.values())

    def dismiss_notice(self, key: str) -> None:
        self._notices.pop(key, None)
        self._dismissed.add(key)

    @property
    def pending_progress_writes(self) -> int:
        return self._writer.pending if self._writer is not None else 0

    async def flush_progress(self) -> bool:
        """Wait for background progress retries; True if nothing is left unsent."""
        if self._writer is None:
            return True
        landed = await self._writer.drain()
        if self._writer.last_record is not None:
            self.progress_record = self._writer.last_record
        return landed

    def _close_visit(self) -> None:
        if self._visit is not None:
            self._visit.close()
        self._gate = None

    async def close(self) -> None:
        """Cancel stage work and background retries."""
        self._close_visit()
        if self._writer is not None:
            await self._writer.close()
