"""
Stage gates: the per-stage condition that must hold before the participant may advance.

Responsibilities
- InstructionsGate: one acknowledgement.
- BreakGate: countdown from the stage's duration reaches zero.
- ScenarioGate: resilient scenario + wallet load, then every configured round elapsed.
  Prices are read with the round index clamped to the series.
- SurveyGate: validated answers persisted as one write; satisfied only once the write
  landed.

Notes
- Gates hold no clock; the controller forwards ticks.
- ``gate_for`` dispatches on the stage variant with an exhaustive ``match``.
- No timer state is persisted: a reload restarts a break or a scenario from round 1.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import TypeAdapter

from lablab.core.constants import TICK_SECONDS
from lablab.core.errors import DataNotFound, PersistenceError, SurveyValidationError
from lablab.core.grammar import NUMERIC_QUESTION_KINDS, QuestionKind, ScenarioPhase, StageKind
from lablab.core.policy import RetryPolicy
from lablab.core.schema import (
    AssetPrice,
    BreakStage,
    InstructionsStage,
    Question,
    Scenario,
    ScenarioStage,
    Stage,
    SurveyResponse,
    SurveyStage,
    WalletAsset,
)
from lablab.core.typing import AnswerMap, AnswerValue, QuestionId

from .fallback import fallback_scenario, fallback_series_for, fallback_wallet_assets
from .protocols import ScenarioDataSource, SurveyResponseStore
from .retry import FetchOutcome, fetch_with_fallback
from .session import StageVisit
from .timers import Countdown

__all__ = [
    "StageGate",
    "InstructionsGate",
    "BreakGate",
    "ScenarioGate",
    "SurveyGate",
    "gate_for",
    "is_empty_answer",
]

logger = logging.getLogger(__name__)

_WALLET_ADAPTER: TypeAdapter[list[WalletAsset]] = TypeAdapter(list[WalletAsset])

Sleep = Callable[[float], Awaitable[Any]]


class StageGate:
    """Base gate: unsatisfied, no ticking."""

    kind: StageKind

    def __init__(self, stage: Any) -> None:
        self.stage = stage

    @property
    def satisfied(self) -> bool:
        return False

    def tick(self, seconds: int = TICK_SECONDS) -> None:
        return None


class InstructionsGate(StageGate):
    kind = StageKind.INSTRUCTIONS

    def __init__(self, stage: InstructionsStage) -> None:
        super().__init__(stage)
        self.acknowledged = False

    def acknowledge(self) -> None:
        self.acknowledged = True

    @property
    def satisfied(self) -> bool:
        return self.acknowledged


class BreakGate(StageGate):
    """A zero-second break is satisfied immediately."""

    kind = StageKind.BREAK

    def __init__(self, stage: BreakStage) -> None:
        super().__init__(stage)
        self.countdown = Countdown(stage.duration_seconds)

    @property
    def remaining(self) -> int:
        return self.countdown.remaining

    def tick(self, seconds: int = TICK_SECONDS) -> None:
        self.countdown.tick(seconds)

    @property
    def satisfied(self) -> bool:
        return self.countdown.expired


class ScenarioGate(StageGate):
    """
    Market-simulation stage.

    Lifecycle:
        loading -> running -> complete, or loading -> unavailable when the scenario id
        is missing or does not resolve (404). Only an unavailable scenario may be skipped.

    Attributes:
        phase (ScenarioPhase): Current sub-state.
        scenario (Scenario | None): Loaded (or fallback) scenario.
        assets (list[WalletAsset]): Wallet holdings (or the fallback basket).
        round (int): Current 1-based round; 0 before the scenario runs.
        rounds_visited (list[int]): Every round shown, in order.
        used_fallback (bool): True if either the scenario or the wallet is substituted.
    """

    kind = StageKind.SCENARIO

    def __init__(
        self,
        stage: ScenarioStage,
        data_source: ScenarioDataSource,
        policy: RetryPolicy,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(stage)
        self._source = data_source
        self._policy = policy
        self._sleep = sleep
        self.phase = ScenarioPhase.LOADING
        self.scenario: Scenario | None = None
        self.assets: list[WalletAsset] = []
        self.round = 0
        self.rounds_visited: list[int] = []
        self.countdown = Countdown(0)
        self.scenario_fallback = False
        self.wallet_fallback = False

    # --- loading -----------------------------------------------------------

    async def load(self, visit: StageVisit) -> None:
        """
        Fetch scenario then wallet, falling back per the retry policy, and start round 1.

        Raises:
            StageCancelled: If ``visit`` is closed before loading finishes; nothing is applied.
        """
        stage: ScenarioStage = self.stage
        if not stage.scenario_id:
            logger.warning("scenario stage %s names no scenario; marking unavailable", stage.id)
            self.phase = ScenarioPhase.UNAVAILABLE
            return

        scenario_id = stage.scenario_id
        try:
            scenario_outcome: FetchOutcome[Scenario] = await fetch_with_fallback(
                lambda: self._source.get_scenario(scenario_id),
                Scenario.model_validate,
                lambda: fallback_scenario(stage),
                self._policy,
                visit=visit,
                label=f"scenario {scenario_id}",
                sleep=self._sleep,
            )
        except DataNotFound:
            visit.ensure_current()
            logger.warning("scenario %s does not exist; stage %s is skippable", scenario_id, stage.id)
            self.phase = ScenarioPhase.UNAVAILABLE
            return
        visit.outcomes["scenario"] = scenario_outcome
        scenario = scenario_outcome.value

        wallet_fallback = False
        try:
            wallet_outcome: FetchOutcome[list[WalletAsset]] = await fetch_with_fallback(
                lambda: self._source.get_wallet_assets(scenario.wallet_id),
                _WALLET_ADAPTER.validate_python,
                fallback_wallet_assets,
                self._policy,
                visit=visit,
                label=f"wallet {scenario.wallet_id}",
                sleep=self._sleep,
            )
            visit.outcomes["wallet"] = wallet_outcome
            assets = wallet_outcome.value
            wallet_fallback = wallet_outcome.used_fallback
        except DataNotFound:
            visit.ensure_current()
            logger.warning("wallet %s does not exist; substituting fallback wallet", scenario.wallet_id)
            assets = fallback_wallet_assets()
            wallet_fallback = True

        self.scenario_fallback = scenario_outcome.used_fallback
        self.wallet_fallback = wallet_fallback
        self._start(scenario, assets)

    def _start(self, scenario: Scenario, assets: list[WalletAsset]) -> None:
        self.scenario = scenario
        self.assets = list(assets)
        self.round = 1
        self.rounds_visited = [1]
        self.countdown = Countdown(scenario.round_duration)
        self.phase = ScenarioPhase.RUNNING
        logger.debug(
            "scenario %s running: %d rounds x %ds", scenario.id, scenario.rounds, scenario.round_duration
        )

    # --- progression -------------------------------------------------------

    @property
    def total_rounds(self) -> int:
        return self.scenario.rounds if self.scenario is not None else 0

    @property
    def used_fallback(self) -> bool:
        return self.scenario_fallback or self.wallet_fallback

    @property
    def satisfied(self) -> bool:
        return self.phase is ScenarioPhase.COMPLETE

    @property
    def skippable(self) -> bool:
        return self.phase is ScenarioPhase.UNAVAILABLE

    def tick(self, seconds: int = TICK_SECONDS) -> None:
        """Advance the round timer; at most one round change per tick."""
        if self.phase is not ScenarioPhase.RUNNING or self.scenario is None:
            return
        if not self.countdown.tick(seconds):
            return
        if self.round < self.scenario.rounds:
            self.round += 1
            self.rounds_visited.append(self.round)
            self.countdown.reset(self.scenario.round_duration)
        else:
            self.phase = ScenarioPhase.COMPLETE
            logger.debug("scenario %s complete after %d rounds", self.scenario.id, self.round)

    # --- valuation ---------------------------------------------------------

    def series_for(self, asset: WalletAsset) -> AssetPrice | None:
        """Scenario series for an asset; fallback basket series if the scenario has none."""
        if self.scenario is not None:
            found = self.scenario.prices_for(asset)
            if found is not None:
                return found
        return fallback_series_for(asset.symbol)

    def current_price(self, asset: WalletAsset, round_number: int | None = None) -> float | None:
        series = self.series_for(asset)
        if series is None:
            return None
        return series.price_at(self.round if round_number is None else round_number)

    def previous_price(self, asset: WalletAsset) -> float | None:
        """Price in the previous round, or None in round 1."""
        if self.round <= 1:
            return None
        return self.current_price(asset, self.round - 1)

    def portfolio_value(self, round_number: int | None = None) -> float:
        """Sum of amount x price over holdings with a known price."""
        total = 0.0
        for asset in self.assets:
            price = self.current_price(asset, round_number)
            if price is not None:
                total += asset.amount * price
        return total

    def portfolio_delta(self) -> float | None:
        """Change in portfolio value since the previous round; None in round 1."""
        if self.round <= 1:
            return None
        return self.portfolio_value(self.round) - self.portfolio_value(self.round - 1)


def is_empty_answer(value: Any) -> bool:
    """True for None, blank strings and empty lists; numbers (including 0) are answers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _check_answer(q: Question, value: AnswerValue) -> str | None:
    """Reason the answer has the wrong shape for ``q``, or None if it fits."""
    if q.type in NUMERIC_QUESTION_KINDS and not _is_number(value):
        return "expected a number"
    match q.type:
        case QuestionKind.TEXT | QuestionKind.TEXTAREA:
            if not isinstance(value, str):
                return "expected text"
        case QuestionKind.MULTIPLE_CHOICE:
            if not isinstance(value, str):
                return "expected a single choice"
            if value not in q.options:
                return f"{value!r} is not an option"
        case QuestionKind.CHECKBOXES:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                return "expected a list of choices"
            unknown = [v for v in value if v not in q.options]
            if unknown:
                return f"{unknown} are not options"
        case QuestionKind.SCALE:
            if not q.min_value <= value <= q.max_value:
                return f"must be between {q.min_value} and {q.max_value}"
        case QuestionKind.RATING:
            if not 1 <= value <= q.max_rating:
                return f"must be between 1 and {q.max_rating}"
    return None


class SurveyGate(StageGate):
    """
    Local answer map plus one atomic submission.

    Attributes:
        answers (dict[str, AnswerValue]): Current answers by question id.
        errors (dict[str, str]): Per-question messages from the last failed validation.
        response (SurveyResponse | None): Persisted response once submitted.
    """

    kind = StageKind.SURVEY

    def __init__(
        self, stage: SurveyStage, responses: SurveyResponseStore, write_timeout_s: float
    ) -> None:
        super().__init__(stage)
        self._responses = responses
        self._write_timeout_s = write_timeout_s
        self._questions = {q.id: q for q in stage.questions}
        self.answers: dict[str, AnswerValue] = {}
        self.errors: dict[str, str] = {}
        self.response: SurveyResponse | None = None

    @property
    def questions(self) -> list[Question]:
        return list(self.stage.questions)

    def set_answer(self, question_id: QuestionId, value: AnswerValue | None) -> None:
        """
        Record (or clear, with an empty value) the answer to one question.

        Raises:
            KeyError: If the stage has no such question.
        """
        if question_id not in self._questions:
            raise KeyError(f"survey stage {self.stage.id!r} has no question {question_id!r}")
        if is_empty_answer(value):
            self.answers.pop(question_id, None)
        else:
            self.answers[question_id] = list(value) if isinstance(value, (list, tuple)) else value
        self.errors.pop(question_id, None)

    def validate(self) -> AnswerMap:
        """
        Check the answer map against the questions.

        Returns:
            AnswerMap: Non-empty answers, in question order.

        Raises:
            SurveyValidationError: Required questions unanswered or answers of the wrong
                shape; ``errors`` is filled per question.
        """
        missing: list[str] = []
        invalid: dict[str, str] = {}
        cleaned: AnswerMap = {}
        for q in self.stage.questions:
            value = self.answers.get(q.id)
            if is_empty_answer(value):
                if q.required:
                    missing.append(q.id)
                continue
            reason = _check_answer(q, value)
            if reason is not None:
                invalid[q.id] = reason
                continue
            cleaned[q.id] = value
        self.errors = {qid: "This question is required" for qid in missing}
        self.errors.update(invalid)
        if missing or invalid:
            raise SurveyValidationError(missing=missing, invalid=invalid)
        return cleaned

    async def submit(self, experiment_id: str, participant_id: str) -> SurveyResponse:
        """
        Validate and persist the full answer map.

        Raises:
            SurveyValidationError: Nothing is written.
            PersistenceError: The write failed or timed out; the gate stays unsatisfied
                and the same answers may be resubmitted.
        """
        answers = self.validate()
        try:
            response = await asyncio.wait_for(
                self._responses.submit(experiment_id, self.stage.id, participant_id, answers),
                timeout=self._write_timeout_s,
            )
        except Exception as exc:  # noqa: BLE001 - surfaced to the participant as a resubmit
            logger.warning("survey %s submission failed: %r", self.stage.id, exc)
            raise PersistenceError(f"could not save answers for {self.stage.id!r}") from exc
        self.response = response
        logger.info("survey %s submitted by %s", self.stage.id, participant_id)
        return response

    @property
    def satisfied(self) -> bool:
        return self.response is not None


def gate_for(
    stage: Stage,
    *,
    data_source: ScenarioDataSource,
    responses: SurveyResponseStore,
    fetch_policy: RetryPolicy,
    write_timeout_s: float,
    sleep: Sleep = asyncio.sleep,
) -> StageGate:
    """Build the gate for a stage variant."""
    match stage:
        case InstructionsStage():
            return InstructionsGate(stage)
        case BreakStage():
            return BreakGate(stage)
        case ScenarioStage():
            return ScenarioGate(stage, data_source, fetch_policy, sleep=sleep)
        case SurveyStage():
            return SurveyGate(stage, responses, write_timeout_s)
    raise TypeError(f"unsupported stage {type(stage).__name__}")
