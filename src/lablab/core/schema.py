"""
Pydantic v2 models for experiments, stages, questions, scenarios, wallets, participant
progress and survey responses.

Responsibilities
- Define the canonical models for every document the runtime reads or writes.
- Normalize enum-like tokens (camelCase accepted at the boundary) via grammar helpers.
- Enforce cross-field rules (unique stage/question ids, options for choice questions,
  start_stage_id references, scenario round limits).
- Provide the pure progress merge used by every progress store.

Style
- Zero-IO (stdlib + pydantic only).
- Field names are lower_snake; documents use camelCase aliases (``roundDuration``,
  ``walletId``) and both spellings validate.

References
- grammar: src/lablab/core/grammar.py (enums, normalization helpers)
- errors: src/lablab/core/errors.py (SchemaError, GrammarError)
- tests: tests/core/*
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import MAX_ROUND_DURATION_S, MAX_ROUNDS, MIN_ROUND_DURATION_S, MIN_ROUNDS
from .errors import GrammarError, SchemaError
from .grammar import (
    CHOICE_QUESTION_KINDS,
    AssetKind,
    InstructionsFormat,
    ProgressStatus,
    QuestionKind,
    StageKind,
    merge_status,
    progress_status_from_value,
    question_kind_from_value,
    to_lower_snake,
)
from .typing import AnswerValue

__all__ = [
    # Experiment definition
    "Question",
    "InstructionsStage",
    "BreakStage",
    "ScenarioStage",
    "SurveyStage",
    "Stage",
    "Experiment",
    # Market data
    "AssetPrice",
    "Scenario",
    "WalletAsset",
    # Participant state
    "ParticipantProgress",
    "ProgressUpdate",
    "apply_progress_update",
    "SurveyResponse",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _Document(BaseModel):
    """Base for stored documents: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _id_field(**kwargs: Any) -> Any:
    # Documents exported from the admin screens carry "_id".
    return Field(validation_alias=AliasChoices("id", "_id"), serialization_alias="id", **kwargs)


# ============================================================================
# Experiment definition
# ============================================================================


class Question(_Document):
    """
    One survey question.

    Attributes:
        id (str): Question identifier, unique within its stage.
        text (str): Prompt shown to the participant.
        type (QuestionKind): Question kind; camelCase tokens accepted.
        required (bool): Whether an answer is needed before submission.
        options (list[str]): Choices for multiple_choice/checkboxes.
        min_value (int): Lower bound for scale questions.
        max_value (int): Upper bound for scale questions.
        max_rating (int): Number of stars for rating questions.
        order (int): Display order.

    Raises:
        pydantic.ValidationError: On unknown type, a choice question with no options,
            or an empty scale range.

    Examples:
        >>> from lablab.core.schema import Question
        >>> Question(id="q1", text="Pick one", type="multipleChoice", options=["a", "b"]).type.value
        'multiple_choice'
    """

    id: str = _id_field()
    text: str
    type: QuestionKind
    required: bool = False
    options: list[str] = Field(default_factory=list)
    min_value: int = 1
    max_value: int = 10
    max_rating: int = Field(default=5, ge=1)
    order: int = 0

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, QuestionKind):
            return v
        try:
            return question_kind_from_value(str(v))
        except ValueError as e:
            raise GrammarError(str(e)) from e

    @model_validator(mode="after")
    def _check_shape(self) -> Question:
        if self.type in CHOICE_QUESTION_KINDS and not self.options:
            raise SchemaError(f"question {self.id!r} of type {self.type.value} needs options")
        if self.type is QuestionKind.SCALE and self.min_value >= self.max_value:
            raise SchemaError(
                f"question {self.id!r}: min_value must be below max_value "
                f"({self.min_value} >= {self.max_value})"
            )
        return self


class _StageBase(_Document):
    id: str = _id_field()
    title: str
    description: str = ""
    duration_seconds: int = Field(default=0, ge=0)
    required: bool = True
    order: int = Field(default=0, ge=0)

    @property
    def kind(self) -> StageKind:
        return StageKind(self.type)  # type: ignore[attr-defined]


class InstructionsStage(_StageBase):
    """Static content; gate is a single acknowledgement."""

    type: Literal["instructions"] = "instructions"
    content: str = ""
    format: InstructionsFormat = InstructionsFormat.MARKDOWN

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, v: Any) -> Any:
        if v is None:
            return InstructionsFormat.MARKDOWN
        if isinstance(v, InstructionsFormat):
            return v
        return to_lower_snake(str(v))


class BreakStage(_StageBase):
    """Fixed countdown of ``duration_seconds``; gate is the timer reaching zero."""

    type: Literal["break"] = "break"
    message: str = "Take a short break before continuing"


class ScenarioStage(_StageBase):
    """
    Market-simulation stage backed by a scenario document.

    Attributes:
        scenario_id (str | None): Scenario to load; None makes the stage unavailable.
        rounds (int | None): Round count used only when fallback data is substituted.
        round_duration (int | None): Round length used only with fallback data.
    """

    type: Literal["scenario"] = "scenario"
    scenario_id: str | None = None
    rounds: int | None = Field(default=None, ge=MIN_ROUNDS, le=MAX_ROUNDS)
    round_duration: int | None = Field(
        default=None, ge=MIN_ROUND_DURATION_S, le=MAX_ROUND_DURATION_S
    )


class SurveyStage(_StageBase):
    """Ordered questions; gate is a validated, persisted answer map."""

    type: Literal["survey"] = "survey"
    survey_id: str | None = None
    questions: list[Question] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_questions(self) -> SurveyStage:
        if not self.questions:
            raise SchemaError(f"survey stage {self.id!r} has no questions")
        ids = [q.id for q in self.questions]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise SchemaError(f"survey stage {self.id!r} repeats question ids {dupes}")
        self.questions = sorted(self.questions, key=lambda q: q.order)
        return self


Stage = Annotated[
    InstructionsStage | BreakStage | ScenarioStage | SurveyStage,
    Field(discriminator="type"),
]


class Experiment(_Document):
    """
    Experiment definition as loaded for a participant run.

    Attributes:
        id (str): Experiment identifier.
        name (str): Display name.
        description (str): Display description.
        stages (list[Stage]): Stages, sorted by ``order`` on load (stable).
        start_stage_id (str | None): Recorded for graph-capable designs; the runtime
            walks stages linearly and does not branch on it.

    Raises:
        pydantic.ValidationError: On an empty stage list, duplicate stage ids or a
            start_stage_id that names no stage.
    """

    id: str = _id_field()
    name: str
    description: str = ""
    stages: list[Stage]
    start_stage_id: str | None = None

    @model_validator(mode="after")
    def _check_stages(self) -> Experiment:
        if not self.stages:
            raise SchemaError(f"experiment {self.id!r} has no stages")
        ids = [s.id for s in self.stages]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise SchemaError(f"experiment {self.id!r} repeats stage ids {dupes}")
        if self.start_stage_id is not None and self.start_stage_id not in ids:
            raise SchemaError(
                f"start_stage_id {self.start_stage_id!r} does not name a stage of {self.id!r}"
            )
        self.stages = sorted(self.stages, key=lambda s: s.order)
        return self

    @property
    def stage_ids(self) -> list[str]:
        return [s.id for s in self.stages]

    def stage_index(self, stage_id: str) -> int | None:
        """Position of ``stage_id`` in the run order, or None if unknown."""
        for i, s in enumerate(self.stages):
            if s.id == stage_id:
                return i
        return None


# ============================================================================
# Market data
# ============================================================================


class AssetPrice(_Document):
    """
    Round-indexed price series for one asset.

    Attributes:
        asset_id (str): Asset identifier (matches WalletAsset.id).
        symbol (str): Ticker symbol (fallback match key).
        prices (list[float]): Price per round; index 0 is round 1.

    Examples:
        >>> ap = AssetPrice(asset_id="a", symbol="X", prices=[1.0, 2.0, 3.0, 4.0])
        >>> ap.price_at(5)
        4.0
    """

    asset_id: str
    symbol: str
    prices: list[Annotated[float, Field(ge=0.0)]] = Field(default_factory=list)

    def price_at(self, round_number: int) -> float | None:
        """
        Price at a 1-based round, clamped to the series.

        Returns:
            float | None: ``prices[min(round-1, len-1)]`` (rounds below 1 read the first
            price), or None when the series is empty.
        """
        if not self.prices:
            return None
        idx = min(max(round_number - 1, 0), len(self.prices) - 1)
        return self.prices[idx]


class WalletAsset(_Document):
    """One holding in a wallet."""

    id: str = _id_field()
    symbol: str
    name: str = ""
    amount: float = 0.0
    initial_amount: float | None = None
    type: AssetKind | None = None


class Scenario(_Document):
    """
    Scenario configuration for a market-simulation stage.

    Attributes:
        id (str): Scenario identifier.
        wallet_id (str): Wallet whose holdings are valued each round.
        rounds (int): Number of trading rounds (1..50).
        round_duration (int): Seconds per round (5..300).
        asset_prices (list[AssetPrice]): Price series per asset.
    """

    id: str = _id_field()
    name: str = ""
    description: str = ""
    wallet_id: str
    rounds: int = Field(ge=MIN_ROUNDS, le=MAX_ROUNDS)
    round_duration: int = Field(ge=MIN_ROUND_DURATION_S, le=MAX_ROUND_DURATION_S)
    asset_prices: list[AssetPrice] = Field(default_factory=list)

    def prices_for(self, asset: WalletAsset) -> AssetPrice | None:
        """Price series for a wallet asset, matched by asset id first, then symbol."""
        for ap in self.asset_prices:
            if ap.asset_id == asset.id:
                return ap
        for ap in self.asset_prices:
            if ap.symbol == asset.symbol:
                return ap
        return None


# ============================================================================
# Participant state
# ============================================================================


class ParticipantProgress(_Document):
    """
    Persisted position of one participant within one experiment.

    Notes:
        - status is monotonic (not_started -> in_progress -> completed).
        - completed_stages is append-only and free of duplicates.
        - Created implicitly by the first progress write.
    """

    participant_id: str
    experiment_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    current_stage_id: str | None = None
    completed_stages: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_activity_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if isinstance(v, ProgressStatus):
            return v
        try:
            return progress_status_from_value(str(v))
        except ValueError as e:
            raise GrammarError(str(e)) from e

    @classmethod
    def new(cls, participant_id: str, experiment_id: str) -> ParticipantProgress:
        return cls(participant_id=participant_id, experiment_id=experiment_id)


class ProgressUpdate(_Document):
    """
    One progress write as sent by the runtime.

    Attributes:
        status (ProgressStatus | None): Proposed status; never regresses a stored one.
        current_stage_id (str | None): Stage now shown to the participant.
        completed_stage_id (str | None): Stage whose gate was just satisfied.
    """

    status: ProgressStatus | None = None
    current_stage_id: str | None = None
    completed_stage_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if v is None or isinstance(v, ProgressStatus):
            return v
        try:
            return progress_status_from_value(str(v))
        except ValueError as e:
            raise GrammarError(str(e)) from e


def apply_progress_update(
    progress: ParticipantProgress,
    update: ProgressUpdate,
    now: datetime | None = None,
) -> ParticipantProgress:
    """
    Merge a progress update into a stored record and return the new record.

    Args:
        progress (ParticipantProgress): Stored record (unchanged).
        update (ProgressUpdate): Proposed change.
        now (datetime | None): Clock override for tests; defaults to UTC now.

    Returns:
        ParticipantProgress: Updated copy.

    Notes:
        - status merges monotonically; started_at is stamped the first time the record
          leaves not_started and completed_at exactly once.
        - Setting a current stage on a not_started record promotes it to in_progress.
        - Once a record is completed its current stage no longer moves.
        - completed stages are appended once, in arrival order.
        - last_activity_at is refreshed on every write.

    Examples:
        >>> p = ParticipantProgress.new("u1", "e1")
        >>> p = apply_progress_update(p, ProgressUpdate(current_stage_id="s1"))
        >>> p.status.value, p.current_stage_id
        ('in_progress', 's1')
    """
    ts = now or _utcnow()
    was_completed = progress.status is ProgressStatus.COMPLETED
    status = progress.status
    current = progress.current_stage_id
    completed = list(progress.completed_stages)

    if update.status is not None:
        status = merge_status(status, update.status)

    if update.current_stage_id and not was_completed:
        current = update.current_stage_id
        status = merge_status(status, ProgressStatus.IN_PROGRESS)

    if update.completed_stage_id and update.completed_stage_id not in completed:
        completed.append(update.completed_stage_id)

    started_at = progress.started_at
    if started_at is None and status is not ProgressStatus.NOT_STARTED:
        started_at = ts
    completed_at = progress.completed_at
    if completed_at is None and status is ProgressStatus.COMPLETED:
        completed_at = ts

    return progress.model_copy(
        update={
            "status": status,
            "current_stage_id": current,
            "completed_stages": completed,
            "started_at": started_at,
            "completed_at": completed_at,
            "last_activity_at": ts,
        }
    )


class SurveyResponse(_Document):
    """
    Answer map for one (participant, survey stage).

    Attributes:
        answers (dict[str, AnswerValue]): question id -> str | list[str] | number.
        submitted_at (datetime): Submission time (UTC).
    """

    experiment_id: str
    stage_id: str
    participant_id: str
    answers: dict[str, AnswerValue] = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=_utcnow)
