"""
Canonical LabLab grammar and helpers.

Defines stage kinds, question kinds, participant progress status, run/scenario phases
and a few supporting enums, plus zero-IO normalization helpers used by the schemas.

Design principles
-----------------
1) One naming standard:
   - Enum classes: PascalCase
   - Enum member names: UPPER_SNAKE (Python constants)
   - Enum serialized values (documents/wire): lower_snake
   - Fields elsewhere: lower_snake

2) Lenient at the boundary, strict inside:
   - Stored documents written by older admin screens use camelCase tokens
     (``multipleChoice``). Normalizers map those onto the lower_snake value once;
     everything downstream compares enums.

3) Status is monotonic:
   - ``not_started`` -> ``in_progress`` -> ``completed``. ``merge_status`` never
     moves backwards, which is all the locking a single-writer progress record needs.

Examples
--------
>>> from lablab.core.grammar import question_kind_from_value, QuestionKind
>>> question_kind_from_value("multipleChoice") == QuestionKind.MULTIPLE_CHOICE
True
>>> merge_status(ProgressStatus.COMPLETED, ProgressStatus.IN_PROGRESS).value
'completed'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import Final

__all__ = [
    "StageKind",
    "QuestionKind",
    "ProgressStatus",
    "RunPhase",
    "ScenarioPhase",
    "InstructionsFormat",
    "AssetKind",
    "CHOICE_QUESTION_KINDS",
    "NUMERIC_QUESTION_KINDS",
    "is_lower_snake",
    "assert_lower_snake",
    "to_lower_snake",
    "stage_kind_from_value",
    "question_kind_from_value",
    "progress_status_from_value",
    "status_rank",
    "merge_status",
    "ensure_all_enum_values_lower_snake",
]

_LOWER_SNAKE_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_]*$")
_CAMEL_BOUNDARY_RE: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])([A-Z])")


class StageKind(Enum):
    """
    Kinds of participant-facing stage.

    Gates:
      - instructions: acknowledgement click
      - break: countdown reaches zero
      - scenario: every configured trading round elapsed
      - survey: every required question answered and the response persisted
    """

    INSTRUCTIONS = "instructions"
    BREAK = "break"
    SCENARIO = "scenario"
    SURVEY = "survey"


class QuestionKind(Enum):
    """
    Survey question kinds and the answer type each expects.

      - text, textarea, multiple_choice -> str
      - checkboxes -> list[str]
      - scale, rating -> number
    """

    TEXT = "text"
    TEXTAREA = "textarea"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOXES = "checkboxes"
    SCALE = "scale"
    RATING = "rating"


CHOICE_QUESTION_KINDS: Final[frozenset[QuestionKind]] = frozenset(
    {QuestionKind.MULTIPLE_CHOICE, QuestionKind.CHECKBOXES}
)
NUMERIC_QUESTION_KINDS: Final[frozenset[QuestionKind]] = frozenset(
    {QuestionKind.SCALE, QuestionKind.RATING}
)


class ProgressStatus(Enum):
    """Participant status within one experiment (monotonic)."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_STATUS_RANK: Final[dict[ProgressStatus, int]] = {
    ProgressStatus.NOT_STARTED: 0,
    ProgressStatus.IN_PROGRESS: 1,
    ProgressStatus.COMPLETED: 2,
}


class RunPhase(Enum):
    """Top-level phase of a participant session in the run controller."""

    LOADING = "loading"
    LOAD_FAILED = "load_failed"
    WELCOME = "welcome"
    RUNNING = "running"
    DONE = "done"


class ScenarioPhase(Enum):
    """Sub-state of a scenario stage."""

    LOADING = "loading"
    RUNNING = "running"
    COMPLETE = "complete"
    UNAVAILABLE = "unavailable"


class InstructionsFormat(Enum):
    TEXT = "text"
    MARKDOWN = "markdown"
    HTML = "html"


class AssetKind(Enum):
    SHARE = "share"
    CRYPTOCURRENCY = "cryptocurrency"
    FIAT = "fiat"


def is_lower_snake(s: str) -> bool:
    """
    Check whether a string is lower_snake.

    Args:
      s (str): Candidate string.

    Returns:
      bool: True if s matches ``^[a-z][a-z0-9_]*$``.
    """
    return bool(_LOWER_SNAKE_RE.match(s or ""))


def assert_lower_snake(s: str, what: str = "value") -> None:
    """
    Raise ValueError unless s is lower_snake.

    Args:
      s (str): Candidate string.
      what (str): Field label used in the error message.
    """
    if not is_lower_snake(s):
        raise ValueError(f"{what} must be lower_snake (got {s!r})")


def to_lower_snake(s: str) -> str:
    """
    Convert camelCase/PascalCase/kebab tokens to lower_snake.

    Examples:
      >>> to_lower_snake("multipleChoice")
      'multiple_choice'
      >>> to_lower_snake("in-progress")
      'in_progress'
    """
    s = (s or "").strip().replace("-", "_").replace(" ", "_")
    return _CAMEL_BOUNDARY_RE.sub(r"_\1", s).lower()


def stage_kind_from_value(s: str) -> StageKind:
    """
    Parse a stage type token into a StageKind.

    Raises:
      ValueError: If the token is not a known stage kind.
    """
    token = to_lower_snake(str(s))
    assert_lower_snake(token, "stage type")
    return StageKind(token)


def question_kind_from_value(s: str) -> QuestionKind:
    """
    Parse a question type token (camelCase accepted) into a QuestionKind.

    Raises:
      ValueError: If the token is not a known question kind.
    """
    token = to_lower_snake(str(s))
    assert_lower_snake(token, "question type")
    return QuestionKind(token)


def progress_status_from_value(s: str) -> ProgressStatus:
    """
    Parse a progress status token into a ProgressStatus.

    Raises:
      ValueError: If the token is not a known status.
    """
    token = to_lower_snake(str(s))
    assert_lower_snake(token, "status")
    return ProgressStatus(token)


def status_rank(status: ProgressStatus) -> int:
    """Ordinal of a status along not_started < in_progress < completed."""
    return _STATUS_RANK[status]


def merge_status(current: ProgressStatus, proposed: ProgressStatus) -> ProgressStatus:
    """
    Combine a stored status with a proposed one without ever regressing.

    Examples:
      >>> merge_status(ProgressStatus.NOT_STARTED, ProgressStatus.IN_PROGRESS).value
      'in_progress'
    """
    return proposed if status_rank(proposed) > status_rank(current) else current


def ensure_all_enum_values_lower_snake(enums: Iterable[type[Enum]]) -> None:
    """
    Assert that every enum member's value is lower_snake.

    Raises:
      AssertionError: If any enum member has a non-lower_snake value.
    """
    for E in enums:
        for m in E:
            if not is_lower_snake(m.value):
                raise AssertionError(
                    f"{E.__name__}.{m.name} has non-lower_snake value: {m.value!r}"
                )
