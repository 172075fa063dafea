"""
Core exception types for experiment contracts and the participant runtime.

Provides typed exceptions for the failure taxonomy of a participant run:
- LoadError for an experiment definition that is missing or unreachable (fatal to starting).
- TransientDataError for scenario/wallet fetch failures that are retried then substituted.
- SurveyValidationError for required survey questions left unanswered (per-field).
- PersistenceError for progress or survey-response writes that did not land.
- GateNotSatisfied / StageMismatch for rejected advance() calls.
- StageCancelled for work belonging to a stage visit that was torn down.
- DataNotFound for a scenario/wallet id that does not resolve at all.
- DataSourceError for failures reported by a collaborator, carrying an HTTP-like status.
- SchemaError / GrammarError for contract violations in core models and enums.

Notes:
    - This module uses only the Python standard library and has no side effects.

Examples:
    Report which required questions were left empty.

    >>> from lablab.core.errors import SurveyValidationError
    >>> try:
    ...     raise SurveyValidationError(missing=["q1", "q3"])
    ... except SurveyValidationError as e:
    ...     e.missing
    ('q1', 'q3')
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

__all__ = [
    "SchemaError",
    "GrammarError",
    "LoadError",
    "TransientDataError",
    "DataNotFound",
    "SurveyValidationError",
    "PersistenceError",
    "GateNotSatisfied",
    "StageMismatch",
    "StageCancelled",
    "RunStateError",
    "DataSourceError",
]

LoadErrorKind = Literal["not_found", "unreachable"]


class SchemaError(ValueError):
    """Schema-level validation failure (shape, constraints, cross-field rules)."""


class GrammarError(ValueError):
    """Grammar/naming normalization failure (e.g., not lower_snake or unknown enum value)."""


class LoadError(RuntimeError):
    """
    Experiment definition could not be loaded.

    Attributes:
        experiment_id (str): Requested experiment identifier.
        kind (Literal["not_found", "unreachable"]): Why loading failed.

    Notes:
        No fallback content is ever substituted for an experiment definition; callers
        surface this with "retry" and "return to dashboard" actions.
    """

    def __init__(self, experiment_id: str, kind: LoadErrorKind, detail: str = "") -> None:
        self.experiment_id = experiment_id
        self.kind = kind
        self.detail = detail
        msg = f"experiment {experiment_id!r} {kind.replace('_', ' ')}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransientDataError(RuntimeError):
    """
    Scenario/wallet fetch failed in a way worth retrying (timeout, 5xx, malformed payload).

    Attributes:
        status (int | None): HTTP-like status when known; 503 short-circuits retries.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class DataSourceError(RuntimeError):
    """
    Failure reported by an external collaborator (experiment store, scenario source).

    Attributes:
        status (int | None): HTTP-like status; 404 means the document does not exist,
            503 means the service is unavailable. None for transport-level failures.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class DataNotFound(LookupError):
    """A referenced scenario or wallet does not exist (not retried, not substituted)."""


class SurveyValidationError(ValueError):
    """
    Survey answers failed validation; nothing was submitted.

    Attributes:
        missing (tuple[str, ...]): Required question ids with no usable answer.
        invalid (dict[str, str]): Question id -> reason for answers of the wrong shape.
    """

    def __init__(
        self,
        missing: Iterable[str] = (),
        invalid: dict[str, str] | None = None,
    ) -> None:
        self.missing = tuple(missing)
        self.invalid = dict(invalid or {})
        parts: list[str] = []
        if self.missing:
            parts.append(f"required questions unanswered: {list(self.missing)}")
        if self.invalid:
            parts.append(f"invalid answers: {self.invalid}")
        super().__init__("; ".join(parts) or "survey answers invalid")

    @property
    def question_ids(self) -> tuple[str, ...]:
        """All offending question ids, missing first."""
        return self.missing + tuple(k for k in self.invalid if k not in self.missing)


class PersistenceError(RuntimeError):
    """A progress or survey-response write did not complete."""


class RunStateError(RuntimeError):
    """Operation not valid in the controller's current phase."""


class GateNotSatisfied(RunStateError):
    """advance() was called while the current stage's gate is unsatisfied."""


class StageMismatch(RunStateError):
    """advance() named a stage that is not the current stage."""


class StageCancelled(RuntimeError):
    """The stage visit that owned this work is no longer current; its result is discarded."""
