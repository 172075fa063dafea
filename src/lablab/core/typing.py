"""
Lightweight typing aliases used across core schemas and the runtime.

Provides minimal NewTypes and aliases to improve readability and static checks.
This module contains no runtime logic and is zero-IO.

Examples:
    >>> from lablab.core.typing import ExperimentId, StageId
    >>> def label(e: ExperimentId, s: StageId) -> str:
    ...     return f"{e}/{s}"
    >>> label(ExperimentId("exp1"), StageId("s1"))
    'exp1/s1'
"""

from __future__ import annotations

from typing import Any, NewType

__all__ = [
    "ExperimentId",
    "StageId",
    "ParticipantId",
    "ScenarioId",
    "WalletId",
    "QuestionId",
    "AnswerValue",
    "AnswerMap",
    "JsonDict",
]

ExperimentId = NewType("ExperimentId", str)
StageId = NewType("StageId", str)
ParticipantId = NewType("ParticipantId", str)
ScenarioId = NewType("ScenarioId", str)
WalletId = NewType("WalletId", str)
QuestionId = NewType("QuestionId", str)

# text/textarea/multiple_choice -> str, checkboxes -> list[str], scale/rating -> number
AnswerValue = str | list[str] | int | float
AnswerMap = dict[str, AnswerValue]

# Convenient JSON-like mapping alias. Kept intentionally broad for serde boundaries.
JsonDict = dict[str, Any]
