"""
Polars reports over stored participant progress and survey responses.

Responsibilities
- Flatten ParticipantProgress records into a one-row-per-(experiment, participant) frame.
- Summarize completion counts per experiment and status.
- Flatten SurveyResponse answer maps into a long frame (one row per answer).

Notes
- Frames use explicit schemas so an empty store still yields typed, empty columns.
- List answers (checkboxes) are joined with "; " in the ``answer`` column for display;
  the stored document keeps the list.
"""

from __future__ import annotations

from collections.abc import Iterable

import polars as pl

from lablab.core.grammar import ProgressStatus
from lablab.core.schema import ParticipantProgress, SurveyResponse
from lablab.core.typing import AnswerValue

__all__ = [
    "PROGRESS_SCHEMA",
    "RESPONSES_SCHEMA",
    "progress_frame",
    "completion_summary",
    "survey_responses_frame",
    "format_answer",
]

PROGRESS_SCHEMA: dict[str, pl.DataType] = {
    "experiment_id": pl.Utf8(),
    "participant_id": pl.Utf8(),
    "status": pl.Utf8(),
    "current_stage_id": pl.Utf8(),
    "completed_count": pl.Int64(),
    "started_at": pl.Datetime(time_zone="UTC"),
    "completed_at": pl.Datetime(time_zone="UTC"),
    "last_activity_at": pl.Datetime(time_zone="UTC"),
}

RESPONSES_SCHEMA: dict[str, pl.DataType] = {
    "experiment_id": pl.Utf8(),
    "stage_id": pl.Utf8(),
    "participant_id": pl.Utf8(),
    "question_id": pl.Utf8(),
    "answer": pl.Utf8(),
    "submitted_at": pl.Datetime(time_zone="UTC"),
}


def format_answer(value: AnswerValue) -> str:
    """Render an answer value as display text."""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value)


def progress_frame(records: Iterable[ParticipantProgress]) -> pl.DataFrame:
    """
    One row per progress record.

    Returns:
        pl.DataFrame: Columns of PROGRESS_SCHEMA, sorted by experiment then participant.
    """
    rows = [
        {
            "experiment_id": r.experiment_id,
            "participant_id": r.participant_id,
            "status": r.status.value,
            "current_stage_id": r.current_stage_id,
            "completed_count": len(r.completed_stages),
            "started_at": r.started_at,
            "completed_at": r.completed_at,
            "last_activity_at": r.last_activity_at,
        }
        for r in records
    ]
    if not rows:
        return pl.DataFrame(schema=PROGRESS_SCHEMA)
    return pl.DataFrame(rows, schema=PROGRESS_SCHEMA).sort(["experiment_id", "participant_id"])


def completion_summary(progress: pl.DataFrame) -> pl.DataFrame:
    """
    Participant counts per experiment and status.

    Every status appears as a column (zero-filled), plus ``total`` and
    ``completion_rate`` (completed / total).

    Args:
        progress (pl.DataFrame): Output of ``progress_frame``.
    """
    statuses = [s.value for s in ProgressStatus]
    counts = progress.group_by("experiment_id").agg(
        [(pl.col("status") == s).sum().cast(pl.Int64).alias(s) for s in statuses]
    )
    return (
        counts.with_columns(pl.sum_horizontal(statuses).alias("total"))
        .with_columns(
            (pl.col(ProgressStatus.COMPLETED.value) / pl.col("total")).alias("completion_rate")
        )
        .sort("experiment_id")
    )


def survey_responses_frame(responses: Iterable[SurveyResponse]) -> pl.DataFrame:
    """
    Long-format answers: one row per (response, question).

    Returns:
        pl.DataFrame: Columns of RESPONSES_SCHEMA, sorted by experiment, stage,
        participant and question.
    """
    rows = [
        {
            "experiment_id": r.experiment_id,
            "stage_id": r.stage_id,
            "participant_id": r.participant_id,
            "question_id": qid,
            "answer": format_answer(value),
            "submitted_at": r.submitted_at,
        }
        for r in responses
        for qid, value in r.answers.items()
    ]
    if not rows:
        return pl.DataFrame(schema=RESPONSES_SCHEMA)
    return pl.DataFrame(rows, schema=RESPONSES_SCHEMA).sort(
        ["experiment_id", "stage_id", "participant_id", "question_id"]
    )
