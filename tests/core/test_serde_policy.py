from __future__ import annotations

import pytest

from lablab.core.constants import MAX_FETCH_ATTEMPTS_CAP
from lablab.core.policy import RetryPolicy, clamp_attempts
from lablab.core.schema import ParticipantProgress, SurveyResponse
from lablab.core.serde import from_document, json_dumps_canonical, json_loads, to_document


def test_canonical_json_is_sorted_and_compact() -> None:
    assert json_dumps_canonical({"b": 1, "a": "é"}) == '{"a":"é","b":1}'
    assert json_loads('{"a": [1, 2]}') == {"a": [1, 2]}


def test_documents_use_camel_case_and_drop_none() -> None:
    doc = to_document(ParticipantProgress.new("u", "e"))
    assert doc == {
        "participantId": "u",
        "experimentId": "e",
        "status": "not_started",
        "completedStages": [],
    }
    assert from_document(ParticipantProgress, doc) == ParticipantProgress.new("u", "e")


def test_survey_response_answers_keep_their_shapes() -> None:
    # text, textarea, multiple choice, checkboxes, scale (int and float), rating
    answers = {
        "text": "x",
        "notes": "line one\nline two",
        "pick": "b",
        "tags": ["y", "z"],
        "conf": 4,
        "slider": 2.5,
        "stars": 5,
    }
    resp = SurveyResponse(experiment_id="e", stage_id="s", participant_id="u", answers=answers)
    back = from_document(SurveyResponse, to_document(resp))
    assert back.answers == answers
    assert isinstance(back.answers["slider"], float)
    assert isinstance(back.answers["stars"], int)
    assert back.submitted_at == resp.submitted_at


def test_backoff_doubles_and_caps() -> None:
    p = RetryPolicy(max_attempts=6, base_delay_s=0.25, max_delay_s=1.0)
    assert [p.delay_for(a) for a in range(1, 6)] == [0.25, 0.5, 1.0, 1.0, 1.0]
    assert p.delay_for(0) == 0.0


@pytest.mark.parametrize("n, expected", [(0, 1), (-3, 1), (4, 4), (99, MAX_FETCH_ATTEMPTS_CAP)])
def test_attempts_are_clamped(n: int, expected: int) -> None:
    assert clamp_attempts(n) == expected
    assert RetryPolicy(max_attempts=n).max_attempts == expected


def test_progress_write_defaults_are_more_patient() -> None:
    fetch = RetryPolicy()
    progress = RetryPolicy.for_progress_writes()
    assert progress.max_attempts >= fetch.max_attempts
    assert progress.max_delay_s >= fetch.max_delay_s
