from __future__ import annotations

import pytest

from lablab.core.errors import PersistenceError, SurveyValidationError
from lablab.core.schema import SurveyStage
from lablab.runtime.gates import SurveyGate, is_empty_answer


def _stage() -> SurveyStage:
    return SurveyStage(
        id="debrief",
        title="Debrief",
        questions=[
            {"id": "why", "text": "Why?", "type": "text", "required": True},
            {"id": "pick", "text": "Pick", "type": "multipleChoice", "options": ["a", "b"], "required": True},
            {"id": "tags", "text": "Tags", "type": "checkboxes", "options": ["x", "y", "z"]},
            {"id": "conf", "text": "Confidence", "type": "scale", "minValue": 1, "maxValue": 7},
            {"id": "stars", "text": "Stars", "type": "rating", "maxRating": 5},
        ],
    )


@pytest.mark.parametrize(
    "value, empty",
    [(None, True), ("", True), ("   ", True), ([], True), ("x", False), (["a"], False), (0, False)],
)
def test_is_empty_answer(value, empty) -> None:
    assert is_empty_answer(value) is empty


def test_missing_required_answers_are_reported(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("why", "because")
    with pytest.raises(SurveyValidationError) as ei:
        gate.validate()
    assert ei.value.missing == ("pick",)
    assert set(gate.errors) == {"pick"}


def test_wrong_shapes_are_invalid(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("why", "because")
    gate.set_answer("pick", "c")
    gate.set_answer("tags", ["x", "nope"])
    gate.set_answer("conf", 9)
    gate.set_answer("stars", True)
    with pytest.raises(SurveyValidationError) as ei:
        gate.validate()
    assert ei.value.missing == ()
    assert set(ei.value.invalid) == {"pick", "tags", "conf", "stars"}


@pytest.mark.parametrize("value", ["7", True, float("nan"), [3]])
def test_numeric_questions_need_a_finite_number(response_store, value) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("why", "because")
    gate.set_answer("pick", "a")
    gate.set_answer("conf", value)
    gate.set_answer("stars", value)
    with pytest.raises(SurveyValidationError) as ei:
        gate.validate()
    assert ei.value.invalid == {"conf": "expected a number", "stars": "expected a number"}


def test_clearing_an_answer_removes_it(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("tags", ["x"])
    gate.set_answer("tags", [])
    assert "tags" not in gate.answers


def test_unknown_question_is_rejected(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    with pytest.raises(KeyError):
        gate.set_answer("nope", "x")


@pytest.mark.asyncio
async def test_valid_answers_persist_as_one_write(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("why", "because")
    gate.set_answer("pick", "b")
    gate.set_answer("tags", ("x", "z"))
    gate.set_answer("conf", 7)
    gate.set_answer("stars", 4)

    resp = await gate.submit("exp1", "p1")

    assert gate.satisfied
    assert response_store.submits == 1
    assert resp.answers == {"why": "because", "pick": "b", "tags": ["x", "z"], "conf": 7, "stars": 4}
    assert response_store.responses[("exp1", "debrief", "p1")] is resp


@pytest.mark.asyncio
async def test_validation_failure_writes_nothing(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    with pytest.raises(SurveyValidationError):
        await gate.submit("exp1", "p1")
    assert response_store.submits == 0
    assert not gate.satisfied


@pytest.mark.asyncio
async def test_failed_write_can_be_resubmitted(response_store) -> None:
    gate = SurveyGate(_stage(), response_store, 1.0)
    gate.set_answer("why", "because")
    gate.set_answer("pick", "a")
    response_store.fail_next = 1

    with pytest.raises(PersistenceError):
        await gate.submit("exp1", "p1")
    assert not gate.satisfied
    assert gate.answers == {"why": "because", "pick": "a"}

    await gate.submit("exp1", "p1")
    assert gate.satisfied
    assert response_store.submits == 2
