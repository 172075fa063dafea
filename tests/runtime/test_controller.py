from __future__ import annotations

import asyncio

import pytest

from lablab.core.constants import FALLBACK_ROUNDS
from lablab.core.errors import (
    DataSourceError,
    GateNotSatisfied,
    LoadError,
    PersistenceError,
    RunStateError,
    StageMismatch,
    SurveyValidationError,
)
from lablab.core.grammar import ProgressStatus, RunPhase, ScenarioPhase
from lablab.core.schema import ParticipantProgress
from lablab.runtime.gates import BreakGate, ScenarioGate


async def _loaded(make_controller, experiment_id: str = "exp1", **kwargs):
    ctl = make_controller(**kwargs)
    await ctl.load_experiment(experiment_id)
    return ctl


async def _walk_to_survey(ctl) -> None:
    await ctl.begin()
    ctl.acknowledge()
    await ctl.advance("intro")
    for _ in range(5):
        ctl.tick()
    await ctl.advance("rest")


class HeldProgressStore:
    """Wraps a progress store; ``record`` waits for ``release`` before writing."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_progress(self, experiment_id, participant_id):
        return await self.inner.get_progress(experiment_id, participant_id)

    async def record(self, experiment_id, participant_id, update):
        self.entered.set()
        await self.release.wait()
        return await self.inner.record(experiment_id, participant_id, update)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_reaches_welcome(make_controller, experiments) -> None:
    ctl = await _loaded(make_controller)
    assert ctl.phase is RunPhase.WELCOME
    assert ctl.experiment is not None
    assert ctl.experiment.stage_ids == ["intro", "rest", "ask"]
    assert not ctl.is_resuming

    # Cached for the session.
    await ctl.load_experiment("exp1")
    assert experiments.calls == 1


@pytest.mark.asyncio
async def test_unknown_experiment_is_not_found_and_retryable(make_controller, experiments, three_stage_doc) -> None:
    ctl = make_controller()
    with pytest.raises(LoadError) as ei:
        await ctl.load_experiment("later")
    assert ei.value.kind == "not_found"
    assert ctl.phase is RunPhase.LOAD_FAILED
    assert ctl.load_error is ei.value

    experiments.docs["later"] = {**three_stage_doc, "id": "later"}
    await ctl.retry_load()
    assert ctl.phase is RunPhase.WELCOME
    assert ctl.load_error is None


@pytest.mark.parametrize(
    "error",
    [DataSourceError("maintenance", status=503), ConnectionError("reset"), DataSourceError("boom", status=500)],
)
@pytest.mark.asyncio
async def test_failing_store_is_unreachable(make_controller, make_experiments, error) -> None:
    ctl = make_controller(experiments=make_experiments(error=error))
    with pytest.raises(LoadError) as ei:
        await ctl.load_experiment("exp1")
    assert ei.value.kind == "unreachable"
    assert ctl.phase is RunPhase.LOAD_FAILED
    assert ctl.experiment is None


@pytest.mark.asyncio
async def test_invalid_definition_is_unreachable(make_controller, make_experiments) -> None:
    store = make_experiments({"broken": {"id": "broken", "name": "Broken", "stages": []}})
    ctl = make_controller(experiments=store)
    with pytest.raises(LoadError) as ei:
        await ctl.load_experiment("broken")
    assert ei.value.kind == "unreachable"


@pytest.mark.asyncio
async def test_retry_without_a_load_is_refused(make_controller) -> None:
    with pytest.raises(RunStateError):
        await make_controller().retry_load()


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_walk_persists_each_transition_and_completes_once(make_controller, progress_store) -> None:
    ctl = await _loaded(make_controller)
    await ctl.begin()
    assert ctl.phase is RunPhase.RUNNING
    assert ctl.current_stage.id == "intro"
    assert progress_store.records[("exp1", "p1")].status is ProgressStatus.IN_PROGRESS

    ctl.acknowledge()
    await ctl.advance("intro")
    assert ctl.current_stage.id == "rest"
    assert progress_store.records[("exp1", "p1")].current_stage_id == "rest"

    assert isinstance(ctl.gate, BreakGate)
    assert [ctl.tick() for _ in range(5)] == [False, False, False, False, True]
    await ctl.advance("rest")

    ctl.set_answer("q1", "curiosity")
    await ctl.submit_survey()
    await ctl.advance("ask")

    assert ctl.phase is RunPhase.DONE
    record = progress_store.records[("exp1", "p1")]
    assert record.status is ProgressStatus.COMPLETED
    assert record.completed_stages == ["intro", "rest", "ask"]
    assert record.completed_at is not None
    assert progress_store.completion_writes() == 1

    assert await ctl.complete() is False
    assert progress_store.completion_writes() == 1


@pytest.mark.asyncio
async def test_unsatisfied_gate_blocks_advance(make_controller, progress_store) -> None:
    ctl = await _loaded(make_controller)
    await ctl.begin()
    writes = len(progress_store.updates)

    with pytest.raises(GateNotSatisfied):
        await ctl.advance("intro")
    assert ctl.current_index == 0
    assert len(progress_store.updates) == writes


@pytest.mark.asyncio
async def test_advance_names_the_current_stage(make_controller) -> None:
    ctl = await _loaded(make_controller)
    with pytest.raises(RunStateError):
        await ctl.advance("intro")
    await ctl.begin()
    ctl.acknowledge()
    with pytest.raises(StageMismatch):
        await ctl.advance("rest")


@pytest.mark.asyncio
async def test_actions_for_another_stage_kind_are_refused(make_controller) -> None:
    ctl = await _loaded(make_controller)
    await ctl.begin()
    with pytest.raises(RunStateError):
        ctl.set_answer("q1", "x")
    with pytest.raises(RunStateError):
        await ctl.submit_survey()


@pytest.mark.asyncio
async def test_actions_before_a_load_raise_run_state_errors(make_controller) -> None:
    ctl = make_controller()
    with pytest.raises(RunStateError):
        await ctl.submit_survey()
    with pytest.raises(RunStateError):
        ctl.acknowledge()
    with pytest.raises(RunStateError):
        await ctl.advance("intro")
    with pytest.raises(RunStateError):
        await ctl.begin()
    assert ctl.tick() is False


@pytest.mark.asyncio
async def test_second_advance_during_the_write_is_rejected(make_controller, progress_store) -> None:
    store = HeldProgressStore(progress_store)
    store.release.set()
    ctl = await _loaded(make_controller, progress=store)
    await ctl.begin()
    ctl.acknowledge()

    store.release.clear()
    store.entered.clear()
    first = asyncio.create_task(ctl.advance("intro"))
    await store.entered.wait()

    with pytest.raises(RunStateError):
        await ctl.advance("intro")
    assert ctl.current_stage.id == "intro"

    store.release.set()
    await first
    assert ctl.current_stage.id == "rest"
    assert [u.completed_stage_id for u in progress_store.updates] == [None, "intro"]

    # The guard is released once the transition lands.
    with pytest.raises(StageMismatch):
        await ctl.advance("intro")


@pytest.mark.asyncio
async def test_complete_with_stages_remaining_is_refused(make_controller) -> None:
    ctl = await _loaded(make_controller)
    await ctl.begin()
    with pytest.raises(RunStateError):
        await ctl.complete()
    assert ctl.phase is RunPhase.RUNNING


@pytest.mark.asyncio
async def test_begin_twice_is_refused(make_controller) -> None:
    ctl = await _loaded(make_controller)
    await ctl.begin()
    with pytest.raises(RunStateError):
        await ctl.begin()


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unanswered_survey_writes_nothing(make_controller, response_store) -> None:
    ctl = await _loaded(make_controller)
    await _walk_to_survey(ctl)
    with pytest.raises(SurveyValidationError) as ei:
        await ctl.submit_survey()
    assert ei.value.missing == ("q1",)
    assert response_store.submits == 0
    with pytest.raises(GateNotSatisfied):
        await ctl.advance("ask")


@pytest.mark.asyncio
async def test_failed_survey_write_keeps_stage_current(make_controller, response_store) -> None:
    ctl = await _loaded(make_controller)
    await _walk_to_survey(ctl)
    ctl.set_answer("q1", "because")
    response_store.fail_next = 1

    with pytest.raises(PersistenceError):
        await ctl.submit_survey()
    assert ctl.current_stage.id == "ask"

    await ctl.submit_survey()
    await ctl.advance("ask")
    assert ctl.phase is RunPhase.DONE
    assert response_store.responses[("exp1", "ask", "p1")].answers == {"q1": "because"}


# ---------------------------------------------------------------------------
# Progress persistence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_progress_failure_never_blocks(make_controller, progress_store) -> None:
    ctl = await _loaded(make_controller)
    progress_store.fail_next = 1

    await ctl.begin()
    assert ctl.phase is RunPhase.RUNNING
    assert ctl.pending_progress_writes == 1

    ctl.acknowledge()
    await ctl.advance("intro")
    assert ctl.current_stage.id == "rest"

    assert await ctl.flush_progress()
    assert ctl.pending_progress_writes == 0
    record = progress_store.records[("exp1", "p1")]
    assert record.current_stage_id == "rest"
    assert record.completed_stages == ["intro"]
    assert ctl.progress_record == record


@pytest.mark.asyncio
async def test_resume_continues_at_current_stage(make_controller, progress_store) -> None:
    progress_store.records[("exp1", "p1")] = ParticipantProgress(
        participant_id="p1",
        experiment_id="exp1",
        status=ProgressStatus.IN_PROGRESS,
        current_stage_id="rest",
        completed_stages=["intro"],
    )
    ctl = await _loaded(make_controller)
    assert ctl.phase is RunPhase.WELCOME
    assert ctl.is_resuming
    assert ctl.resume_index == 1

    await ctl.begin()
    assert ctl.current_stage.id == "rest"


@pytest.mark.asyncio
async def test_resume_without_current_stage_uses_first_incomplete(make_controller, progress_store) -> None:
    progress_store.records[("exp1", "p1")] = ParticipantProgress(
        participant_id="p1",
        experiment_id="exp1",
        status=ProgressStatus.IN_PROGRESS,
        current_stage_id="removed_stage",
        completed_stages=["intro", "rest"],
    )
    ctl = await _loaded(make_controller)
    assert ctl.resume_index == 2


@pytest.mark.asyncio
async def test_resume_with_every_stage_done_lands_on_the_last(make_controller, progress_store) -> None:
    progress_store.records[("exp1", "p1")] = ParticipantProgress(
        participant_id="p1",
        experiment_id="exp1",
        status=ProgressStatus.IN_PROGRESS,
        completed_stages=["intro", "rest", "ask"],
    )
    ctl = await _loaded(make_controller)
    assert ctl.phase is RunPhase.WELCOME
    assert ctl.resume_index == 2

    await ctl.begin()
    assert ctl.current_stage.id == "ask"


@pytest.mark.asyncio
async def test_completed_record_goes_straight_to_done(make_controller, progress_store) -> None:
    progress_store.records[("exp1", "p1")] = ParticipantProgress(
        participant_id="p1",
        experiment_id="exp1",
        status=ProgressStatus.COMPLETED,
        completed_stages=["intro", "rest", "ask"],
    )
    ctl = await _loaded(make_controller)
    assert ctl.phase is RunPhase.DONE
    assert await ctl.complete() is False
    assert progress_store.completion_writes() == 0
    with pytest.raises(RunStateError):
        await ctl.begin()


# ---------------------------------------------------------------------------
# Scenario stages
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_scenario_stage_runs_every_round(make_controller) -> None:
    ctl = await _loaded(make_controller, "exp2")
    await ctl.begin()
    await ctl.wait_stage_ready()

    gate = ctl.gate
    assert isinstance(gate, ScenarioGate)
    assert gate.phase is ScenarioPhase.RUNNING
    assert ctl.notices == ()

    with pytest.raises(GateNotSatisfied):
        await ctl.advance("market")
    while not ctl.tick():
        pass
    assert gate.rounds_visited == [1, 2, 3]
    await ctl.advance("market")
    assert ctl.current_stage.id == "bye"


@pytest.mark.asyncio
async def test_unreachable_scenario_data_shows_a_dismissible_notice(make_controller, make_source, sleep) -> None:
    ctl = await _loaded(make_controller, "exp2", data_source=make_source(always_fail=ConnectionError("offline")))
    await ctl.begin()
    await ctl.wait_stage_ready()

    assert ctl.gate.used_fallback
    assert sleep.delays == [0.5, 1.0, 2.0, 0.5, 1.0, 2.0]
    assert [n.key for n in ctl.notices] == ["fallback:market"]

    ctl.dismiss_notice("fallback:market")
    assert ctl.notices == ()


@pytest.mark.asyncio
async def test_scenario_on_fallback_data_still_runs_to_completion(make_controller, make_source) -> None:
    source = make_source(always_fail=DataSourceError("boom", status=500))
    ctl = await _loaded(make_controller, "exp2", data_source=source)
    await ctl.begin()
    await ctl.wait_stage_ready()

    gate = ctl.gate
    assert gate.used_fallback
    assert gate.phase is ScenarioPhase.RUNNING
    while not ctl.tick():
        pass
    assert gate.rounds_visited == list(range(1, FALLBACK_ROUNDS + 1))

    await ctl.advance("market")
    assert ctl.current_stage.id == "bye"


@pytest.mark.asyncio
async def test_unavailable_scenario_can_be_skipped(make_controller, make_source, progress_store) -> None:
    ctl = await _loaded(make_controller, "exp2", data_source=make_source(scenarios={}))
    await ctl.begin()
    await ctl.wait_stage_ready()
    assert ctl.gate.skippable

    await ctl.skip_unavailable_scenario("market")
    assert ctl.current_stage.id == "bye"
    assert progress_store.records[("exp2", "p1")].completed_stages == ["market"]


@pytest.mark.asyncio
async def test_available_scenario_cannot_be_skipped(make_controller) -> None:
    ctl = await _loaded(make_controller, "exp2")
    await ctl.begin()
    await ctl.wait_stage_ready()
    with pytest.raises(GateNotSatisfied):
        await ctl.skip_unavailable_scenario("market")


@pytest.mark.asyncio
async def test_close_discards_in_flight_scenario_load(make_controller) -> None:
    ctl = await _loaded(make_controller, "exp2")
    await ctl.begin()
    visit = ctl.visit
    await ctl.close()
    await visit.wait()
    assert not visit.current
    assert ctl.notices == ()
