"""
Streamlit application orchestrator for the LabLab participant runtime.

Responsibilities:
    - Configure the Streamlit page and resolve LabSettings.
    - Dashboard: choose participant id and experiment (seed the demo when empty).
    - Drive one ExperimentRunController per browser session through its phases:
      load failure (retry / return to dashboard), welcome, running stages, done.
    - Forward wall-clock seconds to the controller as ticks while a timed stage is shown.

Notes:
    - Controller work runs on a per-session LoopRunner; see app.ui.runner.
    - Stage rendering lives in app.ui.stages.
"""

from __future__ import annotations

import time
from dataclasses import replace

import streamlit as st

from lablab.core.errors import LoadError
from lablab.core.grammar import RunPhase, ScenarioPhase
from lablab.io.config import LabSettings
from lablab.io.documents import DocumentStore
from lablab.io.paths import Collection
from lablab.io.seed import seed_demo
from lablab.io.stores import (
    FileExperimentStore,
    FileProgressStore,
    FileScenarioSource,
    FileSurveyResponseStore,
)
from lablab.runtime.controller import ExperimentRunController
from lablab.runtime.gates import BreakGate, InstructionsGate, ScenarioGate, SurveyGate

from .helpers import humanize_ago, stage_label
from .runner import LoopRunner
from .stages import render_break, render_instructions, render_scenario, render_survey

_RUNNER = "lablab_runner"
_CONTROLLER = "lablab_controller"
_TICK_AT = "lablab_tick_at"
_TICK_VISIT = "lablab_tick_visit"


def _runner() -> LoopRunner:
    runner = st.session_state.get(_RUNNER)
    if runner is None or not runner.alive:
        runner = LoopRunner()
        st.session_state[_RUNNER] = runner
    return runner


def _reset_session(runner: LoopRunner) -> None:
    ctl: ExperimentRunController | None = st.session_state.pop(_CONTROLLER, None)
    if ctl is not None:
        runner.run(ctl.close())
    st.session_state.pop(_TICK_AT, None)
    st.session_state.pop(_TICK_VISIT, None)


def _build_controller(settings: LabSettings, participant_id: str) -> ExperimentRunController:
    return ExperimentRunController(
        participant_id,
        FileExperimentStore(settings),
        FileScenarioSource(settings),
        FileProgressStore(settings),
        FileSurveyResponseStore(settings),
        settings=settings,
    )


def _start(settings: LabSettings, runner: LoopRunner, participant_id: str, experiment_id: str) -> None:
    ctl = _build_controller(settings, participant_id)
    st.session_state[_CONTROLLER] = ctl
    try:
        runner.run(ctl.load_experiment(experiment_id))
    except LoadError:
        pass  # phase is load_failed; rendered with retry / return actions
    st.rerun()


def render_dashboard(
    settings: LabSettings,
    runner: LoopRunner,
    default_experiment: str | None = None,
    default_participant: str | None = None,
) -> None:
    """Participant/experiment picker."""
    st.title("LabLab")
    experiment_ids = DocumentStore(settings).ids(Collection.EXPERIMENTS)
    if not experiment_ids:
        st.info(f"No experiments found under {settings.root_dir}.")
        if st.button("Create demo experiment"):
            seed_demo(settings)
            st.rerun()
        return

    participant_id = st.text_input("Participant id", value=default_participant or "")
    idx = experiment_ids.index(default_experiment) if default_experiment in experiment_ids else 0
    experiment_id = st.selectbox("Experiment", experiment_ids, index=idx)
    if st.button("Open experiment", type="primary", disabled=not participant_id.strip()):
        _start(settings, runner, participant_id.strip(), str(experiment_id))


def _advance_clock(ctl: ExperimentRunController, runner: LoopRunner) -> None:
    """Tick the controller once per whole wall-clock second since the last tick."""
    visit = ctl.visit
    token = visit.token if visit is not None else None
    now = time.monotonic()
    if st.session_state.get(_TICK_VISIT) != token:
        st.session_state[_TICK_VISIT] = token
        st.session_state[_TICK_AT] = now
        return
    last = st.session_state.get(_TICK_AT, now)
    steps = int(now - last)
    for _ in range(steps):
        runner.call(ctl.tick, 1)
    st.session_state[_TICK_AT] = last + steps


def _needs_clock(ctl: ExperimentRunController) -> bool:
    gate = ctl.gate
    if isinstance(gate, BreakGate):
        return not gate.satisfied
    if isinstance(gate, ScenarioGate):
        return gate.phase in (ScenarioPhase.LOADING, ScenarioPhase.RUNNING)
    return False


def _render_notices(ctl: ExperimentRunController, runner: LoopRunner) -> None:
    for notice in ctl.notices:
        c1, c2 = st.columns([6, 1])
        c1.info(notice.message)
        if c2.button("Dismiss", key=f"dismiss_{notice.key}"):
            runner.call(ctl.dismiss_notice, notice.key)
            st.rerun()


def _render_running(ctl: ExperimentRunController, runner: LoopRunner) -> None:
    _advance_clock(ctl, runner)
    stage = ctl.current_stage
    if ctl.experiment is None or stage is None:
        st.info("Loading experiment ...")
        return
    total = len(ctl.experiment.stages)
    st.progress((ctl.current_index + 1) / total, text=f"Stage {ctl.current_index + 1} of {total}")
    st.header(stage.title)
    st.caption(stage_label(stage.kind))
    _render_notices(ctl, runner)

    gate = ctl.gate
    match gate:
        case InstructionsGate():
            render_instructions(ctl, runner, stage)
        case BreakGate():
            render_break(ctl, runner, stage, gate)
        case ScenarioGate():
            render_scenario(ctl, runner, stage, gate)
        case SurveyGate():
            render_survey(ctl, runner, stage, gate)

    if _needs_clock(ctl):
        time.sleep(0.5)
        st.rerun()


def render_run(ctl: ExperimentRunController, runner: LoopRunner) -> None:
    """Render the controller's current phase."""
    match ctl.phase:
        case RunPhase.LOAD_FAILED:
            err = ctl.load_error
            if err is not None and err.kind == "not_found":
                st.error("This experiment could not be found.")
            else:
                st.error("The experiment could not be loaded. Please check your connection and retry.")
            c1, c2 = st.columns(2)
            if c1.button("Retry", type="primary"):
                try:
                    runner.run(ctl.retry_load())
                except LoadError:
                    pass  # still load_failed; the same actions are shown again
                st.rerun()
            if c2.button("Return to dashboard"):
                _reset_session(runner)
                st.rerun()
        case RunPhase.WELCOME if ctl.experiment is not None:
            st.title(ctl.experiment.name)
            if ctl.experiment.description:
                st.write(ctl.experiment.description)
            st.subheader("What to expect")
            for i, s in enumerate(ctl.experiment.stages, start=1):
                st.markdown(f"{i}. **{s.title}** ({stage_label(s.kind)})")
            if ctl.is_resuming:
                resume_at = ctl.experiment.stages[ctl.resume_index]
                last_seen = ctl.progress_record.last_activity_at if ctl.progress_record else None
                st.info(
                    f"Welcome back (last active {humanize_ago(last_seen)}). "
                    f"You will continue at \"{resume_at.title}\"."
                )
            if st.button("Begin", type="primary"):
                runner.run(ctl.begin())
                st.rerun()
        case RunPhase.RUNNING:
            _render_running(ctl, runner)
        case RunPhase.DONE:
            st.balloons()
            st.title("Thank you!")
            st.write("You have completed this experiment. Your responses have been recorded.")
            if st.button("Return to dashboard"):
                _reset_session(runner)
                st.rerun()
        case _:
            # loading, or welcome before the definition is cached
            st.info("Loading experiment ...")


def streamlit_app(
    default_experiment: str | None = None,
    default_participant: str | None = None,
    root_dir: str | None = None,
) -> None:
    """Render the LabLab participant application.

    Args:
        default_experiment (str | None): Experiment preselected on the dashboard.
        default_participant (str | None): Participant id prefilled on the dashboard.
        root_dir (str | None): Document store root overriding LabSettings.load().
    """
    st.set_page_config(page_title="LabLab", layout="centered")
    settings = LabSettings.load()
    if root_dir:
        settings = replace(settings, root_dir=root_dir)
    runner = _runner()

    ctl: ExperimentRunController | None = st.session_state.get(_CONTROLLER)
    if ctl is None:
        render_dashboard(settings, runner, default_experiment, default_participant)
        return
    render_run(ctl, runner)
