"""
Per-stage views for the participant app.

Each ``render_*`` function draws one stage kind and wires its buttons to the run
controller through the LoopRunner. Views never decide whether a stage is complete:
they ask the gate and let ``advance()`` reject anything premature.

Notes:
    - Survey validation errors are shown next to the offending questions; a failed
      survey write keeps the answers on screen for resubmission.
    - Scenario data fallbacks surface as notices rendered by app.ui.app.
"""

from __future__ import annotations

from typing import Any, cast

import streamlit as st

from app import charts as app_charts
from lablab.core.errors import GateNotSatisfied, PersistenceError, SurveyValidationError
from lablab.core.grammar import InstructionsFormat, QuestionKind, ScenarioPhase
from lablab.core.schema import (
    BreakStage,
    InstructionsStage,
    Question,
    ScenarioStage,
    SurveyStage,
)
from lablab.runtime.controller import ExperimentRunController
from lablab.runtime.gates import BreakGate, ScenarioGate, SurveyGate

from .helpers import format_delta, format_money, format_time
from .runner import LoopRunner


def _advance(ctl: ExperimentRunController, runner: LoopRunner, stage_id: str) -> None:
    try:
        runner.run(ctl.advance(stage_id))
    except GateNotSatisfied:
        st.warning("This stage is not complete yet.")
        return
    st.rerun()


def render_instructions(
    ctl: ExperimentRunController, runner: LoopRunner, stage: InstructionsStage
) -> None:
    if stage.description:
        st.caption(stage.description)
    match stage.format:
        case InstructionsFormat.HTML:
            st.html(stage.content)
        case InstructionsFormat.TEXT:
            st.text(stage.content)
        case _:
            st.markdown(stage.content)
    if st.button("I have read the instructions", type="primary", key=f"ack_{stage.id}"):
        runner.call(ctl.acknowledge)
        _advance(ctl, runner, stage.id)


def render_break(
    ctl: ExperimentRunController, runner: LoopRunner, stage: BreakStage, gate: BreakGate
) -> None:
    st.info(stage.message)
    total = max(1, stage.duration_seconds)
    st.metric("Time remaining", format_time(gate.remaining))
    st.progress(1.0 - gate.remaining / total)
    if gate.satisfied and st.button("Continue", type="primary", key=f"continue_{stage.id}"):
        _advance(ctl, runner, stage.id)


def render_scenario(
    ctl: ExperimentRunController, runner: LoopRunner, stage: ScenarioStage, gate: ScenarioGate
) -> None:
    if gate.phase is ScenarioPhase.LOADING:
        st.info("Loading market data ...")
        return
    if gate.phase is ScenarioPhase.UNAVAILABLE:
        st.warning("This market scenario could not be loaded. You can skip it and continue.")
        if st.button("Skip this stage", key=f"skip_{stage.id}"):
            runner.run(ctl.skip_unavailable_scenario(stage.id))
            st.rerun()
        return

    if stage.description:
        st.caption(stage.description)
    value = gate.portfolio_value()
    c1, c2, c3 = st.columns(3)
    c1.metric("Round", f"{gate.round} / {gate.total_rounds}")
    c2.metric(
        "Time left in round",
        "00:00" if gate.phase is ScenarioPhase.COMPLETE else format_time(gate.countdown.remaining),
    )
    delta = gate.portfolio_delta()
    c3.metric(
        "Portfolio value",
        format_money(value),
        delta=format_delta(delta, None if delta is None else value - delta),
    )

    st.dataframe(app_charts.holdings_frame(gate), hide_index=True, use_container_width=True)
    ch = app_charts.price_chart(app_charts.price_frame(gate), total_rounds=gate.total_rounds)
    st.altair_chart(cast(Any, ch), theme=None, use_container_width=True)
    if gate.round > 1:
        pch = app_charts.portfolio_chart(app_charts.portfolio_frame(gate), total_rounds=gate.total_rounds)
        st.altair_chart(cast(Any, pch), theme=None, use_container_width=True)

    if gate.satisfied:
        st.success("All rounds are complete.")
        if st.button("Continue", type="primary", key=f"continue_{stage.id}"):
            _advance(ctl, runner, stage.id)


def _question_widget(q: Question, current: Any, key: str) -> Any:
    label = q.text + (" *" if q.required else "")
    match q.type:
        case QuestionKind.TEXT:
            return st.text_input(label, value=current or "", key=key)
        case QuestionKind.TEXTAREA:
            return st.text_area(label, value=current or "", key=key)
        case QuestionKind.MULTIPLE_CHOICE:
            idx = q.options.index(current) if current in q.options else None
            return st.radio(label, q.options, index=idx, key=key)
        case QuestionKind.CHECKBOXES:
            st.markdown(label)
            chosen = set(current or [])
            return [
                opt
                for i, opt in enumerate(q.options)
                if st.checkbox(opt, value=opt in chosen, key=f"{key}_{i}")
            ]
        case QuestionKind.SCALE:
            options = list(range(q.min_value, q.max_value + 1))
            idx = options.index(current) if current in options else None
            return st.radio(label, options, index=idx, horizontal=True, key=key)
        case QuestionKind.RATING:
            options = list(range(1, q.max_rating + 1))
            idx = options.index(current) if current in options else None
            return st.radio(
                label,
                options,
                index=idx,
                horizontal=True,
                format_func=lambda n: "★" * n,
                key=key,
            )
    raise ValueError(f"unsupported question type {q.type}")


def render_survey(
    ctl: ExperimentRunController, runner: LoopRunner, stage: SurveyStage, gate: SurveyGate
) -> None:
    if gate.satisfied:
        st.success("Your answers have been saved.")
        if st.button("Continue", type="primary", key=f"continue_{stage.id}"):
            _advance(ctl, runner, stage.id)
        return

    if stage.description:
        st.caption(stage.description)
    with st.form(key=f"survey_{stage.id}"):
        values: dict[str, Any] = {}
        for q in gate.questions:
            values[q.id] = _question_widget(q, gate.answers.get(q.id), key=f"q_{stage.id}_{q.id}")
            if q.id in gate.errors:
                st.caption(f":red[{gate.errors[q.id]}]")
        submitted = st.form_submit_button("Submit answers", type="primary")

    if not submitted:
        return
    for qid, value in values.items():
        runner.call(ctl.set_answer, qid, value)
    try:
        runner.run(ctl.submit_survey())
    except SurveyValidationError:
        # Per-question messages are read from gate.errors on the rerun.
        st.rerun()
    except PersistenceError:
        st.error("We could not save your answers. Please submit again.")
        return
    st.rerun()
