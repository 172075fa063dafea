"""
Participant runtime: run controller, stage gates and resilience policies.

## Modules
- controller — ExperimentRunController (welcome -> running -> done, resume, completion once).
- gates — instructions / break / scenario / survey gates and ``gate_for`` dispatch.
- retry — ``fetch_with_fallback`` (bounded attempts, per-attempt timeout, backoff,
  503 short-circuit, fallback substitution).
- fallback — built-in sample basket used when market data is unavailable.
- progress — ProgressWriter (ordered, background-retried, never blocking).
- session — StageVisit cancellation scopes.
- timers — Countdown.
- protocols — collaborator interfaces.

## Notes
- asyncio only; no threads. The Streamlit app runs one loop per participant session.
"""

from .controller import ExperimentRunController, Notice
from .gates import BreakGate, InstructionsGate, ScenarioGate, StageGate, SurveyGate, gate_for
from .progress import ProgressWriter
from .retry import FetchOutcome, fetch_with_fallback
from .session import StageVisit
from .timers import Countdown

__all__ = [
    "ExperimentRunController",
    "Notice",
    "StageGate",
    "InstructionsGate",
    "BreakGate",
    "ScenarioGate",
    "SurveyGate",
    "gate_for",
    "ProgressWriter",
    "FetchOutcome",
    "fetch_with_fallback",
    "StageVisit",
    "Countdown",
]
