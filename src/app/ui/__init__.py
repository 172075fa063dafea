"""
LabLab App UI package.

Streamlit views for the participant runtime.

Modules:
    - app: Streamlit application orchestrator (streamlit_app) and phase views.
    - stages: Per-stage views (instructions, break, scenario, survey).
    - runner: Per-session asyncio loop used to drive the run controller.
    - helpers: Small formatting helpers (time, money, deltas).

Usage:
    from app.ui import streamlit_app
    streamlit_app(default_experiment="demo_experiment")
"""

from __future__ import annotations

from .app import streamlit_app

__all__ = ["streamlit_app"]
