"""
LabLab App entrypoint.

This module provides the CLI entrypoint to launch the Streamlit participant UI. It
defers all UI composition to the app.ui package and exists solely to start Streamlit
programmatically or render directly when already running under Streamlit.

Usage:
    - Python execution (hands process to Streamlit):
        python -m app.main --experiment demo_experiment --root-dir data

    - Streamlit direct:
        streamlit run src/app/main.py -- --experiment demo_experiment --root-dir data
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from app.ui import streamlit_app

logger = logging.getLogger(__name__)


def build_parser(add_help: bool = True) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LabLab Streamlit App", add_help=add_help)
    parser.add_argument("--experiment", default=None, help="Experiment id preselected on the dashboard")
    parser.add_argument("--participant", default=None, help="Participant id prefilled on the dashboard")
    parser.add_argument("--root-dir", default=None, help="Document store root (overrides LABLAB_ROOT_DIR)")
    return parser


def passthrough_args(ns: argparse.Namespace) -> list[str]:
    """Arguments forwarded to the script after ``--`` when execing streamlit."""
    out: list[str] = []
    if ns.experiment:
        out += ["--experiment", ns.experiment]
    if ns.participant:
        out += ["--participant", ns.participant]
    if ns.root_dir:
        out += ["--root-dir", ns.root_dir]
    return out


def main(argv: list[str] | None = None) -> None:
    """Console entrypoint that launches Streamlit with the LabLab UI.

    If already executing within a Streamlit server (environment variable
    STREAMLIT_SERVER_PORT is set), this function renders the app directly.
    Otherwise, it execs "python -m streamlit run <this_module>" to leverage
    Streamlit's reloader and argument parsing, passing through any supported
    options after "--".

    Args:
        argv (list[str] | None): Optional list of CLI arguments. If None,
            sys.argv[1:] is used.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    ns = build_parser().parse_args(args)

    # If invoked within Streamlit, just render
    if os.environ.get("STREAMLIT_SERVER_PORT"):
        streamlit_app(
            default_experiment=ns.experiment,
            default_participant=ns.participant,
            root_dir=ns.root_dir,
        )
        return

    # Otherwise, exec streamlit run on this module to take over the process
    app_path = Path(__file__).resolve()
    cmd = [sys.executable, "-m", "streamlit", "run", str(app_path)]
    passthrough = passthrough_args(ns)
    if passthrough:
        cmd += ["--"] + passthrough

    try:
        os.execv(sys.executable, cmd)
    except OSError as exc:
        logger.warning("execv failed (%s); running streamlit as a subprocess", exc)
        subprocess.run(cmd, check=False)


if __name__ == "__main__":
    # Options arrive after '--' when using `streamlit run`
    ns, _ = build_parser(add_help=False).parse_known_args(sys.argv[1:])
    streamlit_app(
        default_experiment=ns.experiment,
        default_participant=ns.participant,
        root_dir=ns.root_dir,
    )
