from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

import polars as pl

from lablab.io.config import LabSettings
from lablab.io.reports import completion_summary, progress_frame, survey_responses_frame
from lablab.io.seed import DEMO_EXPERIMENT_ID, seed_demo
from lablab.io.stores import FileProgressStore, FileSurveyResponseStore


def _common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root-dir",
        type=str,
        default="",
        help="Document store root (default: LABLAB_ROOT_DIR, lablab.toml or 'data').",
    )
    p.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )


def _settings(args: argparse.Namespace) -> LabSettings:
    """Configure logging and resolve settings (CLI --root-dir wins over env/TOML)."""
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = LabSettings.load()
    if args.root_dir:
        settings = replace(settings, root_dir=args.root_dir)
    return settings


def _filter_experiment(df: pl.DataFrame, experiment_id: str) -> pl.DataFrame:
    return df.filter(pl.col("experiment_id") == experiment_id) if experiment_id else df


def _cmd_seed_demo(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        prog="seed-demo",
        description="Write the demo experiment, scenario and wallet into the document store.",
    )
    _common_args(p)
    p.add_argument("--overwrite", action="store_true", help="Replace existing demo documents.")
    args = p.parse_args(argv)
    settings = _settings(args)

    written = seed_demo(settings, overwrite=args.overwrite)
    for path in written:
        print(f"[INFO] Wrote {path}")
    if not written:
        print("[INFO] Demo documents already present (use --overwrite to replace)")
    print(f"[INFO] Demo experiment id: {DEMO_EXPERIMENT_ID}")
    return 0


def _cmd_show_progress(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="show-progress", description="Show participant progress.")
    _common_args(p)
    p.add_argument("--experiment", type=str, default="", help="Only this experiment id.")
    p.add_argument("--summary", action="store_true", help="Show counts per status instead.")
    p.add_argument("--n", type=int, default=20, help="Rows to display.")
    args = p.parse_args(argv)
    settings = _settings(args)

    df = _filter_experiment(progress_frame(FileProgressStore(settings).all_progress()), args.experiment)
    if df.is_empty():
        print(f"[INFO] No progress records under {settings.root_dir}")
        return 0
    print(completion_summary(df) if args.summary else df.head(args.n))
    return 0


def _cmd_show_responses(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="show-responses", description="Show survey answers (long format).")
    _common_args(p)
    p.add_argument("--experiment", type=str, default="", help="Only this experiment id.")
    p.add_argument("--n", type=int, default=20, help="Rows to display.")
    args = p.parse_args(argv)
    settings = _settings(args)

    df = _filter_experiment(
        survey_responses_frame(FileSurveyResponseStore(settings).all_responses()), args.experiment
    )
    if df.is_empty():
        print(f"[INFO] No survey responses under {settings.root_dir}")
        return 0
    print(df.head(args.n))
    return 0


_COMMANDS = {
    "seed-demo": _cmd_seed_demo,
    "show-progress": _cmd_show_progress,
    "show-responses": _cmd_show_responses,
}


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lablab", description="LabLab operator utilities.")
    sub = p.add_subparsers(dest="cmd", required=True)
    for name in _COMMANDS:
        sub.add_parser(name)
    return p


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        build_argparser().print_help()
        return
    cmd, rest = argv[0], argv[1:]
    handler = _COMMANDS.get(cmd)
    if handler is None:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        code = 2
    else:
        code = handler(rest)
    raise SystemExit(code)


if __name__ == "__main__":
    main()
