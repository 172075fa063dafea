"""
Path and layout helpers for the LabLab document store.

Overview (file protocol baseline)
- <root>/experiments/<experiment_id>.json
- <root>/scenarios/<scenario_id>.json
- <root>/wallets/<wallet_id>.json
- <root>/surveys/<survey_id>.json
- <root>/progress/<experiment_id>/<participant_id>.json
- <root>/survey_responses/<experiment_id>/<stage_id>/<participant_id>.json

Import DAG discipline
- stdlib + lablab.io.config/errors only.

Notes
- Document ids become file names, so they are restricted to ``[A-Za-z0-9_.-]`` and may
  not be "." or "..".
"""

from __future__ import annotations

import os
import re
from enum import Enum
from typing import Final

from .config import LabSettings
from .errors import IoConfigError

_SAFE_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.\-]+$")


class Collection(Enum):
    """Top-level document collections under ``root_dir``."""

    EXPERIMENTS = "experiments"
    SCENARIOS = "scenarios"
    WALLETS = "wallets"
    SURVEYS = "surveys"
    PROGRESS = "progress"
    SURVEY_RESPONSES = "survey_responses"


def check_doc_id(doc_id: str, what: str = "document id") -> str:
    """
    Validate that an id is safe to use as a path segment.

    Raises:
        IoConfigError: If the id is empty, contains separators, or is "." / "..".
    """
    s = str(doc_id or "")
    if not _SAFE_ID_RE.match(s) or s in {".", ".."}:
        raise IoConfigError(f"{what} {doc_id!r} is not a safe path segment")
    return s


def collection_dir(settings: LabSettings, collection: Collection, *parts: str) -> str:
    """
    Directory for a collection, optionally nested by id segments.

    Returns:
        str: Path "<root>/<collection>[/<part>...]".
    """
    segs = [check_doc_id(p) for p in parts]
    return os.path.join(settings.root_dir, collection.value, *segs)


def document_path(settings: LabSettings, collection: Collection, doc_id: str, *parents: str) -> str:
    """
    Path of one JSON document.

    Args:
        settings (LabSettings): Settings containing root_dir.
        collection (Collection): Target collection.
        doc_id (str): Document id (file stem).
        *parents (str): Nesting segments (e.g., experiment id for progress).

    Returns:
        str: Path "<root>/<collection>/<parents...>/<doc_id>.json".
    """
    return os.path.join(
        collection_dir(settings, collection, *parents), f"{check_doc_id(doc_id)}.json"
    )


def progress_path(settings: LabSettings, experiment_id: str, participant_id: str) -> str:
    """Path of a participant's progress record for one experiment."""
    return document_path(settings, Collection.PROGRESS, participant_id, experiment_id)


def survey_response_path(
    settings: LabSettings, experiment_id: str, stage_id: str, participant_id: str
) -> str:
    """Path of a participant's answer map for one survey stage."""
    return document_path(
        settings, Collection.SURVEY_RESPONSES, participant_id, experiment_id, stage_id
    )
