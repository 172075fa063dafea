"""
File-backed collaborators, settings and reports for LabLab.

## Layout
- config — LabSettings (env > TOML > defaults).
- paths / fs / documents — JSON document store with atomic tmp -> fsync -> rename writes.
- stores — async experiment, scenario/wallet, progress and survey-response stores.
- reports — polars frames over progress records and survey responses.
- seed — demo experiment, scenario and wallet.

## Notes
- Depends on lablab.core only; the runtime depends on the store *protocols*, not on
  these implementations.
"""

from .config import LabSettings
from .documents import DocumentStore
from .errors import IoConfigError, IoError, IoReadError, IoWriteError
from .paths import Collection
from .stores import (
    FileExperimentStore,
    FileProgressStore,
    FileScenarioSource,
    FileSurveyResponseStore,
)

__all__ = [
    "LabSettings",
    "DocumentStore",
    "Collection",
    "IoError",
    "IoConfigError",
    "IoReadError",
    "IoWriteError",
    "FileExperimentStore",
    "FileScenarioSource",
    "FileProgressStore",
    "FileSurveyResponseStore",
]
