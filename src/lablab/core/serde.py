"""
Canonical JSON serialization helpers for stored documents.

Provides a single canonical JSON policy (sorted keys, compact separators,
ensure_ascii=False) and the model <-> document conversion used by every store.
This module is zero-IO.

Notes:
    - Documents are written with camelCase aliases so that they stay readable by the
      admin screens that created them; both spellings validate on the way back in.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel

from .typing import JsonDict

__all__ = [
    "json_dumps_canonical",
    "json_loads",
    "to_document",
    "from_document",
]

M = TypeVar("M", bound=BaseModel)


def json_dumps_canonical(obj: Any) -> str:
    """
    Serialize an object to a canonical JSON string.

    Args:
        obj (Any): JSON-serializable object.

    Returns:
        str: JSON with sort_keys=True, compact separators, and ensure_ascii=False.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def json_loads(s: str | bytes) -> Any:
    """Deserialize a JSON string with the stdlib json module (no custom hooks)."""
    return json.loads(s)


def to_document(model: BaseModel) -> JsonDict:
    """
    Dump a model to a JSON-ready document (camelCase keys, None fields dropped).

    Examples:
        >>> from lablab.core.schema import ProgressUpdate
        >>> to_document(ProgressUpdate(current_stage_id="s2"))
        {'currentStageId': 's2'}
    """
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def from_document(model_cls: type[M], doc: Any) -> M:
    """Validate a raw document into ``model_cls`` (raises pydantic.ValidationError)."""
    return model_cls.model_validate(doc)
