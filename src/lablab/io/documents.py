"""
JSON document store with atomic writes.

Overview
- Each document is one canonical-JSON file (see lablab.core.serde).
- Writes go tmp file -> fsync -> os.replace(tmp, final) so readers never observe a
  partially written document.
- Reads return None for a missing document and raise IoReadError for an unreadable one.

Notes
- Single-writer semantics per document (a participant's session is the only writer of
  its own progress record); no inter-process locking.
- Synchronous; async collaborators wrap calls in asyncio.to_thread.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any

from lablab.core.serde import json_dumps_canonical, json_loads

from .config import LabSettings
from .errors import IoReadError, IoWriteError
from .fs import (
    fsync_file,
    list_json_stems,
    list_subdirs,
    makedirs,
    remove_quietly,
    rename_atomic,
)
from .paths import Collection, collection_dir, document_path

__all__ = ["DocumentStore", "read_json", "write_json_atomic"]

logger = logging.getLogger(__name__)


def read_json(path: str) -> Any | None:
    """
    Read and decode a JSON file.

    Returns:
        Any | None: Decoded document, or None if the file does not exist.

    Raises:
        IoReadError: If the file exists but cannot be read or decoded.
    """
    try:
        with open(path, "rb") as fh:
            raw = fh.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise IoReadError(f"failed to read {path}: {exc}") from exc
    try:
        return json_loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise IoReadError(f"{path} is not valid JSON: {exc}") from exc


def write_json_atomic(path: str, doc: Any) -> None:
    """
    Write a document as canonical JSON with atomic replace semantics.

    Raises:
        IoWriteError: If the tmp write, fsync, or rename fails.
    """
    directory = os.path.dirname(path)
    makedirs(directory, exist_ok=True)
    tmp_path = os.path.join(directory, f".{os.path.basename(path)}.{uuid.uuid4().hex}.tmp")
    try:
        payload = json_dumps_canonical(doc).encode("utf-8")
        with open(tmp_path, "wb") as fh:
            fh.write(payload)
            fsync_file(fh)
        rename_atomic(tmp_path, path)
    except (OSError, TypeError, ValueError) as exc:
        remove_quietly(tmp_path)
        raise IoWriteError(f"failed to write {path}: {exc}") from exc


class DocumentStore:
    """
    Facade over the on-disk collections.

    Args:
        settings (LabSettings): Settings containing root_dir.

    Examples:
        >>> store = DocumentStore(LabSettings(root_dir="data"))  # doctest: +SKIP
        >>> store.put(Collection.WALLETS, "w1", {"assets": []})  # doctest: +SKIP
        >>> store.get(Collection.WALLETS, "w1")  # doctest: +SKIP
        {'assets': []}
    """

    def __init__(self, settings: LabSettings) -> None:
        self.settings = settings

    def get(self, collection: Collection, doc_id: str, *parents: str) -> Any | None:
        return read_json(document_path(self.settings, collection, doc_id, *parents))

    def put(self, collection: Collection, doc_id: str, doc: Any, *parents: str) -> str:
        path = document_path(self.settings, collection, doc_id, *parents)
        write_json_atomic(path, doc)
        logger.debug("wrote %s", path)
        return path

    def ids(self, collection: Collection, *parents: str) -> list[str]:
        """Document ids present in a collection directory."""
        return list_json_stems(collection_dir(self.settings, collection, *parents))

    def subdirs(self, collection: Collection, *parents: str) -> list[str]:
        """Nested grouping directories (e.g., experiment ids under progress)."""
        return list_subdirs(collection_dir(self.settings, collection, *parents))
