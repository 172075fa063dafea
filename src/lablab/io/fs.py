"""
Filesystem helpers for the document store (file protocol baseline).

Responsibilities
- Provide a minimal stdlib-only abstraction for the operations the store needs:
  directory creation, fsync, atomic renames, and listing.
- Establish the atomic write path: tmp write -> fsync -> atomic rename.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same filesystem.
- All helpers are synchronous; async callers offload them with asyncio.to_thread.
"""

from __future__ import annotations

import os
from typing import BinaryIO


def makedirs(path: str, exist_ok: bool = True) -> None:
    """
    Create directories recursively.

    Args:
        path (str): Directory path to create.
        exist_ok (bool): Do not error if the directory already exists.
    """
    os.makedirs(path, exist_ok=exist_ok)


def fsync_file(fh: BinaryIO) -> None:
    """
    Flush and fsync an open file handle.

    Args:
        fh (BinaryIO): A file object opened for writing.
    """
    fh.flush()
    os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """
    Atomically rename src -> dst on the same filesystem.

    Notes:
        Callers must place the temporary file in the destination directory.
    """
    os.replace(src, dst)


def remove_quietly(path: str) -> None:
    """Remove a file if it exists (used to clean up temporary files)."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def list_json_stems(path: str) -> list[str]:
    """
    List ``*.json`` entries of a directory by stem, sorted.

    Returns:
        list[str]: Document ids; [] if the directory does not exist.
    """
    try:
        names = os.listdir(path)
    except FileNotFoundError:
        return []
    return sorted(n[: -len(".json")] for n in names if n.endswith(".json"))


def list_subdirs(path: str) -> list[str]:
    """List immediate subdirectory names of ``path``, sorted; [] if missing."""
    try:
        entries = os.scandir(path)
    except FileNotFoundError:
        return []
    with entries:
        return sorted(e.name for e in entries if e.is_dir())
