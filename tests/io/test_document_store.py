from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from lablab.io.config import LabSettings
from lablab.io.documents import DocumentStore, read_json, write_json_atomic
from lablab.io.errors import IoConfigError, IoReadError, IoWriteError
from lablab.io.paths import Collection, check_doc_id, progress_path, survey_response_path


def test_paths_nest_by_parent_ids(tmp_path: Path) -> None:
    s = LabSettings(root_dir=str(tmp_path))
    assert progress_path(s, "e1", "p1") == os.path.join(str(tmp_path), "progress", "e1", "p1.json")
    assert survey_response_path(s, "e1", "debrief", "p1") == os.path.join(
        str(tmp_path), "survey_responses", "e1", "debrief", "p1.json"
    )


@pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "../etc", "a b"])
def test_unsafe_ids_are_rejected(bad: str) -> None:
    with pytest.raises(IoConfigError):
        check_doc_id(bad)


def test_put_get_ids_roundtrip(tmp_path: Path) -> None:
    store = DocumentStore(LabSettings(root_dir=str(tmp_path)))
    assert store.get(Collection.WALLETS, "w1") is None
    assert store.ids(Collection.WALLETS) == []

    path = store.put(Collection.WALLETS, "w1", {"assets": []})
    store.put(Collection.PROGRESS, "p1", {"status": "in_progress"}, "e1")

    assert Path(path).read_text(encoding="utf-8") == '{"assets":[]}'
    assert store.get(Collection.WALLETS, "w1") == {"assets": []}
    assert store.ids(Collection.WALLETS) == ["w1"]
    assert store.subdirs(Collection.PROGRESS) == ["e1"]
    assert store.ids(Collection.PROGRESS, "e1") == ["p1"]


def test_atomic_write_leaves_no_tmp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "doc.json"
    write_json_atomic(str(target), {"b": 2, "a": 1})
    write_json_atomic(str(target), {"a": 3})
    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 3}
    assert sorted(os.listdir(target.parent)) == ["doc.json"]


def test_unserializable_document_is_a_write_error(tmp_path: Path) -> None:
    target = tmp_path / "doc.json"
    with pytest.raises(IoWriteError):
        write_json_atomic(str(target), {"bad": object()})
    assert not target.exists()
    assert os.listdir(tmp_path) == []


def test_corrupt_json_is_a_read_error(tmp_path: Path) -> None:
    p = tmp_path / "broken.json"
    p.write_text("{not json")
    with pytest.raises(IoReadError):
        read_json(str(p))
