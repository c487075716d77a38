from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import patch

from dash_tui.stores import DoneStore, OverrideStore

from conftest import BASE_TIME


def test_mark_twice_then_unmark():
    store = OverrideStore()
    store.mark("1")
    store.mark("1")
    store.unmark("1")
    assert store.is_marked("1") is False


def test_unmark_twice_is_harmless():
    store = OverrideStore()
    store.mark("1")
    store.unmark("1")
    store.unmark("1")
    assert store.is_marked("1") is False
    assert store.all_marked() == set()


def test_missing_file_loads_empty(tmp_path):
    store = OverrideStore(str(tmp_path / "nested" / "bookmarks.json"))
    assert store.all_marked() == set()


def test_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "bookmarks.json"
    path.write_text("{not json")
    assert OverrideStore(str(path)).all_marked() == set()


def test_persists_across_instances(tmp_path):
    path = str(tmp_path / "state" / "bookmarks.json")
    store = OverrideStore(path)
    store.mark("a")
    store.mark("b")
    store.unmark("a")
    assert OverrideStore(path).all_marked() == {"b"}
    assert [p.name for p in (tmp_path / "state").iterdir()] == ["bookmarks.json"]


def test_save_writes_through_replace(tmp_path):
    path = str(tmp_path / "bookmarks.json")
    store = OverrideStore(path)
    with patch("dash_tui.stores.os.replace") as mock_replace:
        store.mark("a")
    mock_replace.assert_called_once()
    assert mock_replace.call_args[0][1] == path


def test_failed_save_keeps_memory_state(tmp_path):
    store = OverrideStore(str(tmp_path / "bookmarks.json"))
    with patch("dash_tui.stores.os.replace", side_effect=OSError("disk full")):
        store.mark("a")
    assert store.is_marked("a")


def test_toggle():
    store = OverrideStore()
    assert store.toggle("x") is True
    assert store.toggle("x") is False


def test_all_marked_is_a_copy():
    store = OverrideStore()
    store.mark("a")
    store.all_marked().add("b")
    assert store.all_marked() == {"a"}


def test_done_store_resurfaces_updated_threads(tmp_path):
    path = str(tmp_path / "done.json")
    store = DoneStore(path)
    store.mark("1", BASE_TIME)
    reloaded = DoneStore(path)
    assert reloaded.is_done("1", BASE_TIME)
    assert not reloaded.is_done("1", BASE_TIME + timedelta(minutes=5))
    assert not reloaded.is_done("2", BASE_TIME)


def test_done_store_reads_plain_list(tmp_path):
    path = tmp_path / "done.json"
    path.write_text(json.dumps(["7", "8"]))
    store = DoneStore(str(path))
    assert store.is_done("7", BASE_TIME)
    assert store.all_marked() == {"7", "8"}


def test_done_snapshot_is_independent():
    store = DoneStore()
    store.mark("1")
    snapshot = store.snapshot()
    store.mark("2")
    assert snapshot.is_done("1")
    assert not snapshot.is_done("2")
