"""Tests for the file-backed and in-memory key-value stores."""

import pytest

from notesapp.backend.kv import FileKVStore, MemoryKVStore, is_valid_key


@pytest.fixture(params=["file", "memory"])
def store(request, tmp_path):
    if request.param == "file":
        return FileKVStore(tmp_path / "kv")
    return MemoryKVStore()


def test_get_missing_key_returns_none(store):
    assert store.get("nothing-here") is None


def test_put_then_get(store):
    store.put("abc", '["x"]')
    assert store.get("abc") == '["x"]'
    assert store.keys() == ["abc"]


def test_put_overwrites(store):
    store.put("abc", "1")
    store.put("abc", "2")
    assert store.get("abc") == "2"


def test_delete_missing_key_is_noop(store):
    store.delete("ghost")
    assert store.get("ghost") is None


def test_delete_removes_key(store):
    store.put("abc", "1")
    store.delete("abc")
    assert store.get("abc") is None
    assert store.keys() == []


def test_update_receives_current_value(store):
    store.put("k", "a")
    result = store.update("k", lambda cur: cur + "b")
    assert result == "ab"
    assert store.get("k") == "ab"


def test_update_on_missing_key_gets_none(store):
    seen = []

    def fn(cur):
        seen.append(cur)
        return "new"

    store.update("k", fn)
    assert seen == [None]
    assert store.get("k") == "new"


def test_update_returning_none_deletes(store):
    store.put("k", "a")
    store.update("k", lambda cur: None)
    assert store.get("k") is None


def test_file_store_writes_one_file_per_key(tmp_path):
    store = FileKVStore(tmp_path)
    store.put("list-1", "[]")
    assert (tmp_path / "list-1.json").read_text(encoding="utf-8") == "[]"
    # no temp files left behind
    assert sorted(p.name for p in tmp_path.iterdir() if not p.name.startswith(".")) == ["list-1.json"]


def test_file_store_rejects_unsafe_keys(tmp_path):
    store = FileKVStore(tmp_path)
    for bad in ("../etc", "a/b", "", "x" * 65, "with space"):
        with pytest.raises(ValueError):
            store.put(bad, "1")


@pytest.mark.parametrize("key,ok", [
    ("abc", True),
    ("A_b-9", True),
    ("x" * 64, True),
    ("x" * 65, False),
    ("a.b", False),
    ("", False),
])
def test_is_valid_key(key, ok):
    assert is_valid_key(key) is ok
