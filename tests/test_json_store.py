"""Tests for the JSON-file keyed store."""

import json

from storage.json_store import InMemoryStore, JsonFileStore


def test_in_memory_store():
    store = InMemoryStore()
    store.set(1, {"a": 1})
    assert store.get("1") == {"a": 1}
    store.delete("1")
    assert store.get("1", "none") == "none"


def test_writes_every_mutation(tmp_path):
    path = tmp_path / "state" / "sessions.json"
    store = JsonFileStore(path)
    store.set("u1", {"pending_kb_update": "e1"})
    assert json.loads(path.read_text(encoding="utf-8")) == {"u1": {"pending_kb_update": "e1"}}

    store.delete("u1")
    assert json.loads(path.read_text(encoding="utf-8")) == {}


def test_loads_existing_file(tmp_path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps({"u1": [{"id": "act_1"}]}), encoding="utf-8")
    assert JsonFileStore(path).get("u1") == [{"id": "act_1"}]


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)
    assert list(store.keys()) == []
    store.set("u1", [])
    assert json.loads(path.read_text(encoding="utf-8")) == {"u1": []}


def test_non_object_file_is_ignored(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert list(JsonFileStore(path).keys()) == []


def test_unicode_is_kept_readable(tmp_path):
    path = tmp_path / "sessions.json"
    JsonFileStore(path).set("u1", {"name": "Reunião"})
    assert "Reunião" in path.read_text(encoding="utf-8")
