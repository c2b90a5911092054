"""Tests for the per-user undo history."""

from datetime import datetime, timedelta

import pytest

from storage.json_store import JsonFileStore
from supremo_gateway.action_history import MAX_HISTORY, ActionHistoryStore, UndoType


class TickingClock:
    def __init__(self):
        self.now = datetime(2026, 10, 19, 9, 0)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def history():
    return ActionHistoryStore(clock=TickingClock())


def test_records_undoable_action(history):
    entry = history.record("u1", "create_event", {"summary": "Dentista"}, {"event_id": "e1"})
    assert entry.undo_type == UndoType.DELETE_EVENT.value
    assert entry.id.startswith("act_")
    assert history.get_last("u1").id == entry.id


def test_ignores_actions_without_inverse(history):
    assert history.record("u1", "trello_add_comment", {"card_id": "c1"}) is None
    assert history.get_last("u1") is None


def test_newest_first(history):
    history.record("u1", "create_event", {"summary": "A"}, {"event_id": "a"})
    history.record("u1", "trello_create", {"name": "B"}, {"card_id": "b"})
    assert [e.type for e in history.get_history("u1")] == ["trello_create", "create_event"]


def test_capped_per_user(history):
    for i in range(MAX_HISTORY + 5):
        history.record("u1", "store_info", {"key": f"k{i}"}, {"entry_id": str(i)})
    entries = history.get_history("u1", limit=100)
    assert len(entries) == MAX_HISTORY
    assert entries[0].data["key"] == f"k{MAX_HISTORY + 4}"


def test_mark_undone_flags_and_skips(history):
    first = history.record("u1", "create_event", {"summary": "A"}, {"event_id": "a"})
    second = history.record("u1", "create_event", {"summary": "B"}, {"event_id": "b"})

    assert history.mark_undone("u1", second.id) is True
    assert history.get_last("u1").id == first.id

    kept = history.get_history("u1")
    assert len(kept) == 2
    assert kept[0].undone is True
    assert kept[0].undone_at is not None


def test_mark_undone_is_idempotent(history):
    entry = history.record("u1", "create_event", {}, {"event_id": "a"})
    assert history.mark_undone("u1", entry.id)
    undone_at = history.get_history("u1")[0].undone_at
    assert history.mark_undone("u1", entry.id)
    assert history.get_history("u1")[0].undone_at == undone_at


def test_mark_unknown_entry(history):
    assert history.mark_undone("u1", "act_missing") is False


def test_users_are_isolated(history):
    history.record("u1", "create_event", {}, {"event_id": "a"})
    assert history.get_last("u2") is None


def test_survives_restart(tmp_path):
    path = tmp_path / "action_history.json"
    ActionHistoryStore(JsonFileStore(path)).record("u1", "trello_move", {"card_id": "c"}, {})

    reloaded = ActionHistoryStore(JsonFileStore(path))
    assert reloaded.get_last("u1").undo_type == UndoType.TRELLO_MOVE_BACK.value
