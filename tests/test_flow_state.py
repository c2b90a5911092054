"""Tests for per-user conversational flow slots."""

from storage.json_store import JsonFileStore
from supremo_gateway.flow_state import FlowSlot, FlowStateStore, SessionFlowState, is_cancel


def test_new_user_is_idle():
    assert FlowStateStore().get("u1").is_idle()


def test_begin_replaces_previous_slot():
    flows = FlowStateStore()
    flows.begin("u1", FlowSlot.PENDING_KB_UPDATE, "entry1")
    flows.begin("u1", FlowSlot.PENDING_TRELLO_UPDATE, {"id": "c1", "action": "set_due"})

    state = flows.get("u1")
    assert state.active_slot() == FlowSlot.PENDING_TRELLO_UPDATE
    assert state.pending_kb_update is None


def test_pending_event_keeps_suggestions_until_cleared():
    flows = FlowStateStore()
    suggestions = [{"start": "2026-10-20T16:00:00-03:00", "end": "2026-10-20T17:00:00-03:00"}]
    flows.begin("u1", FlowSlot.PENDING_EVENT, {"summary": "Reunião"}, suggestions)
    assert flows.get("u1").conflict_suggestions == suggestions

    flows.clear("u1", FlowSlot.PENDING_EVENT)
    state = flows.get("u1")
    assert state.is_idle()
    assert state.conflict_suggestions == []


def test_priority_order():
    state = SessionFlowState(
        pending_event_update={"id": "e", "field": "summary"},
        pending_trello_delete={"id": "c", "name": "Card"},
    )
    assert state.active_slot() == FlowSlot.PENDING_TRELLO_DELETE


def test_cancel_keywords():
    assert is_cancel("Cancelar")
    assert is_cancel(" sair! ")
    assert not is_cancel("cancelar reunião")
    assert not is_cancel(None)


def test_persisted_between_instances(tmp_path):
    path = tmp_path / "sessions.json"
    FlowStateStore(JsonFileStore(path)).begin("u1", FlowSlot.PENDING_KB_UPDATE, "entry1")
    assert FlowStateStore(JsonFileStore(path)).get("u1").pending_kb_update == "entry1"


def test_unknown_persisted_fields_are_ignored(tmp_path):
    path = tmp_path / "sessions.json"
    store = JsonFileStore(path)
    store.set("u1", {"pending_kb_update": "entry1", "legacy_field": True})
    assert FlowStateStore(store).get("u1").pending_kb_update == "entry1"
