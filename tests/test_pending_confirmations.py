"""Tests for the single-slot confirmation register."""

import pytest

from supremo_gateway.pending_confirmations import (
    ConfirmationStore,
    format_preview,
    to_base36,
)


class FakeClock:
    def __init__(self, now=1_760_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConfirmationStore(timeout=120.0, clock=clock)


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_id_encodes_creation_time(store, clock):
    confirmation = store.create("u1", "delete_event", {"event_id": "e1"})
    assert confirmation.id == f"conf_{to_base36(int(clock.now * 1000))}"
    assert confirmation.expires == clock.now + 120.0


def test_ids_are_unique_within_the_same_millisecond(store):
    first = store.create("u1", "delete_event")
    second = store.create("u2", "delete_event")
    assert first.id != second.id


def test_valid_until_timeout(store, clock):
    confirmation = store.create("u1", "delete_event")
    clock.now += 119.9
    assert store.get("u1").id == confirmation.id


def test_expires_exactly_at_timeout(store, clock):
    confirmation = store.create("u1", "delete_event")
    clock.now += 120.0
    assert store.resolve("u1", confirmation.id) is None
    assert store.get("u1") is None


def test_resolve_consumes(store):
    confirmation = store.create("u1", "trello_clear_list", {"card_ids": ["a"]})
    resolved = store.resolve("u1", confirmation.id)
    assert resolved.data == {"card_ids": ["a"]}
    assert store.get("u1") is None
    assert store.resolve("u1", confirmation.id) is None


def test_stale_id_is_rejected_without_touching_current(store, clock):
    old = store.create("u1", "delete_event")
    clock.now += 1
    new = store.create("u1", "complete_all_events")

    assert store.resolve("u1", old.id) is None
    assert store.get("u1").id == new.id


def test_last_write_wins_per_user(store, clock):
    store.create("u1", "delete_event", {"event_id": "e1"})
    clock.now += 1
    store.create("u1", "delete_event", {"event_id": "e2"})
    assert store.get("u1").data == {"event_id": "e2"}


def test_users_are_isolated(store):
    mine = store.create("u1", "delete_event")
    assert store.resolve("u2", mine.id) is None
    assert store.get("u1") is not None


def test_preview_truncates_after_five(store):
    items = [{"summary": f"Evento {i}"} for i in range(8)]
    confirmation = store.create("u1", "complete_all_events", items=items)
    preview = format_preview(confirmation)

    lines = preview.split("\n")
    assert lines[0] == "📅 Evento 0"
    assert len(lines) == 6
    assert lines[-1] == "_...e mais 3 itens_"


def test_preview_for_cards(store):
    confirmation = store.create("u1", "trello_clear_list", items=["01. Boleto", "02. Contrato"])
    assert format_preview(confirmation, "cards") == "📌 01. Boleto\n📌 02. Contrato"
