"""Tests for the SQLite key/value memory."""

import pytest

from storage.knowledge_store import DEFAULT_CATEGORY, KnowledgeStore


@pytest.fixture
def store():
    store = KnowledgeStore(":memory:")
    yield store
    store.close()


def test_store_and_query(store):
    entry = store.store_info("Senha do wifi", "1234", category="Casa")
    assert entry.category == "casa"
    found = store.query_info("wifi")
    assert found.id == entry.id
    assert found.value == "1234"


def test_normalized_key_is_unique(store):
    first = store.store_info("Placa do carro", "ABC1D23")
    second = store.store_info("placa do CARRO", "XYZ9Z99")
    assert second.id == first.id
    assert second.value == "XYZ9Z99"
    assert len(store.list_info()) == 1


def test_query_falls_back_to_values(store):
    store.store_info("aniversário da Ana", "12 de março")
    assert store.query_info("março").key == "aniversário da Ana"


def test_query_miss(store):
    store.store_info("senha do wifi", "1234")
    assert store.query_info("placa do carro") is None


def test_list_grouped_by_category(store):
    store.store_info("wifi", "1234", category="casa")
    store.store_info("oab", "123456", category="trabalho")
    store.store_info("alarme", "9876", category="casa")
    entries = store.list_info()
    assert [(e.category, e.key) for e in entries] == [
        ("casa", "alarme"),
        ("casa", "wifi"),
        ("trabalho", "oab"),
    ]
    assert [e.key for e in store.list_info("Trabalho")] == ["oab"]


def test_default_category(store):
    assert store.store_info("cpf", "000").category == DEFAULT_CATEGORY


def test_update(store):
    entry = store.store_info("wifi", "1234")
    updated = store.update_info(entry.id, " 5678 ")
    assert updated.value == "5678"
    assert store.update_info("missing", "x") is None


def test_delete_by_id_or_key(store):
    a = store.store_info("wifi", "1234")
    store.store_info("Placa do carro", "ABC1D23")
    assert store.delete_info(a.id) is True
    assert store.delete_info("placa do carro") is True
    assert store.delete_info("placa do carro") is False
    assert store.list_info() == []


def test_persists_on_disk(tmp_path):
    path = tmp_path / "knowledge.sqlite3"
    store = KnowledgeStore(path)
    store.store_info("wifi", "1234")
    store.close()

    reopened = KnowledgeStore(path)
    assert reopened.query_info("wifi").value == "1234"
    reopened.close()
