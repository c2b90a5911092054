"""Tests for free-text entity resolution."""

import pytest

from supremo_gateway.fuzzy_matcher import (
    find_card,
    find_label,
    find_list,
    find_member,
    match_entity,
    normalize_text,
    resolve_entity,
    similarity,
    strip_qualifiers,
    token_score,
)


CARDS = [
    {"id": "c1", "name": "01. Revisar contrato Silva"},
    {"id": "c2", "name": "02. Enviar proposta"},
    {"id": "c3", "name": "12. Audiência trabalhista"},
]


class TestNormalization:
    def test_strips_accents_case_and_symbols(self):
        assert normalize_text("  Reunião   de PLANEJAMENTO! ") == "reuniao de planejamento"

    def test_empty_input(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""

    def test_similarity_bounds(self):
        assert similarity("abc", "abc") == 1.0
        assert similarity("", "abc") == 0.0

    def test_token_score_needs_every_significant_word(self):
        assert token_score("reuniao com joao", "reuniao com maria") == 0.0
        assert token_score("relatorio mensa", "relatorio mensal") > 0.9
        assert token_score("de", "reuniao") == 0.0

    def test_strip_qualifiers(self):
        assert strip_qualifiers("Parado (aguardando cliente)") == "Parado"
        assert strip_qualifiers("Financeiro - dependendo do cliente") == "Financeiro"


class TestCascade:
    def test_exact_match_after_normalization(self):
        events = [{"id": "e1", "summary": "Reunião semanal"}, {"id": "e2", "summary": "Dentista"}]
        assert match_entity("reuniao SEMANAL", events)["id"] == "e1"

    def test_no_plausible_match_returns_none(self):
        assert match_entity("churrasco de domingo", CARDS) is None

    def test_empty_query_or_candidates(self):
        assert match_entity("", CARDS) is None
        assert match_entity("contrato", []) is None

    @pytest.mark.parametrize("query", ["02", "2", "item 2", "card 02", "#2"])
    def test_numeric_prefix(self, query):
        assert match_entity(query, CARDS)["id"] == "c2"

    def test_numeric_prefix_beats_fuzzy_digits(self):
        cards = [{"id": "x", "name": "Pagamento 12"}, {"id": "y", "name": "12. Pagamento"}]
        assert match_entity("12", cards)["id"] == "y"

    def test_exact_match_ignores_number_prefix(self):
        assert match_entity("enviar proposta", CARDS)["id"] == "c2"

    def test_fuzzy_tie_prefers_shorter_name(self):
        cards = [
            {"id": "long", "name": "Relatório mensal de vendas regionais"},
            {"id": "short", "name": "Relatório mensal"},
        ]
        assert match_entity("relatorio mensa", cards)["id"] == "short"

    def test_fuzzy_tie_prefers_most_recent(self):
        cards = [
            {"id": "old", "name": "Ligar banco", "dateLastActivity": "2026-01-01T10:00:00.000Z"},
            {"id": "new", "name": "Ligar banco", "dateLastActivity": "2026-09-01T10:00:00.000Z"},
        ]
        assert match_entity("ligar bancos", cards)["id"] == "new"

    def test_containment_query_longer_than_name(self):
        lists = [{"id": "l1", "name": "Parado"}, {"id": "l2", "name": "Em andamento"}]
        assert match_entity("lista parado por favor agora", lists)["id"] == "l1"

    def test_first_significant_word(self):
        cards = [{"id": "c", "name": "Financeiro do escritório central"}]
        assert match_entity("Financeiro (pendente) - dependendo do banco", cards)["id"] == "c"

    def test_shared_first_word_with_different_person_is_not_found(self):
        events = [{"id": "m", "summary": "Reunião com Maria"}]
        assert match_entity("Reunião com João", events) is None

    def test_similar_spelling_of_a_different_word_is_not_found(self):
        events = [{"id": "r", "summary": "Revisão"}]
        assert match_entity("Reunião", events) is None

    def test_every_significant_word_must_match(self):
        cards = [{"id": "c", "name": "Pagar boleto condomínio"}]
        assert match_entity("pagar aluguel", cards) is None
        assert match_entity("pagar boleto", cards)["id"] == "c"

    def test_typo_inside_a_word_is_forgiven(self):
        events = [{"id": "d", "summary": "Consulta dentista"}]
        assert match_entity("consulta dentsta", events)["id"] == "d"

    def test_containment_requires_whole_words(self):
        lists = [{"id": "l1", "name": "Planejamento"}]
        assert match_entity("ana", lists) is None

    def test_short_first_word_is_not_used(self):
        cards = [{"id": "c", "name": "TI infraestrutura geral do prédio"}]
        assert match_entity("ti", cards) is None


class TestResolvers:
    def test_find_list_strips_qualifiers(self):
        lists = [{"id": "l1", "name": "Parado"}, {"id": "l2", "name": "Concluído"}]
        assert find_list("Parado (cliente sumiu)", lists)["id"] == "l1"

    def test_find_label_by_name_then_color(self):
        labels = [{"id": "a", "name": "Urgente", "color": "red"}, {"id": "b", "name": "", "color": "sky"}]
        assert find_label("urgente", labels)["id"] == "a"
        assert find_label("sky", labels)["id"] == "b"
        assert find_label("roxo", labels) is None

    def test_find_member_by_full_name_or_username(self):
        members = [{"id": "m", "fullName": "Ana Souza", "username": "anasouza"}]
        assert find_member("ana souza", members)["id"] == "m"
        assert find_member("anasouza", members)["id"] == "m"

    @pytest.mark.asyncio
    async def test_remote_search_only_after_local_failure(self):
        searched = []

        async def search(query):
            searched.append(query)
            return [{"id": "archived", "name": "Boleto condomínio outubro"}]

        local = await find_card("revisar contrato silva", CARDS, search=search)
        assert local["id"] == "c1"
        assert searched == []

        remote = await find_card("boleto condominio", CARDS, search=search)
        assert remote["id"] == "archived"
        assert searched == ["boleto condominio"]

    @pytest.mark.asyncio
    async def test_failing_search_is_not_found(self):
        async def search(query):
            raise RuntimeError("boom")

        assert await resolve_entity("inexistente xyz", CARDS, search=search) is None
