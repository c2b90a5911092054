"""Tests for card description enrichment and numbering."""

from datetime import datetime, timezone

from supremo_gateway.extraction import (
    clean_status,
    extract_structured_fields,
    merge_labels,
    next_card_number,
    number_card_name,
    object_id_created_at,
    split_items,
)

FORM_DESC = """Cliente: ACME
Tipo de caso: Trabalhista
Status: Em andamento (dependendo de João)
Prioridade: Alta
Pendência atual: enviar procuração; revisar contrato
Observações:
cliente prefere contato por e-mail"""


class TestExtractStructuredFields:
    def test_full_form(self):
        fields = extract_structured_fields(FORM_DESC)
        assert fields.list_query == "Em andamento"
        assert fields.labels == ["Trabalhista", "Alta"]
        assert fields.checklist == ["enviar procuração", "revisar contrato"]
        assert fields.name == "ACME - Trabalhista"
        assert fields.desc == "### Observações\n- cliente prefere contato por e-mail"

    def test_markdown_headings(self):
        desc = "### Status\nParado\n### Pendência atual\n- ligar cliente\n- enviar minuta"
        fields = extract_structured_fields(desc)
        assert fields.list_query == "Parado"
        assert fields.checklist == ["ligar cliente", "enviar minuta"]

    def test_plain_text_keeps_description(self):
        fields = extract_structured_fields("Levar documentos ao cartório")
        assert fields.list_query is None
        assert fields.labels == []
        assert fields.checklist == []
        assert fields.desc == "Levar documentos ao cartório"

    def test_known_lines_removed_without_notes(self):
        fields = extract_structured_fields("Cliente: ACME\nLevar documentos")
        assert fields.desc == "Levar documentos"
        assert fields.name is None

    def test_blank(self):
        fields = extract_structured_fields("   ")
        assert fields.desc is None
        assert fields.checklist == []


class TestHelpers:
    def test_split_items_precedence(self):
        assert split_items("a; b, c") == ["a", "b, c"]
        assert split_items("1. a\n2. b") == ["a", "b"]
        assert split_items("a, b") == ["a", "b"]
        assert split_items("única") == ["única"]

    def test_clean_status(self):
        assert clean_status("Parado - dependendo do cliente") == "Parado"
        assert clean_status("Aguardando dependendo de perícia") == "Aguardando"

    def test_merge_labels(self):
        assert merge_labels(["Alta", "VIP"], ["alta", " Trabalhista "], None) == ["Alta", "VIP", "Trabalhista"]

    def test_numbering(self):
        cards = [{"name": "01. A"}, {"name": "07. B"}, {"name": "Sem número"}]
        assert next_card_number(cards) == 8
        assert next_card_number([]) == 1
        assert number_card_name("Pagar boleto", 8) == "08. Pagar boleto"
        assert number_card_name("03. Já numerado", 8) == "03. Já numerado"

    def test_object_id_timestamp(self):
        created = object_id_created_at("6526e8c0aaaaaaaaaaaaaaaa")
        assert created == datetime.fromtimestamp(0x6526E8C0, tz=timezone.utc)
        assert object_id_created_at("card_1") is None
        assert object_id_created_at("") is None
