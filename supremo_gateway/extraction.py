"""Best-effort enrichment of card descriptions.

Card descriptions often arrive as a form-like blob::

    Cliente: ACME
    Tipo de caso: Trabalhista
    Status: Em andamento (dependendo de João)
    Prioridade: Alta
    Pendência atual: enviar procuração; revisar contrato
    Observações:
    cliente prefere contato por e-mail

``extract_structured_fields`` pulls those fields out. Nothing here may
block card creation: callers use whatever came back and ignore the rest.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

KNOWN_FIELDS = ["Cliente", "Tipo de caso", "Pendência atual", "Observações", "Prioridade", "Status"]

_FIELD_HEAD = r"(?:^|\n)(?:###\s*)?(?:\*\*|__)?{name}(?:\*\*|__)?\s*(?::|(?:\r?\n)+)(?:\s*-\s*)?"
_NEXT_FIELD = r"(?=\n(?:###|(?:\*\*|__)?(?:{others})(?:\*\*|__)?\s*(?::|\r?\n))|$)"
_CARD_NUMBER = re.compile(r"^(\d+)\.")


def _single_line(desc: str, name: str) -> Optional[str]:
    match = re.search(_FIELD_HEAD.format(name=re.escape(name)) + r"([^\r\n]+)", desc, re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def _block(desc: str, name: str) -> Optional[str]:
    others = "|".join(re.escape(f) for f in KNOWN_FIELDS if f != name)
    pattern = _FIELD_HEAD.format(name=re.escape(name)) + r"((?:.|\n)*?)" + _NEXT_FIELD.format(others=others)
    match = re.search(pattern, desc, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).strip()


def split_items(text: str) -> List[str]:
    """Split a pending-items blob on ';', new lines or commas, in that order."""
    if ";" in text:
        parts = text.split(";")
    elif "\n" in text:
        parts = re.split(r"\r?\n", text)
    elif "," in text:
        parts = text.split(",")
    else:
        parts = [text]
    items = [re.sub(r"^\d+\.\s*", "", re.sub(r"^-\s*", "", p.strip())).strip() for p in parts]
    return [item for item in items if item]


def clean_status(status: str) -> str:
    """"Em andamento (dependendo de João)" -> "Em andamento"."""
    status = re.sub(r"\s*\(.*?\)\s*", " ", status)
    status = re.sub(r"\s*-\s+dependendo.*$", "", status, flags=re.IGNORECASE)
    status = re.sub(r"\s*dependendo\s+de\s+.*", "", status, flags=re.IGNORECASE)
    return status.strip()


@dataclass
class StructuredFields:
    list_query: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    checklist: List[str] = field(default_factory=list)
    name: Optional[str] = None
    desc: Optional[str] = None


def extract_structured_fields(desc: Optional[str]) -> StructuredFields:
    """Parse known fields out of a description blob.

    Returns empty fields for blank input. Any parsing error is logged and
    yields whatever was extracted before it.
    """
    fields = StructuredFields()
    if not desc or not desc.strip():
        return fields

    try:
        status = _single_line(desc, "Status")
        if status:
            status = clean_status(status)
            if len(status) > 2:
                fields.list_query = status

        for name in ("Tipo de caso", "Prioridade"):
            value = _single_line(desc, name)
            if value and value.lower() not in (label.lower() for label in fields.labels):
                fields.labels.append(value)

        pending = _block(desc, "Pendência atual")
        if pending:
            fields.checklist = split_items(pending)

        client = _single_line(desc, "Cliente")
        case_type = _single_line(desc, "Tipo de caso")
        if client and case_type:
            fields.name = f"{client} - {case_type}"

        notes = _block(desc, "Observações")
        if notes is not None:
            lines = [line.strip() for line in notes.splitlines() if line.strip()]
            bullets = [line if line.startswith("-") else f"- {line}" for line in lines]
            fields.desc = "### Observações\n" + "\n".join(bullets) if bullets else ""
        else:
            known = "|".join(re.escape(f) for f in KNOWN_FIELDS if f != "Observações")
            cleaned = re.sub(
                rf"(?:^|\n)(?:###\s*)?(?:\*\*|__)?(?:{known})(?:\*\*|__)?\s*(?::|(?:\r?\n)+).*(?=\n|$)",
                "",
                desc,
                flags=re.IGNORECASE,
            )
            fields.desc = cleaned.strip()
    except re.error as e:
        logger.warning(f"Description extraction failed: {e}")

    return fields


def merge_labels(*groups: Iterable[str]) -> List[str]:
    """Concatenate label names, dropping case-insensitive duplicates."""
    merged: List[str] = []
    for group in groups:
        for label in group or []:
            label = (label or "").strip()
            if label and label.lower() not in (m.lower() for m in merged):
                merged.append(label)
    return merged


def next_card_number(cards: Iterable[Dict[str, Any]]) -> int:
    """One more than the highest "NN." prefix among ``cards``."""
    highest = 0
    for card in cards:
        match = _CARD_NUMBER.match(card.get("name") or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


def number_card_name(name: str, number: int) -> str:
    if _CARD_NUMBER.match(name):
        return name
    return f"{number:02d}. {name}"


def object_id_created_at(object_id: str) -> Optional[datetime]:
    """Creation time encoded in a board object id.

    Board ids are 24-hex-digit object ids whose first 8 digits are the
    creation time in Unix seconds. Other id formats return None.
    """
    if not object_id or len(object_id) < 8:
        return None
    try:
        seconds = int(object_id[:8], 16)
    except ValueError:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
