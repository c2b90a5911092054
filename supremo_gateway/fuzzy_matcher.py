"""Resolve free-text references onto remote entities.

Users say "card 03", "a reunião de amanhã" or "lista Parado"; the services
need ids. ``match_entity`` runs an ordered cascade of strategies against a
freshly fetched candidate list and returns one entity or ``None``:

1. numeric prefix ("02", "item 2" -> a name starting with "02." or "2.")
2. normalized exact match
3. word-level fuzzy score: every significant query word must match a
   candidate word, allowing for a typo inside the word
4. bidirectional whole-word containment
5. first significant word, after stripping qualifier clauses

``resolve_entity`` adds a remote search fallback tried only after every
local strategy failed.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)

Entity = Dict[str, Any]

MIN_TOKEN_SCORE = 0.8
MIN_WORD_LENGTH = 3
STOPWORDS = {"com", "para", "por", "pra", "dos", "das", "nos", "nas", "uma", "que", "sem", "the", "and", "for"}

_NUMERIC_QUERY = re.compile(
    r"^(?:item|card|tarefa|number|numero|n[º°o]|#)?\s*0*(\d+)$", re.IGNORECASE
)
_NUMBER_PREFIX = re.compile(r"^\s*\d+\s*[.)-]\s*")
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_QUALIFIER_CLAUSE = re.compile(r"(?:\s-\s)?\s*\b(?:dependendo|depending)\b.*$", re.IGNORECASE)


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, strip diacritics and symbols, collapse whitespace."""
    if not text:
        return ""
    text = unicodedata.normalize("NFD", str(text))
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Mn")
    text = text.lower()
    text = re.sub(r"[^\w\s]", " ", text)
    text = text.replace("_", " ")
    return re.sub(r"\s+", " ", text).strip()


def tokenize(text: str) -> Set[str]:
    return set(text.split())


def significant_tokens(text: str) -> List[str]:
    return [t for t in text.split() if len(t) >= MIN_WORD_LENGTH and t not in STOPWORDS]


def similarity(text1: str, text2: str) -> float:
    """Character sequence ratio of two strings, in [0, 1]."""
    if not text1 or not text2:
        return 0.0
    return SequenceMatcher(None, text1, text2).ratio()


def token_score(query: str, name: str, min_token_score: float = MIN_TOKEN_SCORE) -> float:
    """Score ``name`` against ``query`` word by word.

    Every significant query word must match a word of ``name``, exactly or
    as a close spelling (a typo inside one word). The score is the summed
    word similarity over the larger of the two word counts, so extra words
    on either side lower it. Returns 0.0 when any query word is unmatched.
    """
    query_tokens = significant_tokens(query)
    name_tokens = significant_tokens(name) or name.split()
    if not query_tokens or not name_tokens:
        return 0.0
    total = 0.0
    for token in query_tokens:
        best = max(similarity(token, other) for other in name_tokens)
        if best < min_token_score:
            return 0.0
        total += best
    return total / max(len(query_tokens), len(name_tokens))


def strip_qualifiers(query: str) -> str:
    """Drop parenthetical asides and "dependendo de ..." clauses."""
    cleaned = _PARENTHETICAL.sub(" ", query or "")
    cleaned = _QUALIFIER_CLAUSE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip(" -")


def default_name(entity: Entity) -> str:
    return entity.get("summary") or entity.get("name") or ""


def _parse_timestamp(value: Any) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def default_modified(entity: Entity) -> float:
    return _parse_timestamp(entity.get("dateLastActivity") or entity.get("updated"))


def _name_variants(name: str) -> List[str]:
    """Normalized name plus the same name without a leading "NN." number."""
    variants = [normalize_text(name)]
    stripped = _NUMBER_PREFIX.sub("", name or "")
    if stripped != name:
        variants.append(normalize_text(stripped))
    return [v for v in variants if v]


def match_numeric_prefix(
    query: str,
    candidates: Sequence[Entity],
    name_of: Callable[[Entity], str] = default_name,
) -> Optional[Entity]:
    match = _NUMERIC_QUERY.match((query or "").strip())
    if not match:
        return None
    number = match.group(1)
    padded = number.zfill(2)
    for entity in candidates:
        name = (name_of(entity) or "").strip()
        if name.startswith(f"{padded}.") or name.startswith(f"{number}."):
            return entity
    return None


def match_entity(
    query: Optional[str],
    candidates: Iterable[Entity],
    name_of: Callable[[Entity], str] = default_name,
    modified_of: Callable[[Entity], float] = default_modified,
    min_token_score: float = MIN_TOKEN_SCORE,
) -> Optional[Entity]:
    """Pick the one candidate ``query`` refers to, or ``None``."""
    candidates = [c for c in candidates if c]
    if not query or not candidates:
        return None

    found = match_numeric_prefix(query, candidates, name_of)
    if found is not None:
        logger.debug(f"Matched '{query}' by number prefix: {name_of(found)}")
        return found

    normalized_query = normalize_text(query)
    if not normalized_query:
        return None
    variants = [(entity, _name_variants(name_of(entity))) for entity in candidates]

    for entity, names in variants:
        if normalized_query in names:
            return entity

    scored = []
    for entity, names in variants:
        score = max((token_score(normalized_query, n, min_token_score) for n in names), default=0.0)
        if score > 0:
            scored.append((round(score, 6), entity))
    if scored:
        scored.sort(
            key=lambda item: (-item[0], len(name_of(item[1]) or ""), -modified_of(item[1]))
        )
        best = scored[0][1]
        logger.debug(f"Fuzzy matched '{query}' -> '{name_of(best)}' ({scored[0][0]:.2f})")
        return best

    contained = _match_containment(normalized_query, variants, name_of)
    if contained is not None:
        return contained

    return _match_first_word(query, variants, name_of)


def _match_containment(normalized_query, variants, name_of) -> Optional[Entity]:
    best = None
    best_ratio = 0.0
    for entity, names in variants:
        for name in names:
            shorter, longer = sorted((normalized_query, name), key=len)
            if len(shorter) < MIN_WORD_LENGTH or f" {shorter} " not in f" {longer} ":
                continue
            ratio = len(shorter) / len(longer)
            if ratio > best_ratio or (
                ratio == best_ratio and best is not None
                and len(name_of(entity) or "") < len(name_of(best) or "")
            ):
                best, best_ratio = entity, ratio
    return best


def _match_first_word(query, variants, name_of) -> Optional[Entity]:
    """Leading word of the qualifier-stripped query.

    Any other significant word left after stripping must also appear in the
    candidate, so "Reunião com João" never lands on "Reunião com Maria".
    """
    stripped = normalize_text(strip_qualifiers(query))
    words = stripped.split()
    if not words or len(words[0]) < MIN_WORD_LENGTH:
        return None
    word = words[0]
    rest = [t for t in significant_tokens(stripped) if t != word]

    def fits(tokens: Set[str]) -> bool:
        return word in tokens and all(t in tokens for t in rest)

    matches = [entity for entity, names in variants if any(fits(tokenize(n)) for n in names)]
    if not matches:
        return None
    return min(matches, key=lambda entity: len(name_of(entity) or ""))


async def resolve_entity(
    query: Optional[str],
    candidates: Iterable[Entity],
    search: Optional[Callable[[str], Awaitable[List[Entity]]]] = None,
    name_of: Callable[[Entity], str] = default_name,
    modified_of: Callable[[Entity], float] = default_modified,
) -> Optional[Entity]:
    """``match_entity`` plus an optional remote search fallback.

    Never raises: a failing fallback is logged and treated as "not found".
    """
    found = match_entity(query, candidates, name_of=name_of, modified_of=modified_of)
    if found is not None or search is None or not query:
        return found

    try:
        remote = await search(query)
    except Exception as e:
        logger.warning(f"Remote search for '{query}' failed: {e}")
        return None

    if not remote:
        return None
    found = match_entity(query, remote, name_of=name_of, modified_of=modified_of)
    if found is not None:
        logger.info(f"Resolved '{query}' through remote search: {name_of(found)}")
    return found


def find_list(query: Optional[str], lists: Iterable[Entity]) -> Optional[Entity]:
    return match_entity(strip_qualifiers(query or "") or query, lists)


def find_label(query: Optional[str], labels: Iterable[Entity]) -> Optional[Entity]:
    """Labels match by name first, then by color."""
    labels = list(labels)
    named = [label for label in labels if label.get("name")]
    found = match_entity(query, named)
    if found is not None:
        return found
    wanted = normalize_text(query)
    for label in labels:
        if wanted and normalize_text(label.get("color")) == wanted:
            return label
    return None


def find_member(query: Optional[str], members: Iterable[Entity]) -> Optional[Entity]:
    members = list(members)
    found = match_entity(query, members, name_of=lambda m: m.get("fullName") or "")
    if found is not None:
        return found
    return match_entity(query, members, name_of=lambda m: m.get("username") or "")


async def find_card(
    query: Optional[str],
    cards: Iterable[Entity],
    search: Optional[Callable[[str], Awaitable[List[Entity]]]] = None,
) -> Optional[Entity]:
    return await resolve_entity(query, cards, search=search)


async def find_event(query: Optional[str], events: Iterable[Entity]) -> Optional[Entity]:
    """Events carry a leading "✅ " once completed; normalization drops it."""
    return await resolve_entity(query, events)
