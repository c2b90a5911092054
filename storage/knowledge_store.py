"""SQLite-backed key/value memory for the assistant.

Stores facts the user asks the assistant to remember ("Guarda aí: senha do
wifi é 1234"), grouped in free-form categories.

Usage:
    from storage.knowledge_store import KnowledgeStore

    store = KnowledgeStore(Path("~/.local/state/supremo/knowledge.sqlite3"))
    entry = store.store_info("senha do wifi", "1234", category="casa")
    store.query_info("wifi")
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from supremo_gateway.fuzzy_matcher import match_entity, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "geral"


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class KnowledgeEntry:
    id: str
    key: str
    value: str
    category: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


class KnowledgeStore:
    """Thread-safe SQLite key/value store. Keys are unique after normalization."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS knowledge (
                    id TEXT PRIMARY KEY,
                    key TEXT NOT NULL,
                    norm_key TEXT UNIQUE NOT NULL,
                    value TEXT NOT NULL,
                    category TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_knowledge_category ON knowledge(category)"
            )

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            key=row["key"],
            value=row["value"],
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def store_info(self, key: str, value: str, category: str = DEFAULT_CATEGORY) -> KnowledgeEntry:
        """Insert or overwrite the entry for ``key``."""
        now = _now_utc_iso()
        norm_key = normalize_text(key)
        category = (category or DEFAULT_CATEGORY).strip().lower()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO knowledge (id, key, norm_key, value, category, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(norm_key) DO UPDATE SET
                    key = excluded.key,
                    value = excluded.value,
                    category = excluded.category,
                    updated_at = excluded.updated_at
                """,
                (secrets.token_hex(6), key.strip(), norm_key, value.strip(), category, now, now),
            )
            row = self._conn.execute(
                "SELECT * FROM knowledge WHERE norm_key = ?", (norm_key,)
            ).fetchone()
        logger.info(f"Stored knowledge entry '{key}' in category '{category}'")
        return self._row_to_entry(row)

    def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM knowledge WHERE id = ?", (entry_id,)).fetchone()
        return self._row_to_entry(row) if row else None

    def list_info(self, category: Optional[str] = None) -> List[KnowledgeEntry]:
        with self._lock:
            if category:
                rows = self._conn.execute(
                    "SELECT * FROM knowledge WHERE category = ? ORDER BY category, key",
                    (category.strip().lower(),),
                ).fetchall()
            else:
                rows = self._conn.execute("SELECT * FROM knowledge ORDER BY category, key").fetchall()
        return [self._row_to_entry(row) for row in rows]

    def query_info(self, query: str) -> Optional[KnowledgeEntry]:
        """Best entry for ``query``, matched on keys first and values second."""
        entries = [entry.to_dict() for entry in self.list_info()]
        found = match_entity(query, entries, name_of=lambda e: e["key"])
        if found is None:
            found = match_entity(query, entries, name_of=lambda e: e["value"])
        return KnowledgeEntry(**found) if found else None

    def update_info(self, entry_id: str, value: str) -> Optional[KnowledgeEntry]:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE knowledge SET value = ?, updated_at = ? WHERE id = ?",
                (value.strip(), _now_utc_iso(), entry_id),
            )
        if cursor.rowcount == 0:
            return None
        logger.info(f"Updated knowledge entry {entry_id}")
        return self.get(entry_id)

    def delete_info(self, id_or_key: str) -> bool:
        """Delete by id, or by key when no entry has that id."""
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM knowledge WHERE id = ?", (id_or_key,))
            if cursor.rowcount == 0:
                cursor = self._conn.execute(
                    "DELETE FROM knowledge WHERE norm_key = ?", (normalize_text(id_or_key),)
                )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted knowledge entry '{id_or_key}'")
        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()
