"""Per-user undo history.

Only actions listed in ``UNDOABLE_ACTIONS`` are recorded. Entries are kept
newest first, capped at ``MAX_HISTORY`` per user, and are flagged rather
than removed when undone so the history doubles as an audit trail.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from storage.json_store import InMemoryStore, KeyedStore

logger = logging.getLogger(__name__)

MAX_HISTORY = 20


class UndoType(str, Enum):
    DELETE_EVENT = "delete_event"
    UNCOMPLETE_EVENT = "uncomplete_event"
    UNCOMPLETE_EVENTS = "uncomplete_events"
    RESTORE_EVENT = "restore_event"
    TRELLO_DELETE = "trello_delete"
    TRELLO_UNARCHIVE = "trello_unarchive"
    TRELLO_UNARCHIVE_MANY = "trello_unarchive_many"
    TRELLO_MOVE_BACK = "trello_move_back"
    TRELLO_MOVE_BACK_MANY = "trello_move_back_many"
    DELETE_INFO = "delete_info"


UNDOABLE_ACTIONS: Dict[str, UndoType] = {
    "create_event": UndoType.DELETE_EVENT,
    "complete_event": UndoType.UNCOMPLETE_EVENT,
    "complete_all_events": UndoType.UNCOMPLETE_EVENTS,
    "delete_event": UndoType.RESTORE_EVENT,
    "trello_create": UndoType.TRELLO_DELETE,
    "trello_archive": UndoType.TRELLO_UNARCHIVE,
    "trello_clear_list": UndoType.TRELLO_UNARCHIVE_MANY,
    "trello_move": UndoType.TRELLO_MOVE_BACK,
    "trello_move_all_cards": UndoType.TRELLO_MOVE_BACK_MANY,
    "store_info": UndoType.DELETE_INFO,
}


@dataclass
class ActionHistoryEntry:
    id: str
    type: str
    undo_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""
    undone: bool = False
    undone_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ActionHistoryStore:
    """Bounded per-user undo log on top of a keyed store.

    With a ``JsonFileStore`` every mutation rewrites the file; the store
    logs persistence failures instead of raising them.
    """

    def __init__(
        self,
        store: Optional[KeyedStore] = None,
        max_entries: int = MAX_HISTORY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.max_entries = max_entries
        self._clock = clock or datetime.now

    def _generate_id(self) -> str:
        return f"act_{int(self._clock().timestamp() * 1000):x}{secrets.token_hex(3)}"

    def _entries(self, user_id: str) -> List[Dict[str, Any]]:
        return list(self.store.get(str(user_id)) or [])

    def _save(self, user_id: str, entries: List[Dict[str, Any]]) -> None:
        try:
            self.store.set(str(user_id), entries)
        except Exception as e:
            logger.error(f"Failed to persist action history for user {user_id}: {e}")

    def record(
        self,
        user_id: str,
        action_type: str,
        data: Optional[Dict[str, Any]] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActionHistoryEntry]:
        """Prepend an entry; actions without an inverse are ignored."""
        undo_type = UNDOABLE_ACTIONS.get(action_type)
        if undo_type is None:
            logger.debug(f"Action {action_type} is not undoable; not recorded")
            return None

        entry = ActionHistoryEntry(
            id=self._generate_id(),
            type=action_type,
            undo_type=undo_type.value,
            data=dict(data or {}),
            result=dict(result or {}),
            timestamp=self._clock().isoformat(),
        )
        entries = self._entries(user_id)
        entries.insert(0, entry.to_dict())
        del entries[self.max_entries:]
        self._save(user_id, entries)
        logger.info(
            f"Recorded {action_type} ({entry.id}) for user {user_id}",
            extra={"action": action_type, "id": entry.id, "user_id": user_id},
        )
        return entry

    def get_last(self, user_id: str) -> Optional[ActionHistoryEntry]:
        """Most recent entry not yet undone."""
        for raw in self._entries(user_id):
            if not raw.get("undone"):
                return ActionHistoryEntry(**raw)
        return None

    def mark_undone(self, user_id: str, entry_id: str) -> bool:
        """Flag an entry as undone. Idempotent; entries are never removed."""
        entries = self._entries(user_id)
        for raw in entries:
            if raw.get("id") != entry_id:
                continue
            if raw.get("undone"):
                return True
            raw["undone"] = True
            raw["undone_at"] = self._clock().isoformat()
            self._save(user_id, entries)
            return True
        logger.warning(f"History entry {entry_id} not found for user {user_id}")
        return False

    def get_history(self, user_id: str, limit: int = 10) -> List[ActionHistoryEntry]:
        return [ActionHistoryEntry(**raw) for raw in self._entries(user_id)[:limit]]

    def clear(self, user_id: str) -> None:
        try:
            self.store.delete(str(user_id))
        except Exception as e:
            logger.error(f"Failed to clear action history for user {user_id}: {e}")
