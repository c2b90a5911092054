"""Per-user multi-turn flow state.

When an action needs one more answer (a new title, a due date, which
alternative slot to take) the question is parked here and the next message
from that user is treated as the answer instead of a new command.

At most one slot awaits at a time. Slots are checked in ``FLOW_PRIORITY``
order: conflict resolution, card deletion, memory update, card field
update, event field update.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from storage.json_store import InMemoryStore, KeyedStore

logger = logging.getLogger(__name__)

CANCEL_KEYWORDS = {"cancelar", "cancela", "cancel", "voltar", "sair"}


class FlowSlot(str, Enum):
    PENDING_EVENT = "pending_event"
    PENDING_TRELLO_DELETE = "pending_trello_delete"
    PENDING_KB_UPDATE = "pending_kb_update"
    PENDING_TRELLO_UPDATE = "pending_trello_update"
    PENDING_EVENT_UPDATE = "pending_event_update"


FLOW_PRIORITY = [
    FlowSlot.PENDING_EVENT,
    FlowSlot.PENDING_TRELLO_DELETE,
    FlowSlot.PENDING_KB_UPDATE,
    FlowSlot.PENDING_TRELLO_UPDATE,
    FlowSlot.PENDING_EVENT_UPDATE,
]

# Follow-up actions accepted by the field-update slots
TRELLO_UPDATE_ACTIONS = {"add_checklist", "set_due", "set_desc", "add_label"}
EVENT_UPDATE_FIELDS = {"summary", "location", "time"}


def is_cancel(text: Optional[str]) -> bool:
    return (text or "").strip().lower().strip("!. ") in CANCEL_KEYWORDS


@dataclass
class SessionFlowState:
    """Pending follow-up questions for one user.

    Attributes:
        pending_kb_update: Memory entry id awaiting a new value
        pending_trello_update: ``{"id", "action"}`` awaiting a card field value
        pending_event_update: ``{"id", "field"}`` awaiting an event field value
        pending_event: Proposed event awaiting a conflict decision
        conflict_suggestions: Alternatives offered with ``pending_event``
        pending_trello_delete: ``{"id", "name"}`` awaiting delete confirmation
    """
    pending_kb_update: Optional[str] = None
    pending_trello_update: Optional[Dict[str, Any]] = None
    pending_event_update: Optional[Dict[str, Any]] = None
    pending_event: Optional[Dict[str, Any]] = None
    conflict_suggestions: List[Dict[str, str]] = field(default_factory=list)
    pending_trello_delete: Optional[Dict[str, Any]] = None

    def active_slot(self) -> Optional[FlowSlot]:
        for slot in FLOW_PRIORITY:
            if getattr(self, slot.value):
                return slot
        return None

    def is_idle(self) -> bool:
        return self.active_slot() is None

    def clear_slot(self, slot: FlowSlot) -> None:
        setattr(self, slot.value, None)
        if slot == FlowSlot.PENDING_EVENT:
            self.conflict_suggestions = []

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FlowStateStore:
    """Keyed store of ``SessionFlowState`` per user."""

    def __init__(self, store: Optional[KeyedStore] = None):
        self.store = store if store is not None else InMemoryStore()

    def get(self, user_id: str) -> SessionFlowState:
        raw = self.store.get(str(user_id))
        if not raw:
            return SessionFlowState()
        known = {k: v for k, v in raw.items() if k in SessionFlowState.__dataclass_fields__}
        return SessionFlowState(**known)

    def _save(self, user_id: str, state: SessionFlowState) -> None:
        if state.is_idle():
            self.store.delete(str(user_id))
        else:
            self.store.set(str(user_id), state.to_dict())

    def begin(
        self,
        user_id: str,
        slot: FlowSlot,
        value: Any,
        suggestions: Optional[List[Dict[str, str]]] = None,
    ) -> SessionFlowState:
        """Start awaiting ``slot``; any other pending question is dropped."""
        state = SessionFlowState()
        setattr(state, slot.value, value)
        if slot == FlowSlot.PENDING_EVENT:
            state.conflict_suggestions = list(suggestions or [])
        previous = self.get(user_id).active_slot()
        if previous is not None and previous != slot:
            logger.info(f"User {user_id}: {previous.value} replaced by {slot.value}")
        self._save(user_id, state)
        return state

    def clear(self, user_id: str, slot: FlowSlot) -> None:
        """Clear exactly ``slot``."""
        state = self.get(user_id)
        state.clear_slot(slot)
        self._save(user_id, state)

    def reset(self, user_id: str) -> None:
        self.store.delete(str(user_id))
