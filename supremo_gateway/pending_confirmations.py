"""Pending confirmation store for risky actions.

Bulk completions, deletes and list clean-ups wait here for an explicit
yes/no from the user. There is one slot per user: a new request replaces
the previous one. Confirmations expire after a timeout, and a callback must
carry the id of the confirmation it answers so taps on an old prompt are
rejected.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from storage.json_store import InMemoryStore, KeyedStore

logger = logging.getLogger(__name__)

CONFIRMATION_TIMEOUT = 120.0
MAX_PREVIEW_ITEMS = 5

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

PREVIEW_EMOJI = {
    "events": "📅",
    "tasks": "✅",
    "cards": "📌",
}


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


@dataclass
class Confirmation:
    """A risky action awaiting the user's answer.

    Attributes:
        id: ``conf_<base36 creation time in ms>``; echoed back by callbacks
        user_id: Owner of the confirmation
        action_type: Action to run once accepted
        data: Payload the action needs
        items: Preview lines shown to the user
        created_at: Unix timestamp (seconds)
        expires: Unix timestamp after which the confirmation is stale
    """
    id: str
    user_id: str
    action_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    items: List[Any] = field(default_factory=list)
    created_at: float = 0.0
    expires: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires


class ConfirmationStore:
    """Single-slot, per-user, time-boxed confirmation register."""

    def __init__(
        self,
        store: Optional[KeyedStore] = None,
        timeout: float = CONFIRMATION_TIMEOUT,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.timeout = timeout
        self._clock = clock or time.time
        self._last_id = ""

    def _new_id(self, now: float) -> str:
        conf_id = f"conf_{to_base36(int(now * 1000))}"
        # Two prompts in the same millisecond still need distinct ids
        while conf_id <= self._last_id and len(conf_id) == len(self._last_id):
            now += 0.001
            conf_id = f"conf_{to_base36(int(now * 1000))}"
        self._last_id = conf_id
        return conf_id

    def create(
        self,
        user_id: str,
        action_type: str,
        data: Optional[Dict[str, Any]] = None,
        items: Optional[List[Any]] = None,
    ) -> Confirmation:
        """Register a confirmation, replacing any previous one for the user."""
        now = self._clock()
        confirmation = Confirmation(
            id=self._new_id(now),
            user_id=str(user_id),
            action_type=action_type,
            data=dict(data or {}),
            items=list(items or []),
            created_at=now,
            expires=now + self.timeout,
        )
        previous = self.store.get(str(user_id))
        if previous:
            logger.debug(f"Replacing pending confirmation {previous.get('id')} for user {user_id}")
        self.store.set(str(user_id), confirmation.to_dict())
        logger.info(f"Created confirmation {confirmation.id} ({action_type}) for user {user_id}")
        return confirmation

    def get(self, user_id: str) -> Optional[Confirmation]:
        """Current confirmation, or None. Expired entries are evicted."""
        raw = self.store.get(str(user_id))
        if not raw:
            return None
        confirmation = Confirmation(**raw)
        if confirmation.is_expired(self._clock()):
            logger.info(f"Confirmation {confirmation.id} for user {user_id} expired")
            self.store.delete(str(user_id))
            return None
        return confirmation

    def clear(self, user_id: str) -> None:
        self.store.delete(str(user_id))

    def resolve(self, user_id: str, confirmation_id: str) -> Optional[Confirmation]:
        """Take the confirmation answered by a callback.

        Returns None, leaving state untouched, when the id does not match the
        stored confirmation or it has expired.
        """
        confirmation = self.get(user_id)
        if confirmation is None or confirmation.id != confirmation_id:
            logger.info(f"Rejected stale confirmation {confirmation_id} for user {user_id}")
            return None
        self.clear(user_id)
        return confirmation


def format_preview(confirmation: Confirmation, item_kind: str = "events") -> str:
    """Markdown preview listing at most five items."""
    emoji = PREVIEW_EMOJI.get(item_kind, "•")
    lines = []
    for item in confirmation.items[:MAX_PREVIEW_ITEMS]:
        label = item if isinstance(item, str) else (item.get("summary") or item.get("name") or "")
        lines.append(f"{emoji} {label}")
    remaining = len(confirmation.items) - MAX_PREVIEW_ITEMS
    if remaining > 0:
        lines.append(f"_...e mais {remaining} itens_")
    return "\n".join(lines)
