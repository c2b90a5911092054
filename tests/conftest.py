from __future__ import annotations

pytest_plugins = ("pytest_asyncio",)

import copy
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
import pytz

from storage.knowledge_store import KnowledgeStore
from supremo_gateway.conflict_engine import event_bounds
from supremo_gateway.dispatcher import IntentDispatcher
from supremo_gateway.fuzzy_matcher import normalize_text
from supremo_gateway.retry import RetryPolicy

TZ_NAME = "America/Sao_Paulo"
TZ = pytz.timezone(TZ_NAME)
# Monday 19/10/2026, 09:00 local
NOW = TZ.localize(datetime(2026, 10, 19, 9, 0))


def local_iso(day_offset: int, hour: int, minute: int = 0) -> str:
    moment = datetime.combine(NOW.date() + timedelta(days=day_offset), datetime.min.time())
    return TZ.localize(moment.replace(hour=hour, minute=minute)).isoformat()


def make_event(event_id: str, summary: str, start: str, end: Optional[str] = None, **extra) -> Dict[str, Any]:
    """Calendar event dict; 10-character bounds make an all-day event."""
    if len(start) == 10:
        event = {"id": event_id, "summary": summary, "start": {"date": start}, "end": {"date": end or start}}
    else:
        event = {"id": event_id, "summary": summary, "start": {"dateTime": start}, "end": {"dateTime": end}}
    event.update(extra)
    return event


async def no_sleep(delay: float) -> None:
    return None


class FakeCalendar:
    """In-memory calendar with the GoogleCalendarClient interface."""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None):
        self.events: Dict[str, Dict[str, Any]] = {e["id"]: e for e in events or []}
        self.calls: List[tuple] = []
        self.fail_with: Optional[BaseException] = None
        self.failing_updates: Dict[str, BaseException] = {}
        self._next_id = 1

    def add(self, event: Dict[str, Any]) -> Dict[str, Any]:
        self.events[event["id"]] = event
        return event

    def mutations(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "list"]

    async def list_events(self, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        self.calls.append(("list", time_min, time_max))
        if self.fail_with is not None:
            raise self.fail_with
        low = datetime.fromisoformat(time_min)
        high = datetime.fromisoformat(time_max)
        found = []
        for event in self.events.values():
            start, end, _ = event_bounds(event, TZ)
            if start is not None and start < high and end > low:
                found.append((start, event))
        return [event for _, event in sorted(found, key=lambda item: item[0])]

    async def create_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("create", copy.deepcopy(data)))
        event_id = f"evt_new_{self._next_id}"
        self._next_id += 1
        key = "date" if len(str(data.get("start"))) == 10 else "dateTime"
        event = {
            "id": event_id,
            "summary": data.get("summary"),
            "start": {key: data.get("start")},
            "end": {key: data.get("end") or data.get("start")},
            "htmlLink": f"https://calendar.example/{event_id}",
        }
        if data.get("location"):
            event["location"] = data["location"]
        self.events[event_id] = event
        return event

    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("update", event_id, copy.deepcopy(updates)))
        if event_id in self.failing_updates:
            raise self.failing_updates[event_id]
        event = self.events[event_id]
        for key, value in updates.items():
            if key in ("start", "end"):
                event[key] = {"dateTime": value}
            else:
                event[key] = value
        return event

    async def delete_event(self, event_id: str) -> None:
        self.calls.append(("delete", event_id))
        self.events.pop(event_id, None)


class FakeBoard:
    """In-memory Trello board with the TrelloClient interface."""

    inbox_list_id = "list_inbox"

    def __init__(self):
        self.lists = [
            {"id": "list_inbox", "name": "Inbox"},
            {"id": "list_doing", "name": "Em andamento"},
            {"id": "list_parado", "name": "Parado"},
        ]
        self.cards: Dict[str, Dict[str, Any]] = {}
        self.labels = [
            {"id": "lbl_red", "name": "", "color": "red"},
            {"id": "lbl_vip", "name": "Cliente VIP", "color": "green"},
        ]
        self.members = [{"id": "mem_ana", "fullName": "Ana Souza", "username": "anasouza"}]
        self.checklists: Dict[str, List[Dict[str, Any]]] = {}
        self.comments: List[tuple] = []
        self.actions: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.failing_updates: Dict[str, BaseException] = {}
        self._next_id = 1

    def _new_id(self, prefix: str) -> str:
        value = f"{prefix}_{self._next_id}"
        self._next_id += 1
        return value

    def add_card(self, name: str, list_id: str = "list_inbox", card_id: Optional[str] = None, **extra) -> Dict[str, Any]:
        card = {
            "id": card_id or self._new_id("card"),
            "name": name,
            "idList": list_id,
            "desc": "",
            "due": None,
            "closed": False,
            "labels": [],
        }
        card["shortUrl"] = f"https://trello.example/c/{card['id']}"
        card.update(extra)
        self.cards[card["id"]] = card
        return card

    async def get_lists(self):
        return [dict(l) for l in self.lists if not l.get("closed")]

    async def create_list(self, name):
        board_list = {"id": self._new_id("list"), "name": name}
        self.lists.append(board_list)
        self.calls.append(("create_list", name))
        return dict(board_list)

    async def update_list(self, list_id, updates):
        self.calls.append(("update_list", list_id, dict(updates)))
        board_list = next(l for l in self.lists if l["id"] == list_id)
        board_list.update(updates)
        return dict(board_list)

    async def list_cards(self, list_id=None):
        list_id = list_id or self.inbox_list_id
        return [dict(c) for c in self.cards.values() if c["idList"] == list_id and not c["closed"]]

    async def list_grouped(self):
        return [
            {"id": l["id"], "name": l["name"], "cards": await self.list_cards(l["id"])}
            for l in self.lists
            if not l.get("closed")
        ]

    async def list_all_cards(self):
        cards = []
        for group in await self.list_grouped():
            cards.extend({**card, "listName": group["name"]} for card in group["cards"])
        return cards

    async def get_card(self, card_id):
        return dict(self.cards[card_id])

    async def get_card_detail(self, card_id):
        return {**self.cards[card_id], "checklists": self.checklists.get(card_id, [])}

    async def get_card_actions(self, card_id, limit=10):
        self.calls.append(("get_card_actions", card_id, limit))
        return self.actions.get(card_id, [])[:limit]

    async def create_card(self, data):
        self.calls.append(("create_card", copy.deepcopy(data)))
        card = self.add_card(data["name"], list_id=data.get("idList") or self.inbox_list_id)
        card["desc"] = data.get("desc") or ""
        card["due"] = data.get("due")
        card["idLabels"] = list(data.get("labels") or [])
        return dict(card)

    async def update_card(self, card_id, updates):
        self.calls.append(("update_card", card_id, copy.deepcopy(updates)))
        if card_id in self.failing_updates:
            raise self.failing_updates[card_id]
        self.cards[card_id].update(updates)
        return dict(self.cards[card_id])

    async def delete_card(self, card_id):
        self.calls.append(("delete_card", card_id))
        self.cards.pop(card_id, None)

    async def search_cards(self, query):
        wanted = normalize_text(query)
        return [dict(c) for c in self.cards.values() if wanted and wanted in normalize_text(c["name"])]

    async def add_comment(self, card_id, text):
        self.comments.append((card_id, text))
        return {"id": self._new_id("comment")}

    async def get_labels(self):
        return [dict(l) for l in self.labels]

    async def create_label(self, name, color="sky"):
        label = {"id": self._new_id("lbl"), "name": name, "color": color}
        self.labels.append(label)
        self.calls.append(("create_label", name, color))
        return dict(label)

    async def add_label(self, card_id, label_id):
        self.calls.append(("add_label", card_id, label_id))
        self.cards[card_id].setdefault("idLabels", []).append(label_id)

    async def remove_label(self, card_id, label_id):
        self.calls.append(("remove_label", card_id, label_id))
        card = self.cards[card_id]
        card["labels"] = [l for l in card.get("labels") or [] if l["id"] != label_id]

    async def get_members(self):
        return [dict(m) for m in self.members]

    async def add_member(self, card_id, member_id):
        self.calls.append(("add_member", card_id, member_id))

    async def get_card_checklists(self, card_id):
        return self.checklists.get(card_id, [])

    async def add_checklist(self, card_id, name, items=None):
        checklist = {"id": self._new_id("chk"), "name": name, "idCard": card_id, "checkItems": []}
        self.checklists.setdefault(card_id, []).append(checklist)
        for item in items or []:
            await self.add_checklist_item(checklist["id"], item)
        self.calls.append(("add_checklist", card_id, name, list(items or [])))
        return checklist

    async def add_checklist_item(self, checklist_id, name):
        for checklists in self.checklists.values():
            for checklist in checklists:
                if checklist["id"] == checklist_id:
                    item = {"id": self._new_id("item"), "name": name, "state": "incomplete"}
                    checklist["checkItems"].append(item)
                    return item
        raise KeyError(checklist_id)

    async def update_check_item(self, card_id, item_id, state):
        self.calls.append(("update_check_item", card_id, item_id, state))
        for checklist in self.checklists.get(card_id, []):
            for item in checklist["checkItems"]:
                if item["id"] == item_id:
                    item["state"] = state
                    return item
        raise KeyError(item_id)

    async def delete_check_item(self, card_id, item_id):
        self.calls.append(("delete_check_item", card_id, item_id))
        for checklist in self.checklists.get(card_id, []):
            checklist["checkItems"] = [i for i in checklist["checkItems"] if i["id"] != item_id]

    async def delete_checklist(self, checklist_id):
        self.calls.append(("delete_checklist", checklist_id))
        for card_id, checklists in self.checklists.items():
            self.checklists[card_id] = [c for c in checklists if c["id"] != checklist_id]


class FakeClassifier:
    """Returns canned intents per exact message text."""

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.default: Any = [{"type": "chat", "message": None}]
        self.calls: List[tuple] = []
        self.error: Optional[BaseException] = None

    def reply(self, text: str, intents: Any) -> None:
        self.responses[text] = intents

    async def interpret(self, text, user_id, user_context=None):
        self.calls.append((text, user_id, user_context))
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.responses.get(text, self.default))


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def board():
    return FakeBoard()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def memory():
    store = KnowledgeStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def invalidations():
    return []


@pytest.fixture
def dispatcher(classifier, calendar, board, memory, invalidations):
    return IntentDispatcher(
        classifier,
        calendar,
        board,
        memory,
        invalidate_cache=invalidations.append,
        retry=RetryPolicy(sleep=no_sleep),
        timezone_str=TZ_NAME,
        clock=lambda: NOW,
    )
