"""Typed intent records produced by the classifier.

The model returns loosely shaped JSON (``{"tipo": "evento", ...}``). It is
normalized and validated here into one pydantic model per intent kind,
discriminated on ``type``. Kinds the dispatcher does not know become a
``ChatIntent`` carrying the model's own conversational text.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Annotated, Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import IntentValidationError

LEGACY_TYPES = {
    "evento": "create_event",
    "trello": "trello_create",
    "tarefa": "trello_create",
    "create_task": "trello_create",
    "neutro": "chat",
    "desfazer": "undo",
}

# Intent kinds whose target_date may be overridden by a relative date in the text
DATE_HINT_TYPES = {
    "create_event", "list_events", "update_event", "delete_event",
    "complete_event", "complete_all_events", "event_add_attendee",
    "event_remove_attendee", "event_set_reminder", "event_get_detail",
}

WEEKDAY_NAMES = [
    ("segunda", 0), ("terça", 1), ("terca", 1), ("quarta", 2), ("quinta", 3),
    ("sexta", 4), ("sábado", 5), ("sabado", 5), ("domingo", 6),
]


class IntentBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class CreateEventIntent(IntentBase):
    type: Literal["create_event"]
    summary: str = Field(min_length=1)
    start: Optional[str] = None
    end: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    online: bool = False
    attendees: List[str] = Field(default_factory=list)
    recurrence: List[str] = Field(default_factory=list)
    priority: Optional[str] = None
    target_date: Optional[str] = None


class ListEventsIntent(IntentBase):
    type: Literal["list_events"]
    period: str = "day"
    target_date: Optional[str] = None


class UpdateEventIntent(IntentBase):
    type: Literal["update_event"]
    query: str = Field(min_length=1)
    target_date: Optional[str] = None
    summary: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


class CompleteEventIntent(IntentBase):
    type: Literal["complete_event"]
    query: str = Field(min_length=1)
    target_date: Optional[str] = None


class CompleteAllEventsIntent(IntentBase):
    type: Literal["complete_all_events"]
    period: Optional[str] = None
    target_date: Optional[str] = None


class DeleteEventIntent(IntentBase):
    type: Literal["delete_event"]
    query: str = Field(min_length=1)
    target_date: Optional[str] = None


class CheckAvailabilityIntent(IntentBase):
    type: Literal["check_availability"]
    target_date: Optional[str] = None
    period: Optional[str] = None


class SmartScheduleIntent(IntentBase):
    type: Literal["smart_schedule"]
    summary: str = Field(min_length=1)
    target_date: Optional[str] = None
    period: Optional[str] = None
    duration: int = 60


class ReportIntent(IntentBase):
    type: Literal["report"]
    target_date: Optional[str] = None
    period: str = "day"


class EventAddAttendeeIntent(IntentBase):
    type: Literal["event_add_attendee"]
    query: str = Field(min_length=1)
    email: str = Field(min_length=3)
    target_date: Optional[str] = None


class EventRemoveAttendeeIntent(IntentBase):
    type: Literal["event_remove_attendee"]
    query: str = Field(min_length=1)
    email: str = Field(min_length=1)
    target_date: Optional[str] = None


class EventSetReminderIntent(IntentBase):
    type: Literal["event_set_reminder"]
    query: str = Field(min_length=1)
    method: Literal["popup", "email"] = "popup"
    minutes: int = Field(default=30, ge=0, le=40320)
    target_date: Optional[str] = None


class EventGetDetailIntent(IntentBase):
    type: Literal["event_get_detail"]
    query: str = Field(min_length=1)
    field: Literal["location", "description", "start", "attendees", "duration"]
    target_date: Optional[str] = None


class TrelloCreateIntent(IntentBase):
    type: Literal["trello_create"]
    name: str = Field(min_length=1)
    desc: Optional[str] = None
    due: Optional[str] = None
    checklist: List[str] = Field(default_factory=list)
    checklist_name: Optional[str] = None
    list_query: Optional[str] = None
    label_query: Union[str, List[str], None] = None
    priority: Optional[str] = None


class TrelloListIntent(IntentBase):
    type: Literal["trello_list"]
    list_query: Optional[str] = None
    filter: Optional[str] = None


class TrelloUpdateIntent(IntentBase):
    type: Literal["trello_update"]
    query: str = Field(min_length=1)
    name: Optional[str] = None
    desc: Optional[str] = None
    due: Optional[str] = None


class TrelloMoveIntent(IntentBase):
    type: Literal["trello_move"]
    query: str = Field(min_length=1)
    list: str = Field(min_length=1)


class TrelloArchiveIntent(IntentBase):
    type: Literal["trello_archive"]
    query: str = Field(min_length=1)


class TrelloClearListIntent(IntentBase):
    type: Literal["trello_clear_list"]
    list_query: Optional[str] = None


class TrelloAddCommentIntent(IntentBase):
    type: Literal["trello_add_comment"]
    query: str = Field(min_length=1)
    comment: str = Field(min_length=1)


class TrelloAddLabelIntent(IntentBase):
    type: Literal["trello_add_label"]
    query: str = Field(min_length=1)
    label: str = Field(min_length=1)


class TrelloAddMemberIntent(IntentBase):
    type: Literal["trello_add_member"]
    query: str = Field(min_length=1)
    member: str = Field(min_length=1)


class TrelloAddChecklistItemIntent(IntentBase):
    type: Literal["trello_add_checklist_item"]
    query: str = Field(min_length=1)
    item: str = Field(min_length=1)
    checklist_name: Optional[str] = None


class TrelloCheckItemIntent(IntentBase):
    type: Literal["trello_check_item"]
    query: str = Field(min_length=1)
    item: str = Field(min_length=1)
    state: Literal["complete", "incomplete"] = "complete"

    @field_validator("item", mode="before")
    @classmethod
    def _item_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class TrelloDeleteIntent(IntentBase):
    type: Literal["trello_delete"]
    query: str = Field(min_length=1)


class TrelloSearchIntent(IntentBase):
    type: Literal["trello_search"]
    query: str = Field(min_length=1)


class TrelloGetIntent(IntentBase):
    type: Literal["trello_get"]
    query: str = Field(min_length=1)


class TrelloListListsIntent(IntentBase):
    type: Literal["trello_list_lists"]


class TrelloCreateListIntent(IntentBase):
    type: Literal["trello_create_list"]
    name: str = Field(min_length=1)


class TrelloMoveAllCardsIntent(IntentBase):
    type: Literal["trello_move_all_cards"]
    from_list: str = Field(min_length=1)
    to_list: str = Field(min_length=1)


class TrelloRemoveLabelIntent(IntentBase):
    type: Literal["trello_remove_label"]
    query: str = Field(min_length=1)
    label: str = Field(min_length=1)


class TrelloDueCompleteIntent(IntentBase):
    type: Literal["trello_due_complete"]
    query: str = Field(min_length=1)
    complete: bool = True


class TrelloChecklistIntent(IntentBase):
    type: Literal["trello_checklist"]
    query: str = Field(min_length=1)


class TrelloDeleteCheckItemIntent(IntentBase):
    type: Literal["trello_delete_check_item"]
    query: str = Field(min_length=1)
    item: str = Field(min_length=1)

    @field_validator("item", mode="before")
    @classmethod
    def _item_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class TrelloDeleteChecklistIntent(IntentBase):
    type: Literal["trello_delete_checklist"]
    query: str = Field(min_length=1)
    checklist_name: Optional[str] = None


class TrelloRenameListIntent(IntentBase):
    type: Literal["trello_rename_list"]
    list_query: str = Field(min_length=1)
    new_name: str = Field(min_length=1)


class TrelloArchiveListIntent(IntentBase):
    type: Literal["trello_archive_list"]
    list_query: str = Field(min_length=1)


class TrelloCardActivityIntent(IntentBase):
    type: Literal["trello_card_activity"]
    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=50)


class TrelloBoardStatsIntent(IntentBase):
    type: Literal["trello_board_stats"]


class StoreInfoIntent(IntentBase):
    type: Literal["store_info"]
    key: str = Field(min_length=1)
    value: str = Field(min_length=1)
    category: str = "geral"


class QueryInfoIntent(IntentBase):
    type: Literal["query_info"]
    query: str = Field(min_length=1)


class ListInfoIntent(IntentBase):
    type: Literal["list_info"]
    category: Optional[str] = None


class DeleteInfoIntent(IntentBase):
    type: Literal["delete_info"]
    key: str = Field(min_length=1)


class UndoIntent(IntentBase):
    type: Literal["undo"]


class ChatIntent(IntentBase):
    type: Literal["chat"]
    message: Optional[str] = None


Intent = Annotated[
    Union[
        CreateEventIntent,
        ListEventsIntent,
        UpdateEventIntent,
        CompleteEventIntent,
        CompleteAllEventsIntent,
        DeleteEventIntent,
        CheckAvailabilityIntent,
        SmartScheduleIntent,
        ReportIntent,
        EventAddAttendeeIntent,
        EventRemoveAttendeeIntent,
        EventSetReminderIntent,
        EventGetDetailIntent,
        TrelloCreateIntent,
        TrelloListIntent,
        TrelloUpdateIntent,
        TrelloMoveIntent,
        TrelloArchiveIntent,
        TrelloClearListIntent,
        TrelloAddCommentIntent,
        TrelloAddLabelIntent,
        TrelloAddMemberIntent,
        TrelloAddChecklistItemIntent,
        TrelloCheckItemIntent,
        TrelloDeleteIntent,
        TrelloSearchIntent,
        TrelloGetIntent,
        TrelloListListsIntent,
        TrelloCreateListIntent,
        TrelloMoveAllCardsIntent,
        TrelloRemoveLabelIntent,
        TrelloDueCompleteIntent,
        TrelloChecklistIntent,
        TrelloDeleteCheckItemIntent,
        TrelloDeleteChecklistIntent,
        TrelloRenameListIntent,
        TrelloArchiveListIntent,
        TrelloCardActivityIntent,
        TrelloBoardStatsIntent,
        StoreInfoIntent,
        QueryInfoIntent,
        ListInfoIntent,
        DeleteInfoIntent,
        UndoIntent,
        ChatIntent,
    ],
    Field(discriminator="type"),
]

_INTENT_ADAPTER = TypeAdapter(Intent)

INTENT_MODELS: Dict[str, type] = {
    get_args(model.model_fields["type"].annotation)[0]: model
    for model in IntentBase.__subclasses__()
}
INTENT_TYPES = frozenset(INTENT_MODELS)


def normalize_raw_intent(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map ``tipo`` and legacy tags onto the canonical ``type`` field."""
    data = dict(raw)
    tag = data.pop("tipo", None)
    tag = data.get("type") or tag or "chat"
    tag = str(tag).strip().lower()
    tag = LEGACY_TYPES.get(tag, tag)
    data["type"] = tag
    if tag == "trello_create" and not data.get("name") and data.get("title"):
        data["name"] = data["title"]
    if tag == "trello_overdue":
        data.update(type="trello_list", filter="overdue")
    return data


def parse_intent(raw: Dict[str, Any]):
    """Validate one raw record into its intent model.

    Unknown kinds become ``ChatIntent``; known kinds with missing or bad
    fields raise ``IntentValidationError``.
    """
    if not isinstance(raw, dict):
        raise IntentValidationError("unknown", "intent is not an object")
    data = normalize_raw_intent(raw)
    if data["type"] not in INTENT_TYPES:
        return ChatIntent(type="chat", message=data.get("message"))
    try:
        return _INTENT_ADAPTER.validate_python(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "?" for err in e.errors())
        raise IntentValidationError(data["type"], f"invalid fields: {fields}") from e


def as_intent_list(raw: Any) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [item for item in raw if item is not None]
    return [raw]


def relative_date_hint(text: str, today: date) -> Optional[date]:
    """Date implied by "amanhã", "depois de amanhã" or a weekday name."""
    lowered = (text or "").lower()
    if "depois de amanhã" in lowered or "depois de amanha" in lowered:
        return today + timedelta(days=2)
    if "amanhã" in lowered or "amanha" in lowered:
        return today + timedelta(days=1)
    for name, weekday in WEEKDAY_NAMES:
        if name in lowered:
            target = today + timedelta(days=(weekday - today.weekday()) % 7)
            if target == today and ("próxima" in lowered or "proxima" in lowered):
                target += timedelta(days=7)
            return target
    return None


def apply_date_hint(raw_intents: List[Dict[str, Any]], text: str, today: date) -> List[Dict[str, Any]]:
    """Override missing or "today" target dates when the text names another day."""
    hinted = relative_date_hint(text, today)
    if hinted is None:
        return raw_intents
    result = []
    for raw in raw_intents:
        data = normalize_raw_intent(raw) if isinstance(raw, dict) else raw
        if isinstance(data, dict) and data.get("type") in DATE_HINT_TYPES:
            if not data.get("target_date") or data.get("target_date") == today.isoformat():
                data["target_date"] = hinted.isoformat()
        result.append(data)
    return result
