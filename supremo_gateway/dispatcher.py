"""Intent dispatcher for the Supremo assistant.

Turns one chat message (or one button press) into replies:

- a pending conversational flow consumes the message first
- otherwise the classifier produces intents, each handled in isolation so
  one failing intent never hides the others' results
- risky bulk actions go through the confirmation register, reversible ones
  are recorded in the action history for "desfazer"

Handlers for calendar and board intents live in ``event_actions`` and
``board_actions``; this module owns routing, flows, callbacks and undo.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import dateparser
import pytz

from .action_history import ActionHistoryEntry, ActionHistoryStore, UndoType
from .board_actions import BoardActionsMixin
from .conflict_engine import ConflictEngine, TimeSlot, parse_datetime
from .errors import ClassifierError, IntentValidationError, sanitize_error_message
from .event_actions import COMPLETED_PREFIX, EventActionsMixin
from .flow_state import (
    EVENT_UPDATE_FIELDS,
    TRELLO_UPDATE_ACTIONS,
    FlowSlot,
    FlowStateStore,
    is_cancel,
)
from .formatting import (
    CANCELLED,
    CLARIFY_TEXT,
    CONFIRMATION_EXPIRED,
    FLOW_EXPIRED,
    HELP_TEXT,
    NOTHING_TO_UNDO,
    Button,
    Reply,
    partial_failure_text,
)
from .fuzzy_matcher import find_label
from .intents import INTENT_TYPES, apply_date_hint, as_intent_list, parse_intent
from .pending_confirmations import ConfirmationStore
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

UNDO_KEYWORDS = {"desfazer", "undo", "/desfazer", "/undo"}
YES_WORDS = {"sim", "s", "yes", "y", "confirmar", "confirma"}
NO_WORDS = {"não", "nao", "n", "no"}
FORCE_WORDS = {"forçar", "forcar", "sim", "s"}

DUE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y")

CONFLICT_CANCELLED = "👍 Ok, evento não criado."
INVALID_SUGGESTION = "⚠️ Sugestão inválida."
EVENT_DATA_LOST = "⚠️ Dados do evento perdidos."
UNKNOWN_ACTION = "⚠️ Ação desconhecida."

EVENT_UPDATE_PROMPTS = {
    "summary": "✏️ Qual o novo título do evento?",
    "location": "📍 Qual o local do evento?",
    "time": "🕒 Qual o novo horário? (ex: \"amanhã às 15h\")",
}
TRELLO_UPDATE_PROMPTS = {
    "add_checklist": "☑️ Envie os itens do checklist separados por vírgula.",
    "set_due": "📅 Qual o prazo? (ex: 25/12/2026 ou \"sexta-feira\")",
    "set_desc": "📝 Envie a descrição do card.",
    "add_label": "🏷️ Qual etiqueta devo adicionar?",
}
EVENT_EDIT_CALLBACKS = {
    "event_edit_title": "summary",
    "event_edit_location": "location",
    "event_edit_time": "time",
}
CARD_SUGGEST_CALLBACKS = {
    "suggest_trello_checklist": "add_checklist",
    "suggest_trello_due": "set_due",
    "suggest_trello_desc": "set_desc",
    "suggest_trello_label": "add_label",
}

HandlerResult = Union[Reply, List[Reply]]


def _as_replies(result: Optional[HandlerResult]) -> List[Reply]:
    if result is None:
        return []
    if isinstance(result, Reply):
        return [result]
    return list(result)


class IntentDispatcher(EventActionsMixin, BoardActionsMixin):
    """Routes messages and callbacks for every user of the assistant.

    Work for one user is serialized with a per-user lock; different users
    proceed concurrently.
    """

    def __init__(
        self,
        classifier,
        calendar,
        board,
        memory,
        confirmations: Optional[ConfirmationStore] = None,
        history: Optional[ActionHistoryStore] = None,
        flow_states: Optional[FlowStateStore] = None,
        invalidate_cache: Optional[Callable[[str], Any]] = None,
        retry: Optional[RetryPolicy] = None,
        timezone_str: str = "America/Sao_Paulo",
        clock: Optional[Callable[[], datetime]] = None,
        user_profiles: Optional[Dict[str, str]] = None,
        conflict_engine: Optional[ConflictEngine] = None,
    ):
        self.classifier = classifier
        self.calendar = calendar
        self.board = board
        self.memory = memory
        self.confirmations = confirmations or ConfirmationStore()
        self.history = history or ActionHistoryStore()
        self.flow_states = flow_states or FlowStateStore()
        self.invalidate_cache = invalidate_cache
        self.retry = retry or RetryPolicy()
        self.tz = pytz.timezone(timezone_str)
        self._clock = clock or (lambda: datetime.now(pytz.utc))
        self.user_profiles = dict(user_profiles or {})
        self.conflicts = conflict_engine or ConflictEngine(calendar, timezone_str=timezone_str, clock=self._clock)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        missing = [t for t in sorted(INTENT_TYPES) if not hasattr(self, f"_handle_{t}")]
        if missing:
            raise RuntimeError(f"No handler for intent types: {missing}")

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    async def _call(self, func: Callable[..., Awaitable[Any]], *args: Any, operation: str = "remote call") -> Any:
        return await self.retry.run(func, *args, operation=operation)

    def _invalidate(self, scope: str) -> None:
        """Notify the cache hook; failures are logged and never reach the user."""
        if self.invalidate_cache is None:
            return
        try:
            result = self.invalidate_cache(scope)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(lambda t: self._log_invalidation(scope, t))
        except Exception as e:
            logger.warning(f"Cache invalidation for '{scope}' failed: {e}")

    @staticmethod
    def _log_invalidation(scope: str, task: "asyncio.Future") -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Cache invalidation for '{scope}' failed: {task.exception()}")

    # ==================== Entry points ====================

    async def handle_message(self, user_id: str, text: str) -> List[Reply]:
        user_id = str(user_id)
        async with self._locks[user_id]:
            return await self._handle_message(user_id, (text or "").strip())

    async def handle_callback(self, user_id: str, data: str) -> List[Reply]:
        user_id = str(user_id)
        async with self._locks[user_id]:
            try:
                return await self._handle_callback(user_id, (data or "").strip())
            except Exception as e:
                logger.exception(f"Callback '{data}' failed for user {user_id}")
                return [Reply(f"❌ Erro: {sanitize_error_message(e)}")]

    async def _handle_message(self, user_id: str, text: str) -> List[Reply]:
        state = self.flow_states.get(user_id)
        if not state.is_idle():
            try:
                return await self._handle_flow(user_id, text)
            except Exception as e:
                logger.exception(f"Follow-up answer failed for user {user_id}")
                return [Reply(f"❌ Erro: {sanitize_error_message(e)}")]

        if text.lower() in UNDO_KEYWORDS:
            return await self.undo(user_id)

        try:
            raw = await self.classifier.interpret(text, user_id, self.user_profiles.get(user_id))
        except ClassifierError as e:
            logger.warning(f"Classification failed for user {user_id}: {e}")
            return [Reply(CLARIFY_TEXT)]

        raw_intents = apply_date_hint(as_intent_list(raw), text, self.today())
        if not raw_intents:
            return [Reply(CLARIFY_TEXT)]

        replies: List[Reply] = []
        for raw_intent in raw_intents:
            replies.extend(await self._dispatch_one(user_id, raw_intent))
        return replies

    async def _dispatch_one(self, user_id: str, raw_intent: Dict[str, Any]) -> List[Reply]:
        intent_type = raw_intent.get("type", "?") if isinstance(raw_intent, dict) else "?"
        try:
            intent = parse_intent(raw_intent)
            intent_type = intent.type
            handler = getattr(self, f"_handle_{intent_type}")
            logger.info(f"Dispatching {intent_type} for user {user_id}")
            return _as_replies(await handler(user_id, intent))
        except IntentValidationError as e:
            logger.warning(f"Invalid intent from classifier: {e}")
            return [Reply(f"⚠️ Não consegui entender todos os detalhes de \"{e.intent_type}\". Pode reformular?")]
        except Exception as e:
            logger.exception(f"Intent {intent_type} failed for user {user_id}")
            return [Reply(
                f"⚠️ Tive um problema ao processar: {intent_type}. Mas o resto pode ter funcionado.\n"
                f"_{sanitize_error_message(e)}_"
            )]

    # ==================== Memory and chat ====================

    async def _handle_store_info(self, user_id: str, intent) -> Reply:
        entry = self.memory.store_info(intent.key, intent.value, intent.category)
        self.history.record(user_id, "store_info", {"key": entry.key}, {"entry_id": entry.id})
        self._invalidate("all")
        return Reply(f"🧠 *Guardado!*\n\n*{entry.key}*: {entry.value}\n🏷️ _{entry.category}_")

    async def _handle_query_info(self, user_id: str, intent) -> Reply:
        entry = self.memory.query_info(intent.query)
        if entry is None:
            return Reply(f"🔍 Não encontrei nada sobre \"{intent.query}\".")
        return Reply(
            f"🧠 *{entry.key}*\n{entry.value}",
            [[
                Button("✏️ Atualizar", f"kb_update:{entry.id}"),
                Button("🗑️ Deletar", f"kb_delete:{entry.id}"),
            ]],
        )

    async def _handle_list_info(self, user_id: str, intent) -> Reply:
        entries = self.memory.list_info(intent.category)
        if not entries:
            return Reply("🧠 Nada guardado ainda." if not intent.category else f"🧠 Nada guardado em \"{intent.category}\".")
        lines = ["🧠 *Memória:*"]
        current = None
        for entry in entries:
            if entry.category != current:
                current = entry.category
                lines.extend(["", f"🏷️ *{current}*"])
            lines.append(f"• *{entry.key}*: {entry.value}")
        return Reply("\n".join(lines))

    async def _handle_delete_info(self, user_id: str, intent) -> Reply:
        if not self.memory.delete_info(intent.key):
            entry = self.memory.query_info(intent.key)
            if entry is None or not self.memory.delete_info(entry.id):
                return Reply(f"🔍 Não encontrei nada sobre \"{intent.key}\".")
        self._invalidate("all")
        return Reply("🗑️ Informação deletada da memória.")

    async def _handle_undo(self, user_id: str, intent) -> List[Reply]:
        return await self.undo(user_id)

    async def _handle_chat(self, user_id: str, intent) -> Reply:
        return Reply(intent.message or HELP_TEXT)

    # ==================== Confirmations ====================

    async def _execute_confirmed(self, user_id: str, confirmation) -> List[Reply]:
        data = confirmation.data
        action = confirmation.action_type
        logger.info(
            f"Executing confirmed {action} ({confirmation.id}) for user {user_id}",
            extra={"action": action, "id": confirmation.id, "user_id": user_id},
        )

        if action == "complete_all_events":
            events = data.get("events", [])
            done, error = await self._run_batch(
                events,
                lambda event: self._call(
                    self.calendar.update_event,
                    event["id"],
                    {"summary": f"{COMPLETED_PREFIX}{event['summary']}", "colorId": "8"},
                    operation="complete event",
                ),
            )
            if done:
                self.history.record(user_id, "complete_all_events", {"events": done}, {"count": len(done)})
                self._invalidate("events")
            if error is not None:
                return [Reply(partial_failure_text(len(done), len(events), "eventos concluídos", error))]
            return [Reply(f"✅ {len(done)} eventos de {data.get('label', 'hoje')} marcados como concluídos!")]

        if action == "delete_event":
            await self._call(self.calendar.delete_event, data["event_id"], operation="delete event")
            self.history.record(user_id, "delete_event", {"snapshot": data.get("snapshot", {})}, {"event_id": data["event_id"]})
            self._invalidate("events")
            summary = (data.get("snapshot") or {}).get("summary") or ""
            text = f"🗑️ Evento \"{summary}\" apagado."
            if data.get("recurring"):
                text += " (Apenas esta ocorrência)"
            return [Reply(text)]

        if action == "trello_clear_list":
            card_ids = data.get("card_ids", [])
            archived, error = await self._run_batch(
                card_ids,
                lambda card_id: self._call(self.board.update_card, card_id, {"closed": True}, operation="archive card"),
            )
            if archived:
                self.history.record(user_id, "trello_clear_list", {"card_ids": archived, "list_id": data.get("list_id")}, {})
                self._invalidate("trello")
            if error is not None:
                return [Reply(partial_failure_text(len(archived), len(card_ids), "cards arquivados", error))]
            return [Reply(f"📦 {len(archived)} cards da lista *{data.get('list_name')}* arquivados.")]

        logger.error(f"Confirmation {confirmation.id} has unknown action {action}")
        return [Reply(UNKNOWN_ACTION)]

    async def _run_batch(self, items: List[Any], step: Callable[[Any], Awaitable[Any]]):
        """Apply ``step`` to each item in order, stopping at the first failure.

        Returns the items already applied and the error that stopped the
        batch (``None`` when every item went through).
        """
        done: List[Any] = []
        for item in items:
            try:
                await step(item)
            except Exception as e:
                logger.warning(f"Batch stopped after {len(done)} of {len(items)} item(s): {e}")
                return done, e
            done.append(item)
        return done, None

    # ==================== Undo ====================

    async def undo(self, user_id: str) -> List[Reply]:
        entry = self.history.get_last(user_id)
        if entry is None:
            return [Reply(NOTHING_TO_UNDO)]
        try:
            text, scope = await self._reverse(entry)
        except Exception as e:
            logger.exception(f"Undo of {entry.type} ({entry.id}) failed for user {user_id}")
            return [Reply(f"❌ Não foi possível desfazer: {sanitize_error_message(e)}")]
        self.history.mark_undone(user_id, entry.id)
        self._invalidate(scope)
        return [Reply(text)]

    async def _reverse(self, entry: ActionHistoryEntry):
        data, result = entry.data, entry.result
        undo_type = UndoType(entry.undo_type)

        if undo_type == UndoType.DELETE_EVENT:
            await self._call(self.calendar.delete_event, result["event_id"], operation="undo create event")
            return f"🔙 Evento \"{data.get('summary')}\" foi removido.", "events"

        if undo_type == UndoType.UNCOMPLETE_EVENT:
            updates = {"summary": data["original_summary"]}
            if data.get("original_color_id"):
                updates["colorId"] = data["original_color_id"]
            await self._call(self.calendar.update_event, data["event_id"], updates, operation="undo complete event")
            return f"🔙 Evento \"{data['original_summary']}\" voltou a ficar pendente.", "events"

        if undo_type == UndoType.UNCOMPLETE_EVENTS:
            for event in data.get("events", []):
                updates = {"summary": event["summary"]}
                if event.get("colorId"):
                    updates["colorId"] = event["colorId"]
                await self._call(self.calendar.update_event, event["id"], updates, operation="undo complete events")
            return f"🔙 {len(data.get('events', []))} eventos voltaram a ficar pendentes.", "events"

        if undo_type == UndoType.RESTORE_EVENT:
            snapshot = data.get("snapshot") or {}
            await self._call(self.calendar.create_event, snapshot, operation="restore event")
            return f"🔙 Evento \"{snapshot.get('summary')}\" foi restaurado.", "events"

        if undo_type == UndoType.TRELLO_DELETE:
            await self._call(self.board.delete_card, result["card_id"], operation="undo create card")
            return f"🔙 Card \"{data.get('name')}\" foi removido.", "trello"

        if undo_type == UndoType.TRELLO_UNARCHIVE:
            await self._call(self.board.update_card, data["card_id"], {"closed": False}, operation="unarchive card")
            return f"🔙 Card \"{data.get('name')}\" foi restaurado.", "trello"

        if undo_type == UndoType.TRELLO_UNARCHIVE_MANY:
            for card_id in data.get("card_ids", []):
                await self._call(self.board.update_card, card_id, {"closed": False}, operation="unarchive card")
            return f"🔙 {len(data.get('card_ids', []))} cards foram restaurados.", "trello"

        if undo_type == UndoType.TRELLO_MOVE_BACK:
            await self._call(
                self.board.update_card, data["card_id"], {"idList": data["from_list"]}, operation="move card back"
            )
            return f"🔙 Card \"{data.get('name')}\" voltou para a lista anterior.", "trello"

        if undo_type == UndoType.TRELLO_MOVE_BACK_MANY:
            for card_id in data.get("card_ids", []):
                await self._call(
                    self.board.update_card, card_id, {"idList": data["from_list"]}, operation="move card back"
                )
            return f"🔙 {len(data.get('card_ids', []))} cards voltaram para *{data.get('from_list_name')}*.", "trello"

        if undo_type == UndoType.DELETE_INFO:
            self.memory.delete_info(result["entry_id"])
            return f"🔙 Informação \"{data.get('key')}\" foi removida da memória.", "all"

        raise ValueError(f"unsupported undo type {undo_type}")

    # ==================== Callbacks ====================

    async def _handle_callback(self, user_id: str, data: str) -> List[Reply]:
        logger.info(f"Callback '{data}' from user {user_id}")

        if data.startswith("confirm_yes_") or data.startswith("confirm_no_"):
            accepted = data.startswith("confirm_yes_")
            confirmation_id = data[len("confirm_yes_" if accepted else "confirm_no_"):]
            confirmation = self.confirmations.resolve(user_id, confirmation_id)
            if confirmation is None:
                return [Reply(CONFIRMATION_EXPIRED)]
            if not accepted:
                return [Reply(CANCELLED)]
            return await self._execute_confirmed(user_id, confirmation)

        if data == "conflict_force":
            return await self._force_pending_event(user_id)
        if data == "conflict_cancel":
            self.flow_states.clear(user_id, FlowSlot.PENDING_EVENT)
            return [Reply(CONFLICT_CANCELLED)]
        if data.startswith("conflict_accept:"):
            index = data.split(":", 1)[1]
            return await self._accept_suggestion(user_id, int(index) if index.isdigit() else -1)

        action, _, target_id = data.partition(":")
        if action in EVENT_EDIT_CALLBACKS and target_id:
            field = EVENT_EDIT_CALLBACKS[action]
            self.flow_states.begin(user_id, FlowSlot.PENDING_EVENT_UPDATE, {"id": target_id, "field": field})
            return [Reply(EVENT_UPDATE_PROMPTS[field])]
        if action in CARD_SUGGEST_CALLBACKS and target_id:
            update = CARD_SUGGEST_CALLBACKS[action]
            self.flow_states.begin(user_id, FlowSlot.PENDING_TRELLO_UPDATE, {"id": target_id, "action": update})
            return [Reply(TRELLO_UPDATE_PROMPTS[update])]
        if action == "kb_update" and target_id:
            self.flow_states.begin(user_id, FlowSlot.PENDING_KB_UPDATE, target_id)
            return [Reply("✏️ Envie o novo valor para esta informação.")]
        if action == "kb_delete" and target_id:
            if not self.memory.delete_info(target_id):
                return [Reply("⚠️ Informação não encontrada.")]
            self._invalidate("all")
            return [Reply("🗑️ Informação deletada da memória.")]
        if action in ("trello_confirm_delete", "trello_cancel_delete"):
            pending = self.flow_states.get(user_id).pending_trello_delete
            if not pending or pending.get("id") != target_id:
                return [Reply(FLOW_EXPIRED)]
            if action == "trello_cancel_delete":
                self.flow_states.clear(user_id, FlowSlot.PENDING_TRELLO_DELETE)
                return [Reply(CANCELLED)]
            return [await self._delete_pending_card(user_id, pending)]

        logger.warning(f"Unknown callback '{data}' from user {user_id}")
        return [Reply(UNKNOWN_ACTION)]

    async def _force_pending_event(self, user_id: str) -> List[Reply]:
        pending = self.flow_states.get(user_id).pending_event
        if not pending:
            return [Reply(EVENT_DATA_LOST)]
        self.flow_states.clear(user_id, FlowSlot.PENDING_EVENT)
        return await self._create_event(user_id, pending, title="Agendado (com conflito)")

    async def _accept_suggestion(self, user_id: str, index: int) -> List[Reply]:
        state = self.flow_states.get(user_id)
        if not state.pending_event:
            return [Reply(EVENT_DATA_LOST)]
        if not 0 <= index < len(state.conflict_suggestions):
            return [Reply(INVALID_SUGGESTION)]
        slot = TimeSlot.from_dict(state.conflict_suggestions[index])
        data = {**state.pending_event, "start": slot.start.isoformat(), "end": slot.end.isoformat()}
        self.flow_states.clear(user_id, FlowSlot.PENDING_EVENT)
        return await self._create_event(user_id, data)

    # ==================== Conversational flows ====================

    async def _handle_flow(self, user_id: str, text: str) -> List[Reply]:
        state = self.flow_states.get(user_id)
        slot = state.active_slot()
        answer = text.strip().lower()

        if is_cancel(text):
            self.flow_states.clear(user_id, slot)
            return [Reply(CONFLICT_CANCELLED if slot == FlowSlot.PENDING_EVENT else CANCELLED)]

        if slot == FlowSlot.PENDING_EVENT:
            if answer.isdigit():
                return await self._accept_suggestion(user_id, int(answer) - 1)
            if answer in FORCE_WORDS:
                return await self._force_pending_event(user_id)
            return [Reply("Escolha um dos horários sugeridos (1-3), responda \"forçar\" ou \"cancelar\".")]

        if slot == FlowSlot.PENDING_TRELLO_DELETE:
            if answer in YES_WORDS:
                return [await self._delete_pending_card(user_id, state.pending_trello_delete)]
            if answer in NO_WORDS:
                self.flow_states.clear(user_id, slot)
                return [Reply(CANCELLED)]
            return [Reply("Responda \"sim\" para deletar ou \"não\" para cancelar.")]

        if slot == FlowSlot.PENDING_KB_UPDATE:
            return [await self._answer_kb_update(user_id, state.pending_kb_update, text)]

        if slot == FlowSlot.PENDING_TRELLO_UPDATE:
            return [await self._answer_trello_update(user_id, state.pending_trello_update, text)]

        if slot == FlowSlot.PENDING_EVENT_UPDATE:
            return [await self._answer_event_update(user_id, state.pending_event_update, text)]

        self.flow_states.reset(user_id)
        return [Reply(FLOW_EXPIRED)]

    async def _answer_kb_update(self, user_id: str, entry_id: str, text: str) -> Reply:
        if not text:
            return Reply("✏️ Envie o novo valor para esta informação.")
        self.flow_states.clear(user_id, FlowSlot.PENDING_KB_UPDATE)
        entry = self.memory.update_info(entry_id, text)
        if entry is None:
            return Reply("⚠️ Informação não encontrada.")
        self._invalidate("all")
        return Reply(f"✅ Informação atualizada!\n\n*{entry.key}*: {entry.value}")

    def _parse_due(self, text: str) -> Optional[datetime]:
        moment, _ = parse_datetime(text, self.tz)
        if moment is not None:
            return moment
        for fmt in DUE_FORMATS:
            try:
                return self.tz.localize(datetime.strptime(text.strip(), fmt))
            except ValueError:
                continue
        return dateparser.parse(
            text,
            languages=["pt"],
            settings={
                "DATE_ORDER": "DMY",
                "TIMEZONE": self.tz.zone,
                "RETURN_AS_TIMEZONE_AWARE": True,
                "PREFER_DATES_FROM": "future",
            },
        )

    async def _answer_trello_update(self, user_id: str, pending: Dict[str, Any], text: str) -> Reply:
        action = pending.get("action")
        card_id = pending.get("id")
        if action not in TRELLO_UPDATE_ACTIONS or not card_id:
            self.flow_states.clear(user_id, FlowSlot.PENDING_TRELLO_UPDATE)
            return Reply(FLOW_EXPIRED)

        if action == "add_checklist":
            items = [item.strip() for item in re.split(r"[,\n;]", text) if item.strip()]
            if not items:
                return Reply(TRELLO_UPDATE_PROMPTS[action])
            await self._call(self.board.add_checklist, card_id, "Checklist", items, operation="create checklist")
            done = f"☑️ Checklist com {len(items)} itens adicionado!"
        elif action == "set_due":
            due = self._parse_due(text)
            if due is None:
                return Reply("⚠️ Data não reconhecida. Tente algo como 25/12/2026.")
            await self._call(self.board.update_card, card_id, {"due": due.isoformat()}, operation="set due")
            done = f"📅 Prazo definido para {due.strftime('%d/%m/%Y')}."
        elif action == "set_desc":
            await self._call(self.board.update_card, card_id, {"desc": text}, operation="set description")
            done = "📝 Descrição atualizada!"
        else:
            labels = await self._call(self.board.get_labels, operation="get labels")
            label = find_label(text, labels)
            if label is None:
                available = ", ".join(l.get("name") or l.get("color") or "" for l in labels)
                return Reply(f"⚠️ Etiqueta não encontrada. Disponíveis: {available}")
            await self._call(self.board.add_label, card_id, label["id"], operation="add label")
            done = f"🏷️ Etiqueta *{label.get('name') or label.get('color')}* adicionada!"

        self.flow_states.clear(user_id, FlowSlot.PENDING_TRELLO_UPDATE)
        self._invalidate("trello")
        return Reply(done)

    async def _answer_event_update(self, user_id: str, pending: Dict[str, Any], text: str) -> Reply:
        field = pending.get("field")
        event_id = pending.get("id")
        if field not in EVENT_UPDATE_FIELDS or not event_id:
            self.flow_states.clear(user_id, FlowSlot.PENDING_EVENT_UPDATE)
            return Reply(FLOW_EXPIRED)

        if field == "time":
            interpreted = await self._interpret_new_time(user_id, text)
            if interpreted is None:
                return Reply("⚠️ Não entendi o horário. Tente algo como \"amanhã às 15h\".")
            start, end = interpreted
            updates = {"start": start.isoformat(), "end": end.isoformat()}
            done = f"🕒 Horário alterado para {start.strftime('%d/%m %H:%M')}."
        elif field == "summary":
            updates = {"summary": text}
            done = f"✏️ Título alterado para \"{text}\"."
        else:
            updates = {"location": text}
            done = f"📍 Local definido: {text}"

        await self._call(self.calendar.update_event, event_id, updates, operation="update event")
        self.flow_states.clear(user_id, FlowSlot.PENDING_EVENT_UPDATE)
        self._invalidate("events")
        return Reply(done)

    async def _interpret_new_time(self, user_id: str, text: str) -> Optional[Tuple[datetime, datetime]]:
        """Start and end read from a free-text answer; one hour when no end is given."""
        try:
            raw = await self.classifier.interpret(
                f"alterar horário para {text}", user_id, self.user_profiles.get(user_id)
            )
        except ClassifierError as e:
            logger.warning(f"Could not interpret new time '{text}': {e}")
            return None
        for item in as_intent_list(raw):
            if not isinstance(item, dict):
                continue
            start, date_only = parse_datetime(item.get("start"), self.tz)
            if start is None or date_only:
                continue
            end, end_date_only = parse_datetime(item.get("end"), self.tz)
            if end is None or end_date_only or end <= start:
                end = start + timedelta(hours=1)
            return start, end
        return None
