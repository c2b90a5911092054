"""Trello intent handlers used by ``IntentDispatcher``."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from .conflict_engine import parse_datetime
from .errors import RemoteAPIError
from .extraction import (
    extract_structured_fields,
    merge_labels,
    next_card_number,
    number_card_name,
    object_id_created_at,
)
from .flow_state import FlowSlot
from .formatting import (
    CARD_NOT_FOUND,
    Button,
    Reply,
    card_suggestions,
    clean_card_name,
    confirmation_buttons,
    format_card_line,
    format_friendly_date,
    partial_failure_text,
)
from .fuzzy_matcher import find_card, find_label, find_list, find_member, match_entity, normalize_text
from .pending_confirmations import format_preview

logger = logging.getLogger(__name__)

NEW_LABEL_COLOR = "sky"
URGENT_LABEL_COLOR = "red"
URGENT_LABEL_NAME = "Urgente"
DEFAULT_CHECKLIST_NAME = "Checklist"
MAX_LISTED_CARDS = 15
MAX_STATS_LABELS = 8
MAX_DETAIL_DESC = 500


def _label_names(label_query: Any) -> List[str]:
    if not label_query:
        return []
    if isinstance(label_query, str):
        return [part.strip() for part in label_query.split(",") if part.strip()]
    return [str(item) for item in label_query if item]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def pick_check_item(checklists: List[Dict[str, Any]], wanted: str) -> Optional[Dict[str, Any]]:
    """Checklist item by 1-based position across all checklists, else by name."""
    items = [item for checklist in checklists for item in checklist.get("checkItems") or []]
    wanted = wanted.strip()
    if wanted.isdigit() and 1 <= int(wanted) <= len(items):
        return items[int(wanted) - 1]
    needle = normalize_text(wanted)
    if not needle:
        return None
    return next((item for item in items if needle in normalize_text(item.get("name"))), None)


def describe_card_action(action: Dict[str, Any]) -> str:
    """One-line Portuguese description of a Trello card action."""
    kind = action.get("type") or ""
    data = action.get("data") or {}
    card = data.get("card") or {}
    old = data.get("old") or {}

    if kind == "commentCard":
        return f"💬 Comentou: \"{(data.get('text') or '')[:100]}\""
    if kind == "updateCard":
        if data.get("listAfter"):
            return f"📁 Moveu para \"{data['listAfter'].get('name')}\""
        if card.get("closed") is True:
            return "📦 Arquivou o card"
        if card.get("closed") is False:
            return "📂 Restaurou o card"
        if card.get("dueComplete") is True:
            return "✅ Marcou prazo como concluído"
        if card.get("dueComplete") is False:
            return "⬜ Desmarcou prazo"
        if old.get("name"):
            return f"✏️ Renomeou de \"{old['name']}\""
        if "desc" in old:
            return "📝 Atualizou descrição"
        if "due" in old:
            return "📅 Alterou prazo"
        return "✏️ Atualizou o card"
    if kind == "createCard":
        return "🆕 Card criado"
    if kind in ("addMemberToCard", "removeMemberFromCard"):
        verb = "Adicionou" if kind.startswith("add") else "Removeu"
        return f"👤 {verb} membro: {(data.get('member') or {}).get('name') or '?'}"
    if kind in ("addLabelToCard", "removeLabelFromCard"):
        label = data.get("label") or {}
        verb = "Adicionou" if kind.startswith("add") else "Removeu"
        return f"🏷️ {verb} etiqueta: \"{label.get('name') or label.get('color') or '?'}\""
    if kind in ("addChecklistToCard", "removeChecklistFromCard"):
        emoji, verb = ("☑️", "Adicionou") if kind.startswith("add") else ("🗑️", "Removeu")
        return f"{emoji} {verb} checklist: \"{(data.get('checklist') or {}).get('name') or '?'}\""
    if kind == "updateCheckItemStateOnCard":
        item = data.get("checkItem") or {}
        mark = "✅" if item.get("state") == "complete" else "⬜"
        return f"{mark} Item: \"{item.get('name') or '?'}\""
    if kind == "addAttachmentToCard":
        return f"📎 Anexou: \"{(data.get('attachment') or {}).get('name') or 'arquivo'}\""
    words = re.sub(r"([A-Z])", r" \1", kind).strip()
    return f"🔄 {words}"


class BoardActionsMixin:
    """Handlers for board intents. Expects the dispatcher's collaborators."""

    # Helpers

    async def _all_cards(self) -> List[Dict[str, Any]]:
        return await self._call(self.board.list_all_cards, operation="list cards")

    async def _find_card(self, query: str) -> Optional[Dict[str, Any]]:
        cards = await self._all_cards()
        return await find_card(query, cards, search=self.board.search_cards)

    async def _find_list(self, query: Optional[str]) -> Optional[Dict[str, Any]]:
        lists = await self._call(self.board.get_lists, operation="get lists")
        return find_list(query, lists)

    def _card_link(self, card: Dict[str, Any]) -> str:
        name = clean_card_name(card.get("name"))
        url = card.get("shortUrl") or card.get("url")
        return f"[{name}]({url})" if url else name

    async def _resolve_label_ids(self, names: List[str], priority: Optional[str]) -> List[str]:
        """Board label ids for ``names``, creating missing labels."""
        labels = await self._call(self.board.get_labels, operation="get labels")
        ids: List[str] = []
        for name in names:
            label = find_label(name, labels)
            if label is None:
                label = await self._call(self.board.create_label, name, NEW_LABEL_COLOR, operation="create label")
                labels.append(label)
            if label.get("id") and label["id"] not in ids:
                ids.append(label["id"])

        if priority == "high":
            urgent = next((l for l in labels if l.get("color") == URGENT_LABEL_COLOR), None)
            if urgent is None:
                urgent = await self._call(
                    self.board.create_label, URGENT_LABEL_NAME, URGENT_LABEL_COLOR, operation="create label"
                )
            if urgent.get("id") and urgent["id"] not in ids:
                ids.append(urgent["id"])
        return ids

    async def _checklist_for(self, card_id: str, name: Optional[str] = None) -> Dict[str, Any]:
        """Named checklist of a card, else its first, else a new one."""
        checklists = await self._call(self.board.get_card_checklists, card_id, operation="get checklists")
        if name:
            found = match_entity(name, checklists)
            if found is not None:
                return found
        elif checklists:
            return checklists[0]
        return await self._call(
            self.board.add_checklist, card_id, name or DEFAULT_CHECKLIST_NAME, operation="create checklist"
        )

    # Handlers

    async def _handle_trello_create(self, user_id: str, intent) -> List[Reply]:
        fields = extract_structured_fields(intent.desc)
        name = fields.name or intent.name
        replies: List[Reply] = []

        list_query = intent.list_query or fields.list_query
        target_list = await self._find_list(list_query) if list_query else None
        if list_query and target_list is None:
            replies.append(Reply(f"⚠️ Lista Trello \"{list_query}\" não encontrada. Criando na Inbox."))
        list_id = target_list["id"] if target_list else self.board.inbox_list_id

        existing = await self._call(self.board.list_cards, list_id, operation="list cards")
        name = number_card_name(name, next_card_number(existing))

        label_ids: List[str] = []
        try:
            label_ids = await self._resolve_label_ids(
                merge_labels(_label_names(intent.label_query), fields.labels), intent.priority
            )
        except (RemoteAPIError, httpx.HTTPError) as e:
            logger.warning(f"Could not resolve labels for card '{name}': {e}")

        data = {
            "idList": list_id,
            "name": name,
            "desc": fields.desc if intent.desc else None,
            "due": intent.due,
            "labels": label_ids,
        }
        card = await self._call(self.board.create_card, data, operation="create card")

        checklist = intent.checklist or fields.checklist
        if checklist:
            try:
                await self._call(
                    self.board.add_checklist,
                    card["id"],
                    intent.checklist_name or DEFAULT_CHECKLIST_NAME,
                    checklist,
                    operation="create checklist",
                )
            except (RemoteAPIError, httpx.HTTPError) as e:
                logger.warning(f"Could not add checklist to card {card.get('id')}: {e}")

        self.history.record(user_id, "trello_create", {"name": name, "list_id": list_id}, {"card_id": card.get("id")})
        self._invalidate("trello")

        text = f"✅ *Card Criado:* {self._card_link(card)}"
        if intent.priority == "high":
            text = f"🔴 *URGENTE* - {text}"
        if checklist:
            text += f"\n☑️ Checklist com {len(checklist)} itens"
        replies.append(Reply(text))
        suggestions = card_suggestions(card, {**data, "checklist": checklist})
        if suggestions is not None:
            replies.append(suggestions)
        return replies

    async def _handle_trello_list(self, user_id: str, intent) -> Reply:
        if intent.list_query:
            board_list = await self._find_list(intent.list_query)
            if board_list is None:
                return Reply(f"⚠️ Lista \"{intent.list_query}\" não encontrada.")
            cards = await self._call(self.board.list_cards, board_list["id"], operation="list cards")
            groups = [{"name": board_list["name"], "cards": cards}]
        else:
            groups = await self._call(self.board.list_grouped, operation="list board")

        today = self.today()
        if intent.filter:
            for group in groups:
                group["cards"] = [c for c in group["cards"] if self._card_matches(c, intent.filter, today)]

        groups = [g for g in groups if g["cards"]]
        if not groups:
            return Reply("📭 Nenhum card encontrado.")

        lines = ["🗂️ *Cards:*"]
        for group in groups:
            lines.extend(["", f"*{group['name']}*"])
            lines.extend(format_card_line(card) for card in group["cards"][:MAX_LISTED_CARDS])
            hidden = len(group["cards"]) - MAX_LISTED_CARDS
            if hidden > 0:
                lines.append(f"   _...e mais {hidden} cards_")
        return Reply("\n".join(lines))

    def _card_matches(self, card: Dict[str, Any], card_filter: str, today) -> bool:
        if card_filter == "created_yesterday":
            created = object_id_created_at(card.get("id") or "")
            return created is not None and created.astimezone(self.tz).date() == today - timedelta(days=1)
        due, _ = parse_datetime(card.get("due"), self.tz)
        if due is None or card.get("dueComplete"):
            return False
        if card_filter == "due_today":
            return due.date() == today
        if card_filter == "overdue":
            return due < self.now()
        return True

    async def _handle_trello_update(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        updates = {key: getattr(intent, key) for key in ("name", "desc", "due") if getattr(intent, key)}
        if not updates:
            return Reply(f"⚠️ O que devo alterar no card \"{clean_card_name(card.get('name'))}\"?")
        await self._call(self.board.update_card, card["id"], updates, operation="update card")
        self._invalidate("trello")
        return Reply(f"✅ Card {self._card_link(card)} atualizado!")

    async def _handle_trello_move(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        target = await self._find_list(intent.list)
        if target is None:
            return Reply(f"⚠️ Lista \"{intent.list}\" não encontrada.")

        updates: Dict[str, Any] = {"idList": target["id"]}
        if card.get("closed"):
            updates["closed"] = False
        await self._call(self.board.update_card, card["id"], updates, operation="move card")
        self.history.record(
            user_id,
            "trello_move",
            {"card_id": card["id"], "name": card.get("name"), "from_list": card.get("idList"), "to_list": target["id"]},
            {"card_id": card["id"]},
        )
        self._invalidate("trello")
        return Reply(f"✅ Card {self._card_link(card)} movido para *{target['name']}*.")

    async def _handle_trello_archive(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        await self._call(self.board.update_card, card["id"], {"closed": True}, operation="archive card")
        self.history.record(user_id, "trello_archive", {"card_id": card["id"], "name": card.get("name")}, {})
        self._invalidate("trello")
        return Reply(f"📦 Card \"{clean_card_name(card.get('name'))}\" arquivado.")

    async def _handle_trello_clear_list(self, user_id: str, intent) -> Reply:
        board_list = await self._find_list(intent.list_query) if intent.list_query else None
        if board_list is None:
            return Reply(f"⚠️ Lista \"{intent.list_query or ''}\" não encontrada.")
        cards = await self._call(self.board.list_cards, board_list["id"], operation="list cards")
        if not cards:
            return Reply(f"📭 A lista *{board_list['name']}* já está vazia.")

        confirmation = self.confirmations.create(
            user_id,
            "trello_clear_list",
            data={"list_id": board_list["id"], "list_name": board_list["name"], "card_ids": [c["id"] for c in cards]},
            items=[clean_card_name(c.get("name")) for c in cards],
        )
        text = (
            f"⚠️ *Arquivar {len(cards)} cards da lista {board_list['name']}?*\n\n"
            f"{format_preview(confirmation, 'cards')}"
        )
        return Reply(text, confirmation_buttons(confirmation.id))

    async def _handle_trello_add_comment(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        await self._call(self.board.add_comment, card["id"], intent.comment, operation="add comment")
        return Reply(f"💬 Comentário adicionado em {self._card_link(card)}.")

    async def _handle_trello_add_label(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        labels = await self._call(self.board.get_labels, operation="get labels")
        label = find_label(intent.label, labels)
        if label is None:
            available = ", ".join(l.get("name") or l.get("color") or "" for l in labels)
            return Reply(f"⚠️ Etiqueta \"{intent.label}\" não encontrada. Disponíveis: {available}")
        await self._call(self.board.add_label, card["id"], label["id"], operation="add label")
        self._invalidate("trello")
        return Reply(f"🏷️ Etiqueta *{label.get('name') or label.get('color')}* adicionada em {self._card_link(card)}.")

    async def _handle_trello_add_member(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        members = await self._call(self.board.get_members, operation="get members")
        member = find_member(intent.member, members)
        if member is None:
            return Reply(f"⚠️ Membro \"{intent.member}\" não encontrado no quadro.")
        await self._call(self.board.add_member, card["id"], member["id"], operation="add member")
        return Reply(f"👤 *{member.get('fullName') or member.get('username')}* adicionado em {self._card_link(card)}.")

    async def _handle_trello_add_checklist_item(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        checklist = await self._checklist_for(card["id"], intent.checklist_name)
        await self._call(self.board.add_checklist_item, checklist["id"], intent.item, operation="add checklist item")
        self._invalidate("trello")
        return Reply(f"☑️ Item \"{intent.item}\" adicionado em {self._card_link(card)}.")

    async def _handle_trello_check_item(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        checklists = await self._call(self.board.get_card_checklists, card["id"], operation="get checklists")
        if not any(checklist.get("checkItems") for checklist in checklists):
            return Reply(f"⚠️ O card {self._card_link(card)} não tem checklist.")

        target = pick_check_item(checklists, intent.item)
        if target is None:
            return Reply(f"⚠️ Item \"{intent.item}\" não encontrado no card.")

        await self._call(
            self.board.update_check_item, card["id"], target["id"], intent.state, operation="update check item"
        )
        self._invalidate("trello")
        mark = "✅" if intent.state == "complete" else "⬜"
        return Reply(f"{mark} Item \"{target.get('name')}\" atualizado em {self._card_link(card)}.")

    async def _handle_trello_delete(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        self.flow_states.begin(
            user_id,
            FlowSlot.PENDING_TRELLO_DELETE,
            {"id": card["id"], "name": card.get("name")},
        )
        return Reply(
            f"🗑️ *Deletar permanentemente* o card {self._card_link(card)}?\n_Esta ação não pode ser desfeita._",
            [[
                Button("🗑️ Sim, deletar", f"trello_confirm_delete:{card['id']}"),
                Button("❌ Cancelar", f"trello_cancel_delete:{card['id']}"),
            ]],
        )

    async def _handle_trello_search(self, user_id: str, intent) -> Reply:
        cards = await self._call(self.board.search_cards, intent.query, operation="search cards")
        if not cards:
            found = await self._find_card(intent.query)
            cards = [found] if found else []
        if not cards:
            return Reply(f"🔍 Nenhum card encontrado para \"{intent.query}\".")
        lines = [f"🔍 *Cards para \"{intent.query}\":*", ""]
        lines.extend(format_card_line(card) for card in cards[:MAX_LISTED_CARDS])
        return Reply("\n".join(lines))

    # Board structure

    async def _handle_trello_list_lists(self, user_id: str, intent) -> Reply:
        lists = await self._call(self.board.get_lists, operation="get lists")
        if not lists:
            return Reply("📭 O board não tem listas abertas.")
        lines = ["📋 *Listas do Board:*", ""]
        lines.extend(f"• {board_list['name']}" for board_list in lists)
        return Reply("\n".join(lines))

    async def _handle_trello_create_list(self, user_id: str, intent) -> Reply:
        await self._call(self.board.create_list, intent.name, operation="create list")
        self._invalidate("trello")
        return Reply(f"✅ Lista *{intent.name}* criada!")

    async def _list_or_warning(self, query: str):
        """``(list, None)`` when found, else ``(None, Reply)`` naming the open lists."""
        lists = await self._call(self.board.get_lists, operation="get lists")
        board_list = find_list(query, lists)
        if board_list is None:
            available = ", ".join(l["name"] for l in lists)
            return None, Reply(f"⚠️ Lista \"{query}\" não encontrada.\n📋 Listas disponíveis: {available}")
        return board_list, None

    async def _handle_trello_rename_list(self, user_id: str, intent) -> Reply:
        board_list, warning = await self._list_or_warning(intent.list_query)
        if warning is not None:
            return warning
        await self._call(self.board.update_list, board_list["id"], {"name": intent.new_name}, operation="rename list")
        self._invalidate("trello")
        return Reply(f"✅ Lista \"*{board_list['name']}*\" renomeada para \"*{intent.new_name}*\"!")

    async def _handle_trello_archive_list(self, user_id: str, intent) -> Reply:
        board_list, warning = await self._list_or_warning(intent.list_query)
        if warning is not None:
            return warning
        await self._call(self.board.update_list, board_list["id"], {"closed": True}, operation="archive list")
        self._invalidate("trello")
        return Reply(f"📦 Lista \"*{board_list['name']}*\" arquivada com sucesso!")

    async def _handle_trello_move_all_cards(self, user_id: str, intent) -> Reply:
        lists = await self._call(self.board.get_lists, operation="get lists")
        source = find_list(intent.from_list, lists)
        if source is None:
            return Reply(f"⚠️ Lista origem \"{intent.from_list}\" não encontrada.")
        target = find_list(intent.to_list, lists)
        if target is None:
            return Reply(f"⚠️ Lista destino \"{intent.to_list}\" não encontrada.")
        if source["id"] == target["id"]:
            return Reply("⚠️ As listas de origem e destino são a mesma.")

        cards = await self._call(self.board.list_cards, source["id"], operation="list cards")
        if not cards:
            return Reply("⚠️ A lista de origem está vazia.")

        card_ids = [card["id"] for card in cards]
        moved, error = await self._run_batch(
            card_ids,
            lambda card_id: self._call(self.board.update_card, card_id, {"idList": target["id"]}, operation="move card"),
        )
        if moved:
            self.history.record(
                user_id,
                "trello_move_all_cards",
                {"card_ids": moved, "from_list": source["id"], "from_list_name": source["name"], "to_list": target["id"]},
                {"count": len(moved)},
            )
            self._invalidate("trello")
        if error is not None:
            return Reply(partial_failure_text(len(moved), len(card_ids), "cards movidos", error))
        return Reply(f"✅ {len(moved)} cards movidos de *{source['name']}* para *{target['name']}*!")

    async def _handle_trello_board_stats(self, user_id: str, intent) -> Reply:
        groups = await self._call(self.board.list_grouped, operation="list board")
        cards = [card for group in groups for card in group["cards"]]
        now = self.now()

        overdue = due_today = this_week = delivered = without_due = 0
        for card in cards:
            due, _ = parse_datetime(card.get("due"), self.tz)
            if due is None:
                without_due += 1
            elif card.get("dueComplete"):
                delivered += 1
            else:
                if due < now:
                    overdue += 1
                if due.date() == now.date():
                    due_today += 1
                if now < due <= now + timedelta(days=7):
                    this_week += 1

        label_counts = Counter(
            label.get("name") or label.get("color") or "sem nome"
            for card in cards
            for label in card.get("labels") or []
        )
        unlabeled = sum(1 for card in cards if not card.get("labels"))

        lines = [
            "📊 *Estatísticas do Board*",
            "",
            "📋 *Geral:*",
            f"   • {_plural(len(cards), 'card')} no total",
            f"   • {_plural(len(groups), 'lista')} ({sum(1 for g in groups if g['cards'])} com cards)",
            "",
            "⏰ *Prazos:*",
            f"   • {_plural(overdue, 'vencido')} {'🔴' if overdue else '✅'}",
            f"   • {due_today} para hoje",
            f"   • {this_week} esta semana",
            f"   • {_plural(delivered, 'entregue')} ✅",
            f"   • {without_due} sem prazo definido",
        ]
        if label_counts:
            lines.extend(["", "🏷️ *Etiquetas:*"])
            lines.extend(f"   • {name}: {_plural(count, 'card')}" for name, count in label_counts.most_common(MAX_STATS_LABELS))
            lines.append(f"   • _Sem etiqueta: {_plural(unlabeled, 'card')}_")

        lines.extend(["", "📁 *Por Lista:*"])
        for group in sorted((g for g in groups if g["cards"]), key=lambda g: -len(g["cards"])):
            late = sum(1 for c in group["cards"] if self._card_matches(c, "overdue", now.date()))
            tag = f" (⚠️ {_plural(late, 'vencido')})" if late else ""
            lines.append(f"   • {group['name']}: {_plural(len(group['cards']), 'card')}{tag}")
        return Reply("\n".join(lines))

    # Card details

    async def _handle_trello_get(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        detail = await self._call(self.board.get_card_detail, card["id"], operation="get card")

        lines = [f"📌 *{clean_card_name(detail.get('name'))}*"]
        url = detail.get("url") or detail.get("shortUrl")
        if url:
            lines.append(f"🔗 [Abrir no Trello]({url})")
        desc = detail.get("desc") or ""
        if desc:
            shown = desc[:MAX_DETAIL_DESC] + ("..." if len(desc) > MAX_DETAIL_DESC else "")
            lines.extend(["", f"📝 *Descrição:*\n{shown}"])
        lines.append("")
        if detail.get("due"):
            mark = "✅" if detail.get("dueComplete") else "📅"
            lines.append(f"{mark} *Prazo:* {format_friendly_date(detail['due'], self.tz, self.today())}")
        if detail.get("labels"):
            lines.append(f"🏷️ *Etiquetas:* {', '.join(l.get('name') or l.get('color') or '' for l in detail['labels'])}")
        if detail.get("members"):
            lines.append(f"👥 *Membros:* {', '.join(m.get('fullName') or m.get('username') or '' for m in detail['members'])}")
        if detail.get("checklists"):
            lines.extend(["", "☑️ *Checklists:*"])
            for checklist in detail["checklists"]:
                items = checklist.get("checkItems") or []
                completed = sum(1 for item in items if item.get("state") == "complete")
                lines.append(f"   • {checklist.get('name')} ({completed}/{len(items)})")
        if detail.get("attachments"):
            lines.extend(["", f"📎 *Anexos:* {len(detail['attachments'])} arquivo(s)"])
        if detail.get("dateLastActivity"):
            lines.extend(["", f"🕐 _Última atividade: {format_friendly_date(detail['dateLastActivity'], self.tz, self.today())}_"])
        return Reply("\n".join(lines).strip())

    async def _handle_trello_card_activity(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        name = clean_card_name(card.get("name"))
        actions = await self._call(self.board.get_card_actions, card["id"], intent.limit, operation="card activity")
        if not actions:
            return Reply(f"📋 O card \"*{name}*\" não tem atividades registradas.")

        lines = [f"📋 *Histórico de \"{name}\"*", ""]
        for index, action in enumerate(actions, 1):
            moment, _ = parse_datetime(action.get("date"), self.tz)
            when = moment.strftime("%d/%m %H:%M") if moment else "?"
            creator = action.get("memberCreator") or {}
            who = creator.get("fullName") or creator.get("username") or "Sistema"
            lines.append(f"{index}. `{when}` - *{who}*\n   {describe_card_action(action)}\n")
        return Reply("\n".join(lines).strip())

    async def _handle_trello_remove_label(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        labels = card.get("labels") or []
        if not labels:
            return Reply(f"⚠️ O card \"{clean_card_name(card.get('name'))}\" não tem etiquetas.")

        wanted = normalize_text(intent.label)
        label = next(
            (l for l in labels if wanted and wanted in (normalize_text(l.get("name")), normalize_text(l.get("color")))),
            None,
        )
        if label is None:
            available = ", ".join(l.get("name") or l.get("color") or "" for l in labels)
            return Reply(
                f"⚠️ Etiqueta \"{intent.label}\" não encontrada no card.\n🏷️ Etiquetas do card: {available}"
            )
        await self._call(self.board.remove_label, card["id"], label["id"], operation="remove label")
        self._invalidate("trello")
        return Reply(
            f"✅ Etiqueta *{label.get('name') or label.get('color')}* removida do card "
            f"\"{clean_card_name(card.get('name'))}\""
        )

    async def _handle_trello_due_complete(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        name = clean_card_name(card.get("name"))
        if not card.get("due"):
            return Reply(f"⚠️ O card \"*{name}*\" não tem data de entrega definida.")
        await self._call(
            self.board.update_card, card["id"], {"dueComplete": intent.complete}, operation="mark due complete"
        )
        self._invalidate("trello")
        if intent.complete:
            return Reply(f"✅ Prazo do card \"*{name}*\" marcado como entregue!")
        return Reply(f"⬜ Prazo do card \"*{name}*\" desmarcado (pendente)!")

    async def _handle_trello_checklist(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        name = clean_card_name(card.get("name"))
        checklists = await self._call(self.board.get_card_checklists, card["id"], operation="get checklists")
        if not checklists:
            return Reply(f"📌 O card \"*{name}*\" não tem checklists.")

        # positions run across checklists, as trello_check_item reads them
        lines = [f"☑️ *Checklists de \"{name}\"*", ""]
        position = 0
        for checklist in checklists:
            items = checklist.get("checkItems") or []
            completed = sum(1 for item in items if item.get("state") == "complete")
            lines.append(f"📋 *{checklist.get('name')}* ({completed}/{len(items)})")
            for item in items:
                position += 1
                mark = "✅" if item.get("state") == "complete" else "⬜"
                lines.append(f"   {position}. {mark} {item.get('name')}")
            lines.append("")
        return Reply("\n".join(lines).strip())

    async def _handle_trello_delete_check_item(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        checklists = await self._call(self.board.get_card_checklists, card["id"], operation="get checklists")
        if not checklists:
            return Reply(f"⚠️ O card \"{clean_card_name(card.get('name'))}\" não tem checklists.")

        target = pick_check_item(checklists, intent.item)
        if target is None:
            return Reply(f"⚠️ Item \"{intent.item}\" não encontrado nas checklists do card.")
        await self._call(self.board.delete_check_item, card["id"], target["id"], operation="delete check item")
        self._invalidate("trello")
        return Reply(f"🗑️ Item \"{target.get('name')}\" removido do card *{clean_card_name(card.get('name'))}*")

    async def _handle_trello_delete_checklist(self, user_id: str, intent) -> Reply:
        card = await self._find_card(intent.query)
        if card is None:
            return Reply(CARD_NOT_FOUND)
        name = clean_card_name(card.get("name"))
        checklists = await self._call(self.board.get_card_checklists, card["id"], operation="get checklists")
        if not checklists:
            return Reply(f"⚠️ O card \"*{name}*\" não tem checklists.")

        if intent.checklist_name:
            wanted = normalize_text(intent.checklist_name)
            checklist = next((c for c in checklists if wanted in normalize_text(c.get("name"))), None)
            if checklist is None:
                available = ", ".join(c.get("name") or "" for c in checklists)
                return Reply(
                    f"⚠️ Checklist \"{intent.checklist_name}\" não encontrada.\n📋 Checklists disponíveis: {available}"
                )
        elif len(checklists) == 1:
            checklist = checklists[0]
        else:
            options = "\n".join(
                f"{i}. {c.get('name')} ({len(c.get('checkItems') or [])} itens)" for i, c in enumerate(checklists, 1)
            )
            return Reply(
                f"⚠️ O card tem {len(checklists)} checklists. Qual devo deletar?\n\n{options}\n\n"
                f"_Diga \"deletar checklist [nome] do card {name}\"_"
            )

        count = len(checklist.get("checkItems") or [])
        await self._call(self.board.delete_checklist, checklist["id"], operation="delete checklist")
        self._invalidate("trello")
        return Reply(f"🗑️ Checklist \"*{checklist.get('name')}*\" ({count} itens) removida do card \"*{name}*\"!")

    # Flow helpers

    async def _delete_pending_card(self, user_id: str, pending: Dict[str, Any]) -> Reply:
        self.flow_states.clear(user_id, FlowSlot.PENDING_TRELLO_DELETE)
        await self._call(self.board.delete_card, pending["id"], operation="delete card")
        self._invalidate("trello")
        return Reply(f"🗑️ Card \"{clean_card_name(pending.get('name'))}\" deletado.")
