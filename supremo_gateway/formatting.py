"""User-facing replies: text, inline buttons and message builders."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .conflict_engine import ConflictCheck, TimeSlot, event_bounds, parse_datetime
from .errors import sanitize_error_message

HELP_TEXT = (
    "Olá! Posso ajudar com Agenda, Trello e Memória.\n"
    "Exemplos: \"Reunião amanhã às 14h\", \"Cria card Revisar contrato\", "
    "\"Guarda aí: senha do wifi é 1234\"."
)
CLARIFY_TEXT = "Desculpe, não consegui entender. Pode reformular?"
NOTHING_TO_UNDO = "🔙 Nenhuma ação recente para desfazer."
CONFIRMATION_EXPIRED = "⚠️ Esta confirmação expirou ou já foi processada."
FLOW_EXPIRED = "⚠️ Dados perdidos ou expirados. Por favor, tente novamente."
CANCELLED = "👍 Ok, operação cancelada."
CARD_NOT_FOUND = "⚠️ Card não encontrado."

WEEKDAYS_SHORT = ["seg", "ter", "qua", "qui", "sex", "sáb", "dom"]


@dataclass
class Button:
    text: str
    callback_data: str


@dataclass
class Reply:
    text: str
    buttons: List[List[Button]] = field(default_factory=list)
    markdown: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def button_rows(buttons: List[Button], per_row: int = 2) -> List[List[Button]]:
    return [buttons[i:i + per_row] for i in range(0, len(buttons), per_row)]


def clean_card_name(name: Optional[str]) -> str:
    """Drop characters that break Markdown rendering."""
    if not name:
        return "Sem título"
    return re.sub(r"[\[\]()*_`]", "", name).strip()


def clean_card_desc(desc: Optional[str], max_length: int = 50) -> str:
    if not desc:
        return ""
    clean = re.sub(r"(?:^|\n)###\s*[^\n]*", "", desc)
    clean = re.sub(r"(?:^|\n)(?:Cliente|Tipo de caso|Pendência atual|Prioridade|Status):[^\n]*", "", clean, flags=re.IGNORECASE)
    clean = re.sub(r"[*_`]", "", clean)
    clean = re.sub(r"\s+", " ", clean).strip()
    if len(clean) > max_length:
        return clean[:max_length].strip() + "..."
    return clean


def format_card_line(card: Dict[str, Any], show_desc: bool = True, desc_length: int = 50) -> str:
    emoji = "📦 " if card.get("closed") else "📌 "
    url = card.get("shortUrl") or card.get("url") or ""
    name = clean_card_name(card.get("name"))
    line = f"   {emoji}[{name}]({url})" if url else f"   {emoji}{name}"
    if show_desc:
        snippet = clean_card_desc(card.get("desc"), desc_length)
        if snippet:
            line += f" - _{snippet}_"
    return line


def format_friendly_date(value: Any, tz, today: Optional[date] = None) -> str:
    """"amanhã às 14:00", "sex, 24/10 às 09:30" or "24/10 (dia inteiro)"."""
    moment, date_only = parse_datetime(value, tz)
    if moment is None:
        return str(value or "")
    today = today or datetime.now(tz).date()
    day = moment.date()
    if day == today:
        label = "hoje"
    elif (day - today).days == 1:
        label = "amanhã"
    else:
        label = f"{WEEKDAYS_SHORT[day.weekday()]}, {day.strftime('%d/%m')}"
    if date_only:
        return f"{label} (dia inteiro)"
    return f"{label} às {moment.strftime('%H:%M')}"


def format_slot(slot: TimeSlot) -> str:
    return f"{WEEKDAYS_SHORT[slot.start.weekday()]} {slot.start.strftime('%d/%m %H:%M')}-{slot.end.strftime('%H:%M')}"


def format_event_line(event: Dict[str, Any], tz) -> str:
    start, end, all_day = event_bounds(event, tz)
    summary = event.get("summary") or "(sem título)"
    if start is None:
        return f"• {summary}"
    if all_day:
        return f"• {start.strftime('%d/%m')} (dia inteiro) - {summary}"
    return f"• {start.strftime('%d/%m %H:%M')}-{end.strftime('%H:%M')} - {summary}"


def format_conflict_message(summary: str, check: ConflictCheck, tz) -> str:
    lines = [f"⚠️ *Conflito de horário* para \"{summary}\"", "", "Já existe:"]
    for event in check.conflicts:
        lines.append(format_event_line(event, tz))
    if check.suggestions:
        lines.extend(["", "🕒 *Horários livres:*"])
        lines.extend(f"• {format_slot(slot)}" for slot in check.suggestions)
    else:
        lines.extend(["", "_Nenhum horário livre encontrado nos próximos dias._"])
    return "\n".join(lines)


def conflict_buttons(suggestions: List[TimeSlot]) -> List[List[Button]]:
    rows = [[
        Button("✅ Forçar Agendamento", "conflict_force"),
        Button("❌ Cancelar", "conflict_cancel"),
    ]]
    if suggestions:
        rows.append([
            Button(format_slot(slot), f"conflict_accept:{i}")
            for i, slot in enumerate(suggestions[:3])
        ])
    return rows


def partial_failure_text(done: int, total: int, what: str, error: Exception) -> str:
    text = f"⚠️ Só {done} de {total} {what} antes de um erro: {sanitize_error_message(error)}"
    if done:
        text += "\nEnvie *desfazer* para reverter o que foi feito."
    return text


def confirmation_buttons(confirmation_id: str) -> List[List[Button]]:
    return [[
        Button("✅ Sim, confirmar", f"confirm_yes_{confirmation_id}"),
        Button("❌ Não", f"confirm_no_{confirmation_id}"),
    ]]


def event_suggestions(event: Dict[str, Any], data: Dict[str, Any]) -> Optional[Reply]:
    """Follow-up buttons offered after an event is created."""
    event_id = event.get("id")
    buttons = [Button("✏️ Título", f"event_edit_title:{event_id}")]
    if not data.get("location") and not event.get("hangoutLink"):
        buttons.append(Button("📍 Local", f"event_edit_location:{event_id}"))
    buttons.append(Button("🕒 Horário", f"event_edit_time:{event_id}"))
    return Reply("💡 _Sugestões:_", button_rows(buttons))


def card_suggestions(card: Dict[str, Any], data: Dict[str, Any]) -> Optional[Reply]:
    """Follow-up buttons offered after a card is created."""
    card_id = card.get("id")
    buttons = []
    if not data.get("checklist"):
        buttons.append(Button("☑️ Add Checklist", f"suggest_trello_checklist:{card_id}"))
    if not data.get("due"):
        buttons.append(Button("📅 Definir Prazo", f"suggest_trello_due:{card_id}"))
    if not data.get("desc"):
        buttons.append(Button("📝 Add Descrição", f"suggest_trello_desc:{card_id}"))
    buttons.append(Button("🏷️ Add Etiqueta", f"suggest_trello_label:{card_id}"))
    return Reply("💡 _Quer completar o card?_", button_rows(buttons))


def period_label(start: date, end: date, today: date) -> str:
    if start == end:
        if start == today:
            return "hoje"
        if (start - today).days == 1:
            return "amanhã"
        return start.strftime("%d/%m")
    return f"{start.strftime('%d/%m')} a {end.strftime('%d/%m')}"
