"""Calendar intent handlers used by ``IntentDispatcher``."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .conflict_engine import DEFAULT_DURATION, event_bounds, parse_datetime
from .flow_state import FlowSlot
from .formatting import (
    Reply,
    confirmation_buttons,
    conflict_buttons,
    event_suggestions,
    format_card_line,
    format_conflict_message,
    format_event_line,
    format_friendly_date,
    period_label,
)
from .fuzzy_matcher import find_event
from .pending_confirmations import format_preview

logger = logging.getLogger(__name__)

COMPLETED_PREFIX = "✅ "
COMPLETED_COLOR = "8"

AVAILABILITY_HOURS = {
    "morning": (8, 12),
    "afternoon": (13, 18),
}
DEFAULT_AVAILABILITY_HOURS = (8, 19)
SMART_SCHEDULE_HOURS = {
    "morning": (9, 12),
    "afternoon": (13, 18),
}
DEFAULT_SMART_SCHEDULE_HOURS = (9, 18)

DETAIL_LABELS = {
    "location": "Local",
    "description": "Descrição",
    "start": "Início",
    "attendees": "Convidados",
    "duration": "Duração",
}


def event_snapshot(event: Dict[str, Any]) -> Dict[str, Any]:
    """Fields needed to recreate an event after deletion."""
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "summary": event.get("summary") or "",
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "description": event.get("description"),
        "location": event.get("location"),
    }


class EventActionsMixin:
    """Handlers for calendar intents. Expects the dispatcher's collaborators."""

    # Helpers

    def _day_window(self, first: date, last: Optional[date] = None) -> Tuple[str, str]:
        last = last or first
        start = self.tz.localize(datetime.combine(first, time.min))
        end = self.tz.localize(datetime.combine(last + timedelta(days=1), time.min))
        return start.isoformat(), end.isoformat()

    def _parse_day(self, value: Optional[str]) -> Optional[date]:
        moment, _ = parse_datetime(value, self.tz)
        return moment.date() if moment else None

    async def _list_events(self, first: date, last: Optional[date] = None) -> List[Dict[str, Any]]:
        time_min, time_max = self._day_window(first, last)
        return await self._call(self.calendar.list_events, time_min, time_max, operation="list events")

    async def _find_event(self, query: str, target_date: Optional[str]) -> Optional[Dict[str, Any]]:
        """Fresh candidates for the target day, or the next 30 days."""
        day = self._parse_day(target_date)
        if day is not None:
            events = await self._list_events(day)
        else:
            today = self.today()
            events = await self._list_events(today, today + timedelta(days=30))
        return await find_event(query, events)

    def _event_not_found(self, query: str, target_date: Optional[str]) -> Reply:
        suffix = f" na data {target_date}" if target_date else ""
        return Reply(f"⚠️ Não encontrei evento com \"{query}\"{suffix}.")

    def _with_default_end(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(data)
        start, date_only = parse_datetime(payload.get("start"), self.tz)
        if start is None or payload.get("end"):
            return payload
        if date_only:
            payload["end"] = (start.date() + timedelta(days=1)).isoformat()
        else:
            payload["start"] = start.isoformat()
            payload["end"] = (start + DEFAULT_DURATION).isoformat()
        return payload

    async def _create_event(
        self,
        user_id: str,
        data: Dict[str, Any],
        title: str = "Agendado",
        warnings: Optional[List[str]] = None,
    ) -> List[Reply]:
        payload = self._with_default_end(data)
        event = await self._call(self.calendar.create_event, payload, operation="create event")
        self.history.record(
            user_id,
            "create_event",
            {"summary": payload.get("summary"), "start": payload.get("start"), "end": payload.get("end")},
            {"event_id": event.get("id")},
        )
        self._invalidate("events")

        summary = payload.get("summary") or event.get("summary") or ""
        link = event.get("htmlLink")
        shown = f"[{summary}]({link})" if link else summary
        emoji = "📹" if event.get("hangoutLink") else "📅"
        text = f"✅ *{title}:* {shown}\n{emoji} {format_friendly_date(payload.get('start'), self.tz, self.today())}"
        if data.get("priority") == "high":
            text = f"🔴 *URGENTE* - {text}"
        elif data.get("priority") == "medium":
            text = f"🟡 {text}"
        if event.get("hangoutLink"):
            text += f"\n\n📹 [Entrar na reunião]({event['hangoutLink']})"
        if warnings:
            text += f"\n\n⚠️ _{' | '.join(warnings)}_"

        replies = [Reply(text)]
        suggestions = event_suggestions(event, payload)
        if suggestions is not None:
            replies.append(suggestions)
        return replies

    def _period_range(self, period: Optional[str], target_date: Optional[str]) -> Tuple[date, date]:
        first = self._parse_day(target_date) or self.today()
        if period == "week":
            return first, first + timedelta(days=7)
        if period == "month":
            return first, first + timedelta(days=30)
        return first, first

    # Handlers

    async def _handle_create_event(self, user_id: str, intent) -> List[Reply]:
        data = intent.model_dump(exclude_none=True)
        if not data.get("start") and data.get("target_date"):
            data["start"] = data["target_date"]

        check = await self._call(self.conflicts.check_conflicts, data, operation="check conflicts")
        if check.has_conflict:
            self.flow_states.begin(
                user_id,
                FlowSlot.PENDING_EVENT,
                data,
                suggestions=[slot.to_dict() for slot in check.suggestions],
            )
            return [Reply(
                format_conflict_message(intent.summary, check, self.tz),
                conflict_buttons(check.suggestions),
            )]

        _, date_only = parse_datetime(data.get("start"), self.tz)
        validation = self.conflicts.validate_scheduling_context(
            data, None if date_only else check.day_events
        )
        if not validation.is_valid:
            return [Reply(f"⚠️ *Não foi possível agendar*\n\n{validation.warnings[0]}")]
        return await self._create_event(user_id, data, warnings=validation.warnings)

    async def _handle_list_events(self, user_id: str, intent) -> Reply:
        first, last = self._period_range(intent.period, intent.target_date)
        events = await self._list_events(first, last)
        label = period_label(first, last, self.today())
        if not events:
            return Reply(f"📅 Nada agendado para {label}.")
        lines = [f"📅 *Eventos ({label}):*", ""]
        lines.extend(format_event_line(event, self.tz) for event in events)
        return Reply("\n".join(lines))

    async def _handle_update_event(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        updates = {
            key: getattr(intent, key)
            for key in ("summary", "start", "end", "description", "location")
            if getattr(intent, key)
        }
        if updates.get("start") and not updates.get("end"):
            old_start, old_end, all_day = event_bounds(event, self.tz)
            new_start, date_only = parse_datetime(updates["start"], self.tz)
            if new_start is not None and old_start is not None and not all_day and not date_only:
                updates["start"] = new_start.isoformat()
                updates["end"] = (new_start + (old_end - old_start)).isoformat()
        if not updates:
            return Reply(f"⚠️ O que devo alterar no evento \"{event.get('summary')}\"?")

        await self._call(self.calendar.update_event, event["id"], updates, operation="update event")
        self._invalidate("events")
        return Reply(f"✅ Evento \"{event.get('summary')}\" atualizado!")

    async def _handle_complete_event(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        summary = event.get("summary") or ""
        if summary.startswith(COMPLETED_PREFIX.strip()):
            return Reply(f"✅ Evento \"{summary}\" já estava concluído.")

        await self._call(
            self.calendar.update_event,
            event["id"],
            {"summary": f"{COMPLETED_PREFIX}{summary}", "colorId": COMPLETED_COLOR},
            operation="complete event",
        )
        self.history.record(
            user_id,
            "complete_event",
            {"event_id": event["id"], "original_summary": summary, "original_color_id": event.get("colorId")},
            {"event_id": event["id"]},
        )
        self._invalidate("events")
        return Reply(f"✅ Evento \"{summary}\" marcado como concluído!")

    async def _handle_complete_all_events(self, user_id: str, intent) -> Reply:
        period = intent.period or "day"
        if period in ("day", "week", "month"):
            first, last = self._period_range(period, intent.target_date)
        else:
            first = self._parse_day(period)
            if first is None:
                return Reply(f"⚠️ Período \"{period}\" não reconhecido. Use \"hoje\", \"semana\" ou uma data válida.")
            last = first
        label = period_label(first, last, self.today())

        events = await self._list_events(first, last)
        if not events:
            return Reply(f"📅 Nenhum evento encontrado para {label}.")
        pending = [e for e in events if not (e.get("summary") or "").startswith(COMPLETED_PREFIX.strip())]
        if not pending:
            return Reply(f"✅ Todos os eventos de {label} já estão concluídos!")

        confirmation = self.confirmations.create(
            user_id,
            "complete_all_events",
            data={
                "label": label,
                "events": [
                    {"id": e["id"], "summary": e.get("summary") or "", "colorId": e.get("colorId")}
                    for e in pending
                ],
            },
            items=[e.get("summary") or "" for e in pending],
        )
        text = (
            f"⚠️ *Marcar {len(pending)} eventos de {label} como concluídos?*\n\n"
            f"{format_preview(confirmation, 'events')}"
        )
        return Reply(text, confirmation_buttons(confirmation.id))

    async def _handle_delete_event(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        confirmation = self.confirmations.create(
            user_id,
            "delete_event",
            data={
                "event_id": event["id"],
                "recurring": bool(event.get("recurringEventId")),
                "snapshot": event_snapshot(event),
            },
            items=[event.get("summary") or ""],
        )
        text = f"⚠️ *Apagar este evento?*\n\n{format_preview(confirmation, 'events')}"
        return Reply(text, confirmation_buttons(confirmation.id))

    async def _handle_check_availability(self, user_id: str, intent) -> Reply:
        day = self._parse_day(intent.target_date) or self.today()
        open_hour, close_hour = AVAILABILITY_HOURS.get(intent.period, DEFAULT_AVAILABILITY_HOURS)
        start = self.tz.localize(datetime.combine(day, time(open_hour)))
        end = self.tz.localize(datetime.combine(day, time(close_hour)))

        _, busy = await self._call(self.conflicts.fetch_busy, start, end, operation="check availability")
        busy = [(max(s, start), min(e, end)) for s, e in busy if s < end and e > start]
        period_name = {"morning": "manhã", "afternoon": "tarde"}.get(intent.period, "data")
        if not busy:
            return Reply(f"✅ Você está totalmente livre na {period_name} de {day.strftime('%d/%m')}!")

        lines = [
            f"📅 *Disponibilidade ({day.strftime('%d/%m')})*",
            f"🕒 *Período:* {start.strftime('%H:%M')} - {end.strftime('%H:%M')}",
            "",
            "⛔ *Ocupado em:*",
        ]
        lines.extend(f"• {s.strftime('%H:%M')} - {e.strftime('%H:%M')}" for s, e in busy)
        lines.extend(["", "✅ *Livre nos demais horários.*"])
        return Reply("\n".join(lines))

    async def _handle_smart_schedule(self, user_id: str, intent) -> List[Reply]:
        preferred = self._parse_day(intent.target_date) or self.today() + timedelta(days=1)
        hours = SMART_SCHEDULE_HOURS.get(intent.period, DEFAULT_SMART_SCHEDULE_HOURS)
        slot = await self._call(
            self.conflicts.find_free_slot,
            timedelta(minutes=intent.duration or 60),
            preferred,
            7,
            hours,
            operation="find free slot",
        )
        if slot is None:
            return [Reply("⚠️ Não encontrei horário livre nos próximos 7 dias com esses critérios.")]

        data = {"summary": intent.summary, "start": slot.start.isoformat(), "end": slot.end.isoformat()}
        return await self._create_event(user_id, data, title="Agendado Automaticamente")

    async def _handle_report(self, user_id: str, intent) -> Reply:
        first, last = self._period_range(intent.period, intent.target_date)
        label = period_label(first, last, self.today())
        events = await self._list_events(first, last)
        cards = await self._call(self.board.list_all_cards, operation="list cards")

        done = [e for e in events if (e.get("summary") or "").startswith(COMPLETED_PREFIX.strip())]
        lines = [f"📊 *Relatório ({label})*", ""]
        lines.append(f"📅 Eventos: {len(events)} ({len(done)} concluídos)")
        lines.extend(format_event_line(event, self.tz) for event in events)

        due_cards = []
        for card in cards:
            due, _ = parse_datetime(card.get("due"), self.tz)
            if due is not None and due.date() <= last and not card.get("dueComplete"):
                due_cards.append(card)
        lines.extend(["", f"🗂️ Cards com prazo até {last.strftime('%d/%m')}: {len(due_cards)}"])
        lines.extend(format_card_line(card, show_desc=False) for card in due_cards[:10])
        return Reply("\n".join(lines))

    # Event details

    async def _handle_event_add_attendee(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        attendees = list(event.get("attendees") or [])
        email = intent.email.strip()
        if any((a.get("email") or "").lower() == email.lower() for a in attendees):
            return Reply("⚠️ Essa pessoa já está convidada.")
        attendees.append({"email": email})
        await self._call(self.calendar.update_event, event["id"], {"attendees": attendees}, operation="add attendee")
        self._invalidate("events")
        return Reply(f"✅ {email} adicionado ao evento \"{event.get('summary')}\"")

    async def _handle_event_remove_attendee(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        attendees = event.get("attendees") or []
        if not attendees:
            return Reply("⚠️ Esse evento não tem convidados.")
        wanted = intent.email.strip().lower()
        remaining = [a for a in attendees if wanted not in (a.get("email") or "").lower()]
        if len(remaining) == len(attendees):
            return Reply("⚠️ Convidado não encontrado.")
        await self._call(
            self.calendar.update_event, event["id"], {"attendees": remaining}, operation="remove attendee"
        )
        self._invalidate("events")
        return Reply(f"✅ {intent.email} removido do evento \"{event.get('summary')}\"")

    async def _handle_event_set_reminder(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        reminders = event.get("reminders") or {}
        overrides = [] if reminders.get("useDefault", True) else list(reminders.get("overrides") or [])
        overrides.append({"method": intent.method, "minutes": intent.minutes})
        await self._call(
            self.calendar.update_event,
            event["id"],
            {"reminders": {"useDefault": False, "overrides": overrides}},
            operation="set reminder",
        )
        self._invalidate("events")
        return Reply(f"⏰ Lembrete de {intent.minutes}min ({intent.method}) configurado para \"{event.get('summary')}\"")

    async def _handle_event_get_detail(self, user_id: str, intent) -> Reply:
        event = await self._find_event(intent.query, intent.target_date)
        if event is None:
            return self._event_not_found(intent.query, intent.target_date)

        if intent.field == "location":
            value = event.get("location") or "Sem local definido"
        elif intent.field == "description":
            value = event.get("description") or "Sem descrição"
        elif intent.field == "start":
            start = event.get("start") or {}
            value = format_friendly_date(start.get("dateTime") or start.get("date"), self.tz, self.today())
        elif intent.field == "attendees":
            emails = [a.get("email") for a in event.get("attendees") or [] if a.get("email")]
            value = ", ".join(emails) or "Sem convidados"
        else:
            value = self._format_duration(event)
        return Reply(f"ℹ️ *{DETAIL_LABELS[intent.field]}:* {value}")

    def _format_duration(self, event: Dict[str, Any]) -> str:
        start, end, all_day = event_bounds(event, self.tz)
        if start is None or end is None:
            return "Não encontrado"
        if all_day:
            days = max((end.date() - start.date()).days, 1)
            return f"{days} dia{'s' if days > 1 else ''}"
        hours, minutes = divmod(int((end - start).total_seconds() // 60), 60)
        if hours and minutes:
            return f"{hours}h{minutes:02d}"
        return f"{hours}h" if hours else f"{minutes}min"
