"""Conflict detection and alternative slot suggestions for new events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytz

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(minutes=60)
MAX_SUGGESTIONS = 3

WEEKDAYS_PT = [
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
]


@dataclass
class TimeSlot:
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "TimeSlot":
        return cls(
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
        )


@dataclass
class ConflictCheck:
    has_conflict: bool
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    suggestions: List[TimeSlot] = field(default_factory=list)
    day_events: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ContextValidation:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)


def parse_datetime(value: Any, tz) -> Tuple[Optional[datetime], bool]:
    """Parse an ISO date or date-time.

    Returns ``(aware datetime, is_date_only)``; ``(None, False)`` when the value
    cannot be parsed. Naive date-times are taken as local time in ``tz``.
    """
    if value is None or value == "":
        return None, False
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return tz.localize(datetime.combine(value, time.min)), True
    else:
        text = str(value).strip()
        if len(text) == 10:
            try:
                day = date.fromisoformat(text)
            except ValueError:
                return None, False
            return tz.localize(datetime.combine(day, time.min)), True
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None, False
    if parsed.tzinfo is None:
        parsed = tz.localize(parsed)
    return parsed.astimezone(tz), False


def event_bounds(event: Dict[str, Any], tz) -> Tuple[Optional[datetime], Optional[datetime], bool]:
    """Start, end and all-day flag of a calendar event."""
    start_field = event.get("start") or {}
    end_field = event.get("end") or {}
    if "dateTime" in start_field:
        start, _ = parse_datetime(start_field.get("dateTime"), tz)
        end, _ = parse_datetime(end_field.get("dateTime"), tz)
        return start, end or (start + DEFAULT_DURATION if start else None), False
    start, _ = parse_datetime(start_field.get("date"), tz)
    end, _ = parse_datetime(end_field.get("date"), tz)
    return start, end or (start + timedelta(days=1) if start else None), True


def _field(proposal: Any, name: str) -> Any:
    if isinstance(proposal, dict):
        return proposal.get(name)
    return getattr(proposal, name, None)


def proposal_bounds(proposal: Any, tz) -> Tuple[Optional[datetime], Optional[datetime], bool]:
    """Interval of a proposed event; missing end means the default duration."""
    start, date_only = parse_datetime(_field(proposal, "start"), tz)
    if start is None:
        return None, None, False
    end, _ = parse_datetime(_field(proposal, "end"), tz)
    if date_only:
        return start, end or start + timedelta(days=1), True
    if end is None or end <= start:
        end = start + DEFAULT_DURATION
    return start, end, False


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


class ConflictEngine:
    """Checks a proposed event against the calendar.

    ``calendar`` must expose ``async list_events(start_iso, end_iso)``
    returning Google Calendar style event dicts. Fetch errors propagate:
    treating a failed fetch as "free" would double-book.

    All-day entries never block a time-specific proposal, and date-only
    proposals are not checked at all.
    """

    def __init__(
        self,
        calendar,
        timezone_str: str = "America/Sao_Paulo",
        working_hours: Tuple[int, int] = (8, 20),
        search_days: int = 3,
        max_suggestions: int = MAX_SUGGESTIONS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.calendar = calendar
        self.tz = pytz.timezone(timezone_str)
        self.working_hours = working_hours
        self.search_days = search_days
        self.max_suggestions = max_suggestions
        self._clock = clock or (lambda: datetime.now(pytz.utc))

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def _day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        start = self.tz.localize(datetime.combine(day, time.min))
        end = self.tz.localize(datetime.combine(day + timedelta(days=1), time.min))
        return start, end

    def _working_window(self, day: date, hours: Optional[Tuple[int, int]] = None) -> Tuple[datetime, datetime]:
        open_hour, close_hour = hours or self.working_hours
        return (
            self.tz.localize(datetime.combine(day, time(open_hour))),
            self.tz.localize(datetime.combine(day, time(close_hour))),
        )

    async def fetch_busy(self, start: datetime, end: datetime) -> Tuple[List[Dict[str, Any]], List[Tuple[datetime, datetime]]]:
        """Events in ``[start, end)`` and the timed intervals they occupy."""
        events = await self.calendar.list_events(start.isoformat(), end.isoformat())
        busy = []
        for event in events or []:
            if event.get("status") == "cancelled" or event.get("transparency") == "transparent":
                continue
            ev_start, ev_end, all_day = event_bounds(event, self.tz)
            if all_day or ev_start is None:
                continue
            busy.append((ev_start, ev_end))
        busy.sort()
        return list(events or []), busy

    async def check_conflicts(self, proposal: Any) -> ConflictCheck:
        """Return overlapping events and up to three free alternatives."""
        start, end, date_only = proposal_bounds(proposal, self.tz)
        if start is None or date_only:
            return ConflictCheck(has_conflict=False)

        window_start, _ = self._day_bounds(start.date())
        _, window_end = self._day_bounds(start.date() + timedelta(days=self.search_days - 1))
        events, busy = await self.fetch_busy(window_start, max(window_end, end))

        # day_events is the start day only; conflicts use every fetched event
        day_end = self._day_bounds(start.date())[1]
        day_events = []
        conflicts = []
        for event in events:
            ev_start, ev_end, all_day = event_bounds(event, self.tz)
            if ev_start is None:
                continue
            if overlaps(ev_start, ev_end, window_start, day_end):
                day_events.append(event)
            if all_day or event.get("status") == "cancelled" or event.get("transparency") == "transparent":
                continue
            if overlaps(start, end, ev_start, ev_end):
                conflicts.append(event)

        if not conflicts:
            return ConflictCheck(has_conflict=False, day_events=day_events)

        suggestions = self.suggest_slots(start, end - start, busy)
        logger.info(
            f"Proposal {start.isoformat()} conflicts with {len(conflicts)} event(s); "
            f"{len(suggestions)} alternative(s) found"
        )
        return ConflictCheck(
            has_conflict=True,
            conflicts=conflicts,
            suggestions=suggestions,
            day_events=day_events,
        )

    def suggest_slots(
        self,
        start: datetime,
        duration: timedelta,
        busy: List[Tuple[datetime, datetime]],
        working_hours: Optional[Tuple[int, int]] = None,
        search_days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[TimeSlot]:
        """Scan forward from ``start`` for gaps of at least ``duration``.

        Stays within working hours on the proposal's day and the following
        days of the search window. Slots are chronological and disjoint.
        """
        now = self.now()
        hours = working_hours or self.working_hours
        limit = limit or self.max_suggestions
        suggestions: List[TimeSlot] = []

        for offset in range(search_days or self.search_days):
            day = start.date() + timedelta(days=offset)
            open_at, close_at = self._working_window(day, hours)
            pointer = max(open_at, start) if offset == 0 else open_at
            if pointer < now:
                pointer = now.replace(second=0, microsecond=0) + timedelta(minutes=1)

            while pointer + duration <= close_at:
                candidate_end = pointer + duration
                blocking = [b_end for b_start, b_end in busy if overlaps(pointer, candidate_end, b_start, b_end)]
                if blocking:
                    pointer = max(blocking)
                    continue
                suggestions.append(TimeSlot(start=pointer, end=candidate_end))
                if len(suggestions) >= limit:
                    return suggestions
                pointer = candidate_end

        return suggestions

    async def find_free_slot(
        self,
        duration: timedelta = DEFAULT_DURATION,
        preferred_day: Optional[date] = None,
        days_ahead: int = 7,
        working_hours: Tuple[int, int] = (9, 18),
    ) -> Optional[TimeSlot]:
        """First free slot of ``duration`` within ``days_ahead`` days."""
        first_day = preferred_day or self.now().date()
        window_start, _ = self._day_bounds(first_day)
        _, window_end = self._day_bounds(first_day + timedelta(days=days_ahead - 1))
        _, busy = await self.fetch_busy(window_start, window_end)

        start = self.tz.localize(datetime.combine(first_day, time(working_hours[0])))
        slots = self.suggest_slots(
            start, duration, busy,
            working_hours=working_hours, search_days=days_ahead, limit=1,
        )
        return slots[0] if slots else None

    async def free_intervals(self, day: date, working_hours: Tuple[int, int] = (9, 18)) -> List[TimeSlot]:
        """Free intervals of a working day, used to answer availability questions."""
        open_at = self.tz.localize(datetime.combine(day, time(working_hours[0])))
        close_at = self.tz.localize(datetime.combine(day, time(working_hours[1])))
        _, busy = await self.fetch_busy(*self._day_bounds(day))

        free = []
        pointer = open_at
        for b_start, b_end in busy:
            if b_end <= pointer:
                continue
            if b_start >= close_at:
                break
            if b_start > pointer:
                free.append(TimeSlot(start=pointer, end=min(b_start, close_at)))
            pointer = max(pointer, b_end)
        if pointer < close_at:
            free.append(TimeSlot(start=pointer, end=close_at))
        return free

    def validate_scheduling_context(
        self,
        proposal: Any,
        day_events: Optional[List[Dict[str, Any]]] = None,
    ) -> ContextValidation:
        """Blocking checks (past, more than a year ahead) and soft warnings."""
        start, end, date_only = proposal_bounds(proposal, self.tz)
        if start is None:
            return ContextValidation(is_valid=False, warnings=["Data/hora do evento não reconhecida."])

        now = self.now()
        if date_only:
            if start.date() < now.date():
                return ContextValidation(is_valid=False, warnings=["Essa data já passou."])
        elif end <= now:
            return ContextValidation(
                is_valid=False,
                warnings=[f"Esse horário já passou ({start.strftime('%d/%m %H:%M')})."],
            )
        if start > now + timedelta(days=365):
            return ContextValidation(
                is_valid=False,
                warnings=[f"Data muito distante ({start.year}). Você quis dizer outro ano?"],
            )

        warnings = []
        if not date_only:
            open_hour, close_hour = self.working_hours
            if start.hour < open_hour or end.hour > close_hour or (end.hour == close_hour and end.minute > 0):
                warnings.append("Horário fora do expediente")
        if start.weekday() >= 5:
            warnings.append(f"Agendado para {WEEKDAYS_PT[start.weekday()]}")
        if day_events is not None and not day_events:
            warnings.append("Nenhum outro compromisso neste dia")
        return ContextValidation(is_valid=True, warnings=warnings)
