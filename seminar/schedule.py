"""
Schedule filtering and ordering.

Given the talks from schedule.json and the visitor's filter choices,
produce the two lists shown on the schedule page:
- upcoming: datetime strictly after `now`, soonest first
- past: everything else (datetime == now counts as past), most recent first

The display timezone only changes how times are printed, never which
list a talk lands in or its position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from seminar.model import EventRecord


DEFAULT_TIMEZONE = "Asia/Jerusalem"

TZ_FIXED = "fixed"
TZ_LOCAL = "local"


@dataclass(frozen=True)
class FilterCriteria:
    query: str = ""
    topic: str = ""
    level: str = ""


@dataclass
class ScheduleView:
    upcoming: List[EventRecord] = field(default_factory=list)
    past: List[EventRecord] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.upcoming and not self.past


def _aware(now: datetime) -> datetime:
    # naive "now" is taken as UTC
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def matches(event: EventRecord, criteria: FilterCriteria) -> bool:
    """
    All three filters must hold. Empty filters always match.
    """
    query = (criteria.query or "").strip().lower()
    if query:
        hay = [event.title, event.abstract, event.affiliation, *event.speakers]
        if not any(query in s.lower() for s in hay):
            return False

    topic = (criteria.topic or "").strip().lower()
    if topic and not any(topic in t.lower() for t in event.tags):
        return False

    level = (criteria.level or "").strip()
    if level and event.level != level:
        return False

    return True


def filter_events(events: Iterable[EventRecord], criteria: FilterCriteria) -> list[EventRecord]:
    return [ev for ev in events if matches(ev, criteria)]


def render(events: Iterable[EventRecord], criteria: FilterCriteria, now: datetime) -> ScheduleView:
    """
    Filter, partition and order the talks. Pure: same input, same output.
    """
    now = _aware(now)
    selected = filter_events(events, criteria)

    upcoming = sorted((ev for ev in selected if ev.datetime > now), key=lambda ev: ev.datetime)
    past = sorted((ev for ev in selected if ev.datetime <= now), key=lambda ev: ev.datetime, reverse=True)

    return ScheduleView(upcoming=upcoming, past=past)


def next_talk(events: Iterable[EventRecord], now: datetime) -> Optional[EventRecord]:
    upcoming = render(events, FilterCriteria(), now).upcoming
    return upcoming[0] if upcoming else None


def topics(events: Iterable[EventRecord]) -> list[str]:
    """
    Distinct tags in first-seen order (options for the topic filter).
    """
    seen: dict[str, None] = {}
    for ev in events:
        for tag in ev.tags:
            seen.setdefault(tag, None)
    return list(seen)


def find_event(events: Iterable[EventRecord], event_id: str) -> Optional[EventRecord]:
    for ev in events:
        if ev.id == event_id:
            return ev
    return None


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def resolve_timezone(mode: str, fixed_zone: str = DEFAULT_TIMEZONE) -> tzinfo:
    """
    'fixed' -> the seminar's named zone, 'local' -> the viewer's zone.
    """
    if mode == TZ_LOCAL:
        local = datetime.now().astimezone().tzinfo
        return local if local is not None else timezone.utc
    if mode == TZ_FIXED:
        return ZoneInfo(fixed_zone)
    raise ValueError(f"Unknown timezone mode: {mode!r}")


def format_datetime(dt: datetime, tz: tzinfo) -> str:
    """
    e.g. 'Thursday, January 1, 2099 at 10:00 AM'
    """
    local = dt.astimezone(tz)
    return f"{local:%A}, {local:%B} {local.day}, {local.year} at {local:%I:%M %p}"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{mins}m"


def level_label(level: str) -> str:
    return "Introductory" if level == "intro" else "Advanced"
