"""
Calendar export for a single talk.

- .ics file that can be imported into Google Calendar / Outlook / Apple Calendar
- "Add to Google Calendar" template URL

Times are written in UTC, so the file does not depend on the
viewer's timezone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlencode

from seminar.model import EventRecord
from seminar.settings import Settings


GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _dt_utc(dt: datetime) -> str:
    """
    Convert an aware datetime to ICS UTC form 'YYYYMMDDTHHMMSSZ'.
    """
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _description(event: EventRecord) -> str:
    return f"{event.abstract}\n\nSpeakers: {', '.join(event.speakers)}"


def event_to_ics(event: EventRecord, settings: Settings) -> str:
    """
    Render one talk as a complete VCALENDAR document (CRLF line endings).
    """
    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append("PRODID:-//Complex Systems Seminar//EN")
    lines.append("BEGIN:VEVENT")
    lines.append(f"UID:{_ics_escape(event.id)}@{settings.uid_domain}")
    lines.append(f"DTSTAMP:{_dt_utc(datetime.now(timezone.utc))}")
    lines.append(f"DTSTART:{_dt_utc(event.datetime)}")
    lines.append(f"DTEND:{_dt_utc(event.end)}")
    lines.append(f"SUMMARY:{_ics_escape(event.title)}")
    lines.append(f"DESCRIPTION:{_ics_escape(_description(event))}")
    lines.append(f"LOCATION:{_ics_escape(event.room_or(settings.default_room))}")
    lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    return "\r\n".join(lines) + "\r\n"


def export_event_to_ics(event: EventRecord, out_path: str | Path, settings: Settings) -> Path:
    """
    Write <event>.ics and return the path written.
    """
    out = Path(out_path)
    if out.is_dir():
        out = out / f"{event.id}.ics"
    out.parent.mkdir(parents=True, exist_ok=True)

    # newline="" keeps the CRLFs as they are
    with out.open("w", encoding="utf-8", newline="") as fh:
        fh.write(event_to_ics(event, settings))
    return out


def google_calendar_url(event: EventRecord, settings: Settings) -> str:
    params = {
        "action": "TEMPLATE",
        "text": event.title,
        "dates": f"{_dt_utc(event.datetime)}/{_dt_utc(event.end)}",
        "details": _description(event),
        "location": event.room_or(settings.default_room),
        "ctz": settings.timezone,
    }
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"
