"""
Central data model definitions used across the project.

This module defines the canonical structure of a seminar talk (EventRecord) so that:
- the schedule viewer, the calendar export and the admin editor share the same field names
- schedule.json is checked with one set of rules everywhere
- validation problems are reported per event and per field, all at once
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Optional

from seminar.errors import ScheduleValidationError


LEVELS = ("intro", "advanced")

REQUIRED_FIELDS = (
    "id",
    "title",
    "speakers",
    "affiliation",
    "datetime",
    "duration_min",
    "level",
    "tags",
    "abstract",
)

# Issue codes
MISSING_FIELD = "MissingField"
INVALID_DATETIME = "InvalidDateTime"
INVALID_ENUM = "InvalidEnum"
INVALID_TYPE = "InvalidType"
DUPLICATE_ID = "DuplicateId"


@dataclass(frozen=True)
class ValidationIssue:
    """
    One problem found in schedule data.

    index is the position of the event in the collection
    (None when the collection itself is wrong).
    """

    code: str
    message: str
    index: Optional[int] = None
    field: Optional[str] = None

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"Event {self.index}: {self.message}"


@dataclass(frozen=True)
class Reference:
    url: str
    label: str


@dataclass
class EventRecord:
    """
    Represents one seminar talk as stored in schedule.json.
    """

    id: str
    title: str
    speakers: List[str]
    affiliation: str
    datetime: datetime
    duration_min: int
    level: str
    tags: List[str]
    abstract: str
    room: Optional[str] = None
    references: List[Reference] = field(default_factory=list)

    @property
    def end(self) -> datetime:
        return self.datetime + timedelta(minutes=self.duration_min)

    def room_or(self, default_room: str) -> str:
        return self.room or default_room

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventRecord":
        """
        Build an EventRecord from an already validated JSON object.
        """
        refs = [Reference(url=str(r.get("url", "")), label=str(r.get("label", ""))) for r in data.get("references") or []]
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            speakers=[str(s) for s in data["speakers"]],
            affiliation=str(data["affiliation"]),
            datetime=parse_datetime(data["datetime"]),
            duration_min=int(data["duration_min"]),
            level=str(data["level"]),
            tags=[str(t) for t in data["tags"]],
            abstract=str(data["abstract"]),
            room=data.get("room") or None,
            references=refs,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "speakers": list(self.speakers),
            "affiliation": self.affiliation,
            "datetime": self.datetime.isoformat(),
            "duration_min": self.duration_min,
        }
        if self.room:
            out["room"] = self.room
        out.update(
            {
                "level": self.level,
                "tags": list(self.tags),
                "abstract": self.abstract,
                "references": [{"url": r.url, "label": r.label} for r in self.references],
            }
        )
        return out


def parse_datetime(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp that carries an explicit UTC offset.

    'Z' is accepted as +00:00. Raises ValueError for anything else,
    including timestamps without an offset (they do not name an instant).
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid datetime: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"Datetime has no UTC offset: {value!r}")
    return dt


def _is_list(value: Any) -> bool:
    return isinstance(value, list)


def validate_event(candidate: Any, index: int) -> list[ValidationIssue]:
    """
    Check one schedule entry and return every issue found (never stops early).
    """
    if not isinstance(candidate, dict):
        return [ValidationIssue(INVALID_TYPE, "Event must be an object", index)]

    issues: list[ValidationIssue] = []

    for name in REQUIRED_FIELDS:
        if name not in candidate:
            issues.append(ValidationIssue(MISSING_FIELD, f"Missing required field '{name}'", index, name))

    if "datetime" in candidate:
        try:
            parse_datetime(candidate["datetime"])
        except ValueError:
            issues.append(ValidationIssue(INVALID_DATETIME, "Invalid datetime format", index, "datetime"))

    if "level" in candidate and candidate["level"] not in LEVELS:
        issues.append(ValidationIssue(INVALID_ENUM, "Level must be 'intro' or 'advanced'", index, "level"))

    for name, label in (("speakers", "Speakers"), ("tags", "Tags")):
        if name in candidate and not _is_list(candidate[name]):
            issues.append(ValidationIssue(INVALID_TYPE, f"{label} must be an array", index, name))

    if "duration_min" in candidate:
        d = candidate["duration_min"]
        # bool is an int subclass, JSON true is not a duration
        if isinstance(d, bool) or not isinstance(d, int) or d <= 0:
            issues.append(
                ValidationIssue(INVALID_TYPE, "duration_min must be a positive integer", index, "duration_min")
            )

    refs = candidate.get("references")
    if refs is not None:
        ok = _is_list(refs) and all(isinstance(r, dict) and "url" in r and "label" in r for r in refs)
        if not ok:
            issues.append(
                ValidationIssue(INVALID_TYPE, "References must be a list of {url, label}", index, "references")
            )

    return issues


def validate_schedule(data: Any) -> list[ValidationIssue]:
    """
    Validate a whole schedule collection.

    Returns an empty list if everything is fine.
    """
    if not isinstance(data, list):
        return [ValidationIssue(INVALID_TYPE, "Schedule data must be an array")]

    issues: list[ValidationIssue] = []
    seen: dict[str, int] = {}

    for i, ev in enumerate(data):
        issues.extend(validate_event(ev, i))

        if isinstance(ev, dict) and "id" in ev:
            eid = str(ev["id"])
            if eid in seen:
                issues.append(
                    ValidationIssue(DUPLICATE_ID, f"Duplicate id '{eid}' (first used by event {seen[eid]})", i, "id")
                )
            else:
                seen[eid] = i

    return issues


def parse_schedule(data: Any) -> list[EventRecord]:
    """
    Validate and convert raw JSON into EventRecords.

    Raises ScheduleValidationError listing all issues.
    """
    issues = validate_schedule(data)
    if issues:
        raise ScheduleValidationError(issues)
    return [EventRecord.from_dict(ev) for ev in data]


def new_event_template(now: datetime, default_room: str, affiliation: str) -> dict[str, Any]:
    """
    Skeleton entry used by the admin editor ("add new event").

    Scheduled one week after `now`, keeping now's UTC offset.
    """
    when = (now + timedelta(days=7)).replace(microsecond=0)
    return {
        "id": f"{now.date().isoformat()}-new-event",
        "title": "New Event Title",
        "speakers": ["Speaker Name"],
        "affiliation": affiliation,
        "datetime": when.isoformat(),
        "duration_min": 120,
        "room": default_room,
        "level": "intro",
        "tags": ["new topic"],
        "abstract": "Event abstract goes here...",
        "references": [],
    }
