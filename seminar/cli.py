"""
CLI (Command Line Interface).

This module provides the visitor-facing commands, e.g.:

    seminar schedule --query alice --topic networks --level intro
    seminar next
    seminar export <event_id> [out.ics]
    seminar gcal <event_id>
    seminar validate <schedule.json>
    seminar format <file.json>
    seminar submit --name ... --email ... --abstract-file abstract.txt
    seminar admin

Note:
- The admin editor lives in seminar/interactive.py
- This CLI is intentionally simple and prints plain text (no rich formatting)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from seminar.errors import InvalidJSON, ScheduleValidationError, SeminarError, SubmissionInvalid
from seminar.export_ics import export_event_to_ics, google_calendar_url
from seminar.model import EventRecord, parse_datetime, parse_schedule, validate_schedule
from seminar.schedule import (
    TZ_FIXED,
    TZ_LOCAL,
    FilterCriteria,
    find_event,
    format_datetime,
    format_duration,
    level_label,
    next_talk,
    render,
    resolve_timezone,
)
from seminar.settings import Settings, data_dir, load_settings
from seminar.submit import FormRelayClient, SubmissionDraft, advisories, counter_text, validate_draft


def _data_dir(args: argparse.Namespace) -> Path:
    return Path(args.data_dir) if args.data_dir else data_dir()


def _load_json(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SeminarError(f"Failed to load {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidJSON(f"{path}: invalid JSON: {e}") from e


def _load_context(args: argparse.Namespace) -> tuple[Settings, list[EventRecord]]:
    """
    Load settings (with fallback) and the validated schedule.
    """
    base = _data_dir(args)
    settings = load_settings(base / "settings.json")
    events = parse_schedule(_load_json(base / "schedule.json"))
    return settings, events


def _now(args: argparse.Namespace) -> datetime:
    if getattr(args, "now", None):
        return parse_datetime(args.now)
    return datetime.now(timezone.utc)


def _print_event(ev: EventRecord, settings: Settings, tz: Any) -> None:
    print(f"[{ev.id}] {ev.title}")
    print(f"    {format_datetime(ev.datetime, tz)} ({format_duration(ev.duration_min)})")
    print(f"    {', '.join(ev.speakers)} | {ev.affiliation}")
    tags = " ".join(f"#{t}" for t in ev.tags)
    print(f"    {ev.room_or(settings.default_room)} | {level_label(ev.level)} {tags}".rstrip())


def _cmd_schedule(args: argparse.Namespace) -> int:
    """
    Print upcoming and past talks matching the filters.
    """
    settings, events = _load_context(args)
    tz = resolve_timezone(args.tz, settings.timezone)
    criteria = FilterCriteria(query=args.query or "", topic=args.topic or "", level=args.level or "")

    view = render(events, criteria, _now(args))
    if view.empty:
        print("No talks match your filters.")
        return 0

    for heading, items in (("Upcoming talks", view.upcoming), ("Past talks", view.past)):
        if not items:
            continue
        print(f"{heading} ({len(items)})")
        for ev in items:
            _print_event(ev, settings, tz)
        print()

    return 0


def _cmd_next(args: argparse.Namespace) -> int:
    settings, events = _load_context(args)
    ev = next_talk(events, _now(args))
    if ev is None:
        print("No upcoming talks scheduled. Check back soon or propose a talk (seminar submit).")
        return 0

    tz = resolve_timezone(TZ_FIXED, settings.timezone)
    print(ev.title)
    print(f"{', '.join(ev.speakers)} • {format_datetime(ev.datetime, tz)}")
    return 0


def _get_event(events: list[EventRecord], event_id: str) -> EventRecord:
    ev = find_event(events, event_id.strip())
    if ev is None:
        raise SeminarError(f"Unknown event id: {event_id!r}")
    return ev


def _cmd_export(args: argparse.Namespace) -> int:
    """
    Export one talk into an iCalendar (.ics) file.
    """
    settings, events = _load_context(args)
    ev = _get_event(events, args.event_id)

    out = Path(args.out) if args.out else Path(f"{ev.id}.ics")
    written = export_event_to_ics(ev, out, settings)
    print(f"Calendar file written to: {written}")
    return 0


def _cmd_gcal(args: argparse.Namespace) -> int:
    settings, events = _load_context(args)
    print(google_calendar_url(_get_event(events, args.event_id), settings))
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    data = _load_json(Path(args.file))
    issues = validate_schedule(data)
    if not issues:
        print(f"Valid: {len(data)} events")
        return 0

    print(f"Invalid: {len(issues)} problem(s)")
    for issue in issues:
        print(f"- [{issue.code}] {issue}")
    return 1


def _cmd_format(args: argparse.Namespace) -> int:
    """
    Pretty-print a JSON file in place (2-space indent).
    """
    path = Path(args.file)
    data = _load_json(path)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    print(f"Formatted: {path}")
    return 0


def _read_optional(path: str | None) -> str:
    if not path:
        return ""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _cmd_submit(args: argparse.Namespace) -> int:
    """
    Validate a speaker proposal and relay it to the form-intake service.
    """
    settings = load_settings(_data_dir(args) / "settings.json")
    draft = SubmissionDraft(
        name=args.name or "",
        email=args.email or "",
        affiliation=args.affiliation or "",
        title=args.title or "",
        abstract=_read_optional(args.abstract_file),
        references=_read_optional(args.references_file),
    )

    print(f"Abstract: {counter_text(draft.abstract)}")
    for hint in advisories(draft):
        print(f"Hint: {hint}")

    if args.dry_run:
        errors = validate_draft(draft)
        if errors:
            raise SubmissionInvalid(errors)
        print("Proposal is valid (dry run, nothing sent).")
        return 0

    relay = FormRelayClient(args.action or settings.formspree_action)
    subject = f"New Speaker Proposal - {settings.seminar_title}"
    relay.submit(draft, subject=subject, cc=settings.contact_email, next_url=args.next_url or "")
    print("Proposal submitted successfully!")
    return 0


def _cmd_admin(args: argparse.Namespace) -> int:
    from seminar.interactive import run_admin

    settings = load_settings(_data_dir(args) / "settings.json")
    run_admin(settings, default_token=os.environ.get("GITHUB_TOKEN", ""))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="seminar", description="Seminar schedule CLI")
    parser.add_argument("--data-dir", type=str, default="", help="Directory with schedule.json and settings.json")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging (HTTP calls)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_schedule = sub.add_parser("schedule", help="Show upcoming and past talks")
    p_schedule.add_argument("--query", "-q", type=str, default="", help="Search title, speakers, abstract, affiliation")
    p_schedule.add_argument("--topic", "-t", type=str, default="", help="Filter by topic tag")
    p_schedule.add_argument("--level", "-l", choices=["intro", "advanced"], default="", help="Filter by level")
    p_schedule.add_argument("--tz", choices=[TZ_FIXED, TZ_LOCAL], default=TZ_FIXED, help="Display timezone")
    p_schedule.add_argument("--now", type=str, default="", help=argparse.SUPPRESS)

    p_next = sub.add_parser("next", help="Show the next talk")
    p_next.add_argument("--now", type=str, default="", help=argparse.SUPPRESS)

    p_export = sub.add_parser("export", help="Export a talk to .ics")
    p_export.add_argument("event_id", type=str, help="Event id (e.g. 2025-03-04-networks)")
    p_export.add_argument("out", type=str, nargs="?", default="", help="Output file or directory")

    p_gcal = sub.add_parser("gcal", help="Print an 'add to Google Calendar' link")
    p_gcal.add_argument("event_id", type=str, help="Event id")

    p_validate = sub.add_parser("validate", help="Validate a schedule.json file")
    p_validate.add_argument("file", type=str)

    p_format = sub.add_parser("format", help="Pretty-print a JSON file in place")
    p_format.add_argument("file", type=str)

    p_submit = sub.add_parser("submit", help="Submit a speaker proposal")
    p_submit.add_argument("--name", type=str, default="")
    p_submit.add_argument("--email", type=str, default="")
    p_submit.add_argument("--affiliation", type=str, default="")
    p_submit.add_argument("--title", type=str, default="")
    p_submit.add_argument("--abstract-file", type=str, default="", help="Text file with the abstract ('-' = stdin)")
    p_submit.add_argument("--references-file", type=str, default="", help="Text file, one URL per line")
    p_submit.add_argument("--action", type=str, default="", help="Override the form-intake URL")
    p_submit.add_argument("--next-url", type=str, default="", help="Redirect target after success")
    p_submit.add_argument("--dry-run", action="store_true", help="Only validate, do not send")

    sub.add_parser("admin", help="Interactive editor for the remote data files")

    return parser


COMMANDS = {
    "schedule": _cmd_schedule,
    "next": _cmd_next,
    "export": _cmd_export,
    "gcal": _cmd_gcal,
    "validate": _cmd_validate,
    "format": _cmd_format,
    "submit": _cmd_submit,
    "admin": _cmd_admin,
}


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        rc = handler(args)
    except SubmissionInvalid as e:
        print(str(e))
        for err in e.errors:
            print(f"- {err}")
        rc = 1
    except ScheduleValidationError as e:
        print("Failed to load schedule:")
        for issue in e.issues:
            print(f"- [{issue.code}] {issue}")
        rc = 1
    except (SeminarError, ValueError, OSError) as e:
        print(f"Error: {e}")
        rc = 1

    raise SystemExit(rc)
