"""
Site-wide configuration (settings.json).

The file is loaded once at startup. If it is missing or broken we fall
back to the hardcoded defaults below, so the schedule can always be shown.
Keys present in the file override the defaults one by one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_SETTINGS: dict[str, str] = {
    "seminar_title": "Modern Theory of Complex Systems & Applications",
    "timezone": "Asia/Jerusalem",
    "contact_email": "roman.gaidarov@weizmann.ac.il",
    "calendar_subscribe_url": "https://calendar.google.com/calendar/u/0?cid=REPLACE",
    "mailing_list_url": "https://groups.google.com/g/REPLACE",
    "formspree_action": "https://formspree.io/f/REPLACE_WITH_YOUR_CODE",
    "campus": "Rehovot",
    "affiliation": "Weizmann Institute of Science",
    "default_room": "Physics Lec. Room A",
    "repo_url": "https://github.com/USERNAME/REPO",
    "uid_domain": "complexsystems.weizmann.ac.il",
}


@dataclass(frozen=True)
class Settings:
    seminar_title: str
    timezone: str
    contact_email: str
    calendar_subscribe_url: str
    mailing_list_url: str
    formspree_action: str
    campus: str
    affiliation: str
    default_room: str
    repo_url: str
    uid_domain: str

    @classmethod
    def defaults(cls) -> "Settings":
        return cls(**DEFAULT_SETTINGS)

    @property
    def repo_location(self) -> tuple[str, str]:
        """
        (owner, repo) parsed from repo_url, empty strings if it is not a GitHub URL.
        """
        parts = self.repo_url.rstrip("/").split("/")
        if len(parts) >= 5 and parts[2].endswith("github.com"):
            return parts[3], parts[4]
        return "", ""


def data_dir() -> Path:
    """
    Return the directory that holds the bundled schedule.json and settings.json.
    """
    return Path(__file__).resolve().parent / "data"


def _is_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def load_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings.json, never failing: unreadable -> defaults.
    """
    settings_path = Path(path) if path is not None else data_dir() / "settings.json"

    merged: dict[str, Any] = dict(DEFAULT_SETTINGS)
    try:
        raw = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return Settings(**merged)

    if not isinstance(raw, dict):
        return Settings(**merged)

    known = {f.name for f in fields(Settings)}
    for key, value in raw.items():
        if key in known and isinstance(value, str) and value.strip():
            merged[key] = value.strip()

    if not _is_timezone(merged["timezone"]):
        merged["timezone"] = DEFAULT_SETTINGS["timezone"]

    return Settings(**merged)
