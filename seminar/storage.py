"""
Session-scoped storage for the admin credentials.

This module manages the file:

    $XDG_RUNTIME_DIR/seminar/credentials.json   (or <tmp>/seminar-<uid>/ if unset)

Design rationale:
- the token is a bearer credential, so it must not end up in the repo or in $HOME
- the runtime directory is wiped on logout/reboot, which matches a browser session
- the file is created with 0600 permissions
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class SessionCredentials:
    token: str
    owner: str
    repo: str

    @property
    def complete(self) -> bool:
        return bool(self.token.strip() and self.owner.strip() and self.repo.strip())


def _default_credentials_path() -> Path:
    """
    Return the default path of credentials.json for this login session.

    Using a function instead of a constant makes testing easier,
    because tests can override the path.
    """
    runtime = os.environ.get("XDG_RUNTIME_DIR", "").strip()
    if runtime:
        return Path(runtime) / "seminar" / "credentials.json"
    uid = os.getuid() if hasattr(os, "getuid") else os.getpid()
    return Path(tempfile.gettempdir()) / f"seminar-{uid}" / "credentials.json"


def load_session_credentials(path: str | Path | None = None) -> Optional[SessionCredentials]:
    """
    Load cached credentials.

    Returns None if the file does not exist or is invalid.
    """
    creds_path = Path(path) if path is not None else _default_credentials_path()

    if not creds_path.exists():
        return None

    try:
        data = json.loads(creds_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(data, dict):
        return None

    values = [data.get(k, "") for k in ("token", "owner", "repo")]
    if not all(isinstance(v, str) for v in values):
        return None
    return SessionCredentials(*values)


def save_session_credentials(creds: SessionCredentials, path: str | Path | None = None) -> None:
    """
    Save credentials for the rest of this session (owner-only file).
    """
    creds_path = Path(path) if path is not None else _default_credentials_path()
    creds_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

    payload = json.dumps(asdict(creds), indent=2, ensure_ascii=False)

    fd = os.open(creds_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(payload)


def clear_session_credentials(path: str | Path | None = None) -> None:
    creds_path = Path(path) if path is not None else _default_credentials_path()
    try:
        creds_path.unlink()
    except FileNotFoundError:
        pass
