"""
Admin editing workflow.

Drives one editing session against the remote data store:

    Disconnected -> Connected -> Loaded -> Editing -> Saving -> Loaded
                                              ^           |
                                              +-----------+  (conflict / error)

The edit buffer is plain text and is the only source of truth until it is
saved. Saving sends the version token captured by the last successful
load/save; if somebody else saved in between, the store answers with a
ConflictError and the buffer is left untouched for the operator to redo
the edit after a reload. Nothing is merged automatically.

Every action appends a timestamped message to `status`; failures are
recorded there and then re-raised to the caller.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterator, List, Optional

from seminar.docstore import GitHubDocumentStore, RemoteDocument, RepositoryInfo
from seminar.errors import ConflictError, InvalidJSON, OperationInProgress, SeminarError, WorkflowError
from seminar.model import ValidationIssue, new_event_template, parse_datetime, validate_schedule
from seminar.schedule import TZ_FIXED, resolve_timezone
from seminar.settings import Settings
from seminar.storage import SessionCredentials, clear_session_credentials, save_session_credentials


SCHEDULE_PATH = "data/schedule.json"
SETTINGS_PATH = "data/settings.json"
EDITABLE_FILES = (SCHEDULE_PATH, SETTINGS_PATH)

STATUS_TTL = timedelta(seconds=5)
STATUS_KEEP = 200


class State(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    LOADED = "loaded"
    EDITING = "editing"
    SAVING = "saving"


@dataclass(frozen=True)
class StatusMessage:
    level: str
    text: str
    created_at: datetime

    def __str__(self) -> str:
        return f"{self.created_at:%H:%M:%S}: {self.text}"


class StatusLog:
    """
    Timestamped messages for the operator; each one is shown for `ttl`.
    """

    def __init__(self, clock: Callable[[], datetime], ttl: timedelta = STATUS_TTL, keep: int = STATUS_KEEP) -> None:
        self._clock = clock
        self.ttl = ttl
        self.keep = keep
        self.messages: List[StatusMessage] = []
        # messages ever added, including the ones already dropped
        self.count = 0

    def add(self, text: str, level: str = "info") -> StatusMessage:
        msg = StatusMessage(level=level, text=text, created_at=self._clock())
        self.messages.append(msg)
        self.count += 1
        if len(self.messages) > self.keep:
            del self.messages[: len(self.messages) - self.keep]
        return msg

    def since(self, count: int) -> list[StatusMessage]:
        """
        Messages added after the log held `count` messages (oldest dropped ones excluded).
        """
        new = self.count - count
        if new <= 0:
            return []
        return self.messages[-new:]

    def active(self, now: Optional[datetime] = None) -> list[StatusMessage]:
        now = now if now is not None else self._clock()
        return [m for m in self.messages if now - m.created_at < self.ttl]

    @property
    def last(self) -> Optional[StatusMessage]:
        return self.messages[-1] if self.messages else None


@dataclass
class ValidationReport:
    ok: bool
    error: Optional[str] = None
    issues: List[ValidationIssue] = field(default_factory=list)


def parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidJSON(f"Invalid JSON: {e}") from e


def pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AdminSession:
    """
    One operator, one document, one buffer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store_factory: Callable[..., Any] = GitHubDocumentStore,
        credentials_path: str | Path | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings if settings is not None else Settings.defaults()
        self.store_factory = store_factory
        self.credentials_path = credentials_path
        self.clock = clock
        self.status = StatusLog(clock)

        self.state = State.DISCONNECTED
        self.store: Any = None
        self.credentials: Optional[SessionCredentials] = None
        self.repository: Optional[RepositoryInfo] = None

        self.current_path: Optional[str] = None
        self.version_token: Optional[str] = None
        self.file_info: Optional[RemoteDocument] = None
        self.buffer = ""
        self.dirty = False

        self._busy: Optional[str] = None

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        if self._busy is not None:
            raise OperationInProgress(f"Cannot {name} while '{self._busy}' is still running")
        self._busy = name
        try:
            yield
        except (SeminarError, OSError) as e:
            self.status.add(str(e), "error")
            raise
        finally:
            self._busy = None

    @property
    def busy(self) -> bool:
        return self._busy is not None

    @property
    def can_save(self) -> bool:
        return self.state == State.EDITING and self.dirty and self.current_path is not None and not self.busy

    @property
    def is_schedule(self) -> bool:
        return self.current_path == SCHEDULE_PATH

    def _set_buffer(self, text: str) -> None:
        self.buffer = text
        self.dirty = True
        self.state = State.EDITING

    def _require_connection(self) -> None:
        if self.state == State.DISCONNECTED or self.store is None:
            raise WorkflowError("Not connected to a repository")

    def _buffer_array(self, action: str) -> list[Any]:
        data = parse_json(self.buffer)
        if not isinstance(data, list):
            raise WorkflowError(f"Cannot {action}: document is not a JSON array")
        return data

    # ------------------------------------------------------------------
    # connection / loading
    # ------------------------------------------------------------------

    def connect(self, token: str, owner: str, repo: str) -> RepositoryInfo:
        creds = SessionCredentials(token.strip(), owner.strip(), repo.strip())
        with self._operation("connect"):
            if not creds.complete:
                raise WorkflowError("Please fill in all fields")

            save_session_credentials(creds, self.credentials_path)
            self.status.add("Connecting to repository...")

            store = self.store_factory(creds.token, creds.owner, creds.repo)
            info = store.probe()

            self.store = store
            self.credentials = creds
            self.repository = info
            self.state = State.CONNECTED
            self.status.add(f"Connected to {info.full_name}", "success")
            return info

    def disconnect(self) -> None:
        """
        Drop the connection and the loaded document, and forget the cached token.
        """
        with self._operation("disconnect"):
            clear_session_credentials(self.credentials_path)
            self.state = State.DISCONNECTED
            self.store = None
            self.credentials = None
            self.repository = None
            self.current_path = None
            self.version_token = None
            self.file_info = None
            self.buffer = ""
            self.dirty = False
            self.status.add("Disconnected")

    def load(self, path: str) -> RemoteDocument:
        with self._operation("load"):
            self._require_connection()
            self.status.add("Loading file...")

            doc = self.store.read(path)

            self.current_path = doc.path
            self.version_token = doc.version_token
            self.file_info = doc
            self.buffer = doc.content
            self.dirty = False
            self.state = State.LOADED
            self.status.add("File loaded successfully", "success")

        self.validate()
        return doc

    def reload(self) -> RemoteDocument:
        """
        Discard the buffer and fetch the current remote version (conflict recovery).
        """
        if self.current_path is None:
            raise WorkflowError("No file loaded")
        return self.load(self.current_path)

    # ------------------------------------------------------------------
    # buffer operations
    # ------------------------------------------------------------------

    def edit(self, text: str) -> None:
        if self.busy:
            raise OperationInProgress(f"Cannot edit while '{self._busy}' is still running")
        if text == self.buffer and self.state != State.EDITING:
            return
        self._set_buffer(text)

    def validate(self) -> ValidationReport:
        """
        JSON syntax check, plus the EventRecord rules when editing schedule.json.
        """
        try:
            data = parse_json(self.buffer)
        except InvalidJSON as e:
            self.status.add(str(e), "error")
            return ValidationReport(ok=False, error=str(e))

        issues = validate_schedule(data) if self.is_schedule else []
        if issues:
            for issue in issues:
                self.status.add(str(issue), "warning")
            return ValidationReport(ok=False, issues=issues)

        self.status.add("Valid JSON", "success")
        return ValidationReport(ok=True)

    def format_buffer(self) -> None:
        with self._operation("format"):
            try:
                data = parse_json(self.buffer)
            except InvalidJSON as e:
                raise InvalidJSON("Cannot format invalid JSON") from e
            self._set_buffer(pretty_json(data))
            self.status.add("JSON formatted", "success")

    def add_event_template(self) -> dict[str, Any]:
        with self._operation("add event"):
            try:
                data = self._buffer_array("add event")
            except InvalidJSON as e:
                raise InvalidJSON("Cannot add to invalid JSON") from e

            now = self.clock().astimezone(resolve_timezone(TZ_FIXED, self.settings.timezone))
            template = new_event_template(now, self.settings.default_room, self.settings.affiliation)
            data.append(template)
            self._set_buffer(pretty_json(data))
            self.status.add("New event template added", "success")
            return template

    def sort_by_date(self) -> None:
        with self._operation("sort"):
            try:
                data = self._buffer_array("sort")
            except InvalidJSON as e:
                raise InvalidJSON("Cannot sort invalid JSON") from e

            def key(ev: Any) -> datetime:
                try:
                    return parse_datetime(ev.get("datetime") if isinstance(ev, dict) else None)
                except ValueError:
                    # unparseable entries sink to the end, in their original order
                    return datetime.max.replace(tzinfo=timezone.utc)

            data.sort(key=key)
            self._set_buffer(pretty_json(data))
            self.status.add("Events sorted by date", "success")

    def restore(self, text: str) -> None:
        with self._operation("restore"):
            try:
                parse_json(text)
            except InvalidJSON as e:
                raise InvalidJSON("Invalid JSON file") from e
            self._set_buffer(text)
            self.status.add("File restored to editor", "success")
        self.validate()

    def restore_file(self, path: str | Path) -> None:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.status.add(f"Cannot read {path}: {e}", "error")
            raise WorkflowError(f"Cannot read {path}: {e}") from e
        self.restore(text)

    def backup(self, directory: str | Path) -> Path:
        """
        Write the current buffer to backup-<file>-<date>.json inside `directory`.
        """
        if not self.buffer.strip():
            self.status.add("No content to backup", "warning")
            raise WorkflowError("No content to backup")

        name = (self.current_path or "data").replace("/", "-")
        if name.endswith(".json"):
            name = name[: -len(".json")]
        out = Path(directory) / f"backup-{name}-{self.clock().date().isoformat()}.json"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(self.buffer, encoding="utf-8")

        self.status.add("Backup downloaded", "success")
        return out

    # ------------------------------------------------------------------
    # saving
    # ------------------------------------------------------------------

    def default_commit_message(self) -> str:
        name = PurePosixPath(self.current_path or "data").name
        return f"chore({name}): update"

    def save(self, message: str = "") -> str:
        """
        Write the buffer back. Returns the new version token.
        """
        with self._operation("save"):
            if self.current_path is None or self.version_token is None:
                raise WorkflowError("No file loaded")
            if not self.dirty:
                raise WorkflowError("Nothing to save")

            try:
                data = parse_json(self.buffer)
            except InvalidJSON as e:
                raise InvalidJSON(f"Cannot save invalid JSON ({e})") from e

            if self.is_schedule:
                for issue in validate_schedule(data):
                    self.status.add(str(issue), "warning")

            commit = message.strip() or self.default_commit_message()
            self.status.add("Saving file...")
            self.state = State.SAVING

            try:
                token = self.store.write(self.current_path, self.buffer, self.version_token, commit)
            except ConflictError as e:
                self.state = State.EDITING
                raise ConflictError(
                    f"{e} - the file changed remotely; reload it and redo your edits", e.status
                ) from e
            except Exception:
                self.state = State.EDITING
                raise

            self.version_token = token
            self.dirty = False
            self.state = State.LOADED
            self.status.add("File saved successfully", "success")
            return token
