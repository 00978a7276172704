"""
Tests for the admin editing workflow (state machine + optimistic concurrency).

The GitHub API is replaced by tests.fake_github.FakeGitHubSession, so the
real GitHubDocumentStore code runs against an in-process fake.
"""

import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from seminar.admin import SCHEDULE_PATH, SETTINGS_PATH, AdminSession, State, StatusLog, pretty_json
from seminar.docstore import GitHubDocumentStore
from seminar.errors import (
    AuthFailure,
    ConflictError,
    InvalidJSON,
    NotFound,
    OperationInProgress,
    TransportError,
    WorkflowError,
)
from seminar.model import validate_event
from seminar.settings import Settings
from seminar.storage import load_session_credentials
from tests.fake_github import FakeGitHubSession, FakeResponse


EVENT = {
    "id": "e1",
    "title": "Spreading on networks",
    "speakers": ["Alice Smith"],
    "affiliation": "TAU",
    "datetime": "2099-01-01T10:00:00+02:00",
    "duration_min": 90,
    "level": "intro",
    "tags": ["networks"],
    "abstract": "Percolation.",
    "references": [],
}

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


class AdminTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.creds_path = Path(self.tmp.name) / "credentials.json"

        self.fake = FakeGitHubSession()
        self.fake.put_file(SCHEDULE_PATH, json.dumps([EVENT], indent=2))
        self.fake.put_file(SETTINGS_PATH, json.dumps({"timezone": "UTC"}))

        self.now = NOW
        self.admin = AdminSession(
            settings=Settings.defaults(),
            store_factory=lambda token, owner, repo: GitHubDocumentStore(token, owner, repo, session=self.fake),
            credentials_path=self.creds_path,
            clock=lambda: self.now,
        )

    def connect_and_load(self, path: str = SCHEDULE_PATH) -> None:
        self.admin.connect("secret", "weizmann", "seminar-site")
        self.admin.load(path)


class TestConnect(AdminTestCase):
    def test_connect_success(self) -> None:
        info = self.admin.connect(" secret ", "weizmann", "seminar-site")
        self.assertEqual(info.full_name, "weizmann/seminar-site")
        self.assertEqual(self.admin.state, State.CONNECTED)

        cached = load_session_credentials(self.creds_path)
        self.assertIsNotNone(cached)
        assert cached is not None
        self.assertEqual((cached.token, cached.owner, cached.repo), ("secret", "weizmann", "seminar-site"))

    def test_connect_bad_token_stays_disconnected(self) -> None:
        with self.assertRaises(AuthFailure):
            self.admin.connect("wrong", "weizmann", "seminar-site")
        self.assertEqual(self.admin.state, State.DISCONNECTED)
        self.assertEqual(self.admin.status.last.level, "error")

    def test_connect_requires_all_fields(self) -> None:
        with self.assertRaises(WorkflowError):
            self.admin.connect("secret", "", "seminar-site")
        self.assertEqual(self.admin.status.last.text, "Please fill in all fields")

    def test_load_requires_connection(self) -> None:
        with self.assertRaises(WorkflowError):
            self.admin.load(SCHEDULE_PATH)

    def test_disconnect_forgets_token(self) -> None:
        self.connect_and_load()
        self.admin.disconnect()
        self.assertEqual(self.admin.state, State.DISCONNECTED)
        self.assertEqual(self.admin.buffer, "")
        self.assertIsNone(load_session_credentials(self.creds_path))
        with self.assertRaises(WorkflowError):
            self.admin.load(SCHEDULE_PATH)


class TestLoadAndEdit(AdminTestCase):
    def test_load_captures_content_and_token(self) -> None:
        self.connect_and_load()
        self.assertEqual(self.admin.state, State.LOADED)
        self.assertEqual(json.loads(self.admin.buffer), [EVENT])
        self.assertEqual(self.admin.version_token, self.fake.sha_of(SCHEDULE_PATH))
        self.assertFalse(self.admin.dirty)
        self.assertFalse(self.admin.can_save)

    def test_load_missing_file_keeps_state(self) -> None:
        self.admin.connect("secret", "weizmann", "seminar-site")
        with self.assertRaises(NotFound):
            self.admin.load("data/missing.json")
        self.assertEqual(self.admin.state, State.CONNECTED)
        self.assertIsNone(self.admin.current_path)

    def test_edit_enters_editing(self) -> None:
        self.connect_and_load()
        self.admin.edit("[]")
        self.assertEqual(self.admin.state, State.EDITING)
        self.assertTrue(self.admin.can_save)

    def test_format_round_trip(self) -> None:
        self.connect_and_load()
        compact = json.dumps([EVENT], separators=(",", ":"))
        self.admin.edit(compact)
        self.admin.format_buffer()
        self.assertEqual(json.loads(self.admin.buffer), json.loads(compact))
        self.assertEqual(self.admin.buffer, pretty_json([EVENT]))

    def test_format_invalid_json(self) -> None:
        self.connect_and_load()
        self.admin.edit("[{")
        with self.assertRaises(InvalidJSON):
            self.admin.format_buffer()
        self.assertEqual(self.admin.buffer, "[{")

    def test_add_event_template(self) -> None:
        self.connect_and_load()
        template = self.admin.add_event_template()
        data = json.loads(self.admin.buffer)
        self.assertEqual(len(data), 2)
        self.assertEqual(data[-1], template)
        self.assertEqual(validate_event(template, 1), [])
        self.assertTrue(template["id"].endswith("-new-event"))
        self.assertEqual(template["room"], "Physics Lec. Room A")
        self.assertEqual(self.admin.state, State.EDITING)

    def test_add_event_requires_array(self) -> None:
        self.connect_and_load(SETTINGS_PATH)
        with self.assertRaises(WorkflowError):
            self.admin.add_event_template()

    def test_sort_by_date(self) -> None:
        self.connect_and_load()
        early = dict(EVENT, id="e0", datetime="2098-05-01T10:00:00+00:00")
        self.admin.edit(json.dumps([EVENT, early]))
        self.admin.sort_by_date()
        self.assertEqual([e["id"] for e in json.loads(self.admin.buffer)], ["e0", "e1"])

    def test_validate_reports_schedule_issues(self) -> None:
        self.connect_and_load()
        self.admin.edit(json.dumps([dict(EVENT, level="expert", speakers="Alice")]))
        report = self.admin.validate()
        self.assertFalse(report.ok)
        self.assertEqual({i.code for i in report.issues}, {"InvalidEnum", "InvalidType"})

    def test_validate_settings_only_checks_syntax(self) -> None:
        self.connect_and_load(SETTINGS_PATH)
        self.assertTrue(self.admin.validate().ok)

    def test_restore(self) -> None:
        self.connect_and_load()
        with self.assertRaises(InvalidJSON):
            self.admin.restore("not json")
        self.admin.restore("[]")
        self.assertEqual(self.admin.state, State.EDITING)
        self.assertEqual(self.admin.buffer, "[]")

    def test_restore_file(self) -> None:
        p = Path(self.tmp.name) / "local.json"
        p.write_text("[]", encoding="utf-8")
        self.admin.restore_file(p)
        self.assertEqual(self.admin.state, State.EDITING)

    def test_backup(self) -> None:
        self.connect_and_load()
        out = self.admin.backup(self.tmp.name)
        self.assertEqual(out.name, "backup-data-schedule-2026-10-19.json")
        self.assertEqual(out.read_text(encoding="utf-8"), self.admin.buffer)

    def test_backup_empty_buffer(self) -> None:
        with self.assertRaises(WorkflowError):
            self.admin.backup(self.tmp.name)


class TestSave(AdminTestCase):
    def test_save_success(self) -> None:
        self.connect_and_load()
        old = self.admin.version_token
        self.admin.edit(json.dumps([dict(EVENT, title="New title")]))

        token = self.admin.save()

        self.assertNotEqual(token, old)
        self.assertEqual(self.admin.version_token, self.fake.sha_of(SCHEDULE_PATH))
        self.assertEqual(self.admin.state, State.LOADED)
        self.assertFalse(self.admin.dirty)
        self.assertEqual(json.loads(self.fake.text_of(SCHEDULE_PATH))[0]["title"], "New title")
        self.assertEqual(self.fake.calls[-1]["json"]["message"], "chore(schedule.json): update")

    def test_consecutive_saves_use_fresh_token(self) -> None:
        self.connect_and_load()
        self.admin.edit("[]")
        self.admin.save("first")
        self.admin.edit(json.dumps([EVENT]))
        self.admin.save("second")
        self.assertEqual(self.fake.calls[-1]["json"]["message"], "second")
        self.assertEqual(self.admin.state, State.LOADED)

    def test_conflict_keeps_buffer_and_editing_state(self) -> None:
        self.connect_and_load()
        # someone else saves in between
        self.fake.put_file(SCHEDULE_PATH, "[]")
        edited = json.dumps([dict(EVENT, title="Mine")])
        self.admin.edit(edited)

        with self.assertRaises(ConflictError):
            self.admin.save()

        self.assertEqual(self.admin.state, State.EDITING)
        self.assertEqual(self.admin.buffer, edited)
        self.assertTrue(self.admin.dirty)
        self.assertEqual(self.fake.text_of(SCHEDULE_PATH), "[]")
        self.assertEqual(self.admin.status.last.level, "error")

        self.admin.reload()
        self.assertEqual(self.admin.buffer, "[]")
        self.assertEqual(self.admin.state, State.LOADED)

    def test_stale_token_conflicts(self) -> None:
        self.connect_and_load()
        self.fake.put_file(SCHEDULE_PATH, "[1]")
        self.admin.version_token = "abc"
        self.admin.edit("[2]")
        with self.assertRaises(ConflictError):
            self.admin.save()
        self.assertEqual(self.admin.buffer, "[2]")
        self.assertEqual(self.admin.state, State.EDITING)

    def test_invalid_json_blocks_save(self) -> None:
        self.connect_and_load()
        before = self.fake.text_of(SCHEDULE_PATH)
        self.admin.edit("[{broken")
        with self.assertRaises(InvalidJSON):
            self.admin.save()
        self.assertEqual(self.admin.state, State.EDITING)
        self.assertEqual(self.fake.text_of(SCHEDULE_PATH), before)

    def test_schedule_issues_only_warn(self) -> None:
        self.connect_and_load()
        self.admin.edit(json.dumps([{"id": "x"}]))
        self.admin.save()
        self.assertEqual(self.fake.text_of(SCHEDULE_PATH), json.dumps([{"id": "x"}]))
        levels = [m.level for m in self.admin.status.messages]
        self.assertIn("warning", levels)

    def test_unreadable_save_reply_returns_to_editing(self) -> None:
        self.connect_and_load()
        self.admin.edit("[]")
        self.fake.response_override = FakeResponse(200, None, text="<html>proxy login</html>")

        with self.assertRaises(TransportError):
            self.admin.save()

        self.assertEqual(self.admin.state, State.EDITING)
        self.assertEqual(self.admin.buffer, "[]")
        self.assertTrue(self.admin.dirty)
        self.assertEqual(self.admin.status.last.level, "error")

    def test_unexpected_store_failure_returns_to_editing(self) -> None:
        self.connect_and_load()
        self.admin.edit("[]")

        def boom(*args, **kwargs):
            raise RuntimeError("store crashed")

        self.admin.store.write = boom
        with self.assertRaises(RuntimeError):
            self.admin.save()
        self.assertEqual(self.admin.state, State.EDITING)
        self.assertFalse(self.admin.busy)

    def test_save_without_changes(self) -> None:
        self.connect_and_load()
        with self.assertRaises(WorkflowError):
            self.admin.save()

    def test_save_without_file(self) -> None:
        self.admin.restore("[]")
        with self.assertRaises(WorkflowError):
            self.admin.save()


class ReentrantStore:
    """
    Store whose write tries to start another operation on the same session.
    """

    def __init__(self, inner: GitHubDocumentStore) -> None:
        self.inner = inner
        self.admin: Optional[AdminSession] = None
        self.nested_error: Optional[Exception] = None

    def probe(self):
        return self.inner.probe()

    def read(self, path):
        return self.inner.read(path)

    def write(self, path, content, token, message):
        try:
            self.admin.load(path)
        except OperationInProgress as e:
            self.nested_error = e
        return self.inner.write(path, content, token, message)


class TestOverlappingOperations(AdminTestCase):
    def test_second_operation_is_refused(self) -> None:
        store = ReentrantStore(GitHubDocumentStore("secret", "weizmann", "seminar-site", session=self.fake))
        self.admin.store_factory = lambda *a: store
        store.admin = self.admin

        self.connect_and_load()
        self.admin.edit("[]")
        self.admin.save()

        self.assertIsInstance(store.nested_error, OperationInProgress)
        self.assertEqual(self.admin.buffer, "[]")
        self.assertFalse(self.admin.busy)


class TestStatusLog(unittest.TestCase):
    def test_messages_are_timestamped_and_expire(self) -> None:
        now = [NOW]
        log = StatusLog(lambda: now[0])
        msg = log.add("File loaded successfully", "success")
        self.assertEqual(str(msg), "09:30:00: File loaded successfully")
        self.assertEqual(log.active(), [msg])

        now[0] = NOW + timedelta(seconds=6)
        self.assertEqual(log.active(), [])
        self.assertEqual(log.messages, [msg])

    def test_log_keeps_only_recent_messages(self) -> None:
        log = StatusLog(lambda: NOW, keep=3)
        for i in range(5):
            log.add(f"message {i}")
        self.assertEqual([m.text for m in log.messages], ["message 2", "message 3", "message 4"])
        self.assertEqual(log.count, 5)
        self.assertEqual([m.text for m in log.since(3)], ["message 3", "message 4"])
        self.assertEqual([m.text for m in log.since(0)], ["message 2", "message 3", "message 4"])
        self.assertEqual(log.since(5), [])


if __name__ == "__main__":
    unittest.main()
