from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from seminar.admin import EDITABLE_FILES, AdminSession, State
from seminar.errors import ConflictError, SeminarError
from seminar.settings import Settings
from seminar.storage import load_session_credentials


console = Console()

LEVEL_STYLE = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "bold red",
}


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str, password: bool = False) -> str:
    return console.input(msg, password=password)


def _show_new_status(session: AdminSession, since: int) -> int:
    """
    Print status messages added since `since`; returns the new message count.
    """
    for msg in session.status.since(since):
        style = LEVEL_STYLE.get(msg.level, "white")
        console.print(f"[{style}]{msg}[/]", highlight=False)
    return session.status.count


def run_admin(settings: Settings, default_token: str = "", session: Optional[AdminSession] = None) -> None:
    """
    Interactive menu loop driving one AdminSession.
    """
    session = session if session is not None else AdminSession(settings=settings)
    seen = 0

    cached = load_session_credentials(session.credentials_path)
    owner_default, repo_default = settings.repo_location
    token_default = default_token
    if cached is not None:
        token_default = cached.token or token_default
        owner_default = cached.owner or owner_default
        repo_default = cached.repo or repo_default

    while True:
        _print_header(session)

        choice = _prompt(
            "\n[1] Connect to repository\n"
            "[2] Load file\n"
            "[3] Validate\n"
            "[4] Format JSON\n"
            "[5] Add new event template\n"
            "[6] Sort events by date\n"
            "[7] Edit in $EDITOR\n"
            "[8] Restore from local file\n"
            "[9] Download backup\n"
            "[10] Save (commit)\n"
            "[11] Reload from repository\n"
            "[12] Disconnect and forget token\n"
            "[0] Exit\n"
            "Select: "
        ).strip()

        if choice == "0":
            if session.dirty and _prompt("Unsaved changes will be lost. Exit anyway? [y/N]: ").strip().lower() != "y":
                continue
            _println("Bye.")
            return

        try:
            if choice == "1":
                _flow_connect(session, token_default, owner_default, repo_default)
            elif choice == "2":
                _flow_load(session)
            elif choice == "3":
                _flow_validate(session)
            elif choice == "4":
                session.format_buffer()
            elif choice == "5":
                session.add_event_template()
            elif choice == "6":
                session.sort_by_date()
            elif choice == "7":
                _flow_edit(session)
            elif choice == "8":
                path = _prompt("Path of the JSON file to restore [blank = back]: ").strip()
                if path:
                    session.restore_file(Path(path).expanduser())
            elif choice == "9":
                _flow_backup(session)
            elif choice == "10":
                _flow_save(session)
            elif choice == "11":
                session.reload()
            elif choice == "12":
                session.disconnect()
                token_default = default_token
            else:
                _println("Invalid choice.")
        except ConflictError:
            seen = _show_new_status(session, seen)
            _println("[yellow]Your buffer is unchanged. Download a backup, reload, and redo your edits.[/]")
            continue
        except (SeminarError, OSError) as e:
            # most errors are already in the status log
            if not session.status.last or session.status.last.text != str(e):
                _println(f"[bold red]{e}[/]")

        seen = _show_new_status(session, seen)


def _print_header(session: AdminSession) -> None:
    _println("\n=== Seminar admin ===")
    if session.repository is not None:
        _println(f"Repository: {session.repository.full_name} | state={session.state.value}")
    else:
        _println(f"Not connected | state={session.state.value}")

    info = session.file_info
    if info is not None:
        flag = " [yellow](modified)[/]" if session.dirty else ""
        _println(f"File: {info.path} | size={info.size} | modified={info.last_modified or '-'}{flag}")


def _flow_connect(session: AdminSession, token: str, owner: str, repo: str) -> None:
    hint = " [blank = keep]" if token else ""
    token_in = _prompt(f"GitHub token{hint}: ", password=True).strip() or token
    owner_in = _prompt(f"Repository owner [{owner}]: ").strip() or owner
    repo_in = _prompt(f"Repository name [{repo}]: ").strip() or repo
    session.connect(token_in, owner_in, repo_in)


def _flow_load(session: AdminSession) -> None:
    table = Table(title="Files", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Path")
    for i, path in enumerate(EDITABLE_FILES, start=1):
        table.add_row(str(i), path)
    console.print(table)

    pick = _prompt("Enter number or a path [blank = back]: ").strip()
    if not pick:
        return
    if pick.isdigit():
        i = int(pick)
        if not (1 <= i <= len(EDITABLE_FILES)):
            _println("Out of range.")
            return
        path = EDITABLE_FILES[i - 1]
    else:
        path = pick

    if session.dirty and _prompt("Discard unsaved changes? [y/N]: ").strip().lower() != "y":
        return
    session.load(path)


def _flow_validate(session: AdminSession) -> None:
    report = session.validate()
    if report.issues:
        table = Table(title="Validation problems", box=box.SIMPLE)
        table.add_column("Event", justify="right")
        table.add_column("Code")
        table.add_column("Message")
        for issue in report.issues:
            idx = "" if issue.index is None else str(issue.index)
            table.add_row(idx, f"[magenta]{issue.code}[/]", issue.message)
        console.print(table)


def _flow_edit(session: AdminSession) -> None:
    """
    Open the buffer in the user's editor and take the result back.
    """
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"

    fd, tmp = tempfile.mkstemp(suffix=".json", prefix="seminar-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(session.buffer)

        result = subprocess.run([*shlex.split(editor), tmp], check=False)
        if result.returncode != 0:
            _println(f"Editor exited with code {result.returncode}, buffer unchanged.")
            return

        text = Path(tmp).read_text(encoding="utf-8")
    finally:
        Path(tmp).unlink(missing_ok=True)

    if text == session.buffer:
        _println("No changes.")
        return
    session.edit(text)
    _println("Buffer updated.")


def _flow_backup(session: AdminSession) -> None:
    downloads = Path.home() / "Downloads"
    out_in = _prompt(f"Backup directory [{downloads}]: ").strip()
    out_dir = Path(out_in).expanduser() if out_in else downloads

    out = session.backup(out_dir)
    _println(f"Saved to: {out.resolve()}")


def _flow_save(session: AdminSession) -> None:
    if not session.can_save:
        _println("Nothing to save." if session.state != State.DISCONNECTED else "Not connected.")
        return

    default = session.default_commit_message()
    message = _prompt(f"Commit message [{default}]: ").strip()
    session.save(message)
