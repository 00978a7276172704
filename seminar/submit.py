"""
Speaker proposal form: validation rules and the relay client.

There is no backend of our own. A proposal that passes the checks below is
posted to a third-party form-intake service (Formspree style), which
forwards it by email.

Rules:
- email: local@domain.tld shape
- abstract: blocked outside 8-15 lines / 60-200 words,
  ideal band (green counter) is 10-12 lines / 80-150 words
- references: optional, one http(s) URL per line, at most 3
- title: longer than 100 characters only gets a hint, it does not block
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from seminar.errors import RelayError, SubmissionInvalid


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ABSTRACT_MIN_LINES = 8
ABSTRACT_MAX_LINES = 15
ABSTRACT_MIN_WORDS = 60
ABSTRACT_MAX_WORDS = 200
IDEAL_LINES = (10, 12)
IDEAL_WORDS = (80, 150)

MAX_REFERENCES = 3
TITLE_HINT_CHARS = 100

REQUIRED_FIELDS = ("name", "email", "affiliation", "title", "abstract")

# Field error codes
REQUIRED = "Required"
INVALID_EMAIL = "InvalidEmail"
ABSTRACT_TOO_SHORT = "AbstractTooShort"
ABSTRACT_TOO_LONG = "AbstractTooLong"
INVALID_URL = "InvalidType"
TOO_MANY_REFERENCES = "TooManyReferences"

# Counter cues
CUE_IDEAL = "ideal"
CUE_NEUTRAL = "neutral"
CUE_DANGER = "danger"

log = logging.getLogger(__name__)


@dataclass
class SubmissionDraft:
    name: str = ""
    email: str = ""
    affiliation: str = ""
    title: str = ""
    abstract: str = ""
    references: str = ""

    def clear(self) -> None:
        for f in fields(self):
            setattr(self, f.name, "")


@dataclass(frozen=True)
class FieldError:
    field: str
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def count_lines(text: str) -> int:
    return len(text.split("\n"))


def count_words(text: str) -> int:
    return len(text.split())


def counter_text(abstract: str) -> str:
    return f"{count_lines(abstract)} lines, {count_words(abstract)} words"


def abstract_cue(abstract: str) -> str:
    lines = count_lines(abstract)
    words = count_words(abstract)
    if IDEAL_LINES[0] <= lines <= IDEAL_LINES[1] and IDEAL_WORDS[0] <= words <= IDEAL_WORDS[1]:
        return CUE_IDEAL
    if lines > ABSTRACT_MAX_LINES or words > ABSTRACT_MAX_WORDS:
        return CUE_DANGER
    return CUE_NEUTRAL


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def reference_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def validate_field(name: str, value: str) -> Optional[FieldError]:
    """
    Check one field (what happens on blur). Returns None if it is fine.
    """
    value = (value or "").strip()

    if name in REQUIRED_FIELDS and not value:
        return FieldError(name, REQUIRED, "This field is required")

    if name == "email" and value and not is_valid_email(value):
        return FieldError(name, INVALID_EMAIL, "Please enter a valid email address")

    if name == "abstract" and value:
        lines = count_lines(value)
        words = count_words(value)
        if lines < ABSTRACT_MIN_LINES or words < ABSTRACT_MIN_WORDS:
            return FieldError(name, ABSTRACT_TOO_SHORT, "Abstract should be 10-12 lines (approximately 80-150 words)")
        if lines > ABSTRACT_MAX_LINES or words > ABSTRACT_MAX_WORDS:
            return FieldError(name, ABSTRACT_TOO_LONG, "Abstract is too long. Please keep it to 10-12 lines")

    if name == "references" and value:
        urls = reference_lines(value)
        if any(not is_valid_url(u) for u in urls):
            return FieldError(name, INVALID_URL, "Please enter valid URLs (one per line)")
        if len(urls) > MAX_REFERENCES:
            return FieldError(name, TOO_MANY_REFERENCES, f"Please provide no more than {MAX_REFERENCES} references")

    return None


def validate_draft(draft: SubmissionDraft) -> list[FieldError]:
    """
    Whole-form check (what happens on submit). Empty list = may be sent.
    """
    errors: list[FieldError] = []
    for f in fields(draft):
        err = validate_field(f.name, getattr(draft, f.name))
        if err is not None:
            errors.append(err)
    return errors


def advisories(draft: SubmissionDraft) -> list[str]:
    """
    Soft hints that never block the submission.
    """
    hints: list[str] = []
    if len(draft.title.strip()) > TITLE_HINT_CHARS:
        hints.append(f"Title should be under {TITLE_HINT_CHARS} characters")
    if draft.abstract.strip() and abstract_cue(draft.abstract) != CUE_IDEAL:
        hints.append(f"Abstract: {counter_text(draft.abstract)} (ideal is 10-12 lines, 80-150 words)")
    return hints


def format_references(text: str) -> str:
    return "\n".join(f"Reference {i}: {url}" for i, url in enumerate(reference_lines(text), start=1))


def _relay_error_text(resp: Any) -> str:
    """
    Pull a readable error out of the relay's answer (JSON or an HTML page).
    """
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        if not err and isinstance(data.get("errors"), list):
            err = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in data["errors"])
        if err:
            return str(err)

    body = getattr(resp, "text", "") or ""
    if "<" in body:
        soup = BeautifulSoup(body, "html.parser")
        text = " ".join(soup.get_text(" ", strip=True).split())
        if text:
            return text[:300]
    return "Submission failed"


class FormRelayClient:
    """
    Posts validated proposals to the form-intake endpoint.
    """

    def __init__(self, action_url: str, session: Any = None, timeout: float = 30) -> None:
        self.action_url = action_url
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def build_payload(
        self, draft: SubmissionDraft, subject: str, cc: str = "", next_url: str = ""
    ) -> dict[str, str]:
        payload = {f.name: getattr(draft, f.name).strip() for f in fields(draft)}
        if payload["references"]:
            payload["references"] = format_references(payload["references"])
        payload["_subject"] = subject
        if cc:
            payload["_cc"] = cc
        if next_url:
            payload["_next"] = next_url
        return payload

    def submit(self, draft: SubmissionDraft, subject: str, cc: str = "", next_url: str = "") -> None:
        """
        Validate and send. On success the draft is cleared; on failure it is kept.
        """
        errors = validate_draft(draft)
        if errors:
            raise SubmissionInvalid(errors)

        payload = self.build_payload(draft, subject, cc, next_url)
        log.debug("POST %s", self.action_url)
        try:
            resp = self.session.post(
                self.action_url,
                data=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RelayError(f"Failed to submit proposal: {e}") from e

        log.debug("POST %s -> %s", self.action_url, resp.status_code)
        if not 200 <= resp.status_code < 300:
            raise RelayError(_relay_error_text(resp))

        draft.clear()
