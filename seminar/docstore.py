"""
Remote document store on top of the GitHub contents API.

One JSON file = one document. Every read returns the file's blob SHA
(the version token); every write must send back the SHA it was based on.
GitHub refuses the write if the file changed in the meantime, which is
how two admins editing at once are detected.

Content travels base64-encoded; callers only ever see text.
No call is retried automatically.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import requests

from seminar.errors import AuthFailure, ConflictError, NotFound, TransportError


GITHUB_API_BASE = "https://api.github.com"

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryInfo:
    full_name: str
    default_branch: str
    private: bool


@dataclass(frozen=True)
class RemoteDocument:
    path: str
    content: str
    version_token: str
    size: int
    last_modified: Optional[str]


def encode_content(content: str | bytes) -> str:
    raw = content.encode("utf-8") if isinstance(content, str) else content
    return base64.b64encode(raw).decode("ascii")


def decode_content(encoded: str) -> str:
    # GitHub wraps the base64 body every 60 chars
    return base64.b64decode("".join(encoded.split())).decode("utf-8")


def _error_message(resp: Any) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"{resp.status_code} {getattr(resp, 'reason', '') or ''}".strip()


def raise_for_status(resp: Any, action: str) -> None:
    """
    Map a non-2xx response onto the error taxonomy.
    """
    status = resp.status_code
    if 200 <= status < 300:
        return

    msg = f"Failed to {action}: {_error_message(resp)}"
    if status in (401, 403):
        raise AuthFailure(msg, status)
    if status == 404:
        raise NotFound(msg, status)
    if status in (409, 422):
        raise ConflictError(msg, status)
    raise TransportError(msg, status)


class GitHubDocumentStore:
    """
    Read/write single files of one repository.

    `session` only needs a requests-compatible .request() method,
    which keeps tests free of real network access.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        session: Any = None,
        api_base: str = GITHUB_API_BASE,
        branch: Optional[str] = None,
        timeout: float = 30,
    ) -> None:
        self.token = token
        self.owner = owner
        self.repo = repo
        self.session = session if session is not None else requests.Session()
        self.api_base = api_base.rstrip("/")
        self.branch = branch
        self.timeout = timeout

    @property
    def repo_url(self) -> str:
        return f"{self.api_base}/repos/{quote(self.owner)}/{quote(self.repo)}"

    def _contents_url(self, path: str) -> str:
        return f"{self.repo_url}/contents/{quote(path.strip('/'))}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def _request(self, method: str, url: str, action: str, **kwargs: Any) -> Any:
        log.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"Failed to {action}: {e}") from e

        log.debug("%s %s -> %s", method, url, resp.status_code)
        raise_for_status(resp, action)
        return resp

    @staticmethod
    def _json(resp: Any, action: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"Failed to {action}: response is not JSON", resp.status_code) from e

    def probe(self) -> RepositoryInfo:
        """
        Check that the token can see the repository.
        """
        resp = self._request("GET", self.repo_url, "connect")
        data = self._json(resp, "connect")
        if not isinstance(data, dict):
            raise TransportError("Failed to connect: unexpected response", resp.status_code)
        return RepositoryInfo(
            full_name=str(data.get("full_name") or f"{self.owner}/{self.repo}"),
            default_branch=str(data.get("default_branch") or "main"),
            private=bool(data.get("private", False)),
        )

    def read(self, path: str) -> RemoteDocument:
        params = {"ref": self.branch} if self.branch else None
        resp = self._request("GET", self._contents_url(path), "load file", params=params)
        data = self._json(resp, "load file")

        if not isinstance(data, dict) or data.get("type", "file") != "file" or "content" not in data:
            raise NotFound(f"Failed to load file: {path} is not a file")
        if data.get("encoding", "base64") != "base64":
            # GitHub leaves content empty for files over 1 MB
            raise TransportError(f"Failed to load file: {path} is too large for the contents API")

        try:
            content = decode_content(str(data["content"]))
        except (ValueError, UnicodeDecodeError) as e:
            raise TransportError(f"Failed to load file: undecodable content ({e})") from e

        return RemoteDocument(
            path=path,
            content=content,
            version_token=str(data["sha"]),
            size=int(data.get("size", len(content.encode("utf-8")))),
            last_modified=resp.headers.get("Last-Modified"),
        )

    def write(self, path: str, content: str | bytes, version_token: str, message: str) -> str:
        """
        Conditional write. Returns the new version token.

        Raises ConflictError when `version_token` is no longer the file's current SHA.
        """
        body: dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
            "sha": version_token,
        }
        if self.branch:
            body["branch"] = self.branch

        resp = self._request("PUT", self._contents_url(path), "save", json=body)
        data = self._json(resp, "save")
        try:
            return str(data["content"]["sha"])
        except (KeyError, TypeError) as e:
            raise TransportError("Failed to save: response carried no new SHA") from e
