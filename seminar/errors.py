"""
Exception types shared across the package.

Remote failures are split by what the operator has to do about them:
- AuthFailure: fix the token / repository name
- NotFound: pick another path
- ConflictError: someone else saved first -> reload and redo the edit
- TransportError: anything else, simply try again
"""

from __future__ import annotations

from typing import Any, Optional


class SeminarError(Exception):
    """Base class for every error raised on purpose by this package."""


class RemoteStoreError(SeminarError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class AuthFailure(RemoteStoreError):
    pass


class NotFound(RemoteStoreError):
    pass


class ConflictError(RemoteStoreError):
    pass


class TransportError(RemoteStoreError):
    pass


class InvalidJSON(SeminarError):
    pass


class WorkflowError(SeminarError):
    """An admin action was requested in a state that does not allow it."""


class OperationInProgress(WorkflowError):
    pass


class ScheduleValidationError(SeminarError):
    def __init__(self, issues: list[Any]) -> None:
        self.issues = list(issues)
        first = str(self.issues[0]) if self.issues else "invalid schedule"
        more = f" (+{len(self.issues) - 1} more)" if len(self.issues) > 1 else ""
        super().__init__(first + more)


class SubmissionInvalid(SeminarError):
    def __init__(self, errors: list[Any]) -> None:
        self.errors = list(errors)
        super().__init__("Please fix the errors in the form")


class RelayError(SeminarError):
    pass
