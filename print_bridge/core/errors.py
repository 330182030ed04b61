"""
Exceptions for Print Bridge.

Hierarchy:
    PrintBridgeError (base)
    ├── ValidationError          - malformed input; not retried
    │   └── JobStateError        - operation not valid in the job's current state
    ├── AuthenticityError        - webhook signature missing or wrong
    ├── TransientDeliveryError   - network/timeout talking to the printer; retried
    ├── ExhaustedRetriesError    - retry budget spent; needs a manual retry
    ├── NotFoundError            - referenced order/job does not exist
    └── UpstreamError            - order source returned an error while polling

Only TransientDeliveryError causes the scheduler to redeliver a job on its own.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PrintBridgeError(Exception):
    """
    Base exception for all Print Bridge errors.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(PrintBridgeError):
    """Input failed validation (bad order payload, unknown document kind, ...)."""


class JobStateError(ValidationError):
    """
    A scheduler operation was requested on a job in the wrong state,
    e.g. retrying a job that has not failed.
    """

    def __init__(self, job_id: str, status: str, operation: str):
        super().__init__(
            f"Cannot {operation} print job {job_id} in status {status!r}",
            {"job_id": job_id, "status": status, "operation": operation},
        )
        self.job_id = job_id
        self.status = status


class AuthenticityError(PrintBridgeError):
    """Webhook signature did not verify."""


class TransientDeliveryError(PrintBridgeError):
    """
    Sending bytes to the printer failed in a way that may succeed later
    (connection refused, reset, timeout).
    """


class ExhaustedRetriesError(PrintBridgeError):
    """The automatic retry budget for a job has been used up."""

    def __init__(self, job_id: str, attempts: int, last_error: Optional[str] = None):
        message = f"Print job {job_id} failed after {attempts} attempts"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message, {"job_id": job_id, "attempts": attempts})
        self.job_id = job_id
        self.attempts = attempts


class NotFoundError(PrintBridgeError):
    """Referenced record is missing."""

    def __init__(self, kind: str, ident: Any):
        super().__init__(f"{kind} {ident} not found", {"kind": kind, "id": ident})
        self.kind = kind
        self.ident = ident


class UpstreamError(PrintBridgeError):
    """The external order source could not be read."""


__all__ = [
    "AuthenticityError",
    "ExhaustedRetriesError",
    "JobStateError",
    "NotFoundError",
    "PrintBridgeError",
    "TransientDeliveryError",
    "UpstreamError",
    "ValidationError",
]
