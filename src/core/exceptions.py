"""
Custom exceptions for the Match Video Upload API.
Every failure carries an ErrorKind value so callers can branch on data
instead of on the exception class.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds exposed at the service boundary."""
    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found_or_unauthorized"
    EXPIRED = "expired"
    CONFLICT = "conflict"
    PROVIDER = "provider"
    INTERNAL = "internal"


class UploadSessionException(Exception):
    """Base exception for all application errors."""
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details
        }


class ValidationException(UploadSessionException):
    """Raised when request data is malformed."""
    kind = ErrorKind.VALIDATION


class AuthenticationException(UploadSessionException):
    """Raised when no caller identity can be resolved."""
    kind = ErrorKind.UNAUTHENTICATED


class SessionNotFoundException(UploadSessionException):
    """Raised when a session is missing or belongs to someone else."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, session_id: str):
        super().__init__("Session not found or unauthorized", {"session_id": session_id})


class SessionExpiredException(UploadSessionException):
    """Raised when a session deadline has passed."""
    kind = ErrorKind.EXPIRED

    def __init__(self, session_id: str, expires_at: Optional[str] = None):
        details = {"session_id": session_id, "can_create_new": True}
        if expires_at:
            details["expires_at"] = expires_at
        super().__init__("Session expired", details)


class ConflictException(UploadSessionException):
    """Raised when the request conflicts with the current session state."""
    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, reason: str, details: Optional[dict] = None):
        details = dict(details or {})
        details["reason"] = reason
        super().__init__(message, details)

    @property
    def reason(self) -> str:
        return self.details["reason"]


class FileMismatchException(ConflictException):
    """Raised when a re-selected file is not the one the session was opened for."""

    def __init__(
        self,
        session_id: str,
        original_name: str,
        original_size: int,
        selected_name: str,
        selected_size: int
    ):
        message = (
            "The selected file does not match the original upload. "
            f"Original: {original_name} ({original_size} bytes), "
            f"selected: {selected_name} ({selected_size} bytes). "
            "Please select the same video file."
        )
        super().__init__(message, "file_mismatch", {
            "session_id": session_id,
            "original_name": original_name,
            "original_size": original_size,
            "selected_name": selected_name,
            "selected_size": selected_size
        })
        self.session_id = session_id
        self.original_name = original_name
        self.original_size = original_size
        self.selected_name = selected_name
        self.selected_size = selected_size


class SyncInProgressException(ConflictException):
    """Raised when a reconciliation for the same session is already running."""

    def __init__(self, session_id: str):
        super().__init__("Sync already in progress", "sync_in_progress", {"session_id": session_id})


class ProviderException(UploadSessionException):
    """Raised when the video hosting provider rejects or fails a call."""
    kind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        permanent: bool = False,
        reason: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, {
            "retryable": not permanent,
            "reason": reason,
            "status_code": status_code
        })
        self.permanent = permanent
        self.reason = reason
        self.status_code = status_code


class DynamoDBException(UploadSessionException):
    """Raised when DynamoDB operation fails."""
    kind = ErrorKind.INTERNAL


_CONFLICT_REASONS = {
    "sync_in_progress": SyncInProgressException,
}


def exception_from_payload(payload: dict) -> UploadSessionException:
    """
    Rebuild a typed exception from an API error body.

    Args:
        payload: JSON body produced by the exception handler

    Returns:
        UploadSessionException subclass matching the payload's kind
    """
    message = payload.get("message") or "Request failed"
    details = payload.get("details") or {}
    try:
        kind = ErrorKind(payload.get("kind"))
    except ValueError:
        kind = ErrorKind.INTERNAL

    if kind == ErrorKind.CONFLICT:
        reason = details.get("reason", "conflict")
        if reason == "file_mismatch":
            return FileMismatchException(
                details.get("session_id"),
                details.get("original_name"),
                details.get("original_size"),
                details.get("selected_name"),
                details.get("selected_size")
            )
        if reason in _CONFLICT_REASONS:
            return _CONFLICT_REASONS[reason](details.get("session_id"))
        return ConflictException(message, reason, details)
    if kind == ErrorKind.PROVIDER:
        return ProviderException(
            message,
            permanent=not details.get("retryable", True),
            reason=details.get("reason"),
            status_code=details.get("status_code")
        )
    if kind == ErrorKind.NOT_FOUND:
        return SessionNotFoundException(details.get("session_id"))
    if kind == ErrorKind.EXPIRED:
        return SessionExpiredException(details.get("session_id"), details.get("expires_at"))

    exc_class = {
        ErrorKind.VALIDATION: ValidationException,
        ErrorKind.UNAUTHENTICATED: AuthenticationException,
    }.get(kind, UploadSessionException)
    return exc_class(message, details)
