"""
Upload Session domain model.
Represents one attempt to upload one video file to the hosting provider.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (SessionStatus.UPLOADING, SessionStatus.PROCESSING)
TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED)

EXPIRED_MESSAGE = "Session expired"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a timestamp so lexical and chronological order agree."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UploadSession:
    """Domain model for a resumable upload session."""

    def __init__(
        self,
        session_id: str,
        owner_id: str,
        file_name: str,
        file_size: int,
        expires_at: datetime,
        created_at: datetime,
        updated_at: datetime,
        status: SessionStatus = SessionStatus.UPLOADING,
        uploaded_bytes: int = 0,
        external_upload_url: Optional[str] = None,
        external_video_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        error_message: Optional[str] = None
    ):
        self.session_id = session_id
        self.owner_id = owner_id
        self.file_name = file_name
        self.file_size = file_size
        self.expires_at = expires_at
        self.created_at = created_at
        self.updated_at = updated_at
        self.status = SessionStatus(status)
        self.uploaded_bytes = uploaded_bytes
        self.external_upload_url = external_upload_url
        self.external_video_id = external_video_id
        self.metadata = metadata or {}
        self.error_message = error_message

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self):
        return (
            f"UploadSession(session_id={self.session_id}, status={self.status.value}, "
            f"uploaded_bytes={self.uploaded_bytes}/{self.file_size})"
        )
