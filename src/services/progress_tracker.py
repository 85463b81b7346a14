"""
Progress Tracker.
Records byte progress, derives percentages and applies expiry transitions.
"""
from datetime import datetime
from typing import Callable, Optional
from src.core import config
from src.core.exceptions import (
    ConflictException,
    SessionExpiredException,
    SessionNotFoundException,
    ValidationException
)
from src.core.logger import get_logger
from src.models.dto.upload_dto import ProgressReportResponse
from src.models.upload_session import (
    ACTIVE_STATUSES,
    EXPIRED_MESSAGE,
    SessionStatus,
    UploadSession,
    to_iso,
    utc_now
)
from src.repositories.progress_store import InMemoryProgressStore, ProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository

logger = get_logger(__name__)


def validate_uploaded_bytes(uploaded_bytes) -> int:
    # bool is an int subclass but never a byte count
    if isinstance(uploaded_bytes, bool) or not isinstance(uploaded_bytes, int):
        raise ValidationException("uploaded_bytes must be an integer", {"field": "uploaded_bytes"})
    if uploaded_bytes < 0:
        raise ValidationException("uploaded_bytes must not be negative", {"field": "uploaded_bytes"})
    return uploaded_bytes


class ProgressTracker:
    """Owns the byte-progress side of the session lifecycle."""

    def __init__(
        self,
        session_repository: UploadSessionRepository = None,
        progress_store: ProgressStore = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.session_repository = session_repository or UploadSessionRepository()
        self.progress_store = progress_store or InMemoryProgressStore()
        self.clock = clock or utc_now

    @staticmethod
    def calculate_percentage(uploaded_bytes: int, file_size: int) -> int:
        """
        Completion percentage for display, rounded half up and clamped to [0, 100].

        Returns:
            0 for an empty file, otherwise round(100 * uploaded_bytes / file_size)
        """
        if file_size <= 0:
            return 0
        percentage = (200 * uploaded_bytes + file_size) // (2 * file_size)
        return max(0, min(100, percentage))

    def is_stalled(self, session: UploadSession, now: datetime) -> bool:
        """An uploading session that has not moved within the stall timeout."""
        if session.status != SessionStatus.UPLOADING:
            return False
        idle = (now - session.updated_at).total_seconds()
        return idle > config.settings.upload_stall_timeout_seconds

    def apply_expiry(self, session: UploadSession, now: datetime) -> UploadSession:
        """
        Move an overdue non-terminal session to failed.

        The write is conditional on the stored status still being non-terminal,
        so repeated calls after the first do not write again.

        Returns:
            The session as stored after the check
        """
        if session.is_terminal or not session.is_expired(now):
            return session

        updated = self.session_repository.update(
            session.session_id,
            session.owner_id,
            {'status': SessionStatus.FAILED, 'error_message': EXPIRED_MESSAGE},
            expected_statuses=ACTIVE_STATUSES
        )
        if updated is None:
            # another writer reached a terminal state first
            current = self.session_repository.get(session.session_id, session.owner_id)
            return current or session

        self.progress_store.clear(session.session_id)
        logger.info(f"Session {session.session_id} expired at {to_iso(session.expires_at)}")
        return updated

    def record_progress(self, session_id: str, owner_id: str, uploaded_bytes) -> ProgressReportResponse:
        """
        Record the number of bytes received so far.

        Args:
            session_id: Session identifier
            owner_id: Caller identity
            uploaded_bytes: Total bytes transferred so far

        Returns:
            ProgressReportResponse with the resulting status and percentage

        Raises:
            ValidationException: If uploaded_bytes is not a non-negative integer
            SessionNotFoundException: If the session does not resolve under the owner
            SessionExpiredException: If the session deadline has passed
            ConflictException: If the session is already terminal
        """
        if not session_id:
            raise ValidationException("session_id is required", {"field": "session_id"})
        uploaded_bytes = validate_uploaded_bytes(uploaded_bytes)

        for _ in range(max(config.settings.progress_update_max_attempts, 1)):
            session = self.session_repository.get(session_id, owner_id)
            if session is None:
                raise SessionNotFoundException(session_id)

            now = self.clock()
            if session.status != SessionStatus.COMPLETED and session.is_expired(now):
                self.apply_expiry(session, now)
                raise SessionExpiredException(session_id, to_iso(session.expires_at))

            if session.is_terminal:
                raise ConflictException(
                    f"Session is already {session.status.value}",
                    "session_terminal",
                    {"session_id": session_id, "status": session.status.value}
                )

            if uploaded_bytes < session.uploaded_bytes:
                logger.info(
                    f"Ignoring stale progress for {session_id}: "
                    f"{uploaded_bytes} < {session.uploaded_bytes}"
                )
                return self._to_response(session, accepted=False)

            status = SessionStatus.PROCESSING if uploaded_bytes >= session.file_size else SessionStatus.UPLOADING
            updated = self.session_repository.update(
                session_id,
                owner_id,
                {'uploaded_bytes': uploaded_bytes, 'status': status},
                expected_statuses=ACTIVE_STATUSES,
                max_uploaded_bytes=uploaded_bytes,
                not_expired_at=now
            )
            if updated is not None:
                self.progress_store.record(session_id, uploaded_bytes, status.value, now)
                return self._to_response(updated, accepted=True)

            logger.debug(f"Progress write for {session_id} lost a race, re-reading")

        raise ConflictException(
            "Session is being updated concurrently, please retry",
            "concurrent_update",
            {"session_id": session_id}
        )

    def _to_response(self, session: UploadSession, accepted: bool) -> ProgressReportResponse:
        return ProgressReportResponse(
            session_id=session.session_id,
            status=session.status.value,
            progress_percentage=self.calculate_percentage(session.uploaded_bytes, session.file_size),
            uploaded_bytes=session.uploaded_bytes,
            total_bytes=session.file_size,
            accepted=accepted
        )
