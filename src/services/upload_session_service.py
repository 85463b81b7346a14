"""
Upload Session Service.
Owns the lifecycle of an upload attempt: uploading -> processing -> completed,
with failed reachable from any non-terminal state.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional
from src.core import config
from src.core.exceptions import (
    ConflictException,
    SessionExpiredException,
    SessionNotFoundException,
    ValidationException
)
from src.core.logger import get_logger
from src.models.dto.upload_dto import (
    InitiateUploadResponse,
    PendingSessionsResponse,
    PendingSessionStats,
    ProgressReportResponse,
    ResumeUploadResponse,
    SessionStatusResponse,
    SyncVideoIdResponse,
    UploadProgressResponse,
    VideoInfoResponse
)
from src.models.upload_session import ACTIVE_STATUSES, EXPIRED_MESSAGE, SessionStatus, UploadSession, to_iso, utc_now
from src.repositories.progress_store import InMemoryProgressStore, ProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository
from src.repositories.youtube_repository import YouTubeRepository
from src.services.external_sync_adapter import ExternalSyncAdapter
from src.services.progress_tracker import ProgressTracker
from src.services.reconciliation_guard import ensure_same_file

logger = get_logger(__name__)


class UploadSessionService:
    """Service for upload session business operations."""

    def __init__(
        self,
        session_repository: UploadSessionRepository = None,
        youtube_repository: YouTubeRepository = None,
        progress_store: ProgressStore = None,
        progress_tracker: ProgressTracker = None,
        sync_adapter: ExternalSyncAdapter = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.session_repository = session_repository or UploadSessionRepository()
        self.youtube_repository = youtube_repository or YouTubeRepository()
        self.progress_store = progress_store or InMemoryProgressStore()
        self.clock = clock or utc_now
        self.progress_tracker = progress_tracker or ProgressTracker(
            session_repository=self.session_repository,
            progress_store=self.progress_store,
            clock=self.clock
        )
        self.sync_adapter = sync_adapter or ExternalSyncAdapter(
            youtube_repository=self.youtube_repository,
            session_repository=self.session_repository,
            progress_store=self.progress_store,
            progress_tracker=self.progress_tracker,
            clock=self.clock
        )

    def initiate(self, owner_id: str, file_name: str, file_size: int, metadata: dict) -> InitiateUploadResponse:
        """
        Open a new upload session.

        The provider issues the upload URL first; the session is only
        persisted once a URL exists.

        Args:
            owner_id: Caller identity
            file_name: Name of the file to upload
            file_size: Size of the file in bytes
            metadata: Video metadata forwarded to the provider

        Returns:
            InitiateUploadResponse with session id, upload URL and deadline

        Raises:
            ValidationException: If the file description is invalid
            ProviderException: If the provider refuses to open an upload
        """
        if not file_name or not file_name.strip():
            raise ValidationException("file_name is required", {"field": "file_name"})
        if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
            raise ValidationException("file_size must be a non-negative integer", {"field": "file_size"})
        max_size = config.settings.max_file_size_bytes
        if file_size > max_size:
            raise ValidationException(
                f"File size ({file_size / (1024 ** 3):.2f}GB) exceeds maximum allowed size of "
                f"{max_size / (1024 ** 3):.0f}GB",
                {"field": "file_size", "max_file_size_bytes": max_size}
            )

        upload_url = self.youtube_repository.create_upload_endpoint(file_size, metadata)

        now = self.clock()
        expires_at = now + timedelta(hours=config.settings.session_ttl_hours)
        session_id = self.session_repository.create(
            owner_id=owner_id,
            file_name=file_name,
            file_size=file_size,
            expires_at=expires_at,
            external_upload_url=upload_url,
            metadata=metadata
        )
        self.progress_store.start(session_id, file_size, now)

        logger.info(f"Upload session {session_id} created for {file_name} ({file_size} bytes)")
        return InitiateUploadResponse(session_id=session_id, upload_url=upload_url, expires_at=expires_at)

    def report_progress(self, session_id: str, owner_id: str, uploaded_bytes: int) -> ProgressReportResponse:
        """Record transferred bytes; see ProgressTracker.record_progress."""
        return self.progress_tracker.record_progress(session_id, owner_id, uploaded_bytes)

    def finalize(self, session_id: str, owner_id: str, video_id: Optional[str] = None) -> SyncVideoIdResponse:
        """
        Complete an upload once the provider confirms it.

        The client-reported video id is only compared against what the
        provider reports; it is never stored on its own.
        """
        return self.sync_adapter.sync_video_id(session_id, owner_id, expected_video_id=video_id)

    def sync_video_id(self, session_id: str, owner_id: str) -> SyncVideoIdResponse:
        return self.sync_adapter.sync_video_id(session_id, owner_id)

    def get_status(self, session_id: str, owner_id: str, include_video_info: bool = False) -> SessionStatusResponse:
        """
        Full view of a session.

        An overdue non-terminal session is moved to failed before the view is
        built; once stored as failed, later reads do not write again.

        Raises:
            SessionNotFoundException: If the session does not resolve under the owner
        """
        session = self._get_session(session_id, owner_id)
        now = self.clock()
        session = self.progress_tracker.apply_expiry(session, now)

        video_info = None
        if include_video_info and session.status == SessionStatus.COMPLETED and session.external_video_id:
            info = self.sync_adapter.fetch_video_info(session.external_video_id)
            if info is not None:
                video_info = VideoInfoResponse(
                    video_id=info.video_id,
                    title=info.title,
                    description=info.description,
                    url=info.url,
                    privacy_status=info.privacy_status,
                    upload_status=info.upload_status,
                    processing_status=info.processing_status,
                    thumbnail_url=info.thumbnail_url
                )

        return self._to_view(session, now, video_info)

    def expire(self, session_id: str, owner_id: str) -> SessionStatusResponse:
        """
        Enforce the deadline of one session now.

        Raises:
            SessionNotFoundException: If the session does not resolve under the owner
        """
        session = self._get_session(session_id, owner_id)
        now = self.clock()
        return self._to_view(self.progress_tracker.apply_expiry(session, now), now)

    def expire_overdue_sessions(self) -> int:
        """
        Sweep every overdue non-terminal session to failed.

        Returns:
            Number of sessions this sweep moved to failed
        """
        now = self.clock()
        expired = 0
        for session in self.session_repository.find_overdue(now):
            updated = self.progress_tracker.apply_expiry(session, now)
            if updated.status == SessionStatus.FAILED and updated.error_message == EXPIRED_MESSAGE:
                expired += 1
        if expired:
            logger.info(f"Expired {expired} overdue upload sessions")
        return expired

    def clear(self, upload_id: str, owner_id: str) -> None:
        """Drop the owner's transient progress; a no-op for anything else."""
        if self.session_repository.get(upload_id, owner_id) is None:
            return
        self.sync_adapter.clear_progress(upload_id)

    def get_progress(self, upload_id: str, owner_id: str) -> UploadProgressResponse:
        """
        Transient transfer progress of one of the owner's uploads.

        Raises:
            SessionNotFoundException: If the upload does not resolve under the
                owner or nothing is tracked for it
        """
        if self.session_repository.get(upload_id, owner_id) is None:
            raise SessionNotFoundException(upload_id)
        progress = self.progress_store.get(upload_id)
        if progress is None:
            raise SessionNotFoundException(upload_id)
        now = self.clock()
        idle = (now - progress.last_update).total_seconds()
        return UploadProgressResponse(
            upload_id=progress.upload_id,
            status=progress.status,
            uploaded_bytes=progress.uploaded_bytes,
            total_bytes=progress.total_bytes,
            percentage=ProgressTracker.calculate_percentage(progress.uploaded_bytes, progress.total_bytes),
            speed=progress.speed,
            eta=progress.eta,
            is_stalled=(
                progress.status == SessionStatus.UPLOADING.value
                and idle > config.settings.upload_stall_timeout_seconds
            ),
            last_update=progress.last_update
        )

    def list_pending(self, owner_id: str, include_expired: bool = False) -> PendingSessionsResponse:
        """
        An owner's unfinished sessions with resumability and counts.

        This is a pure read; overdue sessions are reported as expired here
        and moved to failed by get_status, resume or the sweep.
        """
        now = self.clock()
        sessions = self.session_repository.list_by_owner(owner_id, ACTIVE_STATUSES)
        if not include_expired:
            sessions = [s for s in sessions if not s.is_expired(now)]

        views = [self._to_view(session, now) for session in sessions]
        stats = PendingSessionStats(
            total=len(views),
            uploading=sum(1 for v in views if v.status == SessionStatus.UPLOADING.value),
            processing=sum(1 for v in views if v.status == SessionStatus.PROCESSING.value),
            expired=sum(1 for v in views if v.is_expired),
            resumable=sum(1 for v in views if v.can_resume)
        )
        return PendingSessionsResponse(sessions=views, stats=stats, timestamp=now)

    def resume(self, session_id: str, owner_id: str, file_name: str, file_size: int) -> ResumeUploadResponse:
        """
        Prepare to continue an upload with a re-selected file.

        Raises:
            SessionNotFoundException: If the session does not resolve under the owner
            SessionExpiredException: If the session deadline has passed
            ConflictException: If the session failed previously
            FileMismatchException: If the re-selected file differs from the original
        """
        session = self._get_session(session_id, owner_id)
        now = self.clock()

        if session.status != SessionStatus.COMPLETED and session.is_expired(now):
            self.progress_tracker.apply_expiry(session, now)
            raise SessionExpiredException(session_id, to_iso(session.expires_at))

        if session.status == SessionStatus.FAILED:
            raise ConflictException(
                "Upload failed previously",
                "session_failed",
                {"session_id": session_id, "error_message": session.error_message, "can_retry": True}
            )

        ensure_same_file(session_id, session.file_name, session.file_size, file_name, file_size)

        if session.status == SessionStatus.COMPLETED:
            message = "Upload already completed"
        else:
            message = "Session resumed successfully"
            if self.progress_store.get(session_id) is None:
                self.progress_store.start(session_id, session.file_size, now)
                self.progress_store.record(session_id, session.uploaded_bytes, session.status.value, now)

        return ResumeUploadResponse(
            session_id=session.session_id,
            status=session.status.value,
            file_name=session.file_name,
            file_size=session.file_size,
            uploaded_bytes=session.uploaded_bytes,
            progress_percentage=ProgressTracker.calculate_percentage(session.uploaded_bytes, session.file_size),
            upload_url=session.external_upload_url,
            video_id=session.external_video_id,
            metadata=session.metadata,
            expires_at=session.expires_at,
            message=message
        )

    def _get_session(self, session_id: str, owner_id: str) -> UploadSession:
        if not session_id:
            raise ValidationException("session_id is required", {"field": "session_id"})
        session = self.session_repository.get(session_id, owner_id)
        if session is None:
            raise SessionNotFoundException(session_id)
        return session

    def _to_view(
        self,
        session: UploadSession,
        now: datetime,
        video_info: Optional[VideoInfoResponse] = None
    ) -> SessionStatusResponse:
        is_expired = session.is_expired(now)
        return SessionStatusResponse(
            session_id=session.session_id,
            file_name=session.file_name,
            file_size=session.file_size,
            uploaded_bytes=session.uploaded_bytes,
            progress_percentage=ProgressTracker.calculate_percentage(session.uploaded_bytes, session.file_size),
            status=session.status.value,
            external_video_id=session.external_video_id,
            external_upload_url=session.external_upload_url,
            metadata=session.metadata,
            error_message=session.error_message,
            expires_at=session.expires_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
            is_expired=is_expired,
            is_stalled=self.progress_tracker.is_stalled(session, now),
            can_resume=not is_expired and session.status == SessionStatus.UPLOADING,
            video_info=video_info
        )
