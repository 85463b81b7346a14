"""
External Sync Adapter.
Reconciles local session state with the video hosting provider.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Set
from src.core.exceptions import (
    ConflictException,
    ProviderException,
    SessionExpiredException,
    SessionNotFoundException,
    SyncInProgressException
)
from src.core.logger import get_logger
from src.models.dto.upload_dto import SyncVideoIdResponse
from src.models.upload_session import ACTIVE_STATUSES, SessionStatus, UploadSession, to_iso, utc_now
from src.models.video_info import VideoInfo
from src.repositories.progress_store import InMemoryProgressStore, ProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository
from src.repositories.youtube_repository import YouTubeRepository
from src.services.progress_tracker import ProgressTracker

logger = get_logger(__name__)


class InFlightRegistry:
    """Process-local set of session ids with a reconciliation running."""

    def __init__(self):
        self._ids: Set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def claim(self, session_id: str):
        """
        Hold the session id for the duration of the block.

        Raises:
            SyncInProgressException: If the id is already held
        """
        with self._lock:
            if session_id in self._ids:
                raise SyncInProgressException(session_id)
            self._ids.add(session_id)
        try:
            yield
        finally:
            with self._lock:
                self._ids.discard(session_id)

    def is_in_flight(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._ids


class ExternalSyncAdapter:
    """Bridge between the session store and the provider."""

    def __init__(
        self,
        youtube_repository: YouTubeRepository = None,
        session_repository: UploadSessionRepository = None,
        progress_store: ProgressStore = None,
        progress_tracker: ProgressTracker = None,
        in_flight: InFlightRegistry = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.youtube_repository = youtube_repository or YouTubeRepository()
        self.session_repository = session_repository or UploadSessionRepository()
        self.progress_store = progress_store or InMemoryProgressStore()
        self.clock = clock or utc_now
        self.progress_tracker = progress_tracker or ProgressTracker(
            session_repository=self.session_repository,
            progress_store=self.progress_store,
            clock=self.clock
        )
        self.in_flight = in_flight or InFlightRegistry()

    def check_auth_status(self) -> bool:
        """Probe the provider credentials, independent of any session."""
        return self.youtube_repository.check_auth_status()

    def fetch_video_info(self, video_id: str) -> Optional[VideoInfo]:
        """Look up a hosted video; provider failures read as no data."""
        try:
            return self.youtube_repository.get_video_info(video_id)
        except ProviderException as e:
            logger.warning(f"Could not fetch video info for {video_id}: {e.message}")
            return None

    def sync_video_id(
        self,
        session_id: str,
        owner_id: str,
        expected_video_id: Optional[str] = None
    ) -> SyncVideoIdResponse:
        """
        Confirm with the provider that the upload finished and record its video id.

        Args:
            session_id: Session identifier
            owner_id: Caller identity
            expected_video_id: Id the client believes the provider assigned

        Returns:
            SyncVideoIdResponse; success is False while the provider has not
            received the whole file

        Raises:
            SyncInProgressException: If a sync for this session is already running
            SessionNotFoundException: If the session does not resolve under the owner
            SessionExpiredException: If the session deadline has passed
            ConflictException: If the session already failed
            ProviderException: If the provider call fails
        """
        with self.in_flight.claim(session_id):
            return self._reconcile(session_id, owner_id, expected_video_id)

    def clear_progress(self, upload_id: str) -> None:
        """Drop transient progress for an upload id; the durable record is untouched."""
        self.progress_store.clear(upload_id)

    def _reconcile(self, session_id: str, owner_id: str, expected_video_id: Optional[str]) -> SyncVideoIdResponse:
        session = self.session_repository.get(session_id, owner_id)
        if session is None:
            raise SessionNotFoundException(session_id)

        if session.status == SessionStatus.COMPLETED and session.external_video_id:
            self._warn_on_mismatch(session_id, expected_video_id, session.external_video_id)
            return self._success(session)

        if session.status == SessionStatus.FAILED:
            raise ConflictException(
                f"Upload failed previously: {session.error_message}",
                "session_failed",
                {"session_id": session_id, "error_message": session.error_message}
            )

        session = self.progress_tracker.apply_expiry(session, self.clock())
        if session.status == SessionStatus.FAILED:
            raise SessionExpiredException(session_id, to_iso(session.expires_at))

        try:
            outcome = self.youtube_repository.query_upload_status(session.external_upload_url, session.file_size)
        except ProviderException as e:
            if e.permanent:
                self._fail_session(session, e.message)
            raise

        if not outcome.completed:
            return SyncVideoIdResponse(
                success=False,
                session_id=session_id,
                status=session.status.value,
                error="Upload not yet complete at provider",
                uploaded_bytes=outcome.received_bytes
            )

        self._warn_on_mismatch(session_id, expected_video_id, outcome.video_id)

        updated = self.session_repository.update(
            session_id,
            owner_id,
            {
                'status': SessionStatus.COMPLETED,
                'external_video_id': outcome.video_id,
                'uploaded_bytes': max(session.uploaded_bytes, session.file_size)
            },
            expected_statuses=ACTIVE_STATUSES
        )
        if updated is None:
            current = self.session_repository.get(session_id, owner_id)
            if current is None:
                raise SessionNotFoundException(session_id)
            if current.status == SessionStatus.COMPLETED and current.external_video_id:
                return self._success(current)
            raise ConflictException(
                f"Session is already {current.status.value}",
                "session_terminal",
                {"session_id": session_id, "status": current.status.value}
            )

        self.progress_store.clear(session_id)
        logger.info(f"Session {session_id} completed with video id {outcome.video_id}")
        return self._success(updated)

    def _fail_session(self, session: UploadSession, message: str) -> None:
        """Record a permanent provider failure on the session."""
        updated = self.session_repository.update(
            session.session_id,
            session.owner_id,
            {'status': SessionStatus.FAILED, 'error_message': message},
            expected_statuses=ACTIVE_STATUSES
        )
        if updated is not None:
            self.progress_store.clear(session.session_id)
            logger.error(f"Session {session.session_id} failed: {message}")

    def _warn_on_mismatch(self, session_id: str, expected_video_id: Optional[str], video_id: str) -> None:
        if expected_video_id and expected_video_id != video_id:
            logger.warning(
                f"Client reported video id {expected_video_id} for session {session_id}, "
                f"provider reported {video_id}"
            )

    def _success(self, session: UploadSession) -> SyncVideoIdResponse:
        return SyncVideoIdResponse(
            success=True,
            session_id=session.session_id,
            status=session.status.value,
            video_id=session.external_video_id,
            uploaded_bytes=session.uploaded_bytes
        )
