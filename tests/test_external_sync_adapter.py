"""
Tests for reconciling sessions with the video hosting provider.
"""
import threading
import pytest
from datetime import timedelta
from unittest.mock import Mock
from src.core.exceptions import (
    ConflictException,
    ProviderException,
    SessionExpiredException,
    SessionNotFoundException,
    SyncInProgressException
)
from src.models.upload_session import SessionStatus, UploadSession, utc_now
from src.models.video_info import ProviderUploadStatus, VideoInfo
from src.repositories.progress_store import InMemoryProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository
from src.services.external_sync_adapter import ExternalSyncAdapter, InFlightRegistry


@pytest.fixture
def repo(sessions_table):
    return UploadSessionRepository()


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def adapter(repo, store, youtube_repository, clock):
    return ExternalSyncAdapter(
        youtube_repository=youtube_repository,
        session_repository=repo,
        progress_store=store,
        clock=clock
    )


@pytest.fixture
def session_id(repo, store, clock):
    session_id = repo.create(
        owner_id="test_user",
        file_name="match.mp4",
        file_size=1000,
        expires_at=clock() + timedelta(hours=24),
        external_upload_url="https://upload.example/abc"
    )
    store.start(session_id, 1000, clock())
    return session_id


def make_session(status=SessionStatus.PROCESSING):
    now = utc_now()
    return UploadSession(
        session_id="s1",
        owner_id="test_user",
        file_name="match.mp4",
        file_size=1000,
        expires_at=now + timedelta(hours=24),
        created_at=now,
        updated_at=now,
        status=status,
        uploaded_bytes=1000,
        external_upload_url="https://upload.example/abc"
    )


class TestInFlightRegistry:
    def test_claim_releases_on_exit(self):
        registry = InFlightRegistry()
        with registry.claim("s1"):
            assert registry.is_in_flight("s1")
        assert not registry.is_in_flight("s1")

    def test_second_claim_is_rejected(self):
        registry = InFlightRegistry()
        with registry.claim("s1"):
            with pytest.raises(SyncInProgressException) as exc_info:
                with registry.claim("s1"):
                    pass
        assert exc_info.value.reason == "sync_in_progress"

    def test_claim_releases_on_exception(self):
        registry = InFlightRegistry()
        with pytest.raises(RuntimeError):
            with registry.claim("s1"):
                raise RuntimeError("boom")
        assert not registry.is_in_flight("s1")


class TestSyncVideoId:
    def test_completed_upload_is_recorded(self, adapter, repo, store, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )

        result = adapter.sync_video_id(session_id, "test_user")

        assert result.success is True
        assert result.video_id == "yt123"
        assert result.status == "completed"
        session = repo.get(session_id, "test_user")
        assert session.status == SessionStatus.COMPLETED
        assert session.external_video_id == "yt123"
        assert session.uploaded_bytes == 1000
        assert store.get(session_id) is None
        youtube_repository.query_upload_status.assert_called_once_with("https://upload.example/abc", 1000)

    def test_second_sync_does_not_contact_provider(self, adapter, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        first = adapter.sync_video_id(session_id, "test_user")
        second = adapter.sync_video_id(session_id, "test_user")

        assert first.video_id == second.video_id == "yt123"
        assert youtube_repository.query_upload_status.call_count == 1

    def test_incomplete_upload_reports_pending(self, adapter, repo, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=False, received_bytes=400
        )

        result = adapter.sync_video_id(session_id, "test_user")

        assert result.success is False
        assert result.uploaded_bytes == 400
        assert result.error == "Upload not yet complete at provider"
        assert repo.get(session_id, "test_user").status == SessionStatus.UPLOADING

    def test_mismatched_client_video_id_uses_provider_id(self, adapter, repo, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )

        result = adapter.sync_video_id(session_id, "test_user", expected_video_id="client-guess")

        assert result.video_id == "yt123"
        assert repo.get(session_id, "test_user").external_video_id == "yt123"

    def test_transient_provider_error_leaves_session(self, adapter, repo, youtube_repository, session_id):
        youtube_repository.query_upload_status.side_effect = ProviderException("timed out", reason="timeout")

        with pytest.raises(ProviderException) as exc_info:
            adapter.sync_video_id(session_id, "test_user")

        assert exc_info.value.details["retryable"] is True
        assert repo.get(session_id, "test_user").status == SessionStatus.UPLOADING
        assert not adapter.in_flight.is_in_flight(session_id)

    def test_permanent_provider_error_fails_session(self, adapter, repo, store, youtube_repository, session_id):
        youtube_repository.query_upload_status.side_effect = ProviderException(
            "quota exceeded", permanent=True, reason="quotaExceeded", status_code=403
        )

        with pytest.raises(ProviderException):
            adapter.sync_video_id(session_id, "test_user")

        session = repo.get(session_id, "test_user")
        assert session.status == SessionStatus.FAILED
        assert session.error_message == "quota exceeded"
        assert store.get(session_id) is None

    def test_failed_session_raises_conflict(self, adapter, repo, youtube_repository, session_id):
        repo.update(session_id, "test_user", {"status": SessionStatus.FAILED, "error_message": "boom"})

        with pytest.raises(ConflictException) as exc_info:
            adapter.sync_video_id(session_id, "test_user")

        assert exc_info.value.reason == "session_failed"
        youtube_repository.query_upload_status.assert_not_called()

    def test_expired_session_raises_expired(self, adapter, repo, youtube_repository, clock, session_id):
        clock.advance(hours=25)

        with pytest.raises(SessionExpiredException):
            adapter.sync_video_id(session_id, "test_user")

        assert repo.get(session_id, "test_user").status == SessionStatus.FAILED
        youtube_repository.query_upload_status.assert_not_called()

    def test_other_owner_raises_not_found(self, adapter, youtube_repository, session_id):
        with pytest.raises(SessionNotFoundException):
            adapter.sync_video_id(session_id, "other_user")
        youtube_repository.query_upload_status.assert_not_called()

    def test_concurrent_sync_is_rejected(self, store, clock):
        entered = threading.Event()
        release = threading.Event()

        def slow_query(upload_url, file_size):
            entered.set()
            release.wait(timeout=5)
            return ProviderUploadStatus(completed=True, video_id="yt123", received_bytes=file_size)

        session = make_session()
        completed = make_session(SessionStatus.COMPLETED)
        completed.external_video_id = "yt123"
        repo = Mock()
        repo.get.return_value = session
        repo.update.return_value = completed
        youtube = Mock()
        youtube.query_upload_status.side_effect = slow_query
        adapter = ExternalSyncAdapter(
            youtube_repository=youtube,
            session_repository=repo,
            progress_store=store,
            clock=clock
        )

        results = []
        worker = threading.Thread(target=lambda: results.append(adapter.sync_video_id("s1", "test_user")))
        worker.start()
        assert entered.wait(timeout=5)

        with pytest.raises(SyncInProgressException):
            adapter.sync_video_id("s1", "test_user")

        release.set()
        worker.join(timeout=5)

        assert results[0].success is True
        assert youtube.query_upload_status.call_count == 1
        assert not adapter.in_flight.is_in_flight("s1")

        repo.get.return_value = completed
        retry = adapter.sync_video_id("s1", "test_user")

        assert retry.success is True
        assert retry.video_id == "yt123"
        assert youtube.query_upload_status.call_count == 1

    def test_lost_completion_race_returns_stored_result(self, store, clock):
        completed = make_session(SessionStatus.COMPLETED)
        completed.external_video_id = "yt123"
        repo = Mock()
        repo.get.side_effect = [make_session(), completed]
        repo.update.return_value = None
        youtube = Mock()
        youtube.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        adapter = ExternalSyncAdapter(
            youtube_repository=youtube,
            session_repository=repo,
            progress_store=store,
            clock=clock
        )

        result = adapter.sync_video_id("s1", "test_user")

        assert result.success is True
        assert result.video_id == "yt123"


class TestProviderPassThrough:
    def test_check_auth_status(self, adapter, youtube_repository):
        youtube_repository.check_auth_status.return_value = False
        assert adapter.check_auth_status() is False

    def test_clear_progress_is_idempotent(self, adapter, store, session_id):
        adapter.clear_progress(session_id)
        adapter.clear_progress(session_id)
        assert store.get(session_id) is None

    def test_fetch_video_info(self, adapter, youtube_repository):
        youtube_repository.get_video_info.return_value = VideoInfo(video_id="yt123", title="Club final")
        assert adapter.fetch_video_info("yt123").title == "Club final"

    def test_fetch_video_info_provider_error_reads_as_none(self, adapter, youtube_repository):
        youtube_repository.get_video_info.side_effect = ProviderException("YouTube unavailable")
        assert adapter.fetch_video_info("yt123") is None
