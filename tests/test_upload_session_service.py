"""
Tests for the upload session lifecycle.
"""
import pytest
from datetime import timedelta
from src.core import config
from src.core.exceptions import (
    ConflictException,
    FileMismatchException,
    ProviderException,
    SessionExpiredException,
    SessionNotFoundException,
    ValidationException
)
from src.models.upload_session import EXPIRED_MESSAGE, SessionStatus
from src.models.video_info import ProviderUploadStatus, VideoInfo
from src.repositories.progress_store import InMemoryProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository
from src.services.upload_session_service import UploadSessionService

METADATA = {"title": "Club final", "match_type": "singles"}


@pytest.fixture
def repo(sessions_table):
    return UploadSessionRepository()


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def service(repo, store, youtube_repository, clock):
    return UploadSessionService(
        session_repository=repo,
        youtube_repository=youtube_repository,
        progress_store=store,
        clock=clock
    )


@pytest.fixture
def session_id(service):
    return service.initiate("test_user", "match.mp4", 1000, METADATA).session_id


class TestInitiate:
    def test_initiate_creates_uploading_session(self, service, repo, store, youtube_repository, clock):
        response = service.initiate("test_user", "match.mp4", 1000, METADATA)

        assert response.upload_url == youtube_repository.create_upload_endpoint.return_value
        assert response.expires_at == clock() + timedelta(hours=config.settings.session_ttl_hours)
        session = repo.get(response.session_id, "test_user")
        assert session.status == SessionStatus.UPLOADING
        assert session.uploaded_bytes == 0
        assert session.metadata == METADATA
        assert store.get(response.session_id).total_bytes == 1000
        youtube_repository.create_upload_endpoint.assert_called_once_with(1000, METADATA)

    def test_initiate_empty_file_is_allowed(self, service, repo):
        response = service.initiate("test_user", "empty.mp4", 0, METADATA)
        assert repo.get(response.session_id, "test_user").file_size == 0

    @pytest.mark.parametrize("file_name, file_size", [
        ("", 1000),
        ("   ", 1000),
        ("match.mp4", -1),
        ("match.mp4", "1000"),
        ("match.mp4", True),
    ])
    def test_initiate_rejects_invalid_file(self, service, youtube_repository, file_name, file_size):
        with pytest.raises(ValidationException):
            service.initiate("test_user", file_name, file_size, METADATA)
        youtube_repository.create_upload_endpoint.assert_not_called()

    def test_initiate_rejects_oversized_file(self, service):
        with pytest.raises(ValidationException) as exc_info:
            service.initiate("test_user", "huge.mp4", config.settings.max_file_size_bytes + 1, METADATA)
        assert "exceeds maximum" in exc_info.value.message

    def test_provider_failure_creates_no_session(self, service, repo, youtube_repository):
        youtube_repository.create_upload_endpoint.side_effect = ProviderException("down")

        with pytest.raises(ProviderException):
            service.initiate("test_user", "match.mp4", 1000, METADATA)

        assert repo.list_by_owner("test_user") == []


class TestHappyPath:
    def test_upload_progress_then_sync(self, service, youtube_repository, session_id):
        for uploaded, percentage in [(250, 25), (500, 50), (1000, 100)]:
            result = service.report_progress(session_id, "test_user", uploaded)
            assert result.progress_percentage == percentage

        assert service.get_status(session_id, "test_user").status == "processing"

        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        result = service.sync_video_id(session_id, "test_user")

        assert result.success is True
        view = service.get_status(session_id, "test_user")
        assert view.status == "completed"
        assert view.external_video_id == "yt123"
        assert view.progress_percentage == 100

    def test_finalize_records_provider_video_id(self, service, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )

        result = service.finalize(session_id, "test_user", "yt123")

        assert result.success is True
        assert result.video_id == "yt123"

    def test_get_status_with_video_info(self, service, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        youtube_repository.get_video_info.return_value = VideoInfo(
            video_id="yt123", title="Club final", privacy_status="unlisted"
        )
        service.sync_video_id(session_id, "test_user")

        view = service.get_status(session_id, "test_user", include_video_info=True)

        assert view.video_info.video_id == "yt123"
        assert view.video_info.url == "https://www.youtube.com/watch?v=yt123"


class TestExpiry:
    def test_overdue_session_reads_as_failed(self, service, repo, clock, session_id):
        service.report_progress(session_id, "test_user", 500)
        clock.advance(hours=25)

        view = service.get_status(session_id, "test_user")

        assert view.status == "failed"
        assert view.error_message == EXPIRED_MESSAGE
        assert view.uploaded_bytes == 500
        assert view.is_expired is True
        assert view.can_resume is False

    def test_repeated_reads_do_not_write_again(self, service, clock, session_id):
        clock.advance(hours=25)

        first = service.get_status(session_id, "test_user")
        second = service.get_status(session_id, "test_user")

        assert first.status == second.status == "failed"
        assert second.updated_at == first.updated_at

    def test_progress_after_deadline_is_rejected(self, service, clock, session_id):
        clock.advance(hours=25)
        with pytest.raises(SessionExpiredException):
            service.report_progress(session_id, "test_user", 100)
        assert service.get_status(session_id, "test_user").uploaded_bytes == 0

    def test_expire_is_idempotent(self, service, clock, session_id):
        assert service.expire(session_id, "test_user").status == "uploading"
        clock.advance(hours=25)
        assert service.expire(session_id, "test_user").status == "failed"
        assert service.expire(session_id, "test_user").status == "failed"

    def test_expire_overdue_sessions(self, service, clock, session_id):
        service.initiate("other_user", "other.mp4", 10, METADATA)
        clock.advance(hours=25)
        service.initiate("test_user", "fresh.mp4", 10, METADATA)

        assert service.expire_overdue_sessions() == 2
        assert service.expire_overdue_sessions() == 0
        assert service.get_status(session_id, "test_user").status == "failed"

    def test_completed_session_is_not_expired(self, service, youtube_repository, clock, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        service.sync_video_id(session_id, "test_user")
        clock.advance(hours=48)

        assert service.get_status(session_id, "test_user").status == "completed"


class TestOwnership:
    def test_other_owner_sees_not_found(self, service, session_id):
        with pytest.raises(SessionNotFoundException):
            service.get_status(session_id, "other_user")
        with pytest.raises(SessionNotFoundException):
            service.report_progress(session_id, "other_user", 10)
        with pytest.raises(SessionNotFoundException):
            service.resume(session_id, "other_user", "match.mp4", 1000)

    def test_missing_session_id_is_validation_error(self, service):
        with pytest.raises(ValidationException):
            service.get_status("", "test_user")


class TestListPending:
    def test_lists_only_unfinished_sessions(self, service, youtube_repository, session_id):
        processing = service.initiate("test_user", "second.mp4", 100, METADATA).session_id
        service.report_progress(processing, "test_user", 100)
        done = service.initiate("test_user", "third.mp4", 100, METADATA).session_id
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=100
        )
        service.sync_video_id(done, "test_user")
        service.initiate("other_user", "theirs.mp4", 100, METADATA)

        result = service.list_pending("test_user")

        assert {s.session_id for s in result.sessions} == {session_id, processing}
        assert result.stats.total == 2
        assert result.stats.uploading == 1
        assert result.stats.processing == 1
        assert result.stats.resumable == 1

    def test_expired_sessions_hidden_unless_requested(self, service, clock, session_id):
        clock.advance(hours=25)

        assert service.list_pending("test_user").sessions == []

        with_expired = service.list_pending("test_user", include_expired=True)
        assert [s.session_id for s in with_expired.sessions] == [session_id]
        assert with_expired.stats.expired == 1
        assert with_expired.sessions[0].can_resume is False


class TestResume:
    def test_resume_same_file(self, service, store, session_id):
        service.report_progress(session_id, "test_user", 400)
        store.clear(session_id)

        result = service.resume(session_id, "test_user", "match.mp4", 1000)

        assert result.uploaded_bytes == 400
        assert result.progress_percentage == 40
        assert result.upload_url is not None
        assert result.message == "Session resumed successfully"
        assert store.get(session_id).uploaded_bytes == 400

    def test_resume_different_file_is_rejected(self, service, repo, session_id):
        service.report_progress(session_id, "test_user", 400)

        with pytest.raises(FileMismatchException) as exc_info:
            service.resume(session_id, "test_user", "match.mp4", 999)

        assert exc_info.value.reason == "file_mismatch"
        assert exc_info.value.original_size == 1000
        assert exc_info.value.selected_size == 999
        assert repo.get(session_id, "test_user").uploaded_bytes == 400

    def test_resume_expired_session(self, service, repo, clock, session_id):
        clock.advance(hours=25)

        with pytest.raises(SessionExpiredException):
            service.resume(session_id, "test_user", "match.mp4", 1000)

        assert repo.get(session_id, "test_user").status == SessionStatus.FAILED

    def test_resume_failed_session(self, service, repo, session_id):
        repo.update(session_id, "test_user", {"status": SessionStatus.FAILED, "error_message": "quota"})

        with pytest.raises(ConflictException) as exc_info:
            service.resume(session_id, "test_user", "match.mp4", 1000)

        assert exc_info.value.reason == "session_failed"

    def test_resume_completed_session(self, service, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        service.sync_video_id(session_id, "test_user")

        result = service.resume(session_id, "test_user", "match.mp4", 1000)

        assert result.status == "completed"
        assert result.video_id == "yt123"
        assert result.message == "Upload already completed"


class TestTransientProgress:
    def test_get_and_clear_progress(self, service, session_id):
        service.report_progress(session_id, "test_user", 500)

        progress = service.get_progress(session_id, "test_user")
        assert progress.uploaded_bytes == 500
        assert progress.percentage == 50

        service.clear(session_id, "test_user")
        service.clear(session_id, "test_user")
        with pytest.raises(SessionNotFoundException):
            service.get_progress(session_id, "test_user")
        assert service.get_status(session_id, "test_user").uploaded_bytes == 500

    def test_unknown_progress_is_not_found(self, service):
        with pytest.raises(SessionNotFoundException):
            service.get_progress("unknown", "test_user")

    def test_other_owner_cannot_read_progress(self, service, session_id):
        service.report_progress(session_id, "test_user", 400)

        with pytest.raises(SessionNotFoundException) as exc_info:
            service.get_progress(session_id, "other_user")

        assert exc_info.value.message == "Session not found or unauthorized"

    def test_other_owner_clear_is_a_no_op(self, service, session_id):
        service.report_progress(session_id, "test_user", 400)

        service.clear(session_id, "other_user")

        assert service.get_progress(session_id, "test_user").uploaded_bytes == 400


class TestVideoInfo:
    def test_provider_failure_leaves_video_info_empty(self, service, youtube_repository, session_id):
        youtube_repository.query_upload_status.return_value = ProviderUploadStatus(
            completed=True, video_id="yt123", received_bytes=1000
        )
        service.sync_video_id(session_id, "test_user")
        youtube_repository.get_video_info.side_effect = ProviderException("YouTube unavailable")

        view = service.get_status(session_id, "test_user", include_video_info=True)

        assert view.status == "completed"
        assert view.video_info is None
