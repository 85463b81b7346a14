"""
Dependency injection container for FastAPI.
Provides singleton-like behavior for services and repositories.
"""
from functools import lru_cache
from src.repositories.progress_store import InMemoryProgressStore, ProgressStore
from src.repositories.upload_session_repository import UploadSessionRepository
from src.repositories.youtube_repository import YouTubeRepository
from src.services.external_sync_adapter import ExternalSyncAdapter, InFlightRegistry
from src.services.progress_tracker import ProgressTracker
from src.services.upload_session_service import UploadSessionService


@lru_cache()
def get_upload_session_repository() -> UploadSessionRepository:
    """Get UploadSessionRepository singleton instance."""
    return UploadSessionRepository()


@lru_cache()
def get_youtube_repository() -> YouTubeRepository:
    """Get YouTubeRepository singleton instance."""
    return YouTubeRepository()


@lru_cache()
def get_progress_store() -> ProgressStore:
    """Get the process-wide transient progress store."""
    return InMemoryProgressStore()


@lru_cache()
def get_in_flight_registry() -> InFlightRegistry:
    """Get the process-wide set of running reconciliations."""
    return InFlightRegistry()


@lru_cache()
def get_progress_tracker() -> ProgressTracker:
    """Get ProgressTracker singleton instance with injected dependencies."""
    return ProgressTracker(
        session_repository=get_upload_session_repository(),
        progress_store=get_progress_store()
    )


@lru_cache()
def get_sync_adapter() -> ExternalSyncAdapter:
    """Get ExternalSyncAdapter singleton instance with injected dependencies."""
    return ExternalSyncAdapter(
        youtube_repository=get_youtube_repository(),
        session_repository=get_upload_session_repository(),
        progress_store=get_progress_store(),
        progress_tracker=get_progress_tracker(),
        in_flight=get_in_flight_registry()
    )


@lru_cache()
def get_upload_session_service() -> UploadSessionService:
    """Get UploadSessionService singleton instance with injected dependencies."""
    return UploadSessionService(
        session_repository=get_upload_session_repository(),
        youtube_repository=get_youtube_repository(),
        progress_store=get_progress_store(),
        progress_tracker=get_progress_tracker(),
        sync_adapter=get_sync_adapter()
    )


def clear_caches() -> None:
    """Drop every cached instance so the next request rebuilds them."""
    for factory in (
        get_upload_session_repository,
        get_youtube_repository,
        get_progress_store,
        get_in_flight_registry,
        get_progress_tracker,
        get_sync_adapter,
        get_upload_session_service,
    ):
        factory.cache_clear()
