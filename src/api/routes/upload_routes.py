"""
Upload session API routes.
Handles HTTP endpoints for the resumable upload session lifecycle.
"""
from fastapi import APIRouter, Depends, Query, status
from src.core.auth_dependencies import verify_token
from src.core.dependencies import get_upload_session_service
from src.models.dto.upload_dto import (
    ClearProgressResponse,
    FinalizeUploadRequest,
    InitiateUploadRequest,
    InitiateUploadResponse,
    PendingSessionsResponse,
    ProgressReportRequest,
    ProgressReportResponse,
    ResumeUploadRequest,
    ResumeUploadResponse,
    SessionStatusResponse,
    SyncVideoIdResponse,
    UploadProgressResponse
)
from src.services.upload_session_service import UploadSessionService

router = APIRouter(prefix="/v1/api/uploads", tags=["Uploads"])

# Every route blocks on DynamoDB or YouTube, so all are plain functions run in the threadpool


@router.post("/sessions", response_model=InitiateUploadResponse, status_code=status.HTTP_201_CREATED)
def initiate_upload(
    request: InitiateUploadRequest,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """
    Open a resumable upload session.

    The response carries the provider upload URL the client sends bytes to,
    and the deadline after which the session expires.
    """
    return service.initiate(
        owner_id,
        request.file_name,
        request.file_size,
        request.metadata.model_dump(exclude_none=True)
    )


@router.get("/sessions", response_model=PendingSessionsResponse)
def list_pending_sessions(
    include_expired: bool = Query(default=False, description="Include sessions past their deadline"),
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """List the caller's unfinished upload sessions."""
    return service.list_pending(owner_id, include_expired)


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
def get_session_status(
    session_id: str,
    include_video_info: bool = Query(default=False, description="Fetch provider data for completed uploads"),
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """
    Get the full state of an upload session.

    Expired sessions are reported (and stored) as failed.
    """
    return service.get_status(session_id, owner_id, include_video_info)


@router.post("/sessions/{session_id}/progress", response_model=ProgressReportResponse)
def report_progress(
    session_id: str,
    request: ProgressReportRequest,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Report how many bytes the provider has received."""
    return service.report_progress(session_id, owner_id, request.uploaded_bytes)


@router.post("/sessions/{session_id}/finalize", response_model=SyncVideoIdResponse)
def finalize_upload(
    session_id: str,
    request: FinalizeUploadRequest,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Complete the session once the provider confirms the video id."""
    return service.finalize(session_id, owner_id, request.video_id)


@router.post("/sessions/{session_id}/sync", response_model=SyncVideoIdResponse)
def sync_video_id(
    session_id: str,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Reconcile the session with the provider and record its video id."""
    return service.sync_video_id(session_id, owner_id)


@router.post("/sessions/{session_id}/resume", response_model=ResumeUploadResponse)
def resume_upload(
    session_id: str,
    request: ResumeUploadRequest,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """
    Resume an interrupted upload with a re-selected file.

    Fails with a file_mismatch conflict if the file differs from the original.
    """
    return service.resume(session_id, owner_id, request.file_name, request.file_size)


@router.post("/sessions/{session_id}/expire", response_model=SessionStatusResponse)
def expire_session(
    session_id: str,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Apply the session deadline now."""
    return service.expire(session_id, owner_id)


@router.get("/progress/{upload_id}", response_model=UploadProgressResponse)
def get_upload_progress(
    upload_id: str,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Get transient transfer progress (speed, ETA) for an upload in flight."""
    return service.get_progress(upload_id, owner_id)


@router.delete("/progress/{upload_id}", response_model=ClearProgressResponse)
def clear_upload_progress(
    upload_id: str,
    service: UploadSessionService = Depends(get_upload_session_service),
    owner_id: str = Depends(verify_token)
):
    """Clear transient progress; the session record is kept."""
    service.clear(upload_id, owner_id)
    return ClearProgressResponse()
