"""
Data Transfer Objects for the upload session API.
Defines request and response schemas for API endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, StrictInt, field_validator


class VideoMetadata(BaseModel):
    """Descriptive fields forwarded to the provider; opaque to the session logic."""
    title: str = Field(..., min_length=1, max_length=100, description="Video title")
    description: str = Field(default="", max_length=5000)
    tags: List[str] = Field(default_factory=list)
    category_id: Optional[str] = Field(default=None, description="Provider category id")
    privacy: Optional[str] = Field(default=None, pattern="^(private|public|unlisted)$")
    match_type: Optional[str] = None
    game_result_id: Optional[str] = None

    @field_validator('title')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or v.strip() == "":
            raise ValueError("Field cannot be empty")
        return v.strip()


class InitiateUploadRequest(BaseModel):
    """Request schema for opening an upload session."""
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: StrictInt = Field(..., ge=0, description="File size in bytes")
    metadata: VideoMetadata


class InitiateUploadResponse(BaseModel):
    """Response schema for a newly opened upload session."""
    session_id: str
    upload_url: str
    expires_at: datetime


class ProgressReportRequest(BaseModel):
    """Request schema for reporting transferred bytes."""
    uploaded_bytes: StrictInt = Field(..., ge=0, description="Bytes received by the provider so far")


class ProgressReportResponse(BaseModel):
    """Response schema for a progress report."""
    session_id: str
    status: str
    progress_percentage: int
    uploaded_bytes: int
    total_bytes: int
    accepted: bool = True


class FinalizeUploadRequest(BaseModel):
    """Request schema for finalizing an upload."""
    video_id: Optional[str] = Field(default=None, description="Video id the provider returned to the client")


class ResumeUploadRequest(BaseModel):
    """Request schema for resuming an upload with a re-selected file."""
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: StrictInt = Field(..., ge=0)


class ResumeUploadResponse(BaseModel):
    """Response schema describing where to resume an upload."""
    session_id: str
    status: str
    file_name: str
    file_size: int
    uploaded_bytes: int
    progress_percentage: int
    upload_url: Optional[str] = None
    video_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime
    message: str


class VideoInfoResponse(BaseModel):
    """Response schema for a hosted video."""
    video_id: str
    title: str
    description: str = ""
    url: str
    privacy_status: Optional[str] = None
    upload_status: Optional[str] = None
    processing_status: Optional[str] = None
    thumbnail_url: Optional[str] = None


class SessionStatusResponse(BaseModel):
    """Response schema for the full view of an upload session."""
    session_id: str
    file_name: str
    file_size: int
    uploaded_bytes: int
    progress_percentage: int
    status: str
    external_video_id: Optional[str] = None
    external_upload_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    is_expired: bool
    is_stalled: bool = False
    can_resume: bool = False
    video_info: Optional[VideoInfoResponse] = None


class PendingSessionStats(BaseModel):
    total: int = 0
    uploading: int = 0
    processing: int = 0
    expired: int = 0
    resumable: int = 0


class PendingSessionsResponse(BaseModel):
    """Response schema for an owner's unfinished sessions."""
    sessions: List[SessionStatusResponse]
    stats: PendingSessionStats
    timestamp: datetime


class SyncVideoIdResponse(BaseModel):
    """Response schema for reconciling a session with the provider."""
    success: bool
    session_id: str
    status: str
    video_id: Optional[str] = None
    error: Optional[str] = None
    uploaded_bytes: Optional[int] = None


class UploadProgressResponse(BaseModel):
    """Response schema for transient transfer progress."""
    upload_id: str
    status: str
    uploaded_bytes: int
    total_bytes: int
    percentage: int
    speed: float
    eta: Optional[float] = None
    is_stalled: bool
    last_update: datetime


class ClearProgressResponse(BaseModel):
    success: bool = True
    message: str = "Upload progress cleared"


class AuthStatusResponse(BaseModel):
    success: bool = True
    authenticated: bool
    message: str
