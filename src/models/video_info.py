"""
Domain models for what the video hosting provider reports.
"""
from typing import Optional


class VideoInfo:
    """Read-only view of a hosted video."""

    def __init__(
        self,
        video_id: str,
        title: str,
        description: str = "",
        privacy_status: Optional[str] = None,
        upload_status: Optional[str] = None,
        processing_status: Optional[str] = None,
        thumbnail_url: Optional[str] = None
    ):
        self.video_id = video_id
        self.title = title
        self.description = description
        self.privacy_status = privacy_status
        self.upload_status = upload_status
        self.processing_status = processing_status
        self.thumbnail_url = thumbnail_url

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"

    def __repr__(self):
        return f"VideoInfo(video_id={self.video_id}, title={self.title})"


class ProviderUploadStatus:
    """Outcome of asking the provider about a resumable upload URL."""

    def __init__(self, completed: bool, video_id: Optional[str] = None, received_bytes: int = 0):
        self.completed = completed
        self.video_id = video_id
        self.received_bytes = received_bytes

    def __repr__(self):
        return f"ProviderUploadStatus(completed={self.completed}, video_id={self.video_id})"
