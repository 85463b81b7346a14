"""
Transient upload progress model.
Process-local bookkeeping for an upload in flight; not the durable record.
"""
from datetime import datetime
from typing import Optional


class UploadProgress:
    """Snapshot of transfer progress for one upload id."""

    def __init__(
        self,
        upload_id: str,
        total_bytes: int,
        last_update: datetime,
        uploaded_bytes: int = 0,
        status: str = "uploading",
        speed: float = 0.0,
        eta: Optional[float] = None
    ):
        self.upload_id = upload_id
        self.total_bytes = total_bytes
        self.last_update = last_update
        self.uploaded_bytes = uploaded_bytes
        self.status = status
        self.speed = speed
        self.eta = eta

    def copy(self) -> "UploadProgress":
        return UploadProgress(
            upload_id=self.upload_id,
            total_bytes=self.total_bytes,
            last_update=self.last_update,
            uploaded_bytes=self.uploaded_bytes,
            status=self.status,
            speed=self.speed,
            eta=self.eta
        )

    def __repr__(self):
        return f"UploadProgress(upload_id={self.upload_id}, uploaded_bytes={self.uploaded_bytes}/{self.total_bytes})"
