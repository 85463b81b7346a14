"""
Transient upload progress stores.
Keyed by upload id; holds only ephemeral transfer bookkeeping.
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional
from src.models.upload_progress import UploadProgress


class ProgressStore(ABC):
    """Abstract store for transient upload progress."""

    @abstractmethod
    def start(self, upload_id: str, total_bytes: int, now: datetime) -> UploadProgress:
        """Begin tracking an upload."""
        pass

    @abstractmethod
    def record(self, upload_id: str, uploaded_bytes: int, status: str, now: datetime) -> Optional[UploadProgress]:
        """Record a new byte count; returns None for untracked uploads."""
        pass

    @abstractmethod
    def get(self, upload_id: str) -> Optional[UploadProgress]:
        """Return a snapshot of the current progress."""
        pass

    @abstractmethod
    def clear(self, upload_id: str) -> None:
        """Forget an upload. Clearing an unknown id is a no-op."""
        pass


class InMemoryProgressStore(ProgressStore):
    """Process-local progress store guarded by a mutex."""

    def __init__(self):
        self._entries: Dict[str, UploadProgress] = {}
        self._lock = threading.Lock()

    def start(self, upload_id: str, total_bytes: int, now: datetime) -> UploadProgress:
        entry = UploadProgress(upload_id=upload_id, total_bytes=total_bytes, last_update=now)
        with self._lock:
            self._entries[upload_id] = entry
            return entry.copy()

    def record(self, upload_id: str, uploaded_bytes: int, status: str, now: datetime) -> Optional[UploadProgress]:
        with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                return None

            elapsed = (now - entry.last_update).total_seconds()
            delta = uploaded_bytes - entry.uploaded_bytes
            if elapsed > 0 and delta >= 0:
                entry.speed = delta / elapsed
            remaining = max(entry.total_bytes - uploaded_bytes, 0)
            entry.eta = remaining / entry.speed if entry.speed > 0 else None

            entry.uploaded_bytes = uploaded_bytes
            entry.status = status
            entry.last_update = now
            return entry.copy()

    def get(self, upload_id: str) -> Optional[UploadProgress]:
        with self._lock:
            entry = self._entries.get(upload_id)
            return entry.copy() if entry else None

    def clear(self, upload_id: str) -> None:
        with self._lock:
            self._entries.pop(upload_id, None)
