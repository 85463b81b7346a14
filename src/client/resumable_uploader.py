"""
Resumable upload client.
Streams a local video to the provider's upload URL in chunks, reports progress
to the API and resumes interrupted uploads of the same file.
"""
import os
import time
from typing import Callable, Optional
import requests
from src.core.exceptions import ProviderException, UploadSessionException, exception_from_payload
from src.core.logger import get_logger
from src.repositories.youtube_repository import parse_range_header
from src.services.reconciliation_guard import ensure_same_file

logger = get_logger(__name__)

# resumable uploads require chunk sizes in multiples of 256 KiB
CHUNK_UNIT = 256 * 1024
DEFAULT_CHUNK_SIZE = 32 * CHUNK_UNIT


class ResumableUploader:
    """Client side of an upload session."""

    def __init__(
        self,
        api_base_url: str,
        access_token: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = 3,
        timeout: int = 30,
        http: Optional[requests.Session] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        if chunk_size <= 0 or chunk_size % CHUNK_UNIT:
            raise ValueError(f"chunk_size must be a positive multiple of {CHUNK_UNIT}")
        self.api_base_url = api_base_url.rstrip('/')
        self.access_token = access_token
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.timeout = timeout
        self.http = http or requests.Session()
        self.on_progress = on_progress
        self.sleep = sleep

    def upload(self, path: str, metadata: dict) -> dict:
        """
        Open a session for a local file and upload it from the first byte.

        Returns:
            Final sync result from the API
        """
        session = self._api('POST', '/uploads/sessions', json={
            'file_name': os.path.basename(path),
            'file_size': os.path.getsize(path),
            'metadata': metadata
        })
        return self._transfer(session['session_id'], session['upload_url'], path, 0)

    def resume(self, session_id: str, path: str) -> dict:
        """
        Continue an interrupted upload with a re-selected local file.

        The file is checked against the session before any byte is sent.

        Raises:
            FileMismatchException: If the file is not the one the session was opened for
        """
        status = self._api('GET', f'/uploads/sessions/{session_id}')
        ensure_same_file(
            session_id,
            status['file_name'],
            status['file_size'],
            os.path.basename(path),
            os.path.getsize(path)
        )

        if status['status'] == 'completed':
            return {'success': True, 'session_id': session_id, 'status': 'completed',
                    'video_id': status.get('external_video_id')}

        resume_point = self._api('POST', f'/uploads/sessions/{session_id}/resume', json={
            'file_name': os.path.basename(path),
            'file_size': os.path.getsize(path)
        })
        upload_url = resume_point['upload_url']
        offset = self._probe_offset(upload_url, resume_point['file_size'])
        if offset is None:
            # provider already holds the whole file
            return self._api('POST', f'/uploads/sessions/{session_id}/finalize', json={})
        return self._transfer(session_id, upload_url, path, offset)

    def _transfer(self, session_id: str, upload_url: str, path: str, offset: int) -> dict:
        total = os.path.getsize(path)
        video_id = None

        with open(path, 'rb') as f:
            while video_id is None:
                f.seek(offset)
                chunk = f.read(self.chunk_size)
                end = offset + len(chunk) - 1
                content_range = f'bytes {offset}-{end}/{total}' if chunk else f'bytes */{total}'

                response = self._put_chunk(upload_url, chunk, content_range)
                if response.status_code in (200, 201):
                    video_id = self._video_id(response)
                    offset = total
                elif response.status_code == 308:
                    offset = parse_range_header(response.headers.get('Range'))
                else:
                    raise ProviderException(
                        f"Upload chunk rejected: {response.status_code}",
                        permanent=response.status_code < 500 and response.status_code != 429,
                        status_code=response.status_code
                    )

                self._api('POST', f'/uploads/sessions/{session_id}/progress', json={'uploaded_bytes': offset})
                if self.on_progress:
                    self.on_progress(offset, total)

        logger.info(f"Upload for session {session_id} finished with video id {video_id}")
        return self._api('POST', f'/uploads/sessions/{session_id}/finalize', json={'video_id': video_id})

    def _video_id(self, response: requests.Response) -> str:
        """Video id from a completed upload response."""
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        video_id = payload.get('id') if isinstance(payload, dict) else None
        if not video_id:
            raise ProviderException("Upload completed without a video id", status_code=response.status_code)
        return video_id

    def _probe_offset(self, upload_url: str, file_size: int) -> Optional[int]:
        """Ask the provider how many bytes it holds; None once it holds all of them."""
        response = self._put_chunk(upload_url, b'', f'bytes */{file_size}')
        if response.status_code in (200, 201):
            return None
        if response.status_code == 308:
            return parse_range_header(response.headers.get('Range'))
        raise ProviderException(
            f"Upload URL no longer accepts data: {response.status_code}",
            permanent=True,
            status_code=response.status_code
        )

    def _put_chunk(self, upload_url: str, chunk: bytes, content_range: str) -> requests.Response:
        """PUT one byte range, retrying network faults and 5xx with backoff."""
        attempt = 0
        while True:
            try:
                response = self.http.put(
                    upload_url,
                    data=chunk,
                    headers={'Content-Range': content_range, 'Content-Length': str(len(chunk))},
                    timeout=self.timeout
                )
                if response.status_code < 500 or attempt >= self.max_retries:
                    return response
            except requests.RequestException as e:
                if attempt >= self.max_retries:
                    raise ProviderException(f"Upload chunk failed: {str(e)}", reason="network") from e
            attempt += 1
            self.sleep(2 ** attempt)

    def _api(self, method: str, path: str, **kwargs) -> dict:
        """Call the upload API and turn error bodies back into typed exceptions."""
        try:
            response = self.http.request(
                method,
                f"{self.api_base_url}{path}",
                headers={'Authorization': f'Bearer {self.access_token}'},
                timeout=self.timeout,
                **kwargs
            )
        except requests.RequestException as e:
            raise ProviderException(f"Upload API unreachable: {str(e)}", reason="network") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.ok:
            return payload
        if isinstance(payload, dict) and 'kind' in payload:
            raise exception_from_payload(payload)
        raise UploadSessionException(f"Upload API error: {response.status_code}")
