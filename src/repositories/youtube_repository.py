"""
YouTube Repository for the external video hosting provider.
Creates resumable upload URLs, probes their outcome and reads video data.
"""
import re
import threading
from datetime import datetime, timedelta
from typing import Optional
import requests
from src.core import config
from src.core.exceptions import ProviderException
from src.core.logger import get_logger
from src.models.upload_session import utc_now
from src.models.video_info import ProviderUploadStatus, VideoInfo

logger = get_logger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
API_URL = "https://www.googleapis.com/youtube/v3"

# Any other 403 (quotaExceeded, uploadLimitExceeded, forbidden, ...) is permanent
TRANSIENT_FORBIDDEN_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}

RANGE_PATTERN = re.compile(r"bytes=(\d+)-(\d+)")


def parse_range_header(range_header: Optional[str]) -> int:
    """
    Convert a resumable upload Range header into a received byte count.

    Args:
        range_header: Value such as "bytes=0-524287", or None

    Returns:
        Number of bytes the provider has persisted
    """
    if not range_header:
        return 0
    match = RANGE_PATTERN.search(range_header)
    if not match:
        return 0
    return int(match.group(2)) + 1


class YouTubeRepository:
    """Repository for YouTube Data API operations."""

    def __init__(self, http: Optional[requests.Session] = None):
        self.http = http or requests.Session()
        self.timeout = config.settings.provider_timeout_seconds
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._token_lock = threading.Lock()

    def create_upload_endpoint(self, file_size: int, metadata: dict) -> str:
        """
        Start a resumable upload and return its upload URL.

        Args:
            file_size: Total size of the video in bytes
            metadata: Title, description, tags, category and privacy

        Returns:
            Provider issued upload URL

        Raises:
            ProviderException: If the provider rejects the request
        """
        body = {
            'snippet': {
                'title': metadata.get('title', ''),
                'description': metadata.get('description', ''),
                'tags': metadata.get('tags') or [],
                'categoryId': metadata.get('category_id') or config.settings.youtube_default_category_id
            },
            'status': {
                'privacyStatus': metadata.get('privacy') or config.settings.youtube_default_privacy
            }
        }
        response = self._send(
            'POST',
            UPLOAD_URL,
            params={'uploadType': 'resumable', 'part': 'snippet,status'},
            headers={
                **self._auth_headers(),
                'X-Upload-Content-Type': 'video/*',
                'X-Upload-Content-Length': str(file_size)
            },
            json=body
        )
        if not response.ok:
            self._raise_for_status(response, "create upload session")

        upload_url = response.headers.get('Location')
        if not upload_url:
            raise ProviderException("No upload URL received from YouTube API")

        logger.info(f"YouTube upload session created for {file_size} bytes")
        return upload_url

    def query_upload_status(self, upload_url: str, file_size: int) -> ProviderUploadStatus:
        """
        Ask the provider how far a resumable upload has progressed.

        Args:
            upload_url: Upload URL issued at session creation
            file_size: Total size of the video in bytes

        Returns:
            ProviderUploadStatus with the video id once the upload completed

        Raises:
            ProviderException: If the upload URL is gone or the call fails
        """
        response = self._send(
            'PUT',
            upload_url,
            headers={'Content-Range': f'bytes */{file_size}', 'Content-Length': '0'}
        )

        if response.status_code in (200, 201):
            video_id = self._json(response).get('id')
            if not video_id:
                raise ProviderException("Upload completed without a video id", status_code=response.status_code)
            return ProviderUploadStatus(completed=True, video_id=video_id, received_bytes=file_size)

        if response.status_code == 308:
            return ProviderUploadStatus(
                completed=False,
                received_bytes=parse_range_header(response.headers.get('Range'))
            )

        self._raise_for_status(response, "query upload status")

    def get_video_info(self, video_id: str) -> Optional[VideoInfo]:
        """
        Look up a video by id.

        Returns:
            VideoInfo or None if the provider does not know the id

        Raises:
            ProviderException: If the lookup fails
        """
        response = self._send(
            'GET',
            f"{API_URL}/videos",
            params={'part': 'snippet,status,processingDetails', 'id': video_id},
            headers=self._auth_headers()
        )
        if not response.ok:
            self._raise_for_status(response, "fetch video info")

        items = self._json(response).get('items') or []
        if not items:
            return None

        item = items[0]
        snippet = item.get('snippet', {})
        status = item.get('status', {})
        thumbnails = snippet.get('thumbnails', {})
        thumbnail = thumbnails.get('high') or thumbnails.get('default') or {}
        return VideoInfo(
            video_id=item.get('id', video_id),
            title=snippet.get('title', ''),
            description=snippet.get('description', ''),
            privacy_status=status.get('privacyStatus'),
            upload_status=status.get('uploadStatus'),
            processing_status=item.get('processingDetails', {}).get('processingStatus'),
            thumbnail_url=thumbnail.get('url')
        )

    def check_auth_status(self) -> bool:
        """Return True when the configured credentials can call the API."""
        try:
            response = self._send(
                'GET',
                f"{API_URL}/channels",
                params={'part': 'id', 'mine': 'true'},
                headers=self._auth_headers(force_refresh=True)
            )
            if not response.ok:
                self._raise_for_status(response, "check auth status")
            return True
        except ProviderException as e:
            logger.warning(f"YouTube API authentication failed: {e.message}")
            return False

    def _auth_headers(self, force_refresh: bool = False) -> dict:
        return {'Authorization': f"Bearer {self._get_access_token(force_refresh)}"}

    def _get_access_token(self, force_refresh: bool = False) -> str:
        """Exchange the refresh token for an access token, cached until expiry."""
        with self._token_lock:
            if (
                not force_refresh
                and self._access_token
                and self._token_expires_at
                and utc_now() < self._token_expires_at
            ):
                return self._access_token

            settings = config.settings
            if not (settings.youtube_client_id and settings.youtube_client_secret and settings.youtube_refresh_token):
                raise ProviderException(
                    "YouTube API credentials not configured",
                    permanent=True,
                    reason="not_configured"
                )

            response = self._send(
                'POST',
                TOKEN_URL,
                data={
                    'client_id': settings.youtube_client_id,
                    'client_secret': settings.youtube_client_secret,
                    'refresh_token': settings.youtube_refresh_token,
                    'grant_type': 'refresh_token'
                }
            )
            if response.status_code in (400, 401):
                raise ProviderException(
                    "Failed to authenticate with YouTube API",
                    permanent=True,
                    reason="auth_revoked",
                    status_code=response.status_code
                )
            if not response.ok:
                self._raise_for_status(response, "refresh access token")

            payload = self._json(response)
            self._access_token = payload['access_token']
            # refresh a minute early
            expires_in = int(payload.get('expires_in', 3600))
            self._token_expires_at = utc_now() + timedelta(seconds=max(expires_in - 60, 0))
            return self._access_token

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Issue one HTTP call; network faults become retryable provider errors."""
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ProviderException(f"YouTube API timed out: {str(e)}", reason="timeout") from e
        except requests.RequestException as e:
            raise ProviderException(f"YouTube API unreachable: {str(e)}", reason="network") from e

    def _json(self, response: requests.Response) -> dict:
        try:
            return response.json()
        except ValueError:
            return {}

    def _raise_for_status(self, response: requests.Response, action: str) -> None:
        """Classify a failed response as a permanent or retryable provider error."""
        error = self._json(response).get('error', {})
        if not isinstance(error, dict):
            error = {'message': str(error)}
        errors = error.get('errors') or [{}]
        reason = errors[0].get('reason') or error.get('status')
        provider_message = error.get('message') or response.text or response.reason
        message = f"YouTube API error while trying to {action}: {response.status_code} - {provider_message}"
        status_code = response.status_code

        if status_code == 403:
            permanent = reason not in TRANSIENT_FORBIDDEN_REASONS
        elif status_code == 429 or status_code >= 500:
            permanent = False
        else:
            permanent = True

        logger.error(message)
        raise ProviderException(message, permanent=permanent, reason=reason, status_code=status_code)
