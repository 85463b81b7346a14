"""
YouTube provider routes.
"""
from fastapi import APIRouter, Depends
from src.core.auth_dependencies import verify_token
from src.core.dependencies import get_sync_adapter
from src.models.dto.upload_dto import AuthStatusResponse
from src.services.external_sync_adapter import ExternalSyncAdapter

router = APIRouter(prefix="/v1/api/youtube", tags=["YouTube"])


@router.get("/auth-status", response_model=AuthStatusResponse)
def get_auth_status(
    sync_adapter: ExternalSyncAdapter = Depends(get_sync_adapter),
    owner_id: str = Depends(verify_token)
):
    """Check that the service's YouTube credentials are currently valid."""
    authenticated = sync_adapter.check_auth_status()
    return AuthStatusResponse(
        authenticated=authenticated,
        message=(
            "YouTube API authentication is valid"
            if authenticated
            else "YouTube API authentication failed"
        )
    )
