"""
Lambda function that enforces session deadlines and reconciles stuck uploads.
Triggered by an EventBridge schedule.
"""
import json
from src.core.exceptions import DynamoDBException, UploadSessionException
from src.core.logger import get_logger
from src.models.upload_session import SessionStatus
from src.repositories.upload_session_repository import UploadSessionRepository
from src.services.upload_session_service import UploadSessionService

logger = get_logger(__name__)


def handler(event, context):
    """
    Lambda handler for the scheduled session sweep.

    Overdue uploading/processing sessions are moved to failed, then every
    session still in processing is reconciled with the provider.

    Args:
        event: Scheduled event (content ignored)
        context: Lambda context object

    Returns:
        dict: Sweep result with counts
    """
    session_repository = UploadSessionRepository()
    service = UploadSessionService(session_repository=session_repository)

    try:
        expired = service.expire_overdue_sessions()
        completed, pending, errors = _reconcile_processing(service, session_repository)
    except DynamoDBException as e:
        logger.error(f"Session sweep failed: {e.message}")
        return {
            'statusCode': 500,
            'body': json.dumps({
                'error': 'Database Error',
                'message': e.message
            })
        }

    logger.info(
        f"Session sweep finished: {expired} expired, {completed} completed, "
        f"{pending} pending, {errors} errors"
    )
    return {
        'statusCode': 200,
        'body': json.dumps({
            'expired': expired,
            'completed': completed,
            'pending': pending,
            'errors': errors
        })
    }


def _reconcile_processing(service: UploadSessionService, session_repository: UploadSessionRepository):
    """
    Sync every processing session; one session failing does not stop the rest.

    Returns:
        tuple: (completed, still pending, errors)
    """
    completed = pending = errors = 0
    for session in session_repository.find_by_status(SessionStatus.PROCESSING):
        try:
            result = service.sync_video_id(session.session_id, session.owner_id)
        except DynamoDBException:
            raise
        except UploadSessionException as e:
            logger.warning(f"Could not reconcile session {session.session_id}: {e.message}")
            errors += 1
            continue

        if result.success:
            completed += 1
        else:
            pending += 1
    return completed, pending, errors
