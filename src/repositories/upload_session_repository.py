"""
Upload Session Repository for DynamoDB operations.
Durable record of every upload attempt, scoped by (session_id, owner_id).
"""
import json
import uuid
from datetime import datetime
from typing import Iterable, List, Optional
import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from src.core import config
from src.core.exceptions import DynamoDBException
from src.models.upload_session import (
    ACTIVE_STATUSES,
    SessionStatus,
    UploadSession,
    from_iso,
    to_iso,
    utc_now
)

OWNER_INDEX = 'OwnerIndex'


class UploadSessionRepository:
    """Repository for upload session DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.table = self.dynamodb.Table(config.settings.upload_sessions_table_name)

    def create(
        self,
        owner_id: str,
        file_name: str,
        file_size: int,
        expires_at: datetime,
        external_upload_url: str,
        metadata: Optional[dict] = None
    ) -> str:
        """
        Create a new upload session in the uploading state.

        Args:
            owner_id: Identity of the initiating user
            file_name: Name of the source file
            file_size: Size of the source file in bytes
            expires_at: Absolute deadline of the session
            external_upload_url: Upload URL granted by the provider
            metadata: Caller supplied descriptive fields

        Returns:
            The new session id

        Raises:
            DynamoDBException: If create operation fails
        """
        session_id = str(uuid.uuid4())
        now = to_iso(utc_now())

        try:
            self.table.put_item(
                Item={
                    'session_id': session_id,
                    'owner_id': owner_id,
                    'file_name': file_name,
                    'file_size': file_size,
                    'uploaded_bytes': 0,
                    'status': SessionStatus.UPLOADING.value,
                    'external_upload_url': external_upload_url,
                    'metadata': json.dumps(metadata or {}),
                    'expires_at': to_iso(expires_at),
                    'created_at': now,
                    'updated_at': now
                },
                ConditionExpression='attribute_not_exists(session_id)'
            )
            return session_id

        except ClientError as e:
            raise DynamoDBException(f"Failed to create upload session: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error creating upload session: {str(e)}") from e

    def get(self, session_id: str, owner_id: str) -> Optional[UploadSession]:
        """
        Retrieve a session owned by owner_id.

        A session owned by someone else is reported exactly like a missing one.

        Returns:
            UploadSession object or None if not found
        """
        try:
            response = self.table.get_item(Key={'session_id': session_id}, ConsistentRead=True)
        except ClientError as e:
            raise DynamoDBException(f"Failed to get upload session: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error getting upload session: {str(e)}") from e

        item = response.get('Item')
        if not item or item.get('owner_id') != owner_id:
            return None
        return self._item_to_session(item)

    def update(
        self,
        session_id: str,
        owner_id: str,
        updates: dict,
        expected_statuses: Optional[Iterable[SessionStatus]] = None,
        max_uploaded_bytes: Optional[int] = None,
        not_expired_at: Optional[datetime] = None
    ) -> Optional[UploadSession]:
        """
        Atomically update session fields under a condition.

        updated_at is always set in the same write. The owner must match; the
        optional arguments add further conditions to the same write.

        Args:
            session_id: Session identifier
            owner_id: Owner the session must belong to
            updates: Dictionary of fields to update
            expected_statuses: Statuses the stored session must be in
            max_uploaded_bytes: Stored uploaded_bytes must not exceed this
            not_expired_at: Stored expires_at must be later than this

        Returns:
            The updated session, or None when the session does not resolve
            under the owner or a condition did not hold

        Raises:
            DynamoDBException: If update operation fails
        """
        updates = dict(updates)
        updates['updated_at'] = utc_now()

        update_expression = "SET "
        expression_values = {}
        expression_names = {}

        for key, value in updates.items():
            update_expression += f"#{key} = :{key}, "
            expression_values[f":{key}"] = self._to_attribute(value)
            expression_names[f"#{key}"] = key

        update_expression = update_expression.rstrip(", ")

        conditions = ["attribute_exists(session_id)", "#owner_id = :c_owner_id"]
        expression_names["#owner_id"] = "owner_id"
        expression_values[":c_owner_id"] = owner_id

        if expected_statuses is not None:
            placeholders = []
            for i, status in enumerate(expected_statuses):
                expression_values[f":c_status{i}"] = SessionStatus(status).value
                placeholders.append(f":c_status{i}")
            expression_names["#status"] = "status"
            conditions.append(f"#status IN ({', '.join(placeholders)})")

        if max_uploaded_bytes is not None:
            expression_names["#uploaded_bytes"] = "uploaded_bytes"
            expression_values[":c_max_uploaded_bytes"] = max_uploaded_bytes
            conditions.append("#uploaded_bytes <= :c_max_uploaded_bytes")

        if not_expired_at is not None:
            expression_names["#expires_at"] = "expires_at"
            expression_values[":c_now"] = to_iso(not_expired_at)
            conditions.append("#expires_at > :c_now")

        try:
            response = self.table.update_item(
                Key={'session_id': session_id},
                UpdateExpression=update_expression,
                ConditionExpression=" AND ".join(conditions),
                ExpressionAttributeNames=expression_names,
                ExpressionAttributeValues=expression_values,
                ReturnValues='ALL_NEW'
            )
            return self._item_to_session(response['Attributes'])

        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return None
            raise DynamoDBException(f"Failed to update upload session: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error updating upload session: {str(e)}") from e

    def list_by_owner(
        self,
        owner_id: str,
        statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[UploadSession]:
        """
        List an owner's sessions, newest first.

        Raises:
            DynamoDBException: If query fails
        """
        query_kwargs = {
            'IndexName': OWNER_INDEX,
            'KeyConditionExpression': Key('owner_id').eq(owner_id),
            'ScanIndexForward': False
        }
        if statuses is not None:
            query_kwargs['FilterExpression'] = Attr('status').is_in([SessionStatus(s).value for s in statuses])

        try:
            return [self._item_to_session(item) for item in self._paginate(self.table.query, query_kwargs)]
        except ClientError as e:
            raise DynamoDBException(f"Failed to query upload sessions: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error querying upload sessions: {str(e)}") from e

    def find_overdue(self, now: datetime) -> List[UploadSession]:
        """
        Find non-terminal sessions whose deadline has passed.

        Raises:
            DynamoDBException: If scan fails
        """
        scan_kwargs = {
            'FilterExpression': (
                Attr('status').is_in([s.value for s in ACTIVE_STATUSES])
                & Attr('expires_at').lt(to_iso(now))
            )
        }
        try:
            return [self._item_to_session(item) for item in self._paginate(self.table.scan, scan_kwargs)]
        except ClientError as e:
            raise DynamoDBException(f"Failed to scan upload sessions: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error scanning upload sessions: {str(e)}") from e

    def find_by_status(self, status: SessionStatus) -> List[UploadSession]:
        """
        Find every session currently in the given status.

        Raises:
            DynamoDBException: If scan fails
        """
        scan_kwargs = {'FilterExpression': Attr('status').eq(SessionStatus(status).value)}
        try:
            return [self._item_to_session(item) for item in self._paginate(self.table.scan, scan_kwargs)]
        except ClientError as e:
            raise DynamoDBException(f"Failed to scan upload sessions: {str(e)}") from e
        except Exception as e:
            raise DynamoDBException(f"Unexpected error scanning upload sessions: {str(e)}") from e

    def _paginate(self, operation, kwargs: dict) -> List[dict]:
        """Follow LastEvaluatedKey until every page is read."""
        items = []
        while True:
            response = operation(**kwargs)
            items.extend(response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                return items
            kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

    def _to_attribute(self, value):
        """Convert a domain value into a DynamoDB attribute value."""
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, SessionStatus):
            return value.value
        if isinstance(value, dict):
            return json.dumps(value)
        return value

    def _item_to_session(self, item: dict) -> UploadSession:
        """Convert DynamoDB item to UploadSession domain model."""
        return UploadSession(
            session_id=item['session_id'],
            owner_id=item['owner_id'],
            file_name=item['file_name'],
            file_size=int(item['file_size']),
            uploaded_bytes=int(item.get('uploaded_bytes', 0)),
            status=SessionStatus(item['status']),
            external_upload_url=item.get('external_upload_url'),
            external_video_id=item.get('external_video_id') or None,
            metadata=json.loads(item.get('metadata') or '{}'),
            error_message=item.get('error_message'),
            expires_at=from_iso(item['expires_at']),
            created_at=from_iso(item['created_at']),
            updated_at=from_iso(item['updated_at'])
        )
