"""
Shared test fixtures and utilities.
"""
import pytest
import jwt
import boto3
from datetime import datetime, timedelta
from unittest.mock import Mock
from moto import mock_aws
from src.core import config
from src.models.upload_session import utc_now
from src.models.video_info import ProviderUploadStatus
from src.repositories.youtube_repository import YouTubeRepository

TABLE_NAME = "UploadSessions-test"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos?upload_id=abc123"


def make_token(sub="test_user", expires_in=timedelta(hours=1)):
    # Use same secret as in config
    jwt_secret = "dev-secret-change-in-production"
    payload = {
        "sub": sub,
        "exp": datetime.utcnow() + expires_in,
        "iat": datetime.utcnow()
    }
    return jwt.encode(payload, jwt_secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Generate valid JWT token and return authorization headers."""
    return {"Authorization": f"Bearer {make_token('test_user')}"}


@pytest.fixture
def other_auth_headers():
    """Authorization headers for a second, unrelated owner."""
    return {"Authorization": f"Bearer {make_token('other_user')}"}


@pytest.fixture
def setup_test_env(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("UPLOAD_SESSIONS_TABLE_NAME", TABLE_NAME)
    monkeypatch.setenv("ENVIRONMENT", "test")
    config.settings = config.Settings()
    yield
    config.settings = config.Settings()


@pytest.fixture
def sessions_table(setup_test_env):
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "session_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "session_id", "AttributeType": "S"},
                {"AttributeName": "owner_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"}
            ],
            GlobalSecondaryIndexes=[{
                "IndexName": "OwnerIndex",
                "KeySchema": [
                    {"AttributeName": "owner_id", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"}
                ],
                "Projection": {"ProjectionType": "ALL"}
            }],
            BillingMode="PAY_PER_REQUEST"
        )
        yield table


class FakeClock:
    """Controllable replacement for utc_now."""

    def __init__(self, start=None):
        self.now = start or utc_now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def youtube_repository():
    """YouTube repository double: issues an upload URL, upload not yet complete."""
    repo = Mock(spec=YouTubeRepository)
    repo.create_upload_endpoint.return_value = UPLOAD_URL
    repo.query_upload_status.return_value = ProviderUploadStatus(completed=False, received_bytes=0)
    repo.get_video_info.return_value = None
    repo.check_auth_status.return_value = True
    return repo
