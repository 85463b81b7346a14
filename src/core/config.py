"""
Core configuration for the Match Video Upload API.
Manages environment variables, AWS and YouTube settings.
"""
import os
from pydantic_settings import BaseSettings
from src.core.logger import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # AWS Configuration
    aws_region: str = os.getenv("AWS_REGION", "us-east-1")
    upload_sessions_table_name: str = os.getenv("UPLOAD_SESSIONS_TABLE_NAME", "")
    use_parameter_store: bool = os.getenv("USE_PARAMETER_STORE", "false").lower() == "true"

    # API Configuration
    api_title: str = os.getenv("API_TITLE", "Match Video Upload API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Upload Sessions
    session_ttl_hours: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
    max_file_size_bytes: int = int(os.getenv("MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024 * 1024)))
    upload_stall_timeout_seconds: int = int(os.getenv("UPLOAD_STALL_TIMEOUT_SECONDS", "60"))
    progress_update_max_attempts: int = int(os.getenv("PROGRESS_UPDATE_MAX_ATTEMPTS", "3"))

    # YouTube Configuration
    provider_timeout_seconds: int = int(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))
    youtube_default_category_id: str = os.getenv("YOUTUBE_DEFAULT_CATEGORY_ID", "17")
    youtube_default_privacy: str = os.getenv("YOUTUBE_DEFAULT_PRIVACY", "unlisted")

    # Authentication
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "dev")

    @property
    def jwt_secret(self) -> str:
        """Get JWT secret from Parameter Store."""
        return self._secret("jwt-secret", "JWT_SECRET", "dev-secret-change-in-production")

    @property
    def youtube_client_id(self) -> str:
        return self._secret("youtube-client-id", "YT_CLIENT_ID", "")

    @property
    def youtube_client_secret(self) -> str:
        return self._secret("youtube-client-secret", "YT_CLIENT_SECRET", "")

    @property
    def youtube_refresh_token(self) -> str:
        return self._secret("youtube-refresh-token", "YT_REFRESH_TOKEN", "")

    def _secret(self, name: str, env_var: str, default: str) -> str:
        """Read a secret from Parameter Store, falling back to the environment."""
        if self.use_parameter_store:
            try:
                from src.core.parameter_store import get_parameter
                return get_parameter(f"/match-video-api/{self.environment}/{name}", self.aws_region)
            except Exception as e:
                logger.warning(f"Using fallback value for {name}. Error: {e}")
        return os.getenv(env_var, default)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
