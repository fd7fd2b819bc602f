"""Application settings and configuration.

This module defines all configuration options for the Common Stage service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Common Stage service.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Common Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    public_base_url: str = Field(
        default="http://localhost:3000",
        alias="PUBLIC_BASE_URL",
    )

    # Security and authentication
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./common.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Posts and conversations
    post_default_expiry_days: int = Field(default=14, alias="POST_DEFAULT_EXPIRY_DAYS")
    thread_grace_hours: int = Field(default=24, alias="THREAD_GRACE_HOURS")
    notification_preview_chars: int = Field(default=150, alias="NOTIFICATION_PREVIEW_CHARS")

    # Realtime change feed
    realtime_queue_size: int = Field(default=256, alias="REALTIME_QUEUE_SIZE")

    # Object storage for avatars
    storage_base_url: str | None = Field(default=None, alias="STORAGE_BASE_URL")
    storage_service_key: str | None = Field(default=None, alias="STORAGE_SERVICE_KEY")
    storage_bucket: str = Field(default="avatars", alias="STORAGE_BUCKET")
    avatar_max_bytes: int = Field(default=5 * 1024 * 1024, alias="AVATAR_MAX_BYTES")

    # Outbound transactional email
    email_enabled: bool = Field(default=False, alias="EMAIL_ENABLED")
    email_api_url: str = Field(default="https://api.resend.com", alias="EMAIL_API_URL")
    email_api_key: str | None = Field(default=None, alias="EMAIL_API_KEY")
    email_from: str = Field(
        default="common <notifications@notifications.common-social.com>",
        alias="EMAIL_FROM",
    )

    # Forward geocoding
    geocoder_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        alias="GEOCODER_BASE_URL",
    )
    geocoder_result_limit: int = Field(default=5, alias="GEOCODER_RESULT_LIMIT")
    geocoder_country_codes: str | None = Field(default="gb", alias="GEOCODER_COUNTRY_CODES")
    geocoder_user_agent: str = Field(default="common-stage/0.1", alias="GEOCODER_USER_AGENT")

    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def storage_enabled(self) -> bool:
        """Return True when an object storage endpoint is configured."""
        return bool(self.storage_base_url)


settings = Settings()
