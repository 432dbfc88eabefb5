"""Application settings and configuration.

This module defines all configuration options for the wiki engine.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Wikicore", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Database configuration
    database_url: str = Field(default="sqlite:///./wikicore.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Listing cache; falls back to an in-process store when unset or unreachable
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL_SECONDS")

    # Content encryption at rest. When use_encryption is on, index terms are
    # stored as one-way digests instead of plaintext stems.
    use_encryption: bool = Field(default=True, alias="USE_ENCRYPTION")
    content_key: str | None = Field(default=None, alias="CONTENT_KEY")

    # Listing and search presentation
    teaser_length: int = Field(default=500, alias="TEASER_LENGTH")
    search_page_size: int = Field(default=50, alias="SEARCH_PAGE_SIZE")
    global_post_id: int = Field(default=0, alias="GLOBAL_POST_ID")
    stemmer_language: str = Field(default="english", alias="STEMMER_LANGUAGE")

    # Index maintenance after commits
    reindex_async: bool = Field(default=False, alias="REINDEX_ASYNC")
    reindex_max_retries: int = Field(default=5, alias="REINDEX_MAX_RETRIES")
    reindex_retry_delay_seconds: float = Field(
        default=2.0,
        alias="REINDEX_RETRY_DELAY_SECONDS",
    )

    # Revision sequence assignment attempts before a commit conflict surfaces
    commit_max_attempts: int = Field(default=5, alias="COMMIT_MAX_ATTEMPTS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
