"""Application settings and configuration.

This module defines all configuration options for the Stark Bridge service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Stark Bridge", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./bridge.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Bridge order service
    bridge_enabled: bool = Field(default=True, alias="BRIDGE_ENABLED")
    bridge_network: Literal["mainnet", "testnet"] = Field(
        default="testnet",
        alias="BRIDGE_NETWORK",
    )
    bridge_recovery_enabled: bool = Field(default=True, alias="BRIDGE_RECOVERY_ENABLED")
    bridge_recovery_interval_seconds: float = Field(
        default=30.0,
        alias="BRIDGE_RECOVERY_INTERVAL_SECONDS",
    )
    bridge_recovery_batch_size: int = Field(
        default=100,
        alias="BRIDGE_RECOVERY_BATCH_SIZE",
    )

    # Swap engine integration settings
    swap_engine_base_url: str = Field(
        default="http://localhost:4000",
        alias="SWAP_ENGINE_BASE_URL",
    )
    swap_engine_shared_secret: str | None = Field(
        default=None,
        alias="SWAP_ENGINE_SHARED_SECRET",
    )
    swap_engine_audience: str = Field(
        default="swap-engine",
        alias="SWAP_ENGINE_JWT_AUD",
    )
    swap_engine_issuer: str = Field(
        default="stark-bridge",
        alias="SWAP_ENGINE_JWT_ISS",
    )
    swap_engine_token_ttl_seconds: int = Field(
        default=300,
        alias="SWAP_ENGINE_TOKEN_TTL_SECONDS",
    )
    swap_engine_http_timeout_seconds: float = Field(
        default=15.0,
        alias="SWAP_ENGINE_HTTP_TIMEOUT_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
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
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
