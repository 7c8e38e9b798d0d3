"""Application configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-secret-very-insecure"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FLIXDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Flixdex"
    version: str = "0.3.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8787, description="Server port")

    # Paths
    config_path: Path = Field(
        default=Path("/config"),
        description="Path for configuration files and database",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    # Auth boundary - tokens are issued elsewhere, we only verify them
    jwt_secret: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="Shared secret used to verify session tokens",
    )
    jwt_algorithms: list[str] = Field(
        default=["HS256"],
        description="Accepted JWT signing algorithms",
    )

    # Microsoft Graph (OneDrive)
    graph_api_base: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Base URL of the Microsoft Graph API",
    )
    graph_page_size: int = Field(
        default=200,
        ge=1,
        le=999,
        description="Children requested per listing page ($top)",
    )
    graph_request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for a single Graph request",
    )
    graph_request_delay: float = Field(
        default=0.1,
        ge=0.0,
        description="Minimum seconds between Graph requests",
    )
    graph_requests_per_minute: int = Field(
        default=600,
        ge=1,
        description="Maximum Graph requests per sliding minute",
    )

    # Scanning
    default_provider: str = Field(
        default="onedrive",
        description="Provider used when a scan request does not name one",
    )
    max_concurrent_scans: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Scan runs allowed to traverse at the same time",
    )
    scan_page_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries of a listing page after a transient failure (0 disables)",
    )
    scan_retry_base_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="Base delay in seconds for page retry backoff",
    )
    scan_retry_max_delay: float = Field(
        default=60.0,
        ge=0.0,
        description="Upper bound in seconds for a single page retry delay",
    )
    scan_progress_interval: float = Field(
        default=2.0,
        ge=0.0,
        description="Minimum seconds between scan progress writes",
    )
    scan_shutdown_timeout: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds to wait for running scans on shutdown",
    )

    @property
    def db_path(self) -> Path:
        """Get the SQLite database file path."""
        return self.config_path / "flixdex.db"

    @property
    def using_default_jwt_secret(self) -> bool:
        """Check if the insecure development secret is in use."""
        return self.jwt_secret == DEFAULT_JWT_SECRET


# Global settings instance
settings = Settings()
