# btu_api/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache
from typing import ClassVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="Database connection URL (async driver)",
    )
    DB_POOL_SIZE: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrent database connections; extra requests queue",
    )
    DB_POOL_TIMEOUT: int = Field(
        default=30,
        ge=1,
        description="Seconds a request waits for a pooled connection",
    )

    # Storage
    STORAGE_PROVIDER: str = Field(
        default="drive",
        description="Storage backend: drive, ftp",
    )
    MAX_IMAGE_BYTES: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum accepted image upload size",
    )
    UPLOAD_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Outer timeout around a single blob upload",
    )
    IMAGE_UPLOAD_UNAVAILABLE_POLICY: str = Field(
        default="degrade",
        description="When storage is unavailable: 'degrade' (post without image) or 'fail' (500)",
    )

    # Google Drive service account
    GOOGLE_CREDENTIALS: str | None = Field(
        default=None,
        description="Inline service account JSON",
    )
    GOOGLE_TYPE: str = "service_account"
    GOOGLE_PROJECT_ID: str | None = None
    GOOGLE_PRIVATE_KEY_ID: str | None = None
    GOOGLE_PRIVATE_KEY: str | None = None
    GOOGLE_CLIENT_EMAIL: str | None = None
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_AUTH_URI: str = "https://accounts.google.com/o/oauth2/auth"
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    GOOGLE_AUTH_PROVIDER_X509_CERT_URL: str = "https://www.googleapis.com/oauth2/v1/certs"
    GOOGLE_CLIENT_X509_CERT_URL: str | None = None
    GOOGLE_UNIVERSE_DOMAIN: str = "googleapis.com"
    GOOGLE_CREDENTIALS_PATHS: str = Field(
        default="/etc/secrets/service-account.json,./service-account.json",
        description="Comma-separated candidate credential files, tried in order",
    )
    GOOGLE_CREDENTIALS_CACHE_PATH: str = Field(
        default="./service-account.json",
        description="Where to write a normalized copy of resolved credentials (empty = never)",
    )
    DRIVE_FOLDER_NAME: str = Field(
        default="BTU_News_Images",
        description="Drive folder that holds all uploaded images",
    )

    # Legacy FTP host
    FTP_HOST: str | None = None
    FTP_PORT: int = 21
    FTP_USER: str | None = None
    FTP_PASSWORD: str | None = None
    FTP_USE_TLS: bool = False
    FTP_REMOTE_DIR: str = "public_html/uploads/news"
    FTP_TIMEOUT_SECONDS: float = 30.0
    FTP_TRANSFER_ATTEMPTS: int = Field(default=3, ge=1)
    FTP_RETRY_WAIT_SECONDS: float = 2.0
    PUBLIC_DOMAIN: str | None = Field(
        default=None,
        description="Public web host serving the FTP upload directory",
    )

    # Application
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    STORAGE_PROVIDERS: ClassVar[set[str]] = {"drive", "ftp"}
    UNAVAILABLE_POLICIES: ClassVar[set[str]] = {"degrade", "fail"}

    @field_validator("STORAGE_PROVIDER")
    @classmethod
    def check_storage_provider(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in cls.STORAGE_PROVIDERS:
            raise ValueError(f"Unknown storage provider: {v}. Available: drive, ftp")
        return v

    @field_validator("IMAGE_UPLOAD_UNAVAILABLE_POLICY")
    @classmethod
    def check_unavailable_policy(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in cls.UNAVAILABLE_POLICIES:
            raise ValueError(f"Unknown upload policy: {v}. Available: degrade, fail")
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosting platforms hand out postgresql:// but the async engine needs asyncpg."""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+asyncpg://", 1)
        return v

    @property
    def credential_paths(self) -> list[str]:
        return [p.strip() for p in self.GOOGLE_CREDENTIALS_PATHS.split(",") if p.strip()]

    @property
    def degrade_on_unavailable(self) -> bool:
        return self.IMAGE_UPLOAD_UNAVAILABLE_POLICY == "degrade"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
