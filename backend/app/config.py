from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Parley API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:4173",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=None,
        env="CORS_ALLOW_ORIGIN_REGEX",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_user: str = Field(default="parley", env="DB_USER")
    database_password: str = Field(default="parley", env="DB_PASSWORD")
    database_host: str = Field(default="db", env="DB_HOST")
    database_port: int = Field(default=3306, env="DB_PORT")
    database_name: str = Field(default="parley", env="DB_NAME")
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "database_url_override"),
        description="Full SQLAlchemy URL; takes precedence over the DB_* fields",
    )
    database_auto_create: bool = Field(
        default=True,
        env="DATABASE_AUTO_CREATE",
        description="Create missing tables on startup",
    )

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=15 * 24 * 60, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    auth_cookie_name: str = Field(default="parley-token", env="AUTH_COOKIE_NAME")
    auth_cookie_secure: bool = Field(default=True, env="AUTH_COOKIE_SECURE")
    auth_cookie_samesite: Literal["lax", "strict", "none"] = Field(default="none", env="AUTH_COOKIE_SAMESITE")

    admin_secret_key: str = Field(default="changeme-admin", env="ADMIN_SECRET_KEY")
    admin_cookie_name: str = Field(default="parley-admin-token", env="ADMIN_COOKIE_NAME")
    admin_token_expire_minutes: int = Field(default=15, env="ADMIN_TOKEN_EXPIRE_MINUTES")

    media_root: Path = Field(default=Path("uploads"), env="MEDIA_ROOT")
    media_base_url: str = Field(default="/api/v1/media", env="MEDIA_BASE_URL")
    max_upload_size: int = Field(
        default=10 * 1024 * 1024, env="MAX_UPLOAD_SIZE", description="Maximum upload size in bytes"
    )
    max_attachments_per_message: int = Field(default=5, env="MAX_ATTACHMENTS_PER_MESSAGE")

    chat_message_max_length: int = Field(default=2000, env="CHAT_MESSAGE_MAX_LENGTH")
    chat_page_size: int = Field(default=20, env="CHAT_PAGE_SIZE")
    chat_group_min_members: int = Field(default=3, env="CHAT_GROUP_MIN_MEMBERS")
    chat_group_max_members: int = Field(default=100, env="CHAT_GROUP_MAX_MEMBERS")

    websocket_keepalive_timeout_seconds: float = Field(
        default=30, env="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS"
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25, env="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS"
    )
    realtime_outbound_queue_size: int = Field(
        default=256,
        env="REALTIME_OUTBOUND_QUEUE_SIZE",
        description="Per-connection buffer of undelivered events before new ones are dropped",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()

    @model_validator(mode="after")
    def check_group_limits(self) -> "Settings":
        if self.chat_group_min_members < 2:
            raise ValueError("CHAT_GROUP_MIN_MEMBERS must be at least 2")
        if self.chat_group_max_members < self.chat_group_min_members:
            raise ValueError("CHAT_GROUP_MAX_MEMBERS must not be lower than CHAT_GROUP_MIN_MEMBERS")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
