from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ticketdesk.core.errors import ConfigurationMissingError


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default)).strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = "ticketdesk"
    log_level: str = "INFO"

    mongodb_uri: str = "mongodb://localhost:27017/ticketdesk"
    enable_external_services: bool = True
    require_store_on_startup: bool = False

    discord_token: str = ""
    discord_application_id: str = ""
    discord_public_key: str = ""
    discord_api_base_url: str = "https://discord.com/api/v10"
    guild_id: str = ""
    seller_category_id: str = ""
    buyer_category_id: str = ""
    seller_announce_channel_id: str = ""
    buyer_announce_channel_id: str = ""
    admin_announce_channel_id: str = ""
    admin_check_channel_id: str = ""

    s3_bucket: str = "ticketdesk-media"
    aws_region: str = "ap-southeast-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    s3_endpoint_url: str | None = None
    media_public_base_url: str = ""

    auto_archive_minutes: int = 10
    retention_days: int = 15
    sweep_interval_seconds: int = 3600
    archival_poll_seconds: int = 15
    upload_spacing_seconds: float = 0.5
    delete_spacing_seconds: float = 0.3
    publish_spacing_seconds: float = 0.3
    fetch_timeout_seconds: float = 20.0
    recent_message_limit: int = 100

    ticket_create_limit: int = 5
    ticket_create_window_seconds: int = 3600

    storage_failure_threshold: int = 5
    storage_recovery_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            app_name=_env_str("APP_NAME", "ticketdesk"),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            mongodb_uri=_env_str("MONGODB_URI", "mongodb://localhost:27017/ticketdesk"),
            enable_external_services=_env_bool("ENABLE_EXTERNAL_SERVICES", True),
            require_store_on_startup=_env_bool("REQUIRE_STORE_ON_STARTUP", False),
            discord_token=_env_str("DISCORD_TOKEN"),
            discord_application_id=_env_str("DISCORD_APPLICATION_ID"),
            discord_public_key=_env_str("DISCORD_PUBLIC_KEY"),
            discord_api_base_url=_env_str("DISCORD_API_BASE_URL", "https://discord.com/api/v10"),
            guild_id=_env_str("GUILD_ID"),
            seller_category_id=_env_str("SELLER_CATEGORY_ID"),
            buyer_category_id=_env_str("BUYER_CATEGORY_ID"),
            seller_announce_channel_id=_env_str("SELLER_ANNOUNCE_CHANNEL_ID"),
            buyer_announce_channel_id=_env_str("BUYER_ANNOUNCE_CHANNEL_ID"),
            admin_announce_channel_id=_env_str("ADMIN_ANNOUNCE_CHANNEL_ID"),
            admin_check_channel_id=_env_str("ADMIN_CHECK_CHANNEL_ID"),
            s3_bucket=_env_str("S3_BUCKET", "ticketdesk-media"),
            aws_region=_env_str("AWS_REGION", "ap-southeast-1"),
            aws_access_key_id=_env_str("AWS_ACCESS_KEY_ID") or None,
            aws_secret_access_key=_env_str("AWS_SECRET_ACCESS_KEY") or None,
            s3_endpoint_url=_env_str("S3_ENDPOINT_URL") or None,
            media_public_base_url=_env_str("MEDIA_PUBLIC_BASE_URL").rstrip("/"),
            auto_archive_minutes=_env_int("AUTO_ARCHIVE_MINUTES", 10),
            retention_days=_env_int("RETENTION_DAYS", 15),
            sweep_interval_seconds=_env_int("SWEEP_INTERVAL_SECONDS", 3600),
            archival_poll_seconds=_env_int("ARCHIVAL_POLL_SECONDS", 15),
            upload_spacing_seconds=_env_float("UPLOAD_SPACING_SECONDS", 0.5),
            delete_spacing_seconds=_env_float("DELETE_SPACING_SECONDS", 0.3),
            publish_spacing_seconds=_env_float("PUBLISH_SPACING_SECONDS", 0.3),
            fetch_timeout_seconds=_env_float("FETCH_TIMEOUT_SECONDS", 20.0),
            recent_message_limit=_env_int("RECENT_MESSAGE_LIMIT", 100),
            ticket_create_limit=_env_int("TICKET_CREATE_LIMIT", 5),
            ticket_create_window_seconds=_env_int("TICKET_CREATE_WINDOW_SECONDS", 3600),
            storage_failure_threshold=_env_int("STORAGE_FAILURE_THRESHOLD", 5),
            storage_recovery_seconds=_env_float("STORAGE_RECOVERY_SECONDS", 30.0),
        )

    def require_channel(self, field_name: str) -> str:
        value = str(getattr(self, field_name, "") or "")
        if not value:
            raise ConfigurationMissingError(f"{field_name.upper()} is not configured")
        return value
