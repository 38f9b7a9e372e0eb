"""Tracker service configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
TWITCH_DIR = Path(__file__).parent.parent
PACKAGE_DIR = TWITCH_DIR.parent

# Chatter polling polls 5 minutes apart; both pollers share this default
DEFAULT_POLL_INTERVAL = 300

BOT_SCOPES = [
    "user:bot",  # Bot identifier
    "user:read:chat",  # Read chat messages
    "moderator:read:chatters",  # Chatter list snapshots
    "moderator:manage:banned_users",  # Ban EventSub
]

BROADCASTER_SCOPES = [
    "channel:bot",  # Allow bot to join channel
    "channel:read:redemptions",  # Channel points EventSub
    "channel:moderate",  # Ban EventSub
]


class TwitchBotSettings(BaseSettings):
    """Tracker settings"""

    model_config = SettingsConfigDict(
        env_file=PACKAGE_DIR.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    client_secret: str = Field(..., description="Twitch OAuth Client Secret")

    # Accounts
    bot_id: str = Field(..., description="Bot User ID")
    broadcaster_id: str = Field(..., description="Tracked channel's User ID")

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: str = Field(default="", description="asyncpg ssl mode, e.g. 'require'")

    # EventSub
    conduit_id: str = Field(default="", description="Twitch EventSub Conduit ID")

    # Polling
    stream_poll_interval: int = Field(
        default=DEFAULT_POLL_INTERVAL, ge=10, description="Seconds between live status checks"
    )
    chatter_poll_interval: int = Field(
        default=DEFAULT_POLL_INTERVAL, ge=10, description="Seconds between chatter snapshots"
    )

    # Health server
    health_host: str = Field(default="0.0.0.0", description="Health server bind address")
    health_port: int = Field(default=4344, description="Health server port")

    # Environment
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql://"""
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> TwitchBotSettings:
    """Get cached settings instance"""
    return TwitchBotSettings()  # type: ignore[call-arg]


def validate_env_vars() -> TwitchBotSettings:
    """Load settings, logging a readable error when required variables are missing."""
    try:
        settings = get_settings()
    except Exception as e:
        logging.getLogger("Bot").error(f"Environment validation failed: {e}")
        raise ValueError(str(e)) from e

    logger.info("All required environment variables validated successfully")
    return settings
