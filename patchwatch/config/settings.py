"""
PatchWatch Configuration System
===============================

Environment-driven settings built on Pydantic models. Environment variables
(prefix ``PATCHWATCH_``, nested with ``__``) override Field defaults, and a
``.env`` file in the working directory is honoured.

The settings object is resolved once at process start and handed to the
components that need it; core modules never read the environment directly.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode

ENV_PREFIX = "PATCHWATCH_"


class StoreBackend(str, Enum):
    """Available record store backends."""
    REST = "rest"
    SQLITE = "sqlite"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreSettings(BaseModel):
    """Record store configuration."""
    backend: StoreBackend = Field(default=StoreBackend.REST, description="Store backend to use")
    url: Optional[str] = Field(default=None, description="Base URL of the REST store")
    service_key: Optional[str] = Field(default=None, description="Service credential for the REST store")
    sqlite_path: str = Field(default="data/patchwatch.db", description="SQLite database path for the local backend")
    sources_resource: str = Field(default="sources", description="Resource holding source records")
    items_resource: str = Field(default="items", description="Resource holding stored items")
    request_timeout: float = Field(default=10.0, gt=0, le=60, description="Timeout for store requests in seconds")

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v):
        if v:
            return v.rstrip('/')
        return v


class TelegramSettings(BaseModel):
    """Telegram delivery configuration."""
    bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    chat_id: Optional[str] = Field(default=None, description="Chat that receives run notifications")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Delivery attempts when rate limited")
    retry_margin_seconds: float = Field(default=1.0, ge=0.0, le=30.0, description="Added to the server retry-after delay")
    disable_web_page_preview: bool = Field(default=False, description="Suppress link previews in notifications")

    @field_validator('bot_token')
    @classmethod
    def validate_bot_token(cls, v):
        """Basic shape check for Telegram bot tokens."""
        if v is None or v == "":
            return None
        # Allow test tokens for development
        if v.endswith('_test'):
            return v
        if v.count(':') != 1 or len(v) < 20:
            raise ValueError("Invalid bot token format")
        return v


class PollingSettings(BaseModel):
    """Run budgets and source handling."""
    time_budget_seconds: float = Field(default=25.0, gt=0, le=900, description="Stop starting new work after this many seconds")
    max_sources_per_run: int = Field(default=2, ge=1, le=100, description="Sources touched per run")
    max_new_items_per_run: int = Field(default=5, ge=1, le=500, description="New items accepted per run")
    fetch_timeout_seconds: float = Field(default=7.0, gt=0, le=120, description="Hard timeout for one source fetch")
    max_candidates_per_source: int = Field(default=10, ge=1, le=100, description="Candidates kept per source per run")
    dedup_lookback: int = Field(default=200, ge=1, le=5000, description="Recent fingerprints loaded per source")
    placeholder_marker: str = Field(default="PASTE_RSS_URL_HERE", description="URL marker of unconfigured sources")
    user_agent: str = Field(default="PatchWatch/1.0 (+https://github.com/patchwatch/patchwatch)", description="User-Agent sent to sources")
    detail_page_rules: Dict[str, str] = Field(
        default_factory=lambda: {
            "store.steampowered.com": "/news/app/",
            "steamcommunity.com": "/announcements/detail/",
            "blog.playstation.com": "/20",
            "nintendo.com": "/whatsnew/",
            "news.xbox.com": "/en-us/20",
        },
        description="Host substring -> path substring a scraped link must contain",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    console_logging: bool = Field(default=True, description="Enable console logging")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging on the console")


class PatchWatchSettings(BaseSettings):
    """Main application settings."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="PatchWatch", description="Application name")
    introspect: bool = Field(default=False, description="Report configured settings without contacting any service")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": ENV_PREFIX,
        "extra": "ignore",
    }

    def required_settings(self) -> Dict[str, bool]:
        """Map each required environment name to whether it is set."""
        present = {}
        if self.store.backend == StoreBackend.REST:
            present[f"{ENV_PREFIX}STORE__URL"] = bool(self.store.url)
            present[f"{ENV_PREFIX}STORE__SERVICE_KEY"] = bool(self.store.service_key)
        else:
            present[f"{ENV_PREFIX}STORE__SQLITE_PATH"] = bool(self.store.sqlite_path)
        present[f"{ENV_PREFIX}TELEGRAM__BOT_TOKEN"] = bool(self.telegram.bot_token)
        present[f"{ENV_PREFIX}TELEGRAM__CHAT_ID"] = bool(self.telegram.chat_id)
        return present

    def missing_settings(self) -> List[str]:
        """Names of required settings that are not configured."""
        return [name for name, ok in self.required_settings().items() if not ok]

    def validate_configuration(self) -> None:
        """Raise ConfigurationError when a required setting is absent."""
        missing = self.missing_settings()
        if missing:
            raise ConfigurationError(
                f"Missing env vars: {', '.join(missing)}",
                error_code=ErrorCode.CONFIG_MISSING,
                context={"missing": missing},
            )

    def get_effective_log_level(self) -> str:
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> PatchWatchSettings:
    """Load settings from the environment, ``.env`` and defaults.

    Required settings are not enforced here so that introspection mode can
    still report on a partially configured environment; callers use
    ``validate_configuration()`` before contacting any service.

    Raises:
        ConfigurationError: If a value fails validation
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        return PatchWatchSettings()
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        ) from e


_settings: Optional[PatchWatchSettings] = None


def get_settings(reload: bool = False) -> PatchWatchSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
