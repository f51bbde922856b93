"""
Configuration management for the VU course monitor.

Loads and validates all required environment variables with clear error messages.
Uses Pydantic Settings for type safety and validation.
"""

import logging
from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All required variables must be set, or the application will fail fast
    with a clear error message indicating which variables are missing.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Portal Configuration
    vu_username: str = Field(
        ...,
        description="Portal login username (student ID)"
    )
    vu_password: str = Field(
        ...,
        description="Portal login password"
    )
    course_urls: Annotated[List[str], NoDecode] = Field(
        ...,
        description="Comma-separated course page URLs, checked in this order"
    )
    portal_login_url: str = Field(
        default="https://vu.um.ac.ir/login/index.php",
        description="Entry point of the login flow"
    )
    portal_domain: str = Field(
        default="vu.um.ac.ir",
        description="Host that serves course pages once authenticated"
    )
    login_domain: str = Field(
        default="oauth.um.ac.ir",
        description="Identity provider host; landing here means the session expired"
    )

    # Telegram Bot API Configuration
    telegram_bot_token: str = Field(
        ...,
        description="Telegram Bot API token (from @BotFather)"
    )
    telegram_chat_id: str = Field(
        ...,
        description="Telegram chat ID receiving course notifications"
    )
    telegram_topic_id: Optional[int] = Field(
        default=None,
        description="Forum topic (message thread) ID inside the chat"
    )
    telegram_admin_chat_id: str = Field(
        ...,
        description="Chat that receives captcha challenges and cycle errors"
    )

    # Persistence
    store_backend: str = Field(
        default="json",
        description="Where state documents live: 'json' or 'supabase'"
    )
    data_dir: str = Field(
        default="data",
        description="Directory for JSON state documents"
    )
    downloads_dir: str = Field(
        default="files",
        description="Directory where delivered attachments are saved"
    )
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (supabase backend only)"
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key (supabase backend only)"
    )

    # Runtime behaviour
    check_interval: int = Field(
        default=5,
        description="Minutes between check cycles"
    )
    timezone: str = Field(
        default="Asia/Tehran",
        description="Operating timezone for deadlines, quiet hours and scheduling"
    )
    course_timeout_seconds: int = Field(
        default=120,
        description="Hard budget for checking a single course"
    )
    captcha_timeout_seconds: Optional[int] = Field(
        default=None,
        description="Give up waiting for a captcha reply after this many seconds (unbounded if unset)"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose logging and a visible browser window"
    )
    http_proxy: Optional[str] = Field(
        default=None,
        description="Proxy used for Telegram, downloads and the browser"
    )
    chrome_path: Optional[str] = Field(
        default=None,
        description="Browser executable override"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("course_urls", mode="before")
    @classmethod
    def split_course_urls(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            v = v.split(",")
        urls = [url.strip() for url in v if url and url.strip()]
        if not urls:
            raise ValueError("At least one course URL is required")
        return urls

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Ensure the store backend is known."""
        backend = v.lower()
        if backend not in {"json", "supabase"}:
            raise ValueError("Store backend must be 'json' or 'supabase'")
        return backend

    @field_validator("check_interval")
    @classmethod
    def validate_check_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Check interval must be at least 1 minute")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return upper

    @property
    def effective_log_level(self) -> str:
        """Debug mode always wins over the configured level."""
        return "DEBUG" if self.debug_mode else self.log_level


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Validated application settings

    Raises:
        ValidationError: If required environment variables are missing or invalid
    """
    return Settings()


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Configure application logging.

    Args:
        settings: Optional settings instance, will be loaded if not provided

    Returns:
        logging.Logger: Configured logger instance
    """
    if settings is None:
        settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.effective_log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("selenium").setLevel(logging.WARNING)

    return logging.getLogger("vu_monitor")
