"""Configuration management for stepwright."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stepwright.core.interfaces import ConfigProvider


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI Configuration
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(
        default="gpt-4o-mini", description="Model used by the AI element finder"
    )
    openai_temperature: float = Field(
        default=0.2, ge=0.0, le=2.0, description="Sampling temperature"
    )
    openai_max_retries: int = Field(
        default=3, ge=1, description="Maximum API retry attempts"
    )
    openai_request_timeout_seconds: int = Field(
        default=60,
        ge=5,
        description="Request timeout for OpenAI API calls in seconds",
    )
    ai_selector_enabled: bool = Field(
        default=True,
        description="Consult the language model before the scored fallback",
    )
    ai_snapshot_limit: int = Field(
        default=50, ge=1, le=200, description="Interactive elements captured per snapshot"
    )
    ai_prompt_element_limit: int = Field(
        default=30, ge=1, le=200, description="Elements included in the AI prompt"
    )

    # Browser Configuration
    browser_headless: bool = Field(
        default=True, description="Run browser in headless mode"
    )
    browser_timeout: int = Field(
        default=30000, ge=1000, description="Default browser timeout (ms)"
    )
    browser_viewport_width: int = Field(
        default=1280, ge=320, description="Browser viewport width"
    )
    browser_viewport_height: int = Field(
        default=720, ge=240, description="Browser viewport height"
    )

    # Execution Configuration
    navigation_timeout_ms: int = Field(
        default=30000, ge=1000, description="Timeout for page navigation (ms)"
    )
    action_timeout_ms: int = Field(
        default=10000, ge=500, description="Timeout for click/fill actions (ms)"
    )
    locator_probe_timeout_ms: int = Field(
        default=2000, ge=100, description="Visibility probe window per strategy (ms)"
    )
    settle_delay_ms: int = Field(
        default=1000, ge=0, description="Fixed delay after each step (ms)"
    )
    network_idle_timeout_ms: int = Field(
        default=5000, ge=0, description="Cap on the best-effort network idle wait (ms)"
    )
    post_step_delay_ms: int = Field(
        default=500, ge=0, description="Delay after the settle wait, before capture (ms)"
    )
    scroll_amount_px: int = Field(
        default=500, ge=1, description="Vertical scroll distance for scroll steps"
    )

    # Live frame streaming
    screencast_enabled: bool = Field(
        default=True, description="Stream live frames while a run executes"
    )
    screencast_max_fps: int = Field(
        default=5, ge=1, le=30, description="Maximum frames emitted per second"
    )
    screencast_quality: int = Field(
        default=30, ge=1, le=100, description="Screencast JPEG quality"
    )
    screencast_max_width: int = Field(default=1024, ge=100)
    screencast_max_height: int = Field(default=576, ge=100)
    screencast_every_nth_frame: int = Field(default=3, ge=1)

    # History Configuration
    history_cap: int = Field(
        default=100, ge=1, description="Maximum executions kept in history"
    )
    history_list_limit: int = Field(
        default=50, ge=1, description="Executions returned by the list view"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="text",
        description="Log format (json or text)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("data"), description="Data storage directory"
    )
    screenshots_dir: Path = Field(
        default=Path("data/screenshots"), description="Screenshots directory"
    )
    artifact_url_prefix: str = Field(
        default="/screenshots", description="Prefix of returned artifact references"
    )

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("artifact_url_prefix")
    def normalize_url_prefix(cls, v: str) -> str:
        return "/" + v.strip("/") if v.strip("/") else ""

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.data_dir, self.screenshots_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


class ConfigManager(ConfigProvider):
    """Configuration manager implementation."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Initialize config manager.

        Args:
            settings: Optional settings instance
        """
        self.settings = settings or get_settings()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        try:
            return getattr(self.settings, key)
        except AttributeError:
            return default

    def get_required(self, key: str) -> Any:
        """Get required configuration value."""
        try:
            return getattr(self.settings, key)
        except AttributeError:
            raise KeyError(f"Required configuration key not found: {key}")

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self.settings.model_dump()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    settings = Settings()
    settings.create_directories()
    return settings


def get_config() -> ConfigManager:
    """Get configuration manager instance."""
    return ConfigManager(get_settings())
