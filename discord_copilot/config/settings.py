"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BotSettings(BaseSettings):
    """Discord bot configuration."""

    name: str = Field(default="Discord Copilot", description="Bot display name")
    token: str = Field(default="", description="Discord bot token")
    channel_cache_ttl: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between allow-list refreshes from the store",
    )
    message_limit: int = Field(
        default=2000,
        gt=3,
        description="Hard length limit for an outbound Discord message",
    )
    summary_threshold: int = Field(
        default=6,
        ge=1,
        description="Number of delivered replies after which the rolling summary is rebuilt",
    )

    model_config = SettingsConfigDict(env_prefix="BOT_")


class LLMSettings(BaseSettings):
    """LLM API configuration."""

    model: str = Field(
        default="gemini/gemini-2.0-flash",
        description="LiteLLM model string, e.g. 'gemini/gemini-2.0-flash', "
                    "'openai/gpt-4o-mini', 'ollama/llama3'. The provider prefix tells LiteLLM "
                    "which API to route the request to.",
    )
    api_key: str = Field(default="", description="API key for the model's provider")
    api_base: str | None = Field(
        default=None,
        description="Optional base URL for OpenAI-compatible endpoints",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a chat reply before giving up",
    )
    temperature: float | None = Field(
        default=None, description="Sampling temperature (provider default when unset)"
    )
    max_tokens: int | None = Field(
        default=None, description="Maximum tokens in response (provider default when unset)"
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class StoreSettings(BaseSettings):
    """Supabase connection used by both the bot and the dashboard."""

    url: str = Field(default="", description="Supabase project URL")
    service_role_key: str = Field(
        default="",
        description="Service role key (bypasses row level security; keep server-side)",
    )

    model_config = SettingsConfigDict(env_prefix="STORE_")


class DashboardSettings(BaseSettings):
    """Admin dashboard web server configuration."""

    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=8000, description="Port to bind")
    session_secret: str = Field(
        default="",
        description="Secret used to sign the admin session cookie",
    )
    memory_refresh_seconds: int = Field(
        default=10,
        ge=1,
        description="How often the memory viewer polls for a new summary",
    )

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")


class HealthSettings(BaseSettings):
    """Liveness endpoint served next to the bot for the hosting platform."""

    enabled: bool = Field(default=True, description="Start the health server with the bot")
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=8080, description="Port to bind")

    model_config = SettingsConfigDict(env_prefix="HEALTH_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    bot: BotSettings = Field(default_factory=BotSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    def missing_bot_settings(self) -> list[str]:
        """Names of required settings that are unset for the bot process."""
        missing = []
        if not self.bot.token:
            missing.append("BOT__TOKEN")
        if not self.llm.model:
            missing.append("LLM__MODEL")
        if not self.llm.api_key:
            missing.append("LLM__API_KEY")
        missing.extend(self.missing_store_settings())
        return missing

    def missing_dashboard_settings(self) -> list[str]:
        """Names of required settings that are unset for the dashboard process."""
        missing = self.missing_store_settings()
        if not self.dashboard.session_secret:
            missing.append("DASHBOARD__SESSION_SECRET")
        return missing

    def missing_store_settings(self) -> list[str]:
        missing = []
        if not self.store.url:
            missing.append("STORE__URL")
        if not self.store.service_role_key:
            missing.append("STORE__SERVICE_ROLE_KEY")
        return missing


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
