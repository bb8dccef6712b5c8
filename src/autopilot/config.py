"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Shared by the orchestrator service and the automation service; each
    process only reads the fields it needs.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Orchestrator service
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    # Automation service boundary
    AUTOMATION_URL: str = "http://localhost:3333"
    AUTOMATION_ENABLED: bool = True
    AUTOMATION_HOST: str = "0.0.0.0"
    AUTOMATION_PORT: int = 3333
    AUTOMATION_REQUEST_TIMEOUT: float = 60.0
    AUTOMATION_HEALTH_TIMEOUT: float = 5.0

    # Scheduler
    TICK_INTERVAL_SECONDS: float = 5.0
    HEALTH_POLL_INTERVAL_SECONDS: float = 30.0

    # Browser automation (automation service only)
    BROWSER_HEADLESS: bool = False
    BROWSER_USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    NAVIGATION_TIMEOUT_MS: int = 30000
    SELECTOR_TIMEOUT_MS: int = 15000
    SHUTDOWN_TIMEOUT_SECONDS: float = 20.0
    SESSION_CLOSE_TIMEOUT_SECONDS: float = 5.0
    JOIN_TIMEOUT_SECONDS: float = 45.0  # navigation + strategy, per join

    # Join identity
    DEFAULT_DISPLAY_NAME: str = "Meeting Recorder"
    DEFAULT_EMAIL: str = ""

    # Recording device (OBS websocket v5)
    OBS_ADDRESS: str = "ws://localhost:4455"
    OBS_PASSWORD: str = ""
    OBS_AUTO_CONNECT: bool = False
    OBS_TIMEOUT_SECONDS: float = 5.0

    # Schedule text extraction (LiteLLM model name; provider keys come from env)
    SCHEDULE_PARSER_MODEL: str = "gemini/gemini-2.5-flash"

    # New meetings record by default unless the caller says otherwise
    DEFAULT_AUTO_RECORD: bool = True

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Monitoring
    SENTRY_DSN: str = ""

    def automation_request_timeout(self) -> float:
        """Client timeout for join calls, kept above the server-side join budget.

        The server may spend JOIN_TIMEOUT_SECONDS on the attempt plus one
        context close before it answers.
        """
        floor = self.JOIN_TIMEOUT_SECONDS + self.SESSION_CLOSE_TIMEOUT_SECONDS + 10.0
        return max(self.AUTOMATION_REQUEST_TIMEOUT, floor)

    def cors_origins(self) -> list[str]:
        """Return CORS origins as a list, expanding the wildcard form."""
        if self.CORS_ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
