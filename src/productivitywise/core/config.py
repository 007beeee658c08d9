from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration using environment variables."""

    # Slack Configuration
    slack_bot_token: str = Field(default="x")
    slack_signing_secret: str = Field(default="x")
    slack_app_token: str = Field(default="")
    slack_user_token: Optional[str] = Field(default=None)
    slack_socket_mode: bool = Field(default=True)
    slack_port: int = Field(default=3000)
    slack_app_name: str = Field(default="ProductivityWise")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///data/productivitywise.db")

    # LLM Configuration
    openai_api_key: str = Field(default="x")
    openai_base_url: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    llm_temperature: float = Field(default=0.3)

    # Dispatch Configuration
    dispatch_timeout_ms: int = Field(default=1000, ge=1)
    intent_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    interaction_dedupe_ttl_seconds: int = Field(default=300, ge=1)

    # Focus / break defaults
    default_focus_minutes: int = Field(default=25, ge=1)
    break_minutes: int = Field(default=20, ge=1)
    override_break_minutes: int = Field(default=15, ge=1)
    default_timezone: str = Field(default="UTC")

    # Development Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")
    prometheus_port: Optional[int] = Field(default=None)
    environment: str = Field(default="development")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
