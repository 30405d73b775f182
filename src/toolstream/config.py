"""Configuration management for toolstream."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .prompts import DEFAULT_SYSTEM_PROMPT


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLSTREAM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    api_key: str | None = Field(default=None, description="API key for the reasoning backend")
    api_base: str = Field(default="https://api.anthropic.com", description="Backend base URL")
    model: str = Field(default="claude-sonnet-4-20250514", description="Backend model name")
    max_tokens: int = Field(default=16000, ge=1, description="Maximum output tokens per round")
    thinking_budget: int = Field(default=10000, ge=0, description="Reasoning token budget, 0 disables reasoning")

    # Orchestration
    max_tool_rounds: int = Field(default=3, ge=0, description="Maximum dispatch cycles per attempt")
    max_attempts: int = Field(default=4, ge=1, description="Maximum attempts including the first one")
    retry_delays: tuple[float, ...] = Field(default=(1.0, 2.0, 4.0), description="Backoff schedule in seconds")
    stream_timeout_seconds: float = Field(default=120.0, gt=0, description="Deadline for one backend stream")
    operation_timeout_seconds: float = Field(default=20.0, gt=0, description="Deadline for one operation")
    early_extraction_keys: list[str] = Field(default_factory=lambda: ["go_to"])

    # Prompt
    system_prompt: str | None = Field(default=None, description="Inline system prompt")
    system_prompt_file: Path | None = Field(default=None, description="File holding the system prompt")

    # Storage
    home: Path = Field(default=Path.home() / ".toolstream", description="Directory for session files")
    history_limit: int = Field(default=20, ge=0, description="Stored turns replayed as history")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def resolved_api_key(self) -> str | None:
        return self.api_key or os.getenv("ANTHROPIC_API_KEY")

    @property
    def session_root(self) -> Path:
        return self.home.expanduser() / "sessions"

    def resolved_system_prompt(self) -> str:
        if self.system_prompt:
            return self.system_prompt
        if self.system_prompt_file is not None and self.system_prompt_file.is_file():
            return self.system_prompt_file.read_text(encoding="utf-8")
        return DEFAULT_SYSTEM_PROMPT


def get_settings() -> Settings:
    """Get application settings.

    pydantic-settings loads values from the environment and the local .env file.
    """
    return Settings()
