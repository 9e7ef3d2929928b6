"""Configuration management for Loop Runner."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Loop Runner"
    debug: bool = False
    log_level: str = "INFO"

    # Agent runtime (opencode)
    opencode_executable: str = Field(
        default="opencode",
        description="Path to the opencode binary used to launch the runtime",
    )
    opencode_hostname: str = Field(
        default="127.0.0.1",
        description="Interface the spawned runtime listens on",
    )
    opencode_sdk_port: int = Field(
        default=4097,
        description="Port the spawned runtime listens on",
    )
    opencode_url: Optional[str] = Field(
        default=None,
        description="Attach to an already-running runtime instead of spawning one",
    )
    opencode_startup_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for the spawned runtime to report its URL",
    )
    agent_timeout_seconds: float = Field(
        default=600.0,
        description="Maximum time for a single agent request",
    )

    # Loop defaults (applied once at process start)
    default_provider_id: str = "anthropic"
    default_model_id: str = "claude-sonnet-4-20250514"
    default_system: str = (
        "You are a helpful assistant running in a continuous loop. "
        "You have access to working memory (cleared each iteration) and "
        "persistent memory (maintained across iterations)."
    )
    default_task: str = "Analyze the current state and take appropriate action."
    default_interval_ms: int = Field(
        default=5000,
        description="Milliseconds between iterations",
    )

    # Event stream
    subscriber_queue_size: int = Field(
        default=256,
        description="Pending events per observer before it is dropped",
    )
    sse_heartbeat_seconds: float = Field(
        default=15.0,
        description="Idle seconds before a heartbeat comment is sent",
    )

    # Monitor
    monitor_cwd: Optional[Path] = Field(
        default=None,
        description="Working directory for the monitor command",
    )

    # Web UI
    host: str = "0.0.0.0"
    port: int = 3456


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
