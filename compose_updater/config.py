"""Configuration management for the compose updater."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compose_updater.errors import ConfigError
from compose_updater.models import RestartMode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Compose project
    project_dir: str = Field(default=".", description="Directory holding the compose project")
    compose_file: str | None = Field(
        default=None, description="Compose file path (auto-detected when unset)"
    )
    policy_file: str = Field(
        default="compose-updater.yml", description="Include/exclude selection policy file"
    )
    docker_binary: str = Field(default="docker", description="Docker CLI executable")

    # Update behaviour
    interval_seconds: int = Field(
        default=300, description="Timer trigger period in seconds (0 disables the timer)"
    )
    restart_mode: Literal["whole-stack", "subset"] = Field(
        default="whole-stack", description="Restart the whole stack or only changed workloads"
    )

    # Webhook
    webhook_enabled: bool = Field(default=True, description="Expose the POST /update webhook")
    webhook_host: str = Field(default="0.0.0.0", description="Webhook bind address")
    webhook_port: int = Field(default=8080, description="Webhook bind port")
    webhook_secret: SecretStr | None = Field(
        default=None, description="Shared HMAC secret for webhook signatures"
    )
    webhook_secret_file: str | None = Field(
        default=None, description="File containing the shared webhook secret"
    )

    # Application
    verbose: bool = Field(default=False, description="Log subprocess output at info level")
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("interval_seconds")
    @classmethod
    def _non_negative_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("interval_seconds must be >= 0")
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def restart_mode_enum(self) -> RestartMode:
        return RestartMode(self.restart_mode)

    @property
    def policy_path(self) -> Path:
        """Policy file path, resolved against the project directory."""
        path = Path(self.policy_file)
        return path if path.is_absolute() else Path(self.project_dir) / path

    def resolved_webhook_secret(self) -> str:
        """Return the webhook secret, preferring the env value over the file."""
        if self.webhook_secret is not None and self.webhook_secret.get_secret_value():
            return self.webhook_secret.get_secret_value()
        if self.webhook_secret_file:
            from compose_updater.auth import load_secret

            return load_secret(self.webhook_secret_file)
        return ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_settings(**overrides: object) -> Settings:
    """Build settings, converting validation failures into ``ConfigError``."""
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
