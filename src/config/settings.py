# src/config/settings.py — v2
"""Typed agent settings loaded from .env via pydantic-settings.

Deployment-specific values only; the rollout document itself (steps,
modules, sources) is loaded by config.loader.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infralib_agent.logging.handlers import parse_size


class ConfigurationError(Exception):
    """Raised when configuration is missing or internally inconsistent."""


class Settings(BaseSettings):
    """Agent settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cloud ===
    prefix: str = ""
    provider_type: Literal["aws", "google", "azure", "local"] = "local"
    account_id: str = ""

    # === Inputs ===
    config_file: Path = Path("config.yaml")
    base_config_file: Path | None = None
    bucket_root: Path = Path("~/.infralib/bucket")
    parameters_file: Path | None = None
    parameter_root: str = "/entigo-infralib"
    source_cache_dir: Path = Path("~/.infralib/sources")

    # === Execution ===
    allow_parallel: bool = True
    pipeline_type: Literal["local", "dry-run"] = "dry-run"
    pipeline_command: str = ""
    pipeline_logs_path: Path | None = None
    steps: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: str | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:  # noqa: N805
        """Accept lower-case level names."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("log_retention")
    @classmethod
    def validate_log_retention(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("log_retention must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.pipeline_type == "local" and not self.pipeline_command.strip():
            errors.append("PIPELINE_TYPE=local requires PIPELINE_COMMAND")

        if self.provider_type != "local" and not self.account_id:
            errors.append(f"PROVIDER_TYPE={self.provider_type} requires ACCOUNT_ID")

        try:
            parse_size(self.log_rotation)
        except ValueError as e:
            errors.append(f"LOG_ROTATION: {e}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def steps_list(self) -> list[str]:
        """Parse comma-separated runnable steps filter."""
        return [s.strip() for s in self.steps.split(",") if s.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
