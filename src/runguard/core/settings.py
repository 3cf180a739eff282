"""
Centralized settings for runguard.

All fields can be set via ``RUNGUARD_*`` environment variables or a ``.env``
file. The job and queue identifiers also accept the bare ``STATE_MACHINE_ARN``
and ``QUEUE_URL`` variables that serverless deployments of the poller set.

Tags:
    runguard, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Assumed upper bound on concurrently pending instances of one job.
DEFAULT_MAX_RESULTS = 1000


class RunGuardSettings(BaseSettings):
    """Runtime configuration for the gate, the admitter and their loops."""

    model_config = SettingsConfigDict(
        env_prefix="RUNGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Targets ──────────────────────────────────────────────────
    job_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("job_id", "RUNGUARD_JOB_ID", "STATE_MACHINE_ARN"),
        description="Logical job (state machine ARN) being guarded",
    )
    queue_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("queue_url", "RUNGUARD_QUEUE_URL", "QUEUE_URL"),
        description="Admission queue URL (queue strategy only)",
    )

    # ── AWS ──────────────────────────────────────────────────────
    region: str | None = Field(default=None)
    endpoint_url: str | None = Field(default=None, description="Override for LocalStack and friends")

    # ── Directory ────────────────────────────────────────────────
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, gt=0)

    # ── Control loop ─────────────────────────────────────────────
    wait_interval_seconds: float = Field(default=60.0, ge=0)
    query_max_attempts: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    backoff_max_seconds: float = Field(default=30.0, ge=0)
    admission_interval_seconds: float = Field(default=60.0, ge=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, RunGuardSettings] = {}


def get_settings(*, _force_reload: bool = False) -> RunGuardSettings:
    """Load, validate, and cache a :class:`RunGuardSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = RunGuardSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
