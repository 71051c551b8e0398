"""
Centralized settings for ferry.

Manifesto:
    One validated, cached settings object instead of each module reading
    environment variables on its own. CLI options override these values;
    nothing else does.

All fields can be set via ``FERRY_*`` environment variables (e.g.
``FERRY_MAX_CONCURRENCY=8``) or a ``.env`` file in the working directory.

Tags:
    ferry, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FerrySettings(BaseSettings):
    """Process-wide configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FERRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json, console or auto (json when not a tty)")
    debug: bool = Field(default=False)
    verbose: bool = Field(default=False)

    # ── Scheduler ────────────────────────────────────────────────
    max_concurrency: int = Field(default=4, ge=1, description="Pipelines running at once")
    period_seconds: float | None = Field(default=None, gt=0, description="Target time between pass starts")
    min_delay_seconds: float = Field(default=1.0, ge=0, description="Floor for the inter-pass delay")

    # ── Engine ───────────────────────────────────────────────────
    parity_poll_seconds: float = Field(
        default=0.1, gt=0, description="Re-check interval while loads are still outstanding"
    )

    @property
    def json_logs(self) -> bool | None:
        """Tri-state JSON flag as expected by ``configure_logging``."""
        if self.log_format == "json":
            return True
        if self.log_format == "console":
            return False
        return None

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


# ── Settings factory with caching ────────────────────────────────────────

_settings: FerrySettings | None = None


def get_settings(*, _force_reload: bool = False, **overrides: object) -> FerrySettings:
    """Load and cache :class:`FerrySettings`.

    Overrides whose value is ``None`` are ignored so CLI options that were
    not given fall through to the environment.
    """
    global _settings
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        return FerrySettings(**overrides)
    if _settings is None or _force_reload:
        _settings = FerrySettings()
    return _settings


def clear_settings_cache() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None


__all__ = ["FerrySettings", "get_settings", "clear_settings_cache"]
