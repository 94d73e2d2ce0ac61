"""
Monitor configuration.

``MonitorConfig`` is what ``Monitor`` is built from; everything except
``app_id`` and ``report_url`` has a documented default. ``MonitorSettings``
reads the same knobs from ``WEBMON_*`` environment variables (or ``.env``)
for hosts that prefer env-based setup.

Example:
    export WEBMON_APP_ID=checkout
    export WEBMON_REPORT_URL=https://collector.example/monitor/report
    export WEBMON_SAMPLING=0.25

    cfg = MonitorConfig.from_env(debug=True)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .types import Event

BeforeSend = Callable[[Event], Optional[Event]]


class MonitorConfig(BaseModel):
    """Validated monitor configuration (user values merged over defaults)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # required
    app_id: str
    report_url: str

    # session
    sampling: float = 1.0
    debug: bool = False
    enable_performance: bool = True
    enable_error: bool = True
    enable_behavior: bool = True
    max_breadcrumbs: int = 20

    # delivery
    report_interval_ms: int = 60_000
    batch_size: int = 10
    max_queue_size: int = 100
    enable_immediate_report: bool = True
    retry_count: int = 3
    retry_interval_ms: int = 1_000
    timeout_ms: int = 5_000
    headers: Dict[str, str] = {}

    # enrichment
    environment: str = ""
    page_url: str = ""

    before_send: Optional[BeforeSend] = None

    @field_validator("app_id", "report_url")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("sampling")
    @classmethod
    def _validate_sampling(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError("sampling must be between 0.0 and 1.0")
        return v

    @field_validator(
        "max_breadcrumbs",
        "report_interval_ms",
        "batch_size",
        "max_queue_size",
        "retry_interval_ms",
        "timeout_ms",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("retry_count")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_count must be >= 0")
        return v

    @classmethod
    def load(cls, config: "MonitorConfig | Dict[str, Any]") -> "MonitorConfig":
        """Validate a dict (or pass a config through); raises ConfigurationError."""
        if isinstance(config, MonitorConfig):
            return config
        try:
            return cls.model_validate(dict(config))
        except (ValidationError, TypeError) as exc:
            raise ConfigurationError(f"invalid monitor config: {exc}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> "MonitorConfig":
        """Build from ``WEBMON_*`` settings with ``overrides`` on top."""
        base = get_settings().model_dump(
            exclude_none=True, exclude={"store_dir", "store_max_bytes"}
        )
        base.update(overrides)
        return cls.load(base)


class MonitorSettings(BaseSettings):
    """Environment-driven defaults (``WEBMON_`` prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="WEBMON_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    app_id: Optional[str] = None
    report_url: Optional[str] = None
    sampling: float = 1.0
    debug: bool = False
    enable_performance: bool = True
    enable_error: bool = True
    enable_behavior: bool = True
    max_breadcrumbs: int = 20
    report_interval_ms: int = 60_000
    batch_size: int = 10
    max_queue_size: int = 100
    enable_immediate_report: bool = True
    retry_count: int = 3
    retry_interval_ms: int = 1_000
    timeout_ms: int = 5_000
    environment: str = ""
    page_url: str = ""

    # storage location used by the CLI and the default file-backed store
    store_dir: str = ".webmon"
    store_max_bytes: int = 1024 * 1024


@lru_cache()
def get_settings() -> MonitorSettings:
    return MonitorSettings()
