"""
Pydantic data models for the webmon pipeline.

Events and breadcrumbs are frozen; the wire format uses the collector's
camelCase field names (``appId``, ``sessionId``, ``type``, ``data`` ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    """Event category."""

    PERFORMANCE = "performance"
    ERROR = "error"
    BEHAVIOR = "behavior"


class Priority(str, Enum):
    """Delivery urgency class."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Level(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


DEFAULT_PRIORITY: Dict[Category, Priority] = {
    Category.ERROR: Priority.HIGH,
    Category.PERFORMANCE: Priority.MEDIUM,
    Category.BEHAVIOR: Priority.LOW,
}


def default_priority(category: Category | str) -> Priority:
    """Priority an event gets when the producer does not set one."""
    try:
        return DEFAULT_PRIORITY[Category(category)]
    except ValueError:
        return Priority.MEDIUM


class Breadcrumb(BaseModel):
    """Lightweight trail entry attached to later events."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    category: str
    message: str
    level: Level = Level.INFO
    data: Optional[Any] = None


class Event(BaseModel):
    """One captured observation, ready for delivery.

    Built once by ``Monitor.report``; never mutated afterwards. Hooks that
    want to change an event derive a new one with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    app_id: str = Field(alias="appId")
    timestamp: int
    category: Category = Field(alias="type")
    payload: Any = Field(default=None, alias="data")
    session_id: str = Field(alias="sessionId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    url: str = ""
    environment: str = Field(default="", alias="userAgent")
    breadcrumbs: Tuple[Breadcrumb, ...] = ()
    priority: Priority = Priority.MEDIUM
    tags: Optional[Dict[str, str]] = None
    contexts: Optional[Dict[str, Any]] = None

    @field_validator("breadcrumbs", mode="before")
    @classmethod
    def _tuple_breadcrumbs(cls, v):
        if v is None:
            return ()
        return tuple(v)

    def to_wire(self) -> dict:
        """JSON-ready dict with the collector's field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReportInput(BaseModel):
    """What a producer hands to ``Monitor.report``.

    Everything else on the event (session, url, breadcrumbs ...) is stamped
    by the monitor.
    """

    model_config = ConfigDict(populate_by_name=True)

    category: Category = Field(alias="type")
    payload: Any = Field(default=None, alias="data")
    priority: Optional[Priority] = None
