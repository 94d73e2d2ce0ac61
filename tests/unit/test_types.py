"""
Unit tests for the event models and wire format.
"""

import pytest
from pydantic import ValidationError

from webmon.types import Breadcrumb, Category, Event, Priority, ReportInput, default_priority


def test_default_priority_mapping():
    assert default_priority(Category.ERROR) is Priority.HIGH
    assert default_priority("performance") is Priority.MEDIUM
    assert default_priority("behavior") is Priority.LOW
    assert default_priority("something-new") is Priority.MEDIUM


def test_wire_uses_collector_names(make_event):
    event = make_event("error", message="boom")
    wire = event.to_wire()

    assert wire["appId"] == "test-app"
    assert wire["type"] == "error"
    assert wire["data"] == {"message": "boom"}
    assert wire["sessionId"] == "session_test"
    assert wire["userAgent"] == "pytest"
    assert wire["priority"] == "high"
    assert wire["breadcrumbs"] == []
    # optional context is omitted rather than sent as null
    assert "userId" not in wire
    assert "tags" not in wire


def test_wire_round_trip_by_alias(make_event):
    event = make_event("performance", name="LCP", value=1830.5)
    assert Event.model_validate(event.to_wire()).to_wire() == event.to_wire()


def test_event_is_frozen(make_event):
    event = make_event()
    with pytest.raises(ValidationError):
        event.priority = Priority.HIGH


def test_breadcrumbs_accept_lists():
    event = Event(
        app_id="a",
        timestamp=1,
        category=Category.BEHAVIOR,
        session_id="s",
        breadcrumbs=[{"timestamp": 1, "category": "ui", "message": "click"}],
    )
    assert isinstance(event.breadcrumbs, tuple)
    assert event.breadcrumbs[0] == Breadcrumb(timestamp=1, category="ui", message="click")


def test_report_input_aliases():
    inp = ReportInput.model_validate({"type": "error", "data": {"x": 1}, "priority": "low"})
    assert inp.category is Category.ERROR
    assert inp.payload == {"x": 1}
    assert inp.priority is Priority.LOW


def test_report_input_rejects_unknown_category():
    with pytest.raises(ValidationError):
        ReportInput.model_validate({"type": "metrics"})
