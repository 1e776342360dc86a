"""Tests for Event records and the EventSystem."""

from __future__ import annotations

import pytest

from dispatchlab.lib.events import Event, EventKind, EventSystem


def test_event_starts_accepted():
    event = Event(EventKind.MOUSE_PRESS, 1)
    assert event.is_accepted is True


def test_event_ignore_and_accept():
    event = Event(EventKind.MOUSE_PRESS, 1)
    event.ignore()
    assert event.is_accepted is False
    event.accept()
    assert event.is_accepted is True
    event.set_accepted(False)
    assert event.is_accepted is False


def test_event_fields_are_read_only():
    event = Event(EventKind.KEY_PRESS, 3, {"key": "a"})
    with pytest.raises(AttributeError):
        event.kind = EventKind.WHEEL
    with pytest.raises(TypeError):
        event.payload["key"] = "b"
    assert event.target == 3
    assert event.payload["key"] == "a"


def test_event_payload_is_copied():
    payload = {"x": 1}
    event = Event(EventKind.MOUSE_MOVE, 1, payload)
    payload["x"] = 2
    assert event.payload["x"] == 1


def test_event_kind_handler_name():
    assert EventKind.MOUSE_PRESS.handler_name == "mouse_press_event"
    assert EventKind.FOCUS_OUT.handler_name == "focus_out_event"


def test_event_kind_parse():
    assert EventKind.parse("wheel") is EventKind.WHEEL
    assert EventKind.parse("KEY_RELEASE") is EventKind.KEY_RELEASE
    assert EventKind.parse(EventKind.CLOSE) is EventKind.CLOSE
    with pytest.raises(ValueError, match="Unknown event kind"):
        EventKind.parse("teleport")


def test_event_system_emit_calls_handler():
    """Test that emitting an event calls the registered handler."""
    events = EventSystem()
    captured_events = []

    events.on("test_event", lambda msg: captured_events.append(msg))
    events.emit("test_event", "test message")

    assert captured_events == ["test message"]


def test_event_system_off_removes_handler():
    events = EventSystem()
    captured = []
    handler = captured.append

    events.on("test_event", handler)
    events.off("test_event", handler)
    events.off("test_event", handler)
    events.emit("test_event", "ignored")

    assert captured == []


def test_event_system_no_handlers():
    """Test that emitting an event with no handlers doesn't raise an error."""
    events = EventSystem()
    events.emit("nonexistent_event", "test message")


def test_event_system_handler_exceptions_bubble_up():
    """Test that exceptions in handlers are not caught."""
    events = EventSystem()

    def failing_handler(msg):
        raise ValueError("Handler failed")

    events.on("test_event", failing_handler)

    with pytest.raises(ValueError, match="Handler failed"):
        events.emit("test_event", "test message")
