"""Tests for event filter and receiver variants."""

from __future__ import annotations

import logging

import pytest

from dispatchlab.lib.event_filter import CallbackFilter, KindFilter, LoggingFilter, ScriptedFilter
from dispatchlab.lib.events import Event, EventKind
from dispatchlab.lib.receivers import CallbackReceiver, ScriptedReceiver
from dispatchlab.lib.widgets import WidgetNode

NODE = WidgetNode(1, "Node")


def test_kind_filter():
    event_filter = KindFilter({EventKind.WHEEL, EventKind.KEY_PRESS})
    assert event_filter.event_filter(NODE, Event(EventKind.WHEEL, 1)) is True
    assert event_filter.event_filter(NODE, Event(EventKind.MOUSE_PRESS, 1)) is False


def test_callback_filter_coerces_to_bool():
    event_filter = CallbackFilter(lambda node, event: None)
    assert event_filter.event_filter(NODE, Event(EventKind.WHEEL, 1)) is False


def test_logging_filter_never_consumes(caplog):
    event_filter = LoggingFilter()
    with caplog.at_level(logging.INFO):
        assert event_filter.event_filter(NODE, Event(EventKind.ENTER, 1, {"x": 3})) is False
    assert event_filter.seen == 1
    assert "[Node] enter" in caplog.text


def test_scripted_filter_actions():
    event_filter = ScriptedFilter(
        {EventKind.WHEEL: "consume", EventKind.KEY_PRESS: "consume-and-ignore"}
    )
    wheel = Event(EventKind.WHEEL, 1)
    key = Event(EventKind.KEY_PRESS, 1)
    press = Event(EventKind.MOUSE_PRESS, 1)

    assert event_filter.event_filter(NODE, wheel) is True
    assert wheel.is_accepted is True
    assert event_filter.event_filter(NODE, key) is True
    assert key.is_accepted is False
    assert event_filter.event_filter(NODE, press) is False
    assert event_filter.calls == [EventKind.WHEEL, EventKind.KEY_PRESS, EventKind.MOUSE_PRESS]


def test_scripted_filter_rejects_unknown_action():
    with pytest.raises(ValueError, match="Unknown filter action"):
        ScriptedFilter({EventKind.WHEEL: "sometimes"})


def test_scripted_receiver_only_defines_configured_handlers():
    receiver = ScriptedReceiver(handlers={EventKind.MOUSE_PRESS: "accept"})
    assert callable(getattr(receiver, "mouse_press_event", None))
    assert getattr(receiver, "key_press_event", None) is None


def test_scripted_receiver_ignore_action():
    receiver = ScriptedReceiver(handlers={EventKind.KEY_PRESS: "ignore"})
    event = Event(EventKind.KEY_PRESS, 1)
    receiver.key_press_event(event)
    assert event.is_accepted is False
    assert receiver.calls == [("handler", EventKind.KEY_PRESS)]


def test_scripted_receiver_rejects_unknown_actions():
    with pytest.raises(ValueError):
        ScriptedReceiver(handlers={EventKind.KEY_PRESS: "maybe"})
    with pytest.raises(ValueError):
        ScriptedReceiver(hook={EventKind.KEY_PRESS: "maybe"})


def test_callback_receiver_rejects_unknown_handler_names():
    with pytest.raises(ValueError, match="not an event handler"):
        CallbackReceiver(paint_event=lambda e: None)


def test_callback_receiver_without_hook_has_no_event_attribute():
    receiver = CallbackReceiver(wheel_event=lambda e: None)
    assert getattr(receiver, "event", None) is None
