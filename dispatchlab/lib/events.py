"""Event records delivered to widgets, and a minimal notification system."""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Any, Mapping


class EventKind(enum.Enum):
    """Kinds of input events a widget can receive.

    Each kind maps to the name of the specific handler a receiver may define,
    e.g. ``MOUSE_PRESS`` is delivered to ``mouse_press_event``.
    """

    MOUSE_PRESS = "mouse_press"
    MOUSE_RELEASE = "mouse_release"
    MOUSE_DOUBLE_CLICK = "mouse_double_click"
    MOUSE_MOVE = "mouse_move"
    WHEEL = "wheel"
    KEY_PRESS = "key_press"
    KEY_RELEASE = "key_release"
    ENTER = "enter"
    LEAVE = "leave"
    FOCUS_IN = "focus_in"
    FOCUS_OUT = "focus_out"
    CLOSE = "close"

    @property
    def handler_name(self) -> str:
        return f"{self.value}_event"

    @classmethod
    def parse(cls, value: str | EventKind) -> EventKind:
        """Look up a kind by value ("mouse_press") or member name ("MOUSE_PRESS")."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            try:
                return cls[str(value).upper()]
            except KeyError:
                raise ValueError(f"Unknown event kind: {value!r}") from None


HANDLER_NAMES = {kind.handler_name: kind for kind in EventKind}


class Event:
    """One occurrence of an input event.

    The kind, target widget id and payload are fixed at construction. Only the
    accepted flag changes during dispatch: it starts accepted, and a handler
    calls ``ignore()`` to have the event offered to the parent widget.
    """

    def __init__(self, kind: EventKind, target: int, payload: Mapping[str, Any] | None = None):
        self._kind = kind
        self._target = target
        self._payload = MappingProxyType(dict(payload or {}))
        self._accepted = True

    @property
    def kind(self) -> EventKind:
        return self._kind

    @property
    def target(self) -> int:
        return self._target

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    @property
    def is_accepted(self) -> bool:
        return self._accepted

    def accept(self) -> None:
        self._accepted = True

    def ignore(self) -> None:
        self._accepted = False

    def set_accepted(self, accepted: bool) -> None:
        self._accepted = bool(accepted)

    def __repr__(self) -> str:
        state = "accepted" if self._accepted else "ignored"
        return f"Event({self._kind.value}, target={self._target}, {state})"


class EventSystem:
    """Minimal event dispatcher to decouple components from each other.

    Used for dispatcher lifecycle notifications, not for widget input events.
    Handlers are called synchronously; exceptions bubble up normally.
    """

    def __init__(self):
        self._handlers: dict[str, list] = {}

    def on(self, event_name: str, handler) -> None:
        """Register a handler for an event."""
        if event_name not in self._handlers:
            self._handlers[event_name] = []
        self._handlers[event_name].append(handler)

    def off(self, event_name: str, handler) -> None:
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, *args, **kwargs) -> None:
        """Call all handlers registered for this event."""
        for handler in list(self._handlers.get(event_name, [])):
            handler(*args, **kwargs)
