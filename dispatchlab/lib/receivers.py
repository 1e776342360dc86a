"""Widget behaviours.

A receiver is any object attached to a widget node. The dispatcher looks up
two optional capabilities on it:

- ``event(event) -> bool``: the generic hook. True means consumed.
- ``<kind>_event(event)``: the specific handler for one kind, e.g.
  ``mouse_press_event``. A missing handler counts as ignoring the event.

Receivers may also define ``on_destroy(node)``, called when the widget is
destroyed.
"""

from __future__ import annotations

from functools import partial
from typing import Callable

from dispatchlab.lib.events import HANDLER_NAMES, Event, EventKind

HOOK_ACTIONS = ("consume", "pass", "consume-and-ignore")
HANDLER_ACTIONS = ("accept", "ignore")


class ScriptedReceiver:
    """Receiver whose behaviour for each event kind is declared up front.

    Handlers are only defined for the kinds present in ``handlers``; other kinds
    fall through to the parent like an unhandled event would.

    Args:
        handlers: Kind -> "accept" or "ignore" for the specific handler.
        hook: Kind -> "consume", "pass" or "consume-and-ignore" for the
            generic hook. Kinds not listed pass.
    """

    def __init__(
        self,
        handlers: dict[EventKind, str] | None = None,
        hook: dict[EventKind, str] | None = None,
    ):
        self.hook_actions = dict(hook or {})
        self.handler_actions = dict(handlers or {})
        self.calls: list[tuple[str, EventKind]] = []
        self.destroyed = False

        for kind, action in self.hook_actions.items():
            if action not in HOOK_ACTIONS:
                raise ValueError(f"Unknown hook action {action!r} for {kind.value}")
        for kind, action in self.handler_actions.items():
            if action not in HANDLER_ACTIONS:
                raise ValueError(f"Unknown handler action {action!r} for {kind.value}")
            setattr(self, kind.handler_name, partial(self._handle, kind))

    def event(self, event: Event) -> bool:
        self.calls.append(("event", event.kind))
        action = self.hook_actions.get(event.kind, "pass")
        if action == "consume-and-ignore":
            event.ignore()
        return action != "pass"

    def _handle(self, kind: EventKind, event: Event) -> None:
        self.calls.append(("handler", kind))
        if self.handler_actions[kind] == "ignore":
            event.ignore()
        else:
            event.accept()

    def on_destroy(self, node) -> None:
        self.destroyed = True


class CallbackReceiver:
    """Receiver assembled from plain callables.

    >>> r = CallbackReceiver(mouse_press_event=lambda e: e.ignore())
    """

    def __init__(
        self,
        event: Callable[[Event], bool] | None = None,
        **handlers: Callable[[Event], None],
    ):
        if event is not None:
            self.event = event
        for name, handler in handlers.items():
            if name not in HANDLER_NAMES:
                raise ValueError(f"{name} is not an event handler name")
            setattr(self, name, handler)
