"""Event filters: observers that get first refusal on a widget's events.

A filter is any object with ``event_filter(node, event) -> bool``. Returning
True consumes the event at that widget; the widget's own handlers do not run.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from dispatchlab.lib.events import Event, EventKind
from dispatchlab.lib.widgets import WidgetNode

FILTER_ACTIONS = ("consume", "decline", "consume-and-ignore")


class KindFilter:
    """Consumes every event whose kind is in ``kinds``."""

    def __init__(self, kinds: Iterable[EventKind]):
        self.kinds = frozenset(kinds)

    def event_filter(self, node: WidgetNode, event: Event) -> bool:
        return event.kind in self.kinds


class CallbackFilter:
    def __init__(self, callback: Callable[[WidgetNode, Event], bool]):
        self.callback = callback

    def event_filter(self, node: WidgetNode, event: Event) -> bool:
        return bool(self.callback(node, event))


class LoggingFilter:
    """Logs each event passing through a widget. Never consumes."""

    def __init__(self, level: int = logging.INFO):
        self.level = level
        self.seen = 0

    def event_filter(self, node: WidgetNode, event: Event) -> bool:
        self.seen += 1
        logging.log(self.level, f"[{node.name}] {event.kind.value} {dict(event.payload)}")
        return False


class ScriptedFilter:
    """Filter whose response to each event kind is declared up front.

    Actions:
        consume: return True, the event stays accepted.
        decline: return False, the widget's own handlers run.
        consume-and-ignore: return True but mark the event ignored, so it is
            re-offered to the parent.
    Kinds with no action are declined.
    """

    def __init__(self, actions: dict[EventKind, str]):
        for kind, action in actions.items():
            if action not in FILTER_ACTIONS:
                raise ValueError(f"Unknown filter action {action!r} for {kind.value}")
        self.actions = dict(actions)
        self.calls: list[EventKind] = []

    def event_filter(self, node: WidgetNode, event: Event) -> bool:
        self.calls.append(event.kind)
        action = self.actions.get(event.kind, "decline")
        if action == "consume-and-ignore":
            event.ignore()
        return action != "decline"
