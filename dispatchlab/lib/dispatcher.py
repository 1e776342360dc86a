"""Synchronous event dispatch through a widget tree.

At each widget the chain is: installed filters (most recent first), then the
receiver's generic ``event`` hook, then its kind-specific handler. A step
returning True stops the chain at that widget. Independently of the return
values, an event left ignored at the end of the chain is re-offered to the
parent widget, where the same chain runs again.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import NamedTuple

from dispatchlab.lib.events import Event, EventSystem
from dispatchlab.lib.widgets import DispatchError, WidgetNode, WidgetTree


class TraceStep(NamedTuple):
    widget: str
    stage: str
    result: str


class DispatchTrace:
    """Records the steps of every dispatch, in order.

    Stages are ``filter``, ``event``, ``handler`` and ``propagate``.
    """

    def __init__(self, max_steps: int | None = None) -> None:
        self.max_steps = max_steps
        self.steps: list[TraceStep] = []

    def record(self, widget: str, stage: str, result: str) -> None:
        self.steps.append(TraceStep(widget, stage, result))
        if self.max_steps and len(self.steps) > self.max_steps:
            del self.steps[: len(self.steps) - self.max_steps]

    def clear(self) -> None:
        self.steps.clear()

    def visits(self, *stages: str) -> list[tuple[str, str]]:
        """(widget, stage) pairs, optionally limited to some stages."""
        return [(s.widget, s.stage) for s in self.steps if not stages or s.stage in stages]

    def as_list(self) -> list[dict]:
        return [step._asdict() for step in self.steps]


class Dispatcher:
    """Delivers events to widgets of one tree.

    The dispatcher must be started before use and shut down afterwards, either
    explicitly or by using it as a context manager. Only one event is
    dispatched at a time: ``send_event`` may not be called from inside a
    handler, use ``post_event`` to queue follow-up events instead.

    Lifecycle notifications are emitted on ``events``:
    ``dispatch_started(event)``, ``dispatch_finished(event)`` and
    ``dispatch_failed(event, exc)``.
    """

    def __init__(
        self,
        tree: WidgetTree,
        events: EventSystem | None = None,
        trace: DispatchTrace | None = None,
    ) -> None:
        self.tree = tree
        self.events = events or EventSystem()
        self.trace = trace
        self._queue: deque[Event] = deque()
        self._running = False
        self._dispatching = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        self._running = True
        logging.debug("Dispatcher started")

    def shutdown(self) -> None:
        """Stop accepting events. Queued events are discarded."""
        if self._queue:
            logging.info(f"Discarding {len(self._queue)} pending event(s) on shutdown")
        self._queue.clear()
        self._running = False
        logging.debug("Dispatcher shut down")

    def __enter__(self) -> Dispatcher:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def send_event(self, event: Event) -> None:
        """Dispatch an event to its target widget and, if ignored, its ancestors.

        Raises:
            DispatchError: If the dispatcher is not running or is already dispatching.
            WidgetNotFound: If the event's target is not in the tree.
            Exception: Whatever a filter or handler raised; dispatch is abandoned.
        """
        self._ensure_running()
        if self._dispatching:
            raise DispatchError(
                f"Cannot send {event!r} while another event is being dispatched; use post_event"
            )
        node = self.tree.get(event.target)

        self._dispatching = True
        self.events.emit("dispatch_started", event)
        try:
            self._deliver(node, event)
        except Exception as e:
            logging.error(f"Dispatch of {event!r} failed: {e}")
            self.events.emit("dispatch_failed", event, e)
            raise
        finally:
            self._dispatching = False
        self.events.emit("dispatch_finished", event)

    def post_event(self, event: Event) -> None:
        """Queue an event for the next ``process_events`` call."""
        self._ensure_running()
        self._queue.append(event)

    def process_events(self) -> int:
        """Dispatch queued events in FIFO order, including any posted meanwhile.

        If a handler raises, the failing event is dropped, the rest stay queued
        and the exception propagates.

        Returns:
            The number of events dispatched.
        """
        count = 0
        while self._queue:
            self.send_event(self._queue.popleft())
            count += 1
        return count

    def _ensure_running(self) -> None:
        if not self._running:
            raise DispatchError("Dispatcher is not running")

    def _deliver(self, node: WidgetNode, event: Event) -> None:
        while True:
            event.accept()
            self._run_chain(node, event)
            if event.is_accepted:
                return

            parent = self.tree.parent_of(node.widget_id)
            if parent is None:
                logging.debug(f"{event!r} ignored at root {node.name}, dropping")
                return
            self._record(node, "propagate", parent.name)
            node = parent

    def _run_chain(self, node: WidgetNode, event: Event) -> None:
        """Run one widget's filters, generic hook and specific handler.

        A receiver with no handler for the event's kind is treated as if its
        handler had called ``event.ignore()``, so the event moves on to the
        parent, the same as a Qt-style default handler. The trace records
        this as ``unhandled``.
        """
        # copy: a filter may uninstall itself
        for event_filter in reversed(list(node.filters)):
            consumed = bool(event_filter.event_filter(node, event))
            self._record(node, "filter", "consumed" if consumed else "declined")
            if consumed:
                return

        receiver = node.receiver
        hook = getattr(receiver, "event", None)
        if hook is not None:
            consumed = bool(hook(event))
            self._record(node, "event", "consumed" if consumed else "passed")
            if consumed:
                return

        handler = getattr(receiver, event.kind.handler_name, None)
        if handler is None:
            event.ignore()
            self._record(node, "handler", "unhandled")
            return

        handler(event)
        self._record(node, "handler", "accepted" if event.is_accepted else "ignored")

    def _record(self, node: WidgetNode, stage: str, result: str) -> None:
        logging.debug(f"[{node.name}] {stage}: {result}")
        if self.trace is not None:
            self.trace.record(node.name, stage, result)
