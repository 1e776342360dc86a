from __future__ import annotations

import logging
import threading
from typing import Any

from dispatchlab.lib.dispatcher import DispatchTrace, Dispatcher
from dispatchlab.lib.events import Event, EventKind, EventSystem
from dispatchlab.lib.preference_manager import PreferenceManager
from dispatchlab.lib.registry import ConfigStore
from dispatchlab.lib.scene import DEFAULT_SCENE, build_scene, load_scene
from dispatchlab.lib.widgets import WidgetNode, WidgetNotFound


class Harness:
    """Owns the widget tree, the dispatcher and the configuration store.

    One instance is created at startup and shared by the web routes. Dispatches
    are serialised with a lock so concurrent requests never overlap.
    """

    # Defaults, overwritten from preferences by apply_all()
    record_trace: bool = True
    max_trace_steps: int = 500
    expand_on_read: bool = False

    def __init__(
        self,
        store_path: str,
        scene_path: str | None = None,
        config_file_path: str = "config.ini",
        elevated: bool = False,
        record_trace: bool | None = None,
    ) -> None:
        self.events = EventSystem()
        self.preferences = PreferenceManager(config_file_path=config_file_path, target=self)
        self.preferences.apply_all(record_trace=record_trace)

        self.store = ConfigStore(store_path, elevated=elevated)
        self.tree = load_scene(scene_path) if scene_path else build_scene(DEFAULT_SCENE)
        self.trace = DispatchTrace(max_steps=self.max_trace_steps)
        self.dispatcher = Dispatcher(self.tree, events=self.events)
        self.dispatch_count = 0
        self.failure_count = 0
        self._lock = threading.Lock()

        self.events.on("dispatch_finished", self._on_dispatch_finished)
        self.events.on("dispatch_failed", self._on_dispatch_failed)

        self.dispatcher.start()
        logging.info(
            f"Harness ready: {len(self.tree)} widgets, store at {store_path}"
            + (" (elevated)" if elevated else "")
        )

    def _on_dispatch_finished(self, event: Event) -> None:
        self.dispatch_count += 1

    def _on_dispatch_failed(self, event: Event, exc: Exception) -> None:
        self.failure_count += 1

    def find_widget(self, name: str) -> WidgetNode:
        node = self.tree.find(name)
        if node is None:
            raise WidgetNotFound(f"No widget named {name}")
        return node

    def dispatch(
        self, widget_name: str, kind: str | EventKind, payload: dict[str, Any] | None = None
    ) -> list[dict]:
        """Send one event to a widget by name and return the steps it went through.

        Returns an empty list when trace recording is disabled.
        """
        kind = EventKind.parse(kind)
        with self._lock:
            node = self.find_widget(widget_name)
            self.trace.max_steps = self.max_trace_steps
            self.trace.clear()
            self.dispatcher.trace = self.trace if self.record_trace else None
            self.dispatcher.send_event(Event(kind, node.widget_id, payload))
            return self.trace.as_list() if self.record_trace else []

    def change_preferences(self, preference: str, val: Any) -> tuple[bool, str]:
        return self.preferences.set(preference, val)

    def clear_preferences(self) -> tuple[bool, str]:
        return self.preferences.reset_all()

    def run_demo(self) -> list[dict]:
        """Press on the Leaf widget (or the deepest widget if there is none)."""
        node = self.tree.find("Leaf")
        if node is None:
            node = max(self.tree, key=lambda n: len(self.tree.ancestors(n.widget_id)))
        return self.dispatch(node.name, EventKind.MOUSE_PRESS, {"x": 10, "y": 10})

    def stop(self) -> None:
        with self._lock:
            self.dispatcher.shutdown()
            self.tree.teardown()
        logging.info("Harness stopped")
