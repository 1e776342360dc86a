"""Build a widget tree with scripted behaviours from a JSON-style document.

A scene document is one widget, nested through ``children``::

    {
        "name": "Root",
        "filter": {"mouse_press": "decline"},
        "event": {"key_press": "consume"},
        "handlers": {"mouse_press": "accept"},
        "log": false,
        "children": [...]
    }

``filter`` installs a ScriptedFilter, ``event`` scripts the generic hook,
``handlers`` scripts the specific handlers and ``log`` installs a
LoggingFilter.
"""

from __future__ import annotations

import json
import logging

from dispatchlab.lib.event_filter import LoggingFilter, ScriptedFilter
from dispatchlab.lib.events import EventKind
from dispatchlab.lib.receivers import ScriptedReceiver
from dispatchlab.lib.widgets import WidgetTree


class SceneError(ValueError):
    """Raised for scene documents that cannot be built."""


# Root -> Mid -> Leaf. A press on Leaf is ignored there and accepted by Mid.
DEFAULT_SCENE = {
    "name": "Root",
    "handlers": {"mouse_press": "accept", "key_press": "accept"},
    "children": [
        {
            "name": "Mid",
            "filter": {"wheel": "consume"},
            "handlers": {"mouse_press": "accept"},
            "children": [
                {
                    "name": "Leaf",
                    "filter": {"mouse_press": "decline"},
                    "handlers": {"mouse_press": "ignore", "key_press": "ignore"},
                },
                {
                    "name": "Sibling",
                    "event": {"mouse_press": "consume"},
                },
            ],
        }
    ],
}


def _parse_actions(section: dict, widget_name: str, field: str) -> dict[EventKind, str]:
    if not isinstance(section, dict):
        raise SceneError(f"{widget_name}: '{field}' must be an object")
    actions = {}
    for kind, action in section.items():
        try:
            actions[EventKind.parse(kind)] = action
        except ValueError as e:
            raise SceneError(f"{widget_name}: {e}") from None
    return actions


def _add_widget(tree: WidgetTree, entry: dict, parent_id: int | None) -> int:
    if not isinstance(entry, dict) or not entry.get("name"):
        raise SceneError(f"Every widget needs a name, got {entry!r}")
    name = entry["name"]

    try:
        receiver = ScriptedReceiver(
            handlers=_parse_actions(entry.get("handlers", {}), name, "handlers"),
            hook=_parse_actions(entry.get("event", {}), name, "event"),
        )
        widget_id = tree.add(name, receiver, parent_id)
        if "filter" in entry:
            tree.install_event_filter(
                widget_id, ScriptedFilter(_parse_actions(entry["filter"], name, "filter"))
            )
    except SceneError:
        raise
    except ValueError as e:
        raise SceneError(f"{name}: {e}") from None

    if entry.get("log"):
        tree.install_event_filter(widget_id, LoggingFilter())

    for child in entry.get("children", []):
        _add_widget(tree, child, widget_id)
    return widget_id


def build_scene(document: dict | list) -> WidgetTree:
    """Build a tree from one root document or a list of root documents."""
    roots = document if isinstance(document, list) else [document]
    tree = WidgetTree()
    for root in roots:
        _add_widget(tree, root, None)
    logging.debug(f"Built scene with {len(tree)} widgets")
    return tree


def load_scene(path: str) -> WidgetTree:
    logging.info(f"Loading scene: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise SceneError(f"Invalid scene file {path}: {e}") from None
    return build_scene(document)
