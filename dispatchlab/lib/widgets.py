"""Widget tree stored as an arena of nodes addressed by integer id."""

from __future__ import annotations

import logging
from typing import Any, Iterator


class DispatchError(Exception):
    """Raised when the widget tree or dispatcher is used incorrectly."""


class WidgetNotFound(DispatchError):
    """Raised when a widget id does not exist in the tree."""


class WidgetNode:
    """One widget in the tree.

    ``parent_id`` is a lookup key into the owning tree, never an object
    reference. ``filters`` holds the event filters installed on this widget;
    the node owns them for as long as they stay installed.
    """

    def __init__(
        self, widget_id: int, name: str, receiver: Any = None, parent_id: int | None = None
    ):
        self.widget_id = widget_id
        self.name = name
        self.receiver = receiver
        self.parent_id = parent_id
        self.children: list[int] = []
        self.filters: list[Any] = []

    def __repr__(self) -> str:
        return f"WidgetNode({self.widget_id}, {self.name!r}, parent={self.parent_id})"


class WidgetTree:
    """Owns every widget node and the parent/child relationships between them."""

    def __init__(self) -> None:
        self._nodes: dict[int, WidgetNode] = {}
        self._roots: list[int] = []
        self._next_id = 1
        # id(filter) -> widget id it is installed on
        self._filter_owners: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, widget_id: int) -> bool:
        return widget_id in self._nodes

    def __iter__(self) -> Iterator[WidgetNode]:
        """Iterate nodes depth-first, parents before children."""
        stack = list(reversed(self._roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    @property
    def roots(self) -> list[int]:
        return list(self._roots)

    def add(self, name: str, receiver: Any = None, parent_id: int | None = None) -> int:
        """Create a widget and return its id.

        Args:
            name: Display name, used in traces and by ``find``. Need not be unique.
            receiver: Behaviour object providing the generic hook and handlers.
            parent_id: Parent widget id, or None for a root widget.

        Raises:
            WidgetNotFound: If ``parent_id`` is not in the tree.
        """
        if parent_id is not None:
            parent = self.get(parent_id)
        widget_id = self._next_id
        self._next_id += 1
        self._nodes[widget_id] = WidgetNode(widget_id, name, receiver, parent_id)
        if parent_id is None:
            self._roots.append(widget_id)
        else:
            parent.children.append(widget_id)
        logging.debug(f"Added widget {name} ({widget_id}) under {parent_id}")
        return widget_id

    def get(self, widget_id: int) -> WidgetNode:
        try:
            return self._nodes[widget_id]
        except KeyError:
            raise WidgetNotFound(f"No widget with id {widget_id}") from None

    def find(self, name: str) -> WidgetNode | None:
        """Return the first widget with this name in depth-first order."""
        for node in self:
            if node.name == name:
                return node
        return None

    def parent_of(self, widget_id: int) -> WidgetNode | None:
        parent_id = self.get(widget_id).parent_id
        return None if parent_id is None else self._nodes[parent_id]

    def children_of(self, widget_id: int) -> list[WidgetNode]:
        return [self._nodes[child] for child in self.get(widget_id).children]

    def ancestors(self, widget_id: int) -> list[WidgetNode]:
        """Return the parent chain, nearest first, ending at the root."""
        chain = []
        parent = self.parent_of(widget_id)
        while parent is not None:
            chain.append(parent)
            parent = self.parent_of(parent.widget_id)
        return chain

    def reparent(self, widget_id: int, new_parent_id: int | None) -> None:
        """Move a widget (and its subtree) under another parent, or make it a root."""
        node = self.get(widget_id)
        if new_parent_id is not None:
            new_parent = self.get(new_parent_id)
            if new_parent_id == widget_id or node in self.ancestors(new_parent_id):
                raise DispatchError(
                    f"Cannot move {node.name} under its own descendant {new_parent.name}"
                )
        self._detach(node)
        node.parent_id = new_parent_id
        if new_parent_id is None:
            self._roots.append(widget_id)
        else:
            new_parent.children.append(widget_id)

    def destroy(self, widget_id: int) -> None:
        """Destroy a widget and all of its descendants, children first."""
        node = self.get(widget_id)
        self._detach(node)

        # post-order: collect the subtree, then tear down in reverse
        order = []
        stack = [widget_id]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(self._nodes[current].children)

        for current in reversed(order):
            doomed = self._nodes.pop(current)
            for event_filter in doomed.filters:
                self._filter_owners.pop(id(event_filter), None)
            doomed.filters.clear()
            on_destroy = getattr(doomed.receiver, "on_destroy", None)
            if on_destroy is not None:
                on_destroy(doomed)
            logging.debug(f"Destroyed widget {doomed.name} ({doomed.widget_id})")

    def teardown(self) -> None:
        """Destroy every widget in the tree."""
        for root in list(self._roots):
            self.destroy(root)

    def install_event_filter(self, widget_id: int, event_filter: Any) -> None:
        """Install a filter on a widget. The widget node takes ownership of it.

        Installing the same filter twice on one widget moves it to the front.

        Raises:
            DispatchError: If the filter is already installed on another widget.
        """
        node = self.get(widget_id)
        owner = self._filter_owners.get(id(event_filter))
        if owner is not None and owner != widget_id:
            raise DispatchError(
                f"Filter {event_filter!r} is already installed on widget {owner}"
            )
        if event_filter in node.filters:
            node.filters.remove(event_filter)
        node.filters.append(event_filter)
        self._filter_owners[id(event_filter)] = widget_id

    def remove_event_filter(self, widget_id: int, event_filter: Any) -> bool:
        """Uninstall a filter. Returns False if it was not installed on this widget."""
        node = self.get(widget_id)
        if event_filter not in node.filters:
            return False
        node.filters.remove(event_filter)
        self._filter_owners.pop(id(event_filter), None)
        return True

    def _detach(self, node: WidgetNode) -> None:
        if node.parent_id is None:
            self._roots.remove(node.widget_id)
        else:
            self._nodes[node.parent_id].children.remove(node.widget_id)

    def describe(self) -> list[dict]:
        """JSON friendly listing of the tree."""
        return [
            {
                "id": node.widget_id,
                "name": node.name,
                "parent": node.parent_id,
                "children": list(node.children),
                "filters": [type(f).__name__ for f in node.filters],
            }
            for node in self
        ]
