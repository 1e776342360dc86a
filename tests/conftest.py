"""Pytest fixtures for dispatchlab tests."""

import pytest

from dispatchlab.harness import Harness
from dispatchlab.lib.dispatcher import Dispatcher, DispatchTrace
from dispatchlab.lib.event_filter import ScriptedFilter
from dispatchlab.lib.events import EventKind
from dispatchlab.lib.registry import ConfigStore
from dispatchlab.lib.receivers import ScriptedReceiver
from dispatchlab.lib.widgets import WidgetTree

PRESS = EventKind.MOUSE_PRESS


class Chain:
    """Root -> Mid -> Leaf, each with a declining filter and scripted receiver."""

    def __init__(self, leaf_action="ignore", mid_action="accept", root_action="accept"):
        self.tree = WidgetTree()
        self.receivers = {
            "Root": ScriptedReceiver(handlers={PRESS: root_action}),
            "Mid": ScriptedReceiver(handlers={PRESS: mid_action}),
            "Leaf": ScriptedReceiver(handlers={PRESS: leaf_action}),
        }
        self.filters = {name: ScriptedFilter({PRESS: "decline"}) for name in self.receivers}
        self.root = self.tree.add("Root", self.receivers["Root"])
        self.mid = self.tree.add("Mid", self.receivers["Mid"], self.root)
        self.leaf = self.tree.add("Leaf", self.receivers["Leaf"], self.mid)
        for name, widget_id in (("Root", self.root), ("Mid", self.mid), ("Leaf", self.leaf)):
            self.tree.install_event_filter(widget_id, self.filters[name])
        self.trace = DispatchTrace()
        self.dispatcher = Dispatcher(self.tree, trace=self.trace)
        self.dispatcher.start()


@pytest.fixture
def chain():
    return Chain()


@pytest.fixture
def make_chain():
    return Chain


@pytest.fixture
def store(tmp_path):
    return ConfigStore(str(tmp_path / "registry.db"))


@pytest.fixture
def elevated_store(tmp_path):
    return ConfigStore(str(tmp_path / "registry.db"), elevated=True)


@pytest.fixture
def harness(tmp_path):
    k = Harness(
        store_path=str(tmp_path / "registry.db"),
        config_file_path=str(tmp_path / "config.ini"),
    )
    yield k
    if k.dispatcher.is_running:
        k.stop()
