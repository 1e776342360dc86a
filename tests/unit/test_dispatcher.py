"""Tests for the Dispatcher: dispatch order, propagation and lifecycle."""

from __future__ import annotations

import pytest

from dispatchlab.lib.dispatcher import Dispatcher, DispatchTrace
from dispatchlab.lib.event_filter import CallbackFilter, KindFilter, ScriptedFilter
from dispatchlab.lib.events import Event, EventKind, EventSystem
from dispatchlab.lib.receivers import CallbackReceiver, ScriptedReceiver
from dispatchlab.lib.widgets import DispatchError, WidgetNotFound, WidgetTree

PRESS = EventKind.MOUSE_PRESS
KEY = EventKind.KEY_PRESS


def press(widget_id):
    return Event(PRESS, widget_id)


class TestDispatchOrder:
    def test_consuming_filter_blocks_widget_handlers(self, chain):
        """A filter that consumes keeps the widget's hook and handler from running."""
        chain.tree.remove_event_filter(chain.leaf, chain.filters["Leaf"])
        chain.tree.install_event_filter(chain.leaf, KindFilter({PRESS}))

        chain.dispatcher.send_event(press(chain.leaf))

        assert chain.receivers["Leaf"].calls == []
        assert chain.receivers["Mid"].calls == []
        assert chain.trace.visits() == [("Leaf", "filter")]

    def test_declining_filter_reaches_specific_handler_once(self, make_chain):
        c = make_chain(leaf_action="accept")
        c.dispatcher.send_event(press(c.leaf))

        handler_calls = [call for call in c.receivers["Leaf"].calls if call[0] == "handler"]
        assert handler_calls == [("handler", PRESS)]
        assert c.filters["Leaf"].calls == [PRESS]
        assert c.receivers["Mid"].calls == []

    def test_order_is_filter_then_event_then_handler(self, make_chain):
        c = make_chain(leaf_action="accept")
        c.dispatcher.send_event(press(c.leaf))

        assert c.trace.visits() == [
            ("Leaf", "filter"),
            ("Leaf", "event"),
            ("Leaf", "handler"),
        ]

    def test_generic_hook_consuming_skips_specific_handler(self):
        tree = WidgetTree()
        receiver = ScriptedReceiver(handlers={PRESS: "accept"}, hook={PRESS: "consume"})
        widget = tree.add("Only", receiver)

        with Dispatcher(tree) as dispatcher:
            dispatcher.send_event(press(widget))

        assert receiver.calls == [("event", PRESS)]

    def test_latest_filter_runs_first(self):
        tree = WidgetTree()
        widget = tree.add("W", ScriptedReceiver(handlers={PRESS: "accept"}))
        seen = []
        tree.install_event_filter(widget, CallbackFilter(lambda n, e: seen.append("first")))
        tree.install_event_filter(
            widget, CallbackFilter(lambda n, e: seen.append("second") or True)
        )

        with Dispatcher(tree) as dispatcher:
            dispatcher.send_event(press(widget))

        assert seen == ["second"]


class TestPropagation:
    def test_example_scenario_trace(self, chain):
        """Leaf ignores, Mid accepts: Leaf filter, Leaf handler, Mid filter, Mid handler."""
        chain.dispatcher.send_event(press(chain.leaf))

        assert chain.trace.visits("filter", "handler") == [
            ("Leaf", "filter"),
            ("Leaf", "handler"),
            ("Mid", "filter"),
            ("Mid", "handler"),
        ]
        assert chain.receivers["Root"].calls == []

    def test_ignore_propagates_to_each_ancestor_once(self, make_chain):
        c = make_chain(leaf_action="ignore", mid_action="ignore", root_action="accept")
        c.dispatcher.send_event(press(c.leaf))

        for name in ("Leaf", "Mid", "Root"):
            assert c.receivers[name].calls.count(("handler", PRESS)) == 1
        assert [s.result for s in c.trace.steps if s.stage == "propagate"] == ["Mid", "Root"]

    def test_root_ignoring_is_not_an_error(self, make_chain):
        c = make_chain(leaf_action="ignore", mid_action="ignore", root_action="ignore")

        c.dispatcher.send_event(press(c.leaf))

        assert c.receivers["Root"].calls.count(("handler", PRESS)) == 1

    def test_event_is_reset_to_accepted_for_each_widget(self, make_chain):
        states = []
        c = make_chain(leaf_action="ignore")
        c.tree.install_event_filter(
            c.mid, CallbackFilter(lambda n, e: states.append(e.is_accepted))
        )

        c.dispatcher.send_event(press(c.leaf))

        assert states == [True]

    def test_missing_handler_counts_as_ignored(self):
        tree = WidgetTree()
        parent_receiver = ScriptedReceiver(handlers={KEY: "accept"})
        parent = tree.add("Parent", parent_receiver)
        child = tree.add("Child", ScriptedReceiver(), parent)

        trace = DispatchTrace()
        with Dispatcher(tree, trace=trace) as dispatcher:
            dispatcher.send_event(Event(KEY, child))

        assert ("handler", KEY) in parent_receiver.calls
        assert ("Child", "handler", "unhandled") in trace.steps

    def test_widget_without_receiver_passes_event_up(self):
        tree = WidgetTree()
        parent_receiver = ScriptedReceiver(handlers={PRESS: "accept"})
        parent = tree.add("Parent", parent_receiver)
        child = tree.add("Bare", None, parent)

        with Dispatcher(tree) as dispatcher:
            dispatcher.send_event(press(child))

        assert ("handler", PRESS) in parent_receiver.calls

    def test_consumed_and_ignored_filter_still_propagates(self, chain):
        chain.tree.remove_event_filter(chain.leaf, chain.filters["Leaf"])
        chain.tree.install_event_filter(chain.leaf, ScriptedFilter({PRESS: "consume-and-ignore"}))

        chain.dispatcher.send_event(press(chain.leaf))

        assert chain.receivers["Leaf"].calls == []
        assert ("handler", PRESS) in chain.receivers["Mid"].calls

    def test_consumed_and_ignored_hook_still_propagates(self):
        tree = WidgetTree()
        parent_receiver = ScriptedReceiver(handlers={PRESS: "accept"})
        parent = tree.add("Parent", parent_receiver)
        child_receiver = ScriptedReceiver(
            handlers={PRESS: "accept"}, hook={PRESS: "consume-and-ignore"}
        )
        child = tree.add("Child", child_receiver, parent)

        with Dispatcher(tree) as dispatcher:
            dispatcher.send_event(press(child))

        assert child_receiver.calls == [("event", PRESS)]
        assert ("handler", PRESS) in parent_receiver.calls

    def test_callback_receiver_handlers(self):
        tree = WidgetTree()
        got = []
        parent = tree.add("Parent", CallbackReceiver(mouse_press_event=lambda e: got.append("p")))
        child = tree.add(
            "Child",
            CallbackReceiver(mouse_press_event=lambda e: got.append("c") or e.ignore()),
            parent,
        )

        with Dispatcher(tree) as dispatcher:
            dispatcher.send_event(press(child))

        assert got == ["c", "p"]


class TestLifecycle:
    def test_send_before_start_raises(self):
        tree = WidgetTree()
        widget = tree.add("W")
        dispatcher = Dispatcher(tree)

        with pytest.raises(DispatchError, match="not running"):
            dispatcher.send_event(press(widget))

    def test_send_after_shutdown_raises(self, chain):
        chain.dispatcher.shutdown()

        with pytest.raises(DispatchError):
            chain.dispatcher.send_event(press(chain.leaf))

    def test_unknown_target_raises(self, chain):
        with pytest.raises(WidgetNotFound):
            chain.dispatcher.send_event(press(999))

    def test_handler_exception_reaches_caller_and_dispatcher_recovers(self):
        tree = WidgetTree()

        def boom(event):
            raise RuntimeError("handler exploded")

        widget = tree.add("W", CallbackReceiver(mouse_press_event=boom))
        failures = []
        events = EventSystem()
        events.on("dispatch_failed", lambda event, exc: failures.append(exc))

        with Dispatcher(tree, events=events) as dispatcher:
            with pytest.raises(RuntimeError, match="handler exploded"):
                dispatcher.send_event(press(widget))
            assert len(failures) == 1

            tree.get(widget).receiver = ScriptedReceiver(handlers={PRESS: "accept"})
            dispatcher.send_event(press(widget))

    def test_nested_send_is_rejected(self):
        tree = WidgetTree()
        dispatcher = Dispatcher(tree)
        widget = tree.add(
            "W",
            CallbackReceiver(mouse_press_event=lambda e: dispatcher.send_event(press(e.target))),
        )
        dispatcher.start()

        with pytest.raises(DispatchError, match="post_event"):
            dispatcher.send_event(press(widget))

    def test_lifecycle_notifications(self, chain):
        seen = []
        chain.dispatcher.events.on("dispatch_started", lambda e: seen.append("started"))
        chain.dispatcher.events.on("dispatch_finished", lambda e: seen.append("finished"))

        chain.dispatcher.send_event(press(chain.leaf))

        assert seen == ["started", "finished"]


class TestPostedEvents:
    def test_process_events_runs_in_fifo_order(self):
        tree = WidgetTree()
        order = []
        widget = tree.add(
            "W",
            CallbackReceiver(
                mouse_press_event=lambda e: order.append(("press", e.payload["n"])),
                key_press_event=lambda e: order.append(("key", e.payload["n"])),
            ),
        )
        with Dispatcher(tree) as dispatcher:
            dispatcher.post_event(Event(PRESS, widget, {"n": 1}))
            dispatcher.post_event(Event(KEY, widget, {"n": 2}))
            assert dispatcher.pending == 2

            assert dispatcher.process_events() == 2

        assert order == [("press", 1), ("key", 2)]

    def test_events_posted_by_handlers_are_processed_in_same_drain(self):
        tree = WidgetTree()
        dispatcher = Dispatcher(tree)
        keys = []

        def on_press(event):
            dispatcher.post_event(Event(KEY, event.target))

        widget = tree.add(
            "W", CallbackReceiver(mouse_press_event=on_press, key_press_event=keys.append)
        )
        dispatcher.start()
        dispatcher.post_event(press(widget))

        assert dispatcher.process_events() == 2
        assert len(keys) == 1

    def test_shutdown_discards_pending(self, chain):
        chain.dispatcher.post_event(press(chain.leaf))
        chain.dispatcher.shutdown()

        assert chain.dispatcher.pending == 0


class TestDispatchTrace:
    def test_max_steps_keeps_latest(self):
        trace = DispatchTrace(max_steps=2)
        trace.record("a", "filter", "declined")
        trace.record("b", "filter", "declined")
        trace.record("c", "filter", "declined")

        assert [s.widget for s in trace.steps] == ["b", "c"]

    def test_as_list(self):
        trace = DispatchTrace()
        trace.record("Leaf", "handler", "ignored")

        assert trace.as_list() == [{"widget": "Leaf", "stage": "handler", "result": "ignored"}]
