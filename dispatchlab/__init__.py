from dispatchlab.harness import Harness
from dispatchlab.lib.dispatcher import Dispatcher, DispatchTrace
from dispatchlab.lib.events import Event, EventKind
from dispatchlab.lib.registry import ConfigStore, ValueType
from dispatchlab.lib.widgets import WidgetTree
from dispatchlab.version import __version__

PACKAGE = __package__
VERSION = __version__

__all__ = [
    "VERSION",
    "PACKAGE",
    Harness.__name__,
    Dispatcher.__name__,
    DispatchTrace.__name__,
    Event.__name__,
    EventKind.__name__,
    ConfigStore.__name__,
    ValueType.__name__,
    WidgetTree.__name__,
]
