from .engine import PertScheduler
from .errors import (
    CyclicDependency,
    DuplicateActivity,
    EmptyInput,
    MalformedRecord,
    NetworkInvariantError,
    PertError,
    UndefinedPredecessorReference,
)
from .exporter import to_dot, to_graphviz, write_dot
from .models import START_MARKER, Activity, Event
from .network import PertNetwork
from .table import ActivityTable

__version__ = "1.0.0"
