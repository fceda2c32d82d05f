from __future__ import annotations

from typing import List, Optional


class PertError(Exception):
    """Base class for every error raised while building a PERT network."""


class MalformedRecord(PertError):
    """An input record does not match the activity schema."""

    def __init__(self, message: str, record_number: Optional[int] = None):
        self.record_number = record_number
        if record_number is not None:
            message = f"record {record_number}: {message}"
        super().__init__(message)


class DuplicateActivity(MalformedRecord):
    """Two records declare the same activity id."""


class UndefinedPredecessorReference(PertError):
    def __init__(self, activity_id: str, predecessor_id: str):
        self.activity_id = activity_id
        self.predecessor_id = predecessor_id
        super().__init__(
            f"Activity '{activity_id}' references undefined predecessor '{predecessor_id}'."
        )


class CyclicDependency(PertError):
    def __init__(self, cycle: List[str], message: Optional[str] = None):
        self.cycle = list(cycle)
        if message is None:
            message = f"Circular dependency detected: {' -> '.join(self.cycle)}"
        super().__init__(message)


class EmptyInput(PertError):
    def __init__(self, message: str = "No activities defined."):
        super().__init__(message)


class NetworkInvariantError(PertError, AssertionError):
    """The synthesized network violates a structural invariant."""
