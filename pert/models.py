from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

# Predecessor marker for "no predecessor / project start".
START_MARKER = "*"


@dataclass
class Activity:
    """Represents a project activity; rendered as an arc between two events."""

    id: str
    label: str
    duration: int
    predecessors: List[str] = field(default_factory=list)
    successors: List[str] = field(default_factory=list)
    is_dummy: bool = False

    # Synthesis results (event ids)
    head_event: Optional[int] = None
    tail_event: Optional[int] = None

    # Float calculations
    total_float: Optional[int] = None  # Total Float (TF)
    free_float: Optional[int] = None   # Free Float (FF)

    @property
    def starts_project(self) -> bool:
        return self.predecessors == [START_MARKER]

    @property
    def is_critical(self) -> bool:
        return self.total_float == 0

    def copy(self) -> "Activity":
        return Activity(
            id=self.id,
            label=self.label,
            duration=self.duration,
            predecessors=list(self.predecessors),
            successors=list(self.successors),
            is_dummy=self.is_dummy,
        )


@dataclass
class Event:
    """A point in time where activities start or finish; rendered as a node."""

    id: int
    incoming: List[str] = field(default_factory=list)
    outgoing: List[str] = field(default_factory=list)

    est: Optional[int] = None  # Earliest Start Time
    lft: Optional[int] = None  # Latest Finish Time
    est_resolved: bool = False

    @property
    def is_start(self) -> bool:
        return not self.incoming

    @property
    def is_terminal(self) -> bool:
        return not self.outgoing
