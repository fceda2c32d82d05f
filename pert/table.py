from __future__ import annotations

import csv
import io
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import (
    CyclicDependency,
    DuplicateActivity,
    EmptyInput,
    MalformedRecord,
    PertError,
    UndefinedPredecessorReference,
)
from .models import START_MARKER, Activity

logger = logging.getLogger(__name__)

MIN_RECORD_FIELDS = 4


class ActivityTable:
    """
    Activity lookup table built from an activity-on-node precedence list.

    Records have the form ``id, label, duration, pred1 [, pred2 ...]`` where a
    single ``*`` in place of the predecessors marks a project-start activity.
    """

    def __init__(self, skip_short_records: bool = False):
        self.activities: Dict[str, Activity] = {}
        self.skip_short_records = skip_short_records
        self.linked = False

    def __len__(self) -> int:
        return len(self.activities)

    def __contains__(self, activity_id: str) -> bool:
        return activity_id in self.activities

    def __getitem__(self, activity_id: str) -> Activity:
        return self.activities[activity_id]

    def clear(self) -> None:
        self.activities.clear()
        self.linked = False

    def load_csv(self, path: str) -> None:
        """Load activities from a CSV file with one record per line."""
        with open(path, "rb") as f:
            content = f.read()
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            line = content[:e.start].count(b"\n") + 1
            raise MalformedRecord(f"invalid UTF-8 byte 0x{content[e.start]:02x}", line) from None

        reader = csv.reader(io.StringIO(text, newline=""))
        try:
            self.load_records(reader)
        except csv.Error as e:
            raise MalformedRecord(f"invalid CSV: {e}", reader.line_num) from None

    def load_records(self, records: Iterable[Sequence[str]]) -> None:
        for record_number, record in enumerate(records, start=1):
            fields = [str(value).strip() for value in record]
            while fields and not fields[-1]:
                fields.pop()
            if not fields:
                continue

            if len(fields) < MIN_RECORD_FIELDS:
                if self.skip_short_records:
                    logger.warning(
                        "Skipping record %d: expected at least %d fields, got %d",
                        record_number, MIN_RECORD_FIELDS, len(fields),
                    )
                    continue
                raise MalformedRecord(
                    f"expected at least {MIN_RECORD_FIELDS} fields "
                    f"(id, label, duration, predecessors), got {len(fields)}",
                    record_number,
                )

            activity_id, label, duration_raw = fields[0], fields[1], fields[2]
            try:
                duration = int(duration_raw)
            except ValueError:
                raise MalformedRecord(
                    f"duration '{duration_raw}' is not an integer", record_number
                ) from None

            self.add_activity(
                activity_id, label, duration, fields[3:], record_number=record_number
            )

    def add_activity(
        self,
        activity_id: str,
        label: str,
        duration: int,
        predecessors: Sequence[str],
        record_number: Optional[int] = None,
    ) -> Activity:
        """
        Add an activity to the table.

        Args:
            activity_id: Unique identifier for the activity
            label: Activity name shown on its arc
            duration: Duration (must be >= 0)
            predecessors: Predecessor ids, or ``["*"]`` for a start activity

        Returns:
            The stored Activity
        """
        activity_id = activity_id.strip()
        if not activity_id:
            raise MalformedRecord("Activity ID cannot be empty.", record_number)
        if activity_id == START_MARKER:
            raise MalformedRecord(
                f"Cannot use reserved ID '{START_MARKER}'.", record_number
            )
        if activity_id in self.activities:
            raise DuplicateActivity(
                f"Activity '{activity_id}' already exists.", record_number
            )
        if duration < 0:
            raise MalformedRecord("Duration must be non-negative.", record_number)

        pred_ids: List[str] = []
        for pred_id in predecessors:
            pred_id = pred_id.strip()
            if pred_id and pred_id not in pred_ids:
                pred_ids.append(pred_id)
        if not pred_ids:
            raise MalformedRecord(
                f"Activity '{activity_id}' has no predecessors; use '{START_MARKER}' for a start activity.",
                record_number,
            )
        if START_MARKER in pred_ids and len(pred_ids) > 1:
            raise MalformedRecord(
                f"Activity '{activity_id}': '{START_MARKER}' cannot be combined with other predecessors.",
                record_number,
            )

        activity = Activity(id=activity_id, label=label, duration=duration, predecessors=pred_ids)
        self.activities[activity_id] = activity
        self.linked = False
        return activity

    def link(self) -> None:
        """
        Resolve predecessor references and derive successor lists.

        Raises EmptyInput, UndefinedPredecessorReference or CyclicDependency.
        """
        if not self.activities:
            raise EmptyInput()

        for act in self.activities.values():
            act.successors = []
            if act.starts_project:
                continue
            for pred_id in act.predecessors:
                if pred_id not in self.activities:
                    raise UndefinedPredecessorReference(act.id, pred_id)
            act.predecessors.sort()

        for act in self.activities.values():
            if act.starts_project:
                continue
            for pred_id in act.predecessors:
                self.activities[pred_id].successors.append(act.id)
        for act in self.activities.values():
            act.successors.sort()

        cycle = self._detect_cycle()
        if cycle:
            raise CyclicDependency(cycle)

        self.linked = True

    def validate_network(self) -> Tuple[bool, str]:
        """
        Validate the table for network synthesis.

        Checks for:
        - Empty input
        - Missing predecessor references
        - Circular dependencies
        """
        try:
            self.link()
        except PertError as e:
            return False, str(e)
        return True, "Network is valid."

    def _detect_cycle(self) -> Optional[List[str]]:
        """Detect cycles in the precedence list using DFS."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {act_id: WHITE for act_id in self.activities}
        parent: Dict[str, str] = {}

        for root in self.activities:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            stack = [(root, iter(self._real_predecessors(root)))]
            while stack:
                node, preds = stack[-1]
                pred_id = next(preds, None)
                if pred_id is None:
                    color[node] = BLACK
                    stack.pop()
                    continue
                if color[pred_id] == GRAY:
                    cycle = [node]
                    current = node
                    while current != pred_id:
                        current = parent[current]
                        cycle.append(current)
                    cycle.reverse()
                    cycle.append(cycle[0])
                    return cycle
                if color[pred_id] == WHITE:
                    color[pred_id] = GRAY
                    parent[pred_id] = node
                    stack.append((pred_id, iter(self._real_predecessors(pred_id))))
        return None

    def _real_predecessors(self, activity_id: str) -> List[str]:
        act = self.activities[activity_id]
        return [] if act.starts_project else act.predecessors
