from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

import networkx as nx
import pandas as pd

from .errors import NetworkInvariantError
from .models import START_MARKER, Activity, Event
from .table import ActivityTable

logger = logging.getLogger(__name__)


class PertNetwork:
    """
    Activity-on-arc network synthesized from an activity-on-node table.

    Events and activities live in two flat tables keyed by id; every
    cross-reference (head/tail event, incoming/outgoing activity) is an id.
    """

    def __init__(
        self,
        table: ActivityTable,
        dummy_prefix: str = "D",
        repair_all_missing: bool = False,
    ):
        if not table.linked:
            table.link()
        self.activities: Dict[str, Activity] = {
            act_id: act.copy() for act_id, act in table.activities.items()
        }
        self.precedence = nx.DiGraph()
        for act in self.activities.values():
            self.precedence.add_node(act.id)
            if not act.starts_project:
                self.precedence.add_edges_from((pred_id, act.id) for pred_id in act.predecessors)
        self.events: Dict[int, Event] = {}
        self.start_event: Optional[int] = None
        self.dummy_prefix = dummy_prefix
        self.repair_all_missing = repair_all_missing
        self._next_event_id = 0
        self._next_dummy_number = 0

    # ------------------------------------------------------------------
    # Table helpers
    # ------------------------------------------------------------------

    def create_event(self) -> Event:
        event = Event(id=self._next_event_id)
        self._next_event_id += 1
        self.events[event.id] = event
        return event

    def create_dummy_activity(self, head_event: int, tail_event: int) -> Activity:
        dummy_id = f"{self.dummy_prefix}{self._next_dummy_number}"
        self._next_dummy_number += 1
        while dummy_id in self.activities:
            dummy_id = f"{self.dummy_prefix}{self._next_dummy_number}"
            self._next_dummy_number += 1

        dummy = Activity(
            id=dummy_id,
            label="",
            duration=0,
            is_dummy=True,
            head_event=head_event,
            tail_event=tail_event,
        )
        self.events[head_event].outgoing.append(dummy_id)
        self.events[tail_event].incoming.append(dummy_id)
        return dummy

    def real_activities(self) -> List[Activity]:
        return [act for act in self.activities.values() if not act.is_dummy]

    def dummy_activities(self) -> List[Activity]:
        return [act for act in self.activities.values() if act.is_dummy]

    def _tail_of(self, activity_id: str) -> Event:
        """Tail event of an activity, created on first use."""
        if activity_id == START_MARKER:
            if self.start_event is None:
                self.start_event = self.create_event().id
            return self.events[self.start_event]

        act = self.activities[activity_id]
        if act.tail_event is None:
            act.tail_event = self.create_event().id
        return self.events[act.tail_event]

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def synthesize(self) -> None:
        """Build events and dummies, then verify the structure."""
        self.fill_head_events()
        self.fill_tail_events()
        self.resolve_consistency()
        self.resolve_duplicates()
        self.check_structure()
        logger.debug(
            "Synthesized %d events and %d activities (%d dummies)",
            len(self.events), len(self.activities), len(self.dummy_activities()),
        )

    def fill_head_events(self) -> None:
        """
        Merge every activity into the tail event of its first predecessor.

        Only the lowest-id predecessor is considered here; dependencies on
        the remaining predecessors are repaired by resolve_consistency.
        """
        for act in self.activities.values():
            head = self._tail_of(act.predecessors[0])
            act.head_event = head.id
            head.outgoing.append(act.id)

    def fill_tail_events(self) -> None:
        for act in self.activities.values():
            if act.tail_event is None:
                if act.successors and self._can_merge_into(act, self.activities[act.successors[0]].head_event):
                    # The event that kicks off the first successor
                    act.tail_event = self.activities[act.successors[0]].head_event
                else:
                    act.tail_event = self.create_event().id
            self.events[act.tail_event].incoming.append(act.id)

    def _can_merge_into(self, act: Activity, event_id: int) -> bool:
        """
        An activity may end at an event only if nothing leaving that event
        precedes it; otherwise the merge closes an event cycle.
        """
        ancestors = nx.ancestors(self.precedence, act.id) | {act.id}
        return not any(out_id in ancestors for out_id in self.events[event_id].outgoing)

    def _missing_predecessors(self, act: Activity) -> List[str]:
        """Predecessors not wired into the head event, directly or by a dummy."""
        head = self.events[act.head_event]
        dummy_sources = {
            self.activities[in_id].head_event
            for in_id in head.incoming
            if self.activities[in_id].is_dummy
        }
        return [
            pred_id
            for pred_id in act.predecessors
            if pred_id not in head.incoming
            and self.activities[pred_id].tail_event not in dummy_sources
        ]

    def resolve_consistency(self) -> List[Activity]:
        """
        Add dummy activities for predecessors that the head event misses.

        One dummy is added per offending activity (the first missing
        predecessor) unless ``repair_all_missing`` is set. An activity whose
        head event already reaches a missing predecessor is first moved onto
        its own head event, linked to the old one by a dummy.
        """
        graph = self.to_networkx()
        dummies: List[Activity] = []
        for act in list(self.activities.values()):
            if act.is_dummy or act.starts_project:
                continue
            head = self.events[act.head_event]
            if not self.repair_all_missing:
                if not head.incoming or len(act.predecessors) <= len(head.incoming):
                    continue

            missing = self._missing_predecessors(act)
            if not self.repair_all_missing:
                missing = missing[:1]
            if not missing:
                continue

            pred_tails = [self.activities[pred_id].tail_event for pred_id in missing]
            if any(nx.has_path(graph, head.id, tail) for tail in pred_tails):
                dummies.append(self._detach_head(act, graph))

            for pred_id, pred_tail in zip(missing, pred_tails):
                dummy = self.create_dummy_activity(pred_tail, act.head_event)
                self.activities[dummy.id] = dummy
                graph.add_edge(pred_tail, act.head_event, key=dummy.id)
                dummies.append(dummy)
                logger.debug(
                    "Dummy %s: event %d -> %d for %s after %s",
                    dummy.id, pred_tail, act.head_event, act.id, pred_id,
                )
        return dummies

    def _detach_head(self, act: Activity, graph: nx.MultiDiGraph) -> Activity:
        old_head = act.head_event
        self.events[old_head].outgoing.remove(act.id)
        graph.remove_edge(old_head, act.tail_event, key=act.id)

        new_head = self.create_event()
        act.head_event = new_head.id
        new_head.outgoing.append(act.id)
        graph.add_edge(new_head.id, act.tail_event, key=act.id)

        dummy = self.create_dummy_activity(old_head, new_head.id)
        self.activities[dummy.id] = dummy
        graph.add_edge(old_head, new_head.id, key=dummy.id)
        logger.debug(
            "Moved %s onto event %d (dummy %s from event %d)",
            act.id, new_head.id, dummy.id, old_head,
        )
        return dummy

    def resolve_duplicates(self) -> List[Activity]:
        """
        Split parallel arcs that share the same head and tail events.

        The longest activity keeps the shared tail; every other one gets a
        dedicated tail event joined to the shared tail by a dummy.
        """
        dummies: List[Activity] = []
        for event in list(self.events.values()):
            groups: Dict[int, List[str]] = OrderedDict()
            for act_id in event.outgoing:
                groups.setdefault(self.activities[act_id].tail_event, []).append(act_id)

            for shared_tail, act_ids in groups.items():
                if len(act_ids) < 2:
                    continue
                ranked = sorted(act_ids, key=lambda a: -self.activities[a].duration)
                for act_id in ranked[1:]:
                    dummies.append(self._reroute(act_id, shared_tail))

        for dummy in dummies:
            self.activities[dummy.id] = dummy
        return dummies

    def _reroute(self, activity_id: str, shared_tail: int) -> Activity:
        act = self.activities[activity_id]
        self.events[shared_tail].incoming.remove(activity_id)

        new_tail = self.create_event()
        act.tail_event = new_tail.id
        new_tail.incoming.append(activity_id)

        dummy = self.create_dummy_activity(new_tail.id, shared_tail)
        logger.debug(
            "Rerouted %s through event %d (dummy %s -> event %d)",
            activity_id, new_tail.id, dummy.id, shared_tail,
        )
        return dummy

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def check_structure(self) -> None:
        """Fail fast if the synthesized network breaks a structural invariant."""
        for act in self.activities.values():
            if act.head_event is None or act.tail_event is None:
                raise NetworkInvariantError(f"Activity '{act.id}' lacks a head or tail event.")
            if act.id not in self.events[act.head_event].outgoing:
                raise NetworkInvariantError(
                    f"Activity '{act.id}' missing from outgoing of event {act.head_event}."
                )
            if act.id not in self.events[act.tail_event].incoming:
                raise NetworkInvariantError(
                    f"Activity '{act.id}' missing from incoming of event {act.tail_event}."
                )

        for event in self.events.values():
            for act_id in event.outgoing:
                if self.activities[act_id].head_event != event.id:
                    raise NetworkInvariantError(
                        f"Event {event.id} lists '{act_id}' as outgoing but it starts elsewhere."
                    )
            for act_id in event.incoming:
                if self.activities[act_id].tail_event != event.id:
                    raise NetworkInvariantError(
                        f"Event {event.id} lists '{act_id}' as incoming but it ends elsewhere."
                    )

        graph = self.to_networkx()
        if not nx.is_directed_acyclic_graph(graph):
            edges = nx.find_cycle(graph)
            arcs = ", ".join(f"{key} ({head} -> {tail})" for head, tail, key in edges)
            raise NetworkInvariantError(f"Synthesized network contains an event cycle through {arcs}.")

        if self.start_event is None:
            raise NetworkInvariantError("Network has no start event.")
        reachable = nx.descendants(graph, self.start_event) | {self.start_event}
        unreachable = sorted(set(self.events) - reachable)
        if unreachable:
            raise NetworkInvariantError(
                f"Events not reachable from start event {self.start_event}: {unreachable}"
            )

    def to_networkx(self) -> nx.MultiDiGraph:
        """Events as nodes, activities as keyed edges."""
        graph = nx.MultiDiGraph()
        for event in self.events.values():
            graph.add_node(event.id, est=event.est, lft=event.lft)
        for act in self.activities.values():
            if act.head_event is None or act.tail_event is None:
                continue
            graph.add_edge(
                act.head_event,
                act.tail_event,
                key=act.id,
                label=act.label,
                duration=act.duration,
                dummy=act.is_dummy,
                total_float=act.total_float,
                free_float=act.free_float,
            )
        return graph

    def get_structure_dataframe(self) -> pd.DataFrame:
        """Activity table with predecessor/successor ids and event ids."""
        data = []
        for act in self.activities.values():
            data.append(
                {
                    "ID": act.id,
                    "Prev": " ".join(act.predecessors),
                    "Next": " ".join(act.successors),
                    "Head Event": act.head_event if act.head_event is not None else "",
                    "Tail Event": act.tail_event if act.tail_event is not None else "",
                }
            )
        return pd.DataFrame(data, columns=["ID", "Prev", "Next", "Head Event", "Tail Event"])
