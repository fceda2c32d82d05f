from __future__ import annotations

import heapq
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from .errors import CyclicDependency, PertError
from .models import Activity
from .network import PertNetwork
from .table import ActivityTable


class PertScheduler:
    """
    PERT/CPM scheduler on an activity-on-arc network.

    Loads an activity list, synthesizes the event network and runs the
    forward pass (EST), backward pass (LFT) and float calculations.
    """

    def __init__(
        self,
        repair_all_missing: bool = False,
        dummy_prefix: str = "D",
        skip_short_records: bool = False,
    ):
        self.table = ActivityTable(skip_short_records=skip_short_records)
        self.network: Optional[PertNetwork] = None
        self.calculation_log: List[str] = []
        self.project_duration: int = 0
        self.critical_activities: List[str] = []
        self.repair_all_missing = repair_all_missing
        self.dummy_prefix = dummy_prefix

    def clear(self) -> None:
        """Clear all activities and calculations."""
        self.table.clear()
        self.network = None
        self.calculation_log.clear()
        self.project_duration = 0
        self.critical_activities = []

    def load_csv(self, path: str) -> None:
        self.table.load_csv(path)

    def load_records(self, records: Sequence[Sequence[str]]) -> None:
        self.table.load_records(records)

    def add_activity(
        self, activity_id: str, label: str, duration: int, predecessors: Sequence[str]
    ) -> Activity:
        return self.table.add_activity(activity_id, label, duration, predecessors)

    def validate_network(self) -> Tuple[bool, str]:
        return self.table.validate_network()

    def calculate(self) -> PertNetwork:
        """
        Perform full network synthesis and PERT/CPM calculation.

        Raises a PertError subclass when the input is invalid or the
        network cannot be scheduled.
        """
        self.calculation_log.clear()
        self._log("=" * 70)
        self._log("PERT/CPM CALCULATION")
        self._log("Activity-on-Arc Network")
        self._log("=" * 70)
        self._log("")

        try:
            self.table.link()
            network = PertNetwork(
                self.table,
                dummy_prefix=self.dummy_prefix,
                repair_all_missing=self.repair_all_missing,
            )
            network.synthesize()
        except PertError as e:
            self._log(f"ERROR: {e}")
            raise

        self._log(
            f"Network: {len(network.events)} events, "
            f"{len(network.real_activities())} activities, "
            f"{len(network.dummy_activities())} dummies"
        )
        self._log("")

        self._forward_pass(network)
        self._backward_pass(network)
        self._calculate_floats(network)
        self.project_duration = max(evt.est for evt in network.events.values())
        self._identify_critical_activities(network)
        self.network = network

        self._log("")
        self._log("=" * 70)
        self._log("CALCULATION COMPLETE")
        self._log(f"Project Duration: {self.project_duration}")
        if self.critical_activities:
            self._log(f"Critical Activities: {', '.join(self.critical_activities)}")
        else:
            self._log("Critical Activities: (none)")
        self._log("=" * 70)

        return network

    def _log(self, message: str) -> None:
        self.calculation_log.append(message)

    def _get_topological_order(self, network: PertNetwork) -> List[int]:
        """Get events in topological order, lowest id first among ready events."""
        in_degree = {eid: len(evt.incoming) for eid, evt in network.events.items()}
        ready = [eid for eid, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: List[int] = []

        while ready:
            eid = heapq.heappop(ready)
            order.append(eid)
            for act_id in network.events[eid].outgoing:
                succ = network.activities[act_id].tail_event
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    heapq.heappush(ready, succ)

        if len(order) != len(network.events):
            unresolved = [str(eid) for eid in network.events if in_degree[eid] > 0]
            raise CyclicDependency(
                unresolved,
                f"Events left unresolved by the forward pass (cycle): {', '.join(unresolved)}",
            )
        return order

    def _forward_pass(self, network: PertNetwork) -> None:
        """
        Forward pass calculation to determine the Earliest Start Time (EST)
        of every event.
        """
        self._log("FORWARD PASS (Calculating EST)")
        self._log("-" * 50)

        for eid in self._get_topological_order(network):
            evt = network.events[eid]

            if not evt.incoming:
                evt.est = 0
                evt.est_resolved = True
                self._log(f"\nEvent {eid} (no incoming activities):")
                self._log("  EST = 0")
                continue

            self._log(f"\nEvent {eid} (incoming: {', '.join(evt.incoming)}):")
            candidates: List[int] = []
            for act_id in evt.incoming:
                act = network.activities[act_id]
                head = network.events[act.head_event]
                assert head.est_resolved, f"event {head.id} used before its EST was resolved"
                candidate = head.est + act.duration
                candidates.append(candidate)
                self._log(
                    f"  From {act_id}: EST({head.id}) + Duration = {head.est} + {act.duration} = {candidate}"
                )

            evt.est = max(candidates)
            evt.est_resolved = True
            self._log(f"  -> EST = {evt.est}")

    def _backward_pass(self, network: PertNetwork) -> None:
        """
        Backward pass calculation to determine the Latest Finish Time (LFT)
        of every event.
        """
        self._log("\n\nBACKWARD PASS (Calculating LFT)")
        self._log("-" * 50)

        for eid, evt in network.events.items():
            if not evt.outgoing:
                evt.lft = evt.est
                self._log(f"\nEvent {eid} (terminal):")
                self._log(f"  LFT = EST = {evt.lft}")
                continue

            self._log(f"\nEvent {eid} (outgoing: {', '.join(evt.outgoing)}):")
            candidates: List[int] = []
            for act_id in evt.outgoing:
                act = network.activities[act_id]
                tail = network.events[act.tail_event]
                candidate = tail.est - act.duration
                candidates.append(candidate)
                self._log(
                    f"  To {act_id}: EST({tail.id}) - Duration = {tail.est} - {act.duration} = {candidate}"
                )

            evt.lft = min(candidates)
            self._log(f"  -> LFT = {evt.lft}")

    def _calculate_floats(self, network: PertNetwork) -> None:
        """
        Calculate Total Float (TF) and Free Float (FF) for all activities.
        """
        self._log("\n\nFLOAT CALCULATIONS")
        self._log("-" * 50)

        for act_id, act in network.activities.items():
            head = network.events[act.head_event]
            tail = network.events[act.tail_event]
            finish = head.est + act.duration
            act.total_float = tail.lft - finish
            act.free_float = tail.est - finish

            self._log(f"\n{act_id}:")
            self._log(
                f"  Total Float (TF) = LFT({tail.id}) - (EST({head.id}) + Duration) = "
                f"{tail.lft} - {finish} = {act.total_float}"
            )
            self._log(
                f"  Free Float (FF) = EST({tail.id}) - (EST({head.id}) + Duration) = "
                f"{tail.est} - {finish} = {act.free_float}"
            )

    def _identify_critical_activities(self, network: PertNetwork) -> None:
        self._log("\n\nCRITICAL ACTIVITY IDENTIFICATION")
        self._log("-" * 50)

        critical: List[Activity] = []
        for act in network.real_activities():
            if act.is_critical:
                critical.append(act)
                self._log(f"{act.id}: TF = {act.total_float} -> CRITICAL")
            else:
                self._log(f"{act.id}: TF = {act.total_float} -> Not critical")

        critical.sort(key=lambda a: (network.events[a.head_event].est, a.id))
        self.critical_activities = [act.id for act in critical]

    def get_results_dataframe(self) -> pd.DataFrame:
        """Get calculation results as a pandas DataFrame."""
        columns = ["ID", "Label", "Duration", "Head Event", "Tail Event", "EST", "EFT", "LFT", "TF", "FF", "Critical"]
        if self.network is None:
            return pd.DataFrame(columns=columns)

        network = self.network
        data = []
        for act in network.real_activities():
            head = network.events[act.head_event]
            tail = network.events[act.tail_event]
            data.append(
                {
                    "ID": act.id,
                    "Label": act.label,
                    "Duration": act.duration,
                    "Head Event": head.id,
                    "Tail Event": tail.id,
                    "EST": head.est,
                    "EFT": head.est + act.duration,
                    "LFT": tail.lft,
                    "TF": act.total_float,
                    "FF": act.free_float,
                    "Critical": "Yes" if act.is_critical else "No",
                }
            )
        return pd.DataFrame(data, columns=columns)

    def get_events_dataframe(self) -> pd.DataFrame:
        """Get event times as a pandas DataFrame."""
        columns = ["Event", "EST", "LFT", "Incoming", "Outgoing"]
        if self.network is None:
            return pd.DataFrame(columns=columns)

        data = []
        for evt in self.network.events.values():
            data.append(
                {
                    "Event": evt.id,
                    "EST": evt.est,
                    "LFT": evt.lft,
                    "Incoming": " ".join(evt.incoming),
                    "Outgoing": " ".join(evt.outgoing),
                }
            )
        return pd.DataFrame(data, columns=columns)

    def get_activities_dataframe(self) -> pd.DataFrame:
        """Get the activity list (with synthesized structure once calculated)."""
        if self.network is not None:
            return self.network.get_structure_dataframe()
        data = []
        for act in self.table.activities.values():
            data.append(
                {
                    "ID": act.id,
                    "Label": act.label,
                    "Duration": act.duration,
                    "Predecessors": " ".join(act.predecessors),
                }
            )
        return pd.DataFrame(data, columns=["ID", "Label", "Duration", "Predecessors"])
