import unittest

import networkx as nx

from pert.errors import NetworkInvariantError
from pert.network import PertNetwork
from pert.table import ActivityTable


def make_table(rows):
    table = ActivityTable()
    table.load_records(rows)
    table.link()
    return table


class TestPertNetwork(unittest.TestCase):
    def setUp(self):
        self.table = make_table([
            ["W", "W", "4", "*"],
            ["X", "X", "2", "*"],
            ["Q", "Q", "3", "W", "X"],
            ["S", "S", "1", "Q", "X"],
        ])
        self.network = PertNetwork(self.table)

    def test_fill_head_events(self):
        net = self.network
        net.fill_head_events()

        self.assertEqual(net.start_event, 0)
        self.assertEqual(net.activities["W"].head_event, 0)
        self.assertEqual(net.activities["X"].head_event, 0)
        self.assertEqual(net.activities["Q"].head_event, net.activities["W"].tail_event)
        self.assertEqual(net.activities["S"].head_event, net.activities["Q"].tail_event)
        self.assertEqual(net.events[0].outgoing, ["W", "X"])

    def test_fill_tail_events(self):
        net = self.network
        net.fill_head_events()
        net.fill_tail_events()

        # X has no tail yet after the head pass; it ends where Q starts
        self.assertEqual(net.activities["X"].tail_event, net.activities["Q"].head_event)
        q_head = net.events[net.activities["Q"].head_event]
        self.assertEqual(q_head.incoming, ["W", "X"])
        self.assertTrue(net.events[net.activities["S"].tail_event].is_terminal)

    def test_resolve_consistency_adds_one_dummy(self):
        net = self.network
        net.fill_head_events()
        net.fill_tail_events()
        dummies = net.resolve_consistency()

        self.assertEqual([d.id for d in dummies], ["D0"])
        dummy = net.activities["D0"]
        self.assertTrue(dummy.is_dummy)
        self.assertEqual(dummy.duration, 0)
        self.assertEqual(dummy.head_event, net.activities["X"].tail_event)
        self.assertEqual(dummy.tail_event, net.activities["S"].head_event)
        self.assertEqual(list(net.activities)[-1], "D0")

    def test_resolve_duplicates(self):
        net = self.network
        net.fill_head_events()
        net.fill_tail_events()
        net.resolve_consistency()
        shared = net.activities["W"].tail_event
        dummies = net.resolve_duplicates()

        self.assertEqual(len(dummies), 2)
        self.assertEqual(net.activities["W"].tail_event, shared)
        x = net.activities["X"]
        self.assertNotEqual(x.tail_event, shared)
        self.assertEqual(x.head_event, 0)
        self.assertEqual(net.events[x.tail_event].incoming, ["X"])
        link = net.activities[net.events[x.tail_event].outgoing[0]]
        self.assertTrue(link.is_dummy)
        self.assertEqual(link.tail_event, shared)

        pairs = [(a.head_event, a.tail_event) for a in net.activities.values()]
        self.assertEqual(len(pairs), len(set(pairs)))

    def test_duplicate_keeps_longest(self):
        table = make_table([
            ["A", "A", "3", "*"],
            ["E", "E", "4", "A"],
            ["F", "F", "2", "A"],
            ["G", "G", "1", "E", "F"],
        ])
        net = PertNetwork(table)
        net.synthesize()

        g_head = net.activities["G"].head_event
        self.assertEqual(net.activities["E"].tail_event, g_head)
        self.assertNotEqual(net.activities["F"].tail_event, g_head)
        self.assertEqual(len(net.dummy_activities()), 1)

    def test_duplicate_tie_keeps_first_arc(self):
        table = make_table([
            ["A", "A", "3", "*"],
            ["E", "E", "2", "A"],
            ["F", "F", "2", "A"],
            ["G", "G", "1", "E", "F"],
        ])
        net = PertNetwork(table)
        net.synthesize()

        g_head = net.activities["G"].head_event
        self.assertEqual(net.activities["E"].tail_event, g_head)
        self.assertNotEqual(net.activities["F"].tail_event, g_head)

    def test_dummy_ids_skip_existing(self):
        table = make_table([
            ["A", "A", "3", "*"],
            ["B", "B", "2", "*"],
            ["D0", "D", "5", "A", "B"],
        ])
        net = PertNetwork(table)
        net.synthesize()

        self.assertEqual([d.id for d in net.dummy_activities()], ["D1"])
        self.assertFalse(net.activities["D0"].is_dummy)

    def test_dummy_prefix(self):
        table = make_table([
            ["A", "A", "3", "*"],
            ["B", "B", "2", "*"],
            ["C", "C", "5", "A", "B"],
        ])
        net = PertNetwork(table, dummy_prefix="dummy-")
        net.synthesize()
        self.assertEqual([d.id for d in net.dummy_activities()], ["dummy-0"])

    def test_table_not_mutated(self):
        self.network.synthesize()
        self.assertIsNone(self.table["W"].head_event)
        self.assertEqual(len(self.table), 4)

    def test_unlinked_table_is_linked(self):
        table = ActivityTable()
        table.load_records([["A", "A", "1", "*"], ["B", "B", "1", "A"]])
        net = PertNetwork(table)
        self.assertTrue(table.linked)
        self.assertEqual(net.activities["A"].successors, ["B"])

    def test_check_structure_fails_fast(self):
        net = self.network
        net.synthesize()
        net.activities["S"].tail_event = None
        with self.assertRaises(NetworkInvariantError):
            net.check_structure()

    def test_check_structure_detects_mismatched_lists(self):
        net = self.network
        net.synthesize()
        tail = net.activities["S"].tail_event
        net.events[tail].incoming.remove("S")
        with self.assertRaises(AssertionError):
            net.check_structure()

    def test_to_networkx(self):
        net = self.network
        net.synthesize()
        graph = net.to_networkx()

        self.assertEqual(graph.number_of_nodes(), len(net.events))
        self.assertEqual(graph.number_of_edges(), len(net.activities))
        q = net.activities["Q"]
        data = graph.get_edge_data(q.head_event, q.tail_event)["Q"]
        self.assertEqual(data["duration"], 3)
        self.assertFalse(data["dummy"])

    def test_structure_dataframe(self):
        net = self.network
        net.synthesize()
        df = net.get_structure_dataframe()

        self.assertEqual(list(df.columns), ["ID", "Prev", "Next", "Head Event", "Tail Event"])
        self.assertEqual(len(df), len(net.activities))
        row = df.set_index("ID").loc["S"]
        self.assertEqual(row["Prev"], "Q X")


    def test_tail_merge_avoids_event_cycle(self):
        table = make_table([
            ["P", "P", "2", "*"],
            ["Q", "Q", "3", "P"],
            ["X", "X", "1", "Q"],
            ["S", "S", "4", "P", "X"],
        ])
        net = PertNetwork(table)
        net.synthesize()

        self.assertTrue(nx.is_directed_acyclic_graph(net.to_networkx()))
        x, s = net.activities["X"], net.activities["S"]
        self.assertNotEqual(x.tail_event, net.activities["P"].tail_event)
        self.assertNotEqual(s.head_event, net.activities["P"].tail_event)

        sources = {net.activities[a].head_event for a in net.events[s.head_event].incoming}
        self.assertEqual(sources, {net.activities["P"].tail_event, x.tail_event})
        self.assertEqual(len(net.dummy_activities()), 2)

    def test_event_cycle_reported_as_invariant_failure(self):
        net = self.network
        net.synthesize()
        s = net.activities["S"]
        w = net.activities["W"]
        net.events[s.tail_event].incoming.remove("S")
        net.events[w.head_event].incoming.append("S")
        s.tail_event = w.head_event

        with self.assertRaises(NetworkInvariantError) as ctx:
            net.check_structure()
        self.assertIn("S (", str(ctx.exception))

    def test_repair_all_missing_reuses_dummy(self):
        table = make_table([
            ["A", "A", "3", "*"],
            ["B", "B", "2", "*"],
            ["D", "D", "5", "A", "B"],
            ["E", "E", "4", "A", "B"],
            ["F", "F", "1", "B"],
        ])
        net = PertNetwork(table, repair_all_missing=True)
        net.synthesize()

        d, e = net.activities["D"], net.activities["E"]
        self.assertEqual(d.head_event, e.head_event)
        self.assertEqual(
            [(a.id, a.head_event, a.tail_event) for a in net.dummy_activities()],
            [("D0", net.activities["B"].tail_event, d.head_event)],
        )


if __name__ == "__main__":
    unittest.main()
