from __future__ import annotations

import html
from typing import TextIO

import graphviz

from .network import PertNetwork


def to_graphviz(network: PertNetwork, highlight_critical: bool = False) -> graphviz.Digraph:
    """
    Build a Graphviz digraph of the network.

    Activities become edges (dummies dashed and unlabeled), events become
    nodes labeled with EST and LFT. The network is not modified.
    """
    dot = graphviz.Digraph("PERT", graph_attr={"rankdir": "LR"})

    for act in network.activities.values():
        head, tail = str(act.head_event), str(act.tail_event)
        if act.is_dummy:
            dot.edge(head, tail, style="dashed")
            continue

        label = (
            f"< <b>{html.escape(act.label)}</b><br/>"
            f"&#916;{act.duration} TF{act.total_float} FF{act.free_float} >"
        )
        if highlight_critical and act.is_critical:
            dot.edge(head, tail, label=label, color="red")
        else:
            dot.edge(head, tail, label=label)

    for evt in sorted(network.events.values(), key=lambda e: e.id):
        dot.node(str(evt.id), label=f"\\N\\nEST:{evt.est}\\nLFT:{evt.lft}")

    return dot


def write_dot(network: PertNetwork, stream: TextIO, highlight_critical: bool = False) -> None:
    stream.write(to_dot(network, highlight_critical=highlight_critical))


def to_dot(network: PertNetwork, highlight_critical: bool = False) -> str:
    return to_graphviz(network, highlight_critical=highlight_critical).source
