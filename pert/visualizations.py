import io
import base64
from collections import defaultdict
from typing import Dict, Any, List, Optional, Tuple

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import networkx as nx
import numpy as np

from .engine import PertScheduler
from .network import PertNetwork

DEFAULT_THEME: Dict[str, Any] = {
    "critical": "#d62728",
    "noncritical": "#1f77b4",
    "dummy": "#7f7f7f",
    "node": "#f0f4f8",
    "node_edge": "#334155",
}


def _event_positions(network: PertNetwork) -> Dict[int, Tuple[float, float]]:
    """Place events left-to-right by EST, spreading ties vertically."""
    columns: Dict[int, List[int]] = defaultdict(list)
    for evt in network.events.values():
        columns[evt.est if evt.est is not None else 0].append(evt.id)

    pos: Dict[int, Tuple[float, float]] = {}
    for x_index, est in enumerate(sorted(columns)):
        ids = sorted(columns[est])
        offset = (len(ids) - 1) / 2.0
        for row, eid in enumerate(ids):
            pos[eid] = (float(x_index), offset - row)
    return pos


def create_network_diagram(network: PertNetwork, theme: Optional[Dict[str, Any]] = None) -> plt.Figure:
    """
    Create an activity-on-arc diagram using NetworkX and Matplotlib.
    Dummy activities are dashed; critical activities use the critical color.
    """
    theme = {**DEFAULT_THEME, **(theme or {})}

    if not network.events:
        fig, ax = plt.subplots(figsize=(10, 6))
        ax.text(0.5, 0.5, 'No events to display', ha='center', va='center', fontsize=14)
        ax.axis('off')
        return fig

    # Parallel arcs are split during synthesis, so a simple digraph suffices.
    G = nx.DiGraph(network.to_networkx())
    pos = _event_positions(network)

    num_nodes = G.number_of_nodes()
    fig, ax = plt.subplots(figsize=(max(12, int(num_nodes * 1.2)), max(6, int(num_nodes * 0.5))))

    edge_labels = {}
    for head, tail, data in G.edges(data=True):
        if data['dummy']:
            color, style = theme["dummy"], 'dashed'
        else:
            color = theme["critical"] if data['total_float'] == 0 else theme["noncritical"]
            style = 'solid'
            edge_labels[(head, tail)] = (
                f"{data['label']}\nΔ{data['duration']} TF{data['total_float']} FF{data['free_float']}"
            )
        nx.draw_networkx_edges(G, pos, edgelist=[(head, tail)],
                               edge_color=color, style=style,
                               arrows=True, arrowsize=18, node_size=1600,
                               ax=ax, width=2)

    nx.draw_networkx_edge_labels(G, pos, edge_labels, font_size=7, ax=ax)

    nx.draw_networkx_nodes(G, pos, node_color=theme["node"], node_size=1600,
                           edgecolors=theme["node_edge"], linewidths=1.5, ax=ax)
    labels = {}
    for evt in network.events.values():
        labels[evt.id] = f"{evt.id}\nEST:{evt.est}\nLFT:{evt.lft}"
    nx.draw_networkx_labels(G, pos, labels, font_size=7, ax=ax)

    legend_elements = [
        plt.Line2D([0], [0], color=theme["critical"], linewidth=2, linestyle='solid', label='Critical Activity'),
        plt.Line2D([0], [0], color=theme["noncritical"], linewidth=2, linestyle='solid', label='Non-Critical Activity'),
        plt.Line2D([0], [0], color=theme["dummy"], linewidth=2, linestyle='dashed', label='Dummy Activity'),
    ]
    ax.legend(handles=legend_elements, loc='upper left', bbox_to_anchor=(1.02, 1), fontsize=8, frameon=True)
    ax.set_title('Project Network Diagram (PERT - Activity on Arc)', fontsize=14, fontweight='bold')
    ax.axis('off')
    plt.tight_layout()
    return fig


def create_gantt_chart(scheduler: PertScheduler, theme: Optional[Dict[str, Any]] = None) -> plt.Figure:
    """
    Create a Gantt chart of the real activities using Matplotlib.
    """
    theme = {**DEFAULT_THEME, **(theme or {})}
    network = scheduler.network
    if network is None or not network.real_activities():
        fig, ax = plt.subplots(figsize=(12, 6))
        ax.text(0.5, 0.5, 'No activities to display', ha='center', va='center', fontsize=14)
        ax.axis('off')
        return fig

    sorted_activities = sorted(
        network.real_activities(),
        key=lambda a: (network.events[a.head_event].est, a.id),
        reverse=True,
    )

    fig, ax = plt.subplots(figsize=(14, max(6, len(sorted_activities) * 0.5)))

    for i, act in enumerate(sorted_activities):
        est = network.events[act.head_event].est
        eft = est + act.duration
        bar_color = theme["critical"] if act.is_critical else theme["noncritical"]

        ax.barh(i, act.duration, left=est, height=0.6,
                color=bar_color, edgecolor=bar_color, linewidth=2)
        ax.text(est + act.duration / 2, i, f"{act.id} ({act.duration})",
                ha='center', va='center', color='white', fontweight='bold', fontsize=9)

        if act.total_float and act.total_float > 0:
            ax.barh(i, act.total_float, left=eft, height=0.3,
                    color='lightgray', edgecolor='gray', linewidth=1, alpha=0.7)
            ax.text(eft + act.total_float / 2, i, f'TF:{act.total_float}',
                    ha='center', va='center', fontsize=7, color='gray')

    ax.set_yticks(range(len(sorted_activities)))
    ax.set_yticklabels([f"{act.id}: {act.label[:20]}..." if len(act.label) > 20 else f"{act.id}: {act.label}"
                        for act in sorted_activities])

    ax.set_xlabel('Time', fontsize=12)
    ax.set_ylabel('Activities', fontsize=12)
    ax.set_title('Project Gantt Chart', fontsize=14, fontweight='bold')

    max_time = scheduler.project_duration + 1
    ax.set_xticks(np.arange(0, max_time + 1, max(1, int(max_time / 20))))
    ax.set_xlim(-0.5, max_time)
    ax.grid(axis='x', linestyle='--', alpha=0.7)
    ax.set_axisbelow(True)

    legend_elements = [
        mpatches.Patch(color=theme["critical"], label='Critical Activity'),
        mpatches.Patch(color=theme["noncritical"], label='Non-Critical Activity'),
        mpatches.Patch(color='lightgray', label='Total Float'),
    ]
    ax.legend(handles=legend_elements, loc='upper right')
    ax.axvline(x=scheduler.project_duration, color=theme["critical"], linestyle='--', linewidth=2)

    plt.tight_layout()
    return fig


def fig_to_base64(fig: plt.Figure) -> str:
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=120, bbox_inches="tight")
    buffer.seek(0)
    encoded = base64.b64encode(buffer.read()).decode("utf-8")
    buffer.close()
    return encoded
