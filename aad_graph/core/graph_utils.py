"""
Graph inspection utilities.

Print and analyse the structure of a Tape, and export it as Graphviz DOT for
debugging. None of this is needed for differentiation itself.
"""

import zlib
import numpy as np
from typing import Dict, Iterable, List
from collections import Counter

from .tape import Tape


def _op_name(label: str) -> str:
    """Last path segment of a node label ("layer1/mul" -> "mul")."""
    return label.rsplit("/", 1)[-1] or "?"


def get_graph_stats(tape: Tape) -> Dict:
    """
    Collect graph statistics without printing.

    Returns:
        dict with node/edge counts, fan-in/fan-out and an operation breakdown
    """
    if not tape.nodes:
        return {
            'nodes': 0,
            'edges': 0,
            'special_edges': 0,
            'max_fan_in': 0,
            'avg_fan_in': 0.0,
            'max_fan_out': 0,
            'avg_fan_out': 0.0,
            'max_ref_count': 0,
            'edge_contractions': tape.edge_contractions,
            'edge_merges': tape.edge_merges,
            'operations': {}
        }

    n_nodes = len(tape.nodes)
    fan_ins = [node.degree for node in tape.nodes.values()]
    n_edges = sum(fan_ins)
    n_special = sum(1 for node in tape.nodes.values() for e in node.edges if e.is_special)

    # fan-out: how many edges source each node
    fan_outs = Counter(e.source for node in tape.nodes.values() for e in node.edges)
    fan_out_list = [fan_outs.get(idx, 0) for idx in tape.nodes]

    op_counter = Counter(_op_name(node.label) for node in tape.nodes.values())

    return {
        'nodes': n_nodes,
        'edges': n_edges,
        'special_edges': n_special,
        'max_fan_in': max(fan_ins),
        'avg_fan_in': float(np.mean(fan_ins)),
        'max_fan_out': max(fan_out_list),
        'avg_fan_out': float(np.mean(fan_out_list)),
        'max_ref_count': max(node.ref_count for node in tape.nodes.values()),
        'edge_contractions': tape.edge_contractions,
        'edge_merges': tape.edge_merges,
        'operations': dict(op_counter)
    }


def print_graph_summary(tape: Tape, detailed: bool = False) -> Dict:
    """
    Print a summary of the graph.

    Args:
        tape: Tape to inspect
        detailed: Also list up to 100 nodes with their sources

    Returns:
        The statistics dict of get_graph_stats()
    """
    stats = get_graph_stats(tape)
    if stats['nodes'] == 0:
        print("Empty computation graph")
        return stats

    print("\n" + "="*70)
    print("COMPUTATION GRAPH SUMMARY")
    print("="*70)
    print(f"Live nodes:         {stats['nodes']:,}")
    print(f"Edges:              {stats['edges']:,} ({stats['special_edges']:,} special)")
    print(f"Max fan-in:         {stats['max_fan_in']}")
    print(f"Avg fan-in:         {stats['avg_fan_in']:.2f}")
    print(f"Max fan-out:        {stats['max_fan_out']}")
    print(f"Avg fan-out:        {stats['avg_fan_out']:.2f}")
    print(f"Edge contractions:  {stats['edge_contractions']:,}")
    print(f"Edge merges:        {stats['edge_merges']:,}")
    print()
    print("Operation breakdown:")
    for op_type, count in Counter(stats['operations']).most_common(10):
        pct = 100.0 * count / stats['nodes']
        print(f"  {op_type:16s}: {count:6,} ({pct:5.1f}%)")

    if detailed:
        print()
        print("="*70)
        print("DETAILED NODE LIST (first 100 nodes)")
        print("="*70)
        for idx in sorted(tape.nodes)[:100]:
            node = tape.nodes[idx]
            parent_info = ", ".join(
                f"{'*' if e.is_special else ''}Node{e.source}" for e in node.edges
            )
            print(f"Node {idx:3d}: {node.label:16s} [rc={node.ref_count}] <- [{parent_info}]")

    print("="*70 + "\n")
    return stats


def graphviz(tape: Tape, roots: Iterable[int]) -> str:
    """
    Export the subgraph reachable from `roots` as Graphviz DOT.

    Nodes are grouped into nested clusters following their "a/b/name" label
    path. Each node shows its label, "[s]" if scalar, its id and reference
    count; user-labelled nodes are filled salmon, nodes owning special edges
    are drawn as double octagons and the roots are filled cornflowerblue.
    """
    roots = [r for r in roots if r != 0]
    indices = sorted(tape.reachable(roots))

    lines: List[str] = [
        "digraph {",
        "  rankdir=BT;",
        "  fontname=Consolas;",
        "  node [shape=record fontname=Consolas];",
    ]

    current_depth = 0
    current_path = ""
    for index in indices:
        node = tape.node(index)
        if not node.label:
            continue
        path, _, label = node.label.rpartition("/")

        if current_path != path:
            lines.extend(["  }"] * current_depth)
            current_depth = 0
            current_path = path
            for segment in (path.split("/") if path else []):
                if not segment:
                    break
                lines.append(f"  subgraph cluster{zlib.crc32(segment.encode())} {{")
                lines.append(f"  label=\"{segment}\";")
                current_depth += 1

        text = label + (" [s]" if node.is_scalar else "")
        record = f"  {index} [label=\"{text}\\n#{index} [{node.ref_count}]\""
        if node.label.startswith("'") or label.startswith("'"):
            record += " fillcolor=salmon style=filled"
        lines.append(record + "];")
    lines.extend(["  }"] * current_depth)

    for index in indices:
        for edge in tape.node(index).edges:
            lines.append(f"  {index} -> {edge.source};")
            if edge.is_special:
                lines.append(f"  {index} [shape=doubleoctagon];")

    for idx in roots:
        lines.append(f"  {idx} [fillcolor=cornflowerblue style=filled];")

    lines.append("}")
    return "\n".join(lines)
