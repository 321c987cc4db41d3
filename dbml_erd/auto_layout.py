"""Layered (Sugiyama-style) auto layout over the diagram graph.

Phases:
  1. Layer assignment: longest path over the condensation, so nodes in a
     cycle share a layer and self references are ignored.
  2. Ordering: barycenter sweeps, alternating downward and upward.
  3. Coordinates: layers stacked along the main axis, nodes packed and
     centered along the cross axis. Centers are converted to top-left.
"""

from __future__ import annotations

from copy import deepcopy
import logging

import networkx as nx

from dbml_erd.error_contract import diagram_error
from dbml_erd.graph_model import Edge, Graph, Node, finite_or_zero

logger = logging.getLogger("auto_layout")

DIRECTIONS: tuple[str, ...] = ("TB", "LR")
NODE_SEP = 50
RANK_SEP = 50
ORDERING_SWEEPS = 4


def _require_direction(direction: str) -> str:
    if direction not in DIRECTIONS:
        raise ValueError(
            diagram_error(
                "Layout direction",
                f"unsupported direction '{direction}'",
                f"choose one of: {', '.join(DIRECTIONS)}",
            )
        )
    return direction


def build_layout_graph(nodes: list[Node], edges: list[Edge]) -> nx.DiGraph:
    graph: nx.DiGraph = nx.DiGraph()
    for index, node in enumerate(nodes):
        graph.add_node(node.id, order=index)
    for edge in edges:
        if edge.source == edge.target:
            continue
        if edge.source not in graph or edge.target not in graph:
            continue
        graph.add_edge(edge.source, edge.target)
    return graph


def assign_layers(graph: nx.DiGraph) -> dict[str, int]:
    condensed = nx.condensation(graph)
    mapping: dict[str, int] = condensed.graph["mapping"]
    first_seen = {
        comp: min(graph.nodes[member]["order"] for member in condensed.nodes[comp]["members"])
        for comp in condensed.nodes
    }

    rank: dict[int, int] = {}
    for comp in nx.lexicographical_topological_sort(condensed, key=lambda c: first_seen[c]):
        rank[comp] = max((rank[p] + 1 for p in condensed.predecessors(comp)), default=0)
    return {node_id: rank[mapping[node_id]] for node_id in graph.nodes}


def order_layers(graph: nx.DiGraph, layers: dict[str, int]) -> list[list[str]]:
    layer_count = max(layers.values(), default=-1) + 1
    ordering: list[list[str]] = [[] for _ in range(layer_count)]
    for node_id in sorted(graph.nodes, key=lambda n: graph.nodes[n]["order"]):
        ordering[layers[node_id]].append(node_id)

    for sweep in range(ORDERING_SWEEPS):
        downward = sweep % 2 == 0
        indices = range(1, layer_count) if downward else range(layer_count - 2, -1, -1)
        for idx in indices:
            reference = ordering[idx - 1] if downward else ordering[idx + 1]
            ref_pos = {node_id: pos for pos, node_id in enumerate(reference)}
            current_pos = {node_id: pos for pos, node_id in enumerate(ordering[idx])}

            def weight(node_id: str) -> float:
                neighbors = graph.predecessors(node_id) if downward else graph.successors(node_id)
                positions = [ref_pos[nb] for nb in neighbors if nb in ref_pos]
                if not positions:
                    return float(current_pos[node_id])
                return sum(positions) / len(positions)

            ordering[idx] = sorted(ordering[idx], key=lambda n: (weight(n), current_pos[n]))
    return ordering


def layout_nodes(nodes: list[Node], edges: list[Edge], direction: str = "TB") -> list[Node]:
    """Return copies of ``nodes`` with top-left positions from a layered layout."""
    _require_direction(direction)
    if not nodes:
        return []

    horizontal = direction == "LR"
    by_id = {node.id: node for node in nodes}
    graph = build_layout_graph(nodes, edges)
    ordering = order_layers(graph, assign_layers(graph))

    def along(node: Node) -> float:
        return node.size.height if horizontal else node.size.width

    def across(node: Node) -> float:
        return node.size.width if horizontal else node.size.height

    thickness = [max((across(by_id[n]) for n in layer), default=0) for layer in ordering]
    lengths = [
        sum(along(by_id[n]) for n in layer) + NODE_SEP * max(0, len(layer) - 1) for layer in ordering
    ]
    widest = max(lengths, default=0)

    centers: dict[str, tuple[float, float]] = {}
    main_offset = 0.0
    for idx, layer in enumerate(ordering):
        cursor = (widest - lengths[idx]) / 2
        main_center = main_offset + thickness[idx] / 2
        for node_id in layer:
            extent = along(by_id[node_id])
            cross_center = cursor + extent / 2
            centers[node_id] = (main_center, cross_center) if horizontal else (cross_center, main_center)
            cursor += extent + NODE_SEP
        main_offset += thickness[idx] + RANK_SEP

    out: list[Node] = []
    for node in nodes:
        moved = deepcopy(node)
        cx, cy = centers[node.id]
        moved.position.x = finite_or_zero(cx - node.size.width / 2)
        moved.position.y = finite_or_zero(cy - node.size.height / 2)
        out.append(moved)

    logger.debug("Auto layout (%s): %d nodes in %d layers.", direction, len(out), len(ordering))
    return out


def layout_top_level(graph: Graph, direction: str = "TB") -> Graph:
    """Lay out nodes without a parent; children keep their group-relative offsets.

    Edges touching a grouped table are lifted to its group so groups are
    ranked by the relationships of their members.
    """
    _require_direction(direction)
    result = deepcopy(graph)
    top_level = [n for n in result.nodes if n.parent_id is None]
    owner = {n.id: (n.parent_id or n.id) for n in result.nodes}

    lifted: list[Edge] = []
    seen: set[tuple[str, str]] = set()
    for edge in result.edges:
        source = owner.get(edge.source)
        target = owner.get(edge.target)
        if source is None or target is None or source == target:
            continue
        if (source, target) in seen:
            continue
        seen.add((source, target))
        lifted.append(Edge(id=f"lifted-{source}-{target}", source=source, target=target))

    placed = {n.id: n.position for n in layout_nodes(top_level, lifted, direction)}
    for node in top_level:
        node.position.x = placed[node.id].x
        node.position.y = placed[node.id].y
    return result
