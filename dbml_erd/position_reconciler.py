from __future__ import annotations

from copy import deepcopy
import logging
from collections.abc import Mapping
from typing import Any

from dbml_erd.graph_model import (
    GROUP_HEADER_HEIGHT,
    GROUP_PADDING,
    RESIZABLE_KINDS,
    Graph,
    Node,
    PositionMap,
    coerce_coordinate,
    finite_or_zero,
    harvest_positions,
)

logger = logging.getLogger("position_reconciler")

SOURCE_LOADED = "loaded"
SOURCE_LAST_KNOWN = "last_known"
SOURCE_CURRENT = "current"
SOURCE_PERSISTED = "persisted"
SOURCE_DEFAULTS = "defaults"


def choose_position_source(
    loaded: Mapping[str, Any] | None,
    last_known: Mapping[str, Any] | None,
    current: Mapping[str, Any] | None,
    persisted: Mapping[str, Any] | None,
) -> tuple[str, Mapping[str, Any]]:
    """Pick the highest-priority non-empty position source."""
    for label, source in (
        (SOURCE_LOADED, loaded),
        (SOURCE_LAST_KNOWN, last_known),
        (SOURCE_CURRENT, current),
        (SOURCE_PERSISTED, persisted),
    ):
        if source:
            return label, source
    return SOURCE_DEFAULTS, {}


def _apply_entry(node: Node, entry: Any) -> None:
    if not isinstance(entry, Mapping):
        logger.debug("Ignoring non-mapping position entry for '%s'.", node.id)
        return
    x = coerce_coordinate(entry.get("x"))
    y = coerce_coordinate(entry.get("y"))
    if x is None or y is None:
        logger.debug("Ignoring invalid coordinates for '%s': %r", node.id, entry)
        return
    node.position.x = x
    node.position.y = y

    if node.kind not in RESIZABLE_KINDS:
        return
    width = coerce_coordinate(entry.get("width"))
    height = coerce_coordinate(entry.get("height"))
    if width is not None and height is not None and width > 0 and height > 0:
        node.size.width = width
        node.size.height = height


def required_group_size(children: list[Node]) -> tuple[float, float] | None:
    """Smallest group size enclosing ``children`` (group-relative positions).

    The result covers the children's bounding box plus padding on every side
    and the header band, and also reaches from the group origin to the
    farthest child edge.
    """
    if not children:
        return None
    min_x = min(c.position.x for c in children)
    min_y = min(c.position.y for c in children)
    max_x = max(c.position.x + c.size.width for c in children)
    max_y = max(c.position.y + c.size.height for c in children)

    left = min(min_x, GROUP_PADDING) - GROUP_PADDING
    top = min(min_y, GROUP_HEADER_HEIGHT + GROUP_PADDING) - GROUP_HEADER_HEIGHT - GROUP_PADDING
    width = max_x + GROUP_PADDING - left
    height = max_y + GROUP_PADDING - top
    return finite_or_zero(width), finite_or_zero(height)


def recompute_group_sizes(graph: Graph, *, minimums: Mapping[str, tuple[float, float]] | None = None) -> None:
    """Grow every group to enclose its children, never below its minimum size."""
    for group in graph.nodes_of_kind("group"):
        floor_w, floor_h = (minimums or {}).get(group.id, (group.size.width, group.size.height))
        needed = required_group_size(graph.children_of(group.id))
        if needed is None:
            group.size.width = finite_or_zero(floor_w)
            group.size.height = finite_or_zero(floor_h)
            continue
        group.size.width = finite_or_zero(max(floor_w, needed[0]))
        group.size.height = finite_or_zero(max(floor_h, needed[1]))


def reconcile(
    fresh_graph: Graph,
    loaded_positions: Mapping[str, Any] | None,
    last_known_positions: Mapping[str, Any] | None,
    persisted_positions: Mapping[str, Any] | None,
    *,
    current_positions: Mapping[str, Any] | None = None,
) -> tuple[Graph, PositionMap]:
    """Merge compiled default geometry with previously known positions.

    Precedence: loaded > last known > currently rendered > persisted >
    compiler defaults. The input graph is left untouched.
    """
    graph = deepcopy(fresh_graph)
    label, source = choose_position_source(
        loaded_positions,
        last_known_positions,
        current_positions,
        persisted_positions,
    )
    logger.debug("Reconciling %d nodes using %s positions.", len(graph.nodes), label)

    for node in graph.nodes:
        entry = source.get(node.id)
        if entry is not None:
            _apply_entry(node, entry)

    recompute_group_sizes(graph)
    return graph, harvest_positions(graph)
