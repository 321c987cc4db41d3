from __future__ import annotations

import logging
import math

from dbml_erd.graph_model import (
    CANVAS_MARGIN,
    DEFAULT_TABLE_COLOR,
    GROUP_COLOR_PALETTE,
    GROUP_GAP,
    GROUP_HEADER_HEIGHT,
    GROUP_PADDING,
    PROJECT_GAP,
    PROJECT_HEIGHT,
    PROJECT_WIDTH,
    TABLE_HEIGHT,
    TABLE_SPACING,
    TABLE_WIDTH,
    TABLES_PER_ROW,
    UNGROUPED_CELL_HEIGHT,
    UNGROUPED_CELL_WIDTH,
    UNGROUPED_COLUMNS,
    UNGROUPED_ORIGIN_X,
    UNGROUPED_ORIGIN_Y,
    Edge,
    FieldRow,
    Graph,
    GroupPayload,
    Node,
    Point,
    ProjectPayload,
    Size,
    TablePayload,
    absolute_position,
    finite_or_zero,
)
from dbml_erd.schema_model import PROJECT_NODE_ID, Group, Schema, Table, group_node_id

logger = logging.getLogger("graph_compiler")


def group_size_for_count(table_count: int) -> tuple[float, float]:
    """Size of a group holding ``table_count`` tables packed TABLES_PER_ROW wide.

    An empty group is sized like a group with one table.
    """
    count = max(1, int(table_count))
    cols = min(count, TABLES_PER_ROW)
    rows = math.ceil(count / TABLES_PER_ROW)
    width = GROUP_PADDING * 2 + cols * TABLE_WIDTH + (cols - 1) * TABLE_SPACING
    height = GROUP_HEADER_HEIGHT + GROUP_PADDING + rows * TABLE_HEIGHT + (rows - 1) * TABLE_SPACING + GROUP_PADDING
    return finite_or_zero(width), finite_or_zero(height)


def grouped_table_offset(index: int) -> tuple[float, float]:
    """Group-relative top-left of the ``index``-th member table."""
    col = index % TABLES_PER_ROW
    row = index // TABLES_PER_ROW
    x = GROUP_PADDING + col * (TABLE_WIDTH + TABLE_SPACING)
    y = GROUP_HEADER_HEIGHT + GROUP_PADDING + row * (TABLE_HEIGHT + TABLE_SPACING)
    return finite_or_zero(x), finite_or_zero(y)


def ungrouped_table_position(index: int, *, start_y: float = UNGROUPED_ORIGIN_Y) -> tuple[float, float]:
    col = index % UNGROUPED_COLUMNS
    row = index // UNGROUPED_COLUMNS
    x = UNGROUPED_ORIGIN_X + col * UNGROUPED_CELL_WIDTH
    y = start_y + row * UNGROUPED_CELL_HEIGHT
    return finite_or_zero(x), finite_or_zero(y)


def _group_color(group: Group, index: int) -> str:
    if group.header_color:
        return group.header_color
    return GROUP_COLOR_PALETTE[index % len(GROUP_COLOR_PALETTE)]


def _table_payload(table: Table, *, group: Group | None, group_color: str | None) -> TablePayload:
    return TablePayload(
        name=table.name,
        fields=[
            FieldRow(
                name=f.name,
                type=f.type,
                pk=f.is_primary_key,
                unique=f.is_unique,
                not_null=f.is_not_null,
                note=f.note,
            )
            for f in table.fields
        ],
        header_color=table.header_color or group_color or DEFAULT_TABLE_COLOR,
        note=table.note,
        group=group.name if group is not None else None,
    )


def _group_lookup(schema: Schema) -> dict[str, Group]:
    lookup: dict[str, Group] = {}
    for group in schema.groups:
        for table_name in group.table_names:
            lookup.setdefault(table_name, group)
    return lookup


def _build_edges(schema: Schema) -> list[Edge]:
    known = set(schema.table_names())
    edges: list[Edge] = []
    for index, ref in enumerate(schema.refs):
        if not ref.source_table or not ref.target_table:
            logger.warning("Skipping relationship #%d: missing endpoint table.", index)
            continue
        missing = [name for name in (ref.source_table, ref.target_table) if name not in known]
        if missing:
            logger.warning("Skipping relationship #%d: unknown table(s) %s.", index, ", ".join(missing))
            continue
        edges.append(
            Edge(
                id=f"e{index}-{ref.source_table}-{ref.target_table}",
                source=ref.source_table,
                target=ref.target_table,
                label=ref.name or "",
                source_field=ref.source_field or None,
                target_field=ref.target_field or None,
            )
        )
    return edges


def compile_schema(schema: Schema) -> Graph:
    """Translate a schema into a graph with default geometry.

    Groups sit side by side on the top row; grouped tables are packed inside
    their group using the same math that sized it; ungrouped tables form a
    3-column grid below the groups; the project panel goes below everything.
    """
    if not schema.tables:
        return Graph()

    lookup = _group_lookup(schema)
    members: dict[str, list[str]] = {g.name: [] for g in schema.groups}
    for table in schema.tables:
        group = lookup.get(table.name)
        if group is not None:
            members[group.name].append(table.name)

    nodes: list[Node] = []
    group_colors: dict[str, str] = {}
    next_x = float(CANVAS_MARGIN)
    lowest_group_bottom = 0.0
    for index, group in enumerate(schema.groups):
        width, height = group_size_for_count(len(members[group.name]))
        color = _group_color(group, index)
        group_colors[group.name] = color
        nodes.append(
            Node(
                id=group_node_id(group.name),
                kind="group",
                position=Point(next_x, CANVAS_MARGIN),
                size=Size(width, height),
                payload=GroupPayload(name=group.name, color=color, table_names=list(members[group.name])),
            )
        )
        next_x += width + GROUP_GAP
        lowest_group_bottom = max(lowest_group_bottom, CANVAS_MARGIN + height)

    start_y = lowest_group_bottom + GROUP_GAP if schema.groups else UNGROUPED_ORIGIN_Y
    slot_in_group: dict[str, int] = {g.name: 0 for g in schema.groups}
    ungrouped_index = 0
    for table in schema.tables:
        group = lookup.get(table.name)
        if group is not None:
            x, y = grouped_table_offset(slot_in_group[group.name])
            slot_in_group[group.name] += 1
            parent_id: str | None = group_node_id(group.name)
        else:
            x, y = ungrouped_table_position(ungrouped_index, start_y=start_y)
            ungrouped_index += 1
            parent_id = None
        nodes.append(
            Node(
                id=table.name,
                kind="table",
                position=Point(x, y),
                size=Size(TABLE_WIDTH, TABLE_HEIGHT),
                payload=_table_payload(
                    table,
                    group=group,
                    group_color=group_colors.get(group.name) if group is not None else None,
                ),
                parent_id=parent_id,
            )
        )

    graph = Graph(nodes=nodes, edges=_build_edges(schema))

    if schema.project is not None:
        bottoms = [absolute_position(graph, n).y + n.size.height for n in graph.nodes]
        graph.nodes.append(
            Node(
                id=PROJECT_NODE_ID,
                kind="project",
                position=Point(CANVAS_MARGIN, max(bottoms, default=0) + PROJECT_GAP),
                size=Size(PROJECT_WIDTH, PROJECT_HEIGHT),
                payload=ProjectPayload(
                    name=schema.project.name,
                    database_type=schema.project.database_type,
                    note=schema.project.note,
                ),
            )
        )

    logger.debug(
        "Compiled graph: groups=%d tables=%d edges=%d",
        len(schema.groups),
        len(schema.tables),
        len(graph.edges),
    )
    return graph
