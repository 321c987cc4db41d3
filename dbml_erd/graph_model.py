from __future__ import annotations

from dataclasses import asdict, dataclass, field
import math
from typing import Any, Literal, Union

NodeKind = Literal["table", "group", "project"]

# A position map entry: {"x": .., "y": .., "width"?: .., "height"?: ..}
PositionMap = dict[str, dict[str, float]]

TABLES_PER_ROW = 2
TABLE_WIDTH = 300
TABLE_HEIGHT = 280
TABLE_SPACING = 30
GROUP_PADDING = 40
GROUP_HEADER_HEIGHT = 60
GROUP_GAP = 100
CANVAS_MARGIN = 50

UNGROUPED_COLUMNS = 3
UNGROUPED_CELL_WIDTH = 350
UNGROUPED_CELL_HEIGHT = 300
UNGROUPED_ORIGIN_X = 100
UNGROUPED_ORIGIN_Y = 100

PROJECT_WIDTH = 450
PROJECT_HEIGHT = 120
PROJECT_GAP = 50

DEFAULT_TABLE_COLOR = "#667eea"
GROUP_COLOR_PALETTE: tuple[str, ...] = ("#667eea", "#f093fb", "#4facfe", "#43e97b", "#fa709a")

RESIZABLE_KINDS: tuple[str, ...] = ("table", "project")


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def finite_or_zero(value: Any) -> float:
    return value if is_finite_number(value) else 0


def coerce_coordinate(value: Any) -> float | None:
    """Return the value when it is a usable coordinate, else None."""
    return value if is_finite_number(value) else None


@dataclass
class Point:
    x: float = 0
    y: float = 0

    def __post_init__(self) -> None:
        self.x = finite_or_zero(self.x)
        self.y = finite_or_zero(self.y)


@dataclass
class Size:
    width: float = TABLE_WIDTH
    height: float = TABLE_HEIGHT

    def __post_init__(self) -> None:
        self.width = finite_or_zero(self.width)
        self.height = finite_or_zero(self.height)


@dataclass
class FieldRow:
    name: str
    type: str
    pk: bool = False
    unique: bool = False
    not_null: bool = False
    note: str | None = None


@dataclass
class TablePayload:
    name: str
    fields: list[FieldRow] = field(default_factory=list)
    header_color: str = DEFAULT_TABLE_COLOR
    note: str | None = None
    group: str | None = None


@dataclass
class GroupPayload:
    name: str
    color: str = DEFAULT_TABLE_COLOR
    table_names: list[str] = field(default_factory=list)


@dataclass
class ProjectPayload:
    name: str | None = None
    database_type: str | None = None
    note: str | None = None


Payload = Union[TablePayload, GroupPayload, ProjectPayload]


@dataclass
class Node:
    id: str
    kind: NodeKind
    position: Point
    size: Size
    payload: Payload
    parent_id: str | None = None


@dataclass
class Edge:
    id: str
    source: str
    target: str
    label: str = ""
    source_field: str | None = None
    target_field: str | None = None


@dataclass
class Graph:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def node_by_id(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_kind(self, kind: str) -> list[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def children_of(self, group_id: str) -> list[Node]:
        return [n for n in self.nodes if n.parent_id == group_id]

    def is_empty(self) -> bool:
        return not self.nodes and not self.edges

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def absolute_position(graph: Graph, node: Node) -> Point:
    if node.parent_id is None:
        return Point(node.position.x, node.position.y)
    parent = graph.node_by_id(node.parent_id)
    if parent is None:
        return Point(node.position.x, node.position.y)
    return Point(parent.position.x + node.position.x, parent.position.y + node.position.y)


def position_entry(node: Node) -> dict[str, float]:
    entry: dict[str, float] = {"x": node.position.x, "y": node.position.y}
    if node.kind in RESIZABLE_KINDS:
        entry["width"] = node.size.width
        entry["height"] = node.size.height
    return entry


def harvest_positions(graph: Graph | None) -> PositionMap:
    """Collect the position map of every node with usable coordinates."""
    if graph is None:
        return {}
    out: PositionMap = {}
    for node in graph.nodes:
        if not (is_finite_number(node.position.x) and is_finite_number(node.position.y)):
            continue
        out[node.id] = position_entry(node)
    return out
