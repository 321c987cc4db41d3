from __future__ import annotations

from dataclasses import dataclass, field

GROUP_ID_PREFIX = "group-"
PROJECT_NODE_ID = "project-info"


@dataclass(frozen=True)
class Field:
    name: str
    type: str = "unknown"
    is_primary_key: bool = False
    is_unique: bool = False
    is_not_null: bool = False
    note: str | None = None


@dataclass(frozen=True)
class Table:
    name: str
    fields: list[Field] = field(default_factory=list)
    note: str | None = None
    # hex color; recovered from the raw source when the parser drops it
    header_color: str | None = None


@dataclass(frozen=True)
class Group:
    name: str
    table_names: list[str] = field(default_factory=list)
    header_color: str | None = None


@dataclass(frozen=True)
class Relationship:
    source_table: str
    source_field: str
    target_table: str
    target_field: str
    name: str | None = None


@dataclass(frozen=True)
class ProjectMeta:
    name: str | None = None
    database_type: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class Schema:
    tables: list[Table] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    refs: list[Relationship] = field(default_factory=list)
    project: ProjectMeta | None = None

    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]


def group_node_id(group_name: str) -> str:
    return f"{GROUP_ID_PREFIX}{group_name}"


def validate_schema(schema: Schema) -> None:
    """Reject name collisions that would produce duplicate node ids."""
    table_names = [t.name for t in schema.tables]
    if any(not isinstance(n, str) or n.strip() == "" for n in table_names):
        raise ValueError("All tables must have a non-empty name.")
    seen: set[str] = set()
    for name in table_names:
        if name in seen:
            raise ValueError(f"Table '{name}' is declared more than once.")
        seen.add(name)

    group_names = [g.name for g in schema.groups]
    seen_groups: set[str] = set()
    for name in group_names:
        if name in seen_groups:
            raise ValueError(f"TableGroup '{name}' is declared more than once.")
        seen_groups.add(name)

    reserved = {group_node_id(n) for n in group_names}
    reserved.add(PROJECT_NODE_ID)
    for name in table_names:
        if name in reserved:
            raise ValueError(f"Table name '{name}' collides with a reserved diagram node id.")
