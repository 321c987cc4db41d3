"""DBML source to canonical ``Schema``.

The underlying parser (``pydbml``) returns a ``Database`` object whose shape
is not the only one this module accepts: JSON exports of other DBML tooling
nest tables under ``schemas[0]`` and spell attributes in camelCase. All of
that is flattened here so the compiler sees one ``Schema`` shape.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
import re
from typing import Any, Callable

from pydbml import PyDBML

from dbml_erd.error_contract import diagram_error
from dbml_erd.schema_model import (
    Field,
    Group,
    ProjectMeta,
    Relationship,
    Schema,
    Table,
    validate_schema,
)

logger = logging.getLogger("dbml_adapter")

__all__ = [
    "ErrorLocation",
    "SchemaError",
    "EmptySchemaSource",
    "parse_dbml",
    "normalize_parsed_database",
    "extract_error_location",
    "extract_header_color",
    "update_table_header_color",
]

_HEADER_COLOR_SETTING = re.compile(r"headercolor\s*:\s*([#\w]+)", re.IGNORECASE)
_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class ErrorLocation:
    line: int
    column: int


class SchemaError(ValueError):
    def __init__(self, message: str, location: ErrorLocation | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def display_message(self) -> str:
        if self.location is None:
            return self.message
        return f"Line {self.location.line}, Column {self.location.column}: {self.message}"


class EmptySchemaSource(SchemaError):
    """Raised for blank input. Callers show no diagram and no error banner."""


def _get(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _point(raw: Any) -> ErrorLocation | None:
    if raw is None:
        return None
    line = _as_int(_get(raw, "line"))
    column = _as_int(_get(raw, "column"))
    if line is None or column is None:
        return None
    return ErrorLocation(line=line, column=column)


def _location_start(location: Any) -> ErrorLocation | None:
    if location is None:
        return None
    return _point(_get(location, "start"))


def extract_error_location(exc: BaseException) -> ErrorLocation | None:
    """Find a line/column in any of the error shapes DBML parsers have used."""
    direct = _location_start(_get(exc, "location"))
    if direct is not None:
        return direct

    for key in ("diags", "errors", "diagnostics"):
        items = _get(exc, key)
        if not isinstance(items, (list, tuple)) or not items:
            continue
        first = items[0]
        found = _location_start(_get(first, "location")) or _point(_get(first, "start"))
        if found is not None:
            return found

    # pyparsing exceptions (raised through pydbml) expose lineno/col
    line = _as_int(getattr(exc, "lineno", None))
    column = _as_int(getattr(exc, "col", None))
    if line is not None and column is not None:
        return ErrorLocation(line=line, column=column)
    return None


def _error_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text if text else "Invalid DBML syntax"


def _collection(raw: Any, *keys: str) -> list[Any]:
    schemas = _get(raw, "schemas")
    if isinstance(schemas, (list, tuple)) and schemas:
        nested = _get(schemas[0], *keys)
        if nested:
            return list(nested)
    flat = _get(raw, *keys)
    return list(flat) if flat else []


def _note_text(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        text = raw
    elif isinstance(raw, Mapping):
        text = raw.get("value") or raw.get("text") or ""
    else:
        text = getattr(raw, "text", None)
        if text is None:
            text = str(raw)
    text = str(text).strip()
    return text or None


def _type_name(raw: Any) -> str:
    if raw is None:
        return "unknown"
    if isinstance(raw, str):
        return raw or "unknown"
    value = _get(raw, "type_name", "name")
    if isinstance(value, str) and value:
        return value
    return str(raw)


def _table_name(raw: Any) -> str:
    name = _get(raw, "name", "tableName", "table_name")
    if not isinstance(name, str):
        return ""
    schema = _get(raw, "schema", "schemaName", "schema_name")
    if isinstance(schema, str) and schema not in ("", "public"):
        return f"{schema}.{name}"
    return name


def _normalize_field(raw: Any) -> Field:
    return Field(
        name=str(_get(raw, "name") or ""),
        type=_type_name(_get(raw, "type")),
        is_primary_key=bool(_get(raw, "pk")),
        is_unique=bool(_get(raw, "unique")),
        is_not_null=bool(_get(raw, "not_null", "notNull")),
        note=_note_text(_get(raw, "note")),
    )


def _normalize_table(raw: Any, source: str) -> Table:
    name = _table_name(raw)
    header_color = _get(raw, "header_color", "headerColor")
    if not header_color:
        header_color = extract_header_color(source, name)
    return Table(
        name=name,
        fields=[_normalize_field(c) for c in (_get(raw, "columns", "fields") or [])],
        note=_note_text(_get(raw, "note")),
        header_color=header_color or None,
    )


def _endpoint(raw: Any) -> tuple[str, str]:
    table = _get(raw, "tableName", "table_name")
    if isinstance(table, str):
        schema = _get(raw, "schemaName", "schema_name")
        if isinstance(schema, str) and schema not in ("", "public"):
            table = f"{schema}.{table}"
        fields = _get(raw, "fieldNames", "field_names") or []
        return table, str(fields[0]) if fields else ""
    return "", ""


def _column_endpoint(raw: Any) -> tuple[str, str]:
    column = raw[0] if isinstance(raw, (list, tuple)) and raw else raw
    if column is None or isinstance(column, (list, tuple)):
        return "", ""
    table = _get(column, "table")
    return (_table_name(table) if table is not None else ""), str(_get(column, "name") or "")


def _normalize_ref(raw: Any) -> Relationship:
    endpoints = _get(raw, "endpoints")
    if isinstance(endpoints, (list, tuple)) and len(endpoints) >= 2:
        source_table, source_field = _endpoint(endpoints[0])
        target_table, target_field = _endpoint(endpoints[1])
    else:
        source_table, source_field = _column_endpoint(_get(raw, "col1"))
        target_table, target_field = _column_endpoint(_get(raw, "col2"))
    name = _get(raw, "name")
    return Relationship(
        source_table=source_table,
        source_field=source_field,
        target_table=target_table,
        target_field=target_field,
        name=name if isinstance(name, str) and name else None,
    )


def _normalize_project(raw: Any) -> ProjectMeta | None:
    project = _get(raw, "project")
    if project is not None:
        items = _get(project, "items") or {}
        database_type = _get(project, "database_type", "databaseType")
        if database_type is None and isinstance(items, Mapping):
            database_type = items.get("database_type")
        name = _get(project, "name")
        return ProjectMeta(
            name=name if isinstance(name, str) else None,
            database_type=str(database_type) if database_type is not None else None,
            note=_note_text(_get(project, "note")),
        )

    # JSON exports keep project settings on the database root
    root_name = _get(raw, "name")
    if isinstance(root_name, str) and root_name:
        database_type = _get(raw, "databaseType", "database_type")
        return ProjectMeta(
            name=root_name,
            database_type=str(database_type) if database_type else None,
            note=_note_text(_get(raw, "note")),
        )
    return None


def _normalize_groups(raw_groups: list[Any], table_names: list[str]) -> list[Group]:
    known = set(table_names)
    owner: dict[str, str] = {}
    groups: list[Group] = []
    for raw in raw_groups:
        group_name = str(_get(raw, "name") or "")
        members: list[str] = []
        for item in _get(raw, "items", "tables") or []:
            table_name = item if isinstance(item, str) else _table_name(item)
            if table_name not in known:
                logger.warning("TableGroup '%s' lists unknown table '%s'; ignoring it.", group_name, table_name)
                continue
            if table_name in owner:
                if owner[table_name] != group_name:
                    logger.warning(
                        "Table '%s' already belongs to group '%s'; ignoring membership in '%s'.",
                        table_name,
                        owner[table_name],
                        group_name,
                    )
                continue
            owner[table_name] = group_name
            members.append(table_name)
        color = _get(raw, "color", "headerColor", "header_color")
        groups.append(Group(name=group_name, table_names=members, header_color=color or None))
    return groups


def normalize_parsed_database(raw: Any, *, source: str = "") -> Schema:
    """Flatten parser output (nested under ``schemas[0]`` or flat) into a ``Schema``."""
    tables = [_normalize_table(t, source) for t in _collection(raw, "tables")]
    table_names = [t.name for t in tables]
    schema = Schema(
        tables=tables,
        groups=_normalize_groups(_collection(raw, "table_groups", "tableGroups"), table_names),
        refs=[_normalize_ref(r) for r in _collection(raw, "refs")],
        project=_normalize_project(raw),
    )
    try:
        validate_schema(schema)
    except ValueError as exc:
        raise SchemaError(str(exc)) from exc
    return schema


def _pydbml_parse(source: str) -> Any:
    return PyDBML(source)


def parse_dbml(source: str, *, parser: Callable[[str], Any] | None = None) -> Schema:
    if not isinstance(source, str) or source.strip() == "":
        raise EmptySchemaSource("DBML source is empty")

    run_parser = parser or _pydbml_parse
    try:
        raw = run_parser(source)
    except Exception as exc:  # parser failures arrive as many exception types
        location = extract_error_location(exc)
        logger.info("DBML parse failed at %s: %s", location, exc)
        raise SchemaError(_error_message(exc), location) from exc

    if raw is None:
        raise SchemaError("Failed to parse DBML - no database returned")
    schema = normalize_parsed_database(raw, source=source)
    logger.debug(
        "Parsed DBML: tables=%d groups=%d refs=%d project=%s",
        len(schema.tables),
        len(schema.groups),
        len(schema.refs),
        schema.project is not None,
    )
    return schema


def _table_header_pattern(table_name: str) -> re.Pattern[str]:
    return re.compile(
        rf'\b(?i:Table)\s+"?{re.escape(table_name)}"?(?=[\s\[{{])(?:\s+(?i:as)\s+"?\w+"?)?\s*\[([^\]]*)\]'
    )


def extract_header_color(source: str, table_name: str) -> str | None:
    if not source or not table_name:
        return None
    match = _table_header_pattern(table_name).search(source)
    if match is None:
        return None
    color = _HEADER_COLOR_SETTING.search(match.group(1))
    return color.group(1) if color else None


def _strip_header_color(settings: str) -> str:
    parts = [p.strip() for p in settings.split(",")]
    kept = [p for p in parts if p and not _HEADER_COLOR_SETTING.match(p)]
    return ", ".join(kept)


def update_table_header_color(source: str, table_name: str, color: str) -> str:
    """Rewrite the ``headercolor`` setting of one table in DBML text."""
    if not isinstance(color, str) or not _HEX_COLOR.match(color.strip()):
        raise ValueError(
            diagram_error(
                "Table color",
                f"'{color}' is not a hex color",
                "use #RGB or #RRGGBB (for example #3498db)",
            )
        )
    color = color.strip()
    line_pattern = re.compile(rf'^\s*(?i:Table)\s+"?{re.escape(table_name)}"?(?=[\s\[{{]|$)')

    lines = source.split("\n")
    for idx, line in enumerate(lines):
        if not line_pattern.match(line):
            continue
        # table settings sit before the body; brackets after "{" belong to columns
        brace = line.find("{")
        header = line if brace < 0 else line[:brace]
        bracket = re.search(r"\[([^\]]*)\]", header)
        if bracket is not None:
            kept = _strip_header_color(bracket.group(1))
            settings = f"{kept}, headercolor: {color}" if kept else f"headercolor: {color}"
            lines[idx] = line[: bracket.start()] + f"[{settings}]" + line[bracket.end():]
        elif brace >= 0:
            lines[idx] = line[:brace].rstrip() + f" [headercolor: {color}] " + line[brace:]
        else:
            lines[idx] = line.rstrip() + f" [headercolor: {color}]"
        return "\n".join(lines)

    raise ValueError(
        diagram_error(
            "Table color",
            f"table '{table_name}' was not found in the DBML source",
            "select a table that is declared in the editor",
        )
    )
