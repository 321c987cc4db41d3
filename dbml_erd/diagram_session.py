"""Session state for one open diagram.

Owns the committed graph, the last-known position map and the undo history,
and runs the text change -> parse -> compile -> reconcile -> commit cycle.
Every graph-mutating operation persists the resulting position map and
pushes a history snapshot.
"""

from __future__ import annotations

from copy import deepcopy
import logging
from collections.abc import Mapping
from typing import Any, Callable

from dbml_erd.auto_layout import DIRECTIONS, layout_top_level
from dbml_erd.config import DiagramConfig
from dbml_erd.dbml_adapter import EmptySchemaSource, SchemaError, parse_dbml, update_table_header_color
from dbml_erd.debounce import Debouncer, LoopScheduler, Scheduler
from dbml_erd.error_contract import diagram_error
from dbml_erd.graph_compiler import compile_schema
from dbml_erd.graph_model import (
    RESIZABLE_KINDS,
    Graph,
    Node,
    PositionMap,
    harvest_positions,
    is_finite_number,
)
from dbml_erd.history import GraphHistory
from dbml_erd.position_reconciler import reconcile, recompute_group_sizes
from dbml_erd.position_store import MemoryPositionStore, PositionStore, diagram_key

logger = logging.getLogger("diagram_session")


class DiagramSession:
    def __init__(
        self,
        *,
        config: DiagramConfig | None = None,
        store: PositionStore | None = None,
        schedule: Scheduler | None = None,
        on_positions_change: Callable[[PositionMap], None] | None = None,
    ) -> None:
        self.config = config or DiagramConfig()
        self.store: PositionStore = store if store is not None else MemoryPositionStore()
        self.on_positions_change = on_positions_change
        self.history = GraphHistory(limit=self.config.history_limit)
        self.direction = self.config.default_direction
        self.source = ""
        self.key = diagram_key("")
        self.graph = Graph()
        self.compiled = Graph()
        self.error: SchemaError | None = None
        self.last_known: PositionMap = {}
        self._debouncer = Debouncer(self.apply_source, delay_ms=self.config.debounce_ms, schedule=schedule)

    # -- text input -------------------------------------------------------

    def on_text_changed(self, source: str) -> None:
        self._debouncer.trigger(source)

    def flush_pending(self) -> bool:
        return self._debouncer.flush()

    def poll(self) -> bool:
        """Run a debounced re-parse whose delay has elapsed.

        Only needed with the default scheduler; hosts that injected their own
        loop scheduler get the call from that loop.
        """
        scheduler = self._debouncer.scheduler
        if not isinstance(scheduler, LoopScheduler):
            return False
        return scheduler.run_due() > 0

    def apply_source(self, source: str, loaded_positions: Mapping[str, Any] | None = None) -> Graph:
        self.source = source
        try:
            schema = parse_dbml(source)
        except EmptySchemaSource:
            self.error = None
            self.graph = Graph()
            self.compiled = Graph()
            return self.graph
        except SchemaError as exc:
            logger.info("Diagram cleared after DBML error: %s", exc.display_message())
            self.error = exc
            self.graph = Graph()
            self.compiled = Graph()
            return self.graph

        self.error = None
        fresh = compile_schema(schema)
        self.key = diagram_key(source)
        persisted = self._load_persisted(self.key)

        if loaded_positions:
            # opening a saved diagram starts a fresh editing session
            self.last_known = {}

        graph, positions = reconcile(
            fresh,
            loaded_positions,
            self.last_known,
            persisted,
            current_positions=harvest_positions(self.graph),
        )
        self.compiled = fresh
        self._commit(graph, positions)
        return self.graph

    def load_diagram(self, source: str, positions: Mapping[str, Any] | None) -> Graph:
        self._debouncer.cancel()
        return self.apply_source(source, loaded_positions=positions or None)

    # -- direct graph edits -----------------------------------------------

    def _require_node(self, node_id: str, *, field: str) -> Node:
        node = self.graph.node_by_id(node_id)
        if node is None:
            raise ValueError(
                diagram_error(field, f"node '{node_id}' does not exist", "choose a node from the current diagram")
            )
        return node

    def move_node(self, node_id: str, x: Any, y: Any) -> PositionMap:
        node = self._require_node(node_id, field="Move node")
        if not (is_finite_number(x) and is_finite_number(y)):
            raise ValueError(
                diagram_error("Move node", f"position ({x!r}, {y!r}) is not finite", "pass numeric x and y values")
            )
        node.position.x = x
        node.position.y = y
        return self._after_edit()

    def resize_node(self, node_id: str, width: Any, height: Any) -> PositionMap:
        node = self._require_node(node_id, field="Resize node")
        if node.kind not in RESIZABLE_KINDS:
            raise ValueError(
                diagram_error(
                    "Resize node",
                    f"{node.kind} nodes are sized from their contents",
                    f"resize one of: {', '.join(RESIZABLE_KINDS)}",
                )
            )
        if not (is_finite_number(width) and is_finite_number(height)) or width <= 0 or height <= 0:
            raise ValueError(
                diagram_error(
                    "Resize node",
                    f"size ({width!r}, {height!r}) is invalid",
                    "pass positive finite width and height",
                )
            )
        node.size.width = width
        node.size.height = height
        return self._after_edit()

    def auto_layout(self, direction: str | None = None) -> PositionMap:
        chosen = direction or self.direction
        if chosen not in DIRECTIONS:
            raise ValueError(
                diagram_error("Layout direction", f"unsupported direction '{chosen}'", "choose TB or LR")
            )
        self.direction = chosen
        self.graph = layout_top_level(self.graph, chosen)
        return self._after_edit()

    def toggle_direction(self) -> PositionMap:
        return self.auto_layout("LR" if self.direction == "TB" else "TB")

    def set_table_color(self, table_name: str, color: str) -> Graph:
        """Rewrite the table's header color in the source and re-parse it.

        Positions are captured first so the re-parse keeps the arrangement.
        """
        updated = update_table_header_color(self.source, table_name, color)
        captured = harvest_positions(self.graph)
        if captured:
            self.last_known = captured
        return self.apply_source(updated)

    # -- history ----------------------------------------------------------

    def undo(self) -> bool:
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self._show_snapshot(snapshot)
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._show_snapshot(snapshot)
        return True

    def restore_defaults(self) -> PositionMap:
        self.graph = deepcopy(self.compiled)
        return self._after_edit()

    def clear(self) -> None:
        self.graph = Graph()
        self.history.set_present(self.graph)

    def positions(self) -> PositionMap:
        return harvest_positions(self.graph)

    # -- internals --------------------------------------------------------

    def _show_snapshot(self, snapshot: Graph) -> None:
        self.graph = deepcopy(snapshot)
        positions = harvest_positions(self.graph)
        self.last_known = dict(positions)
        self._persist(positions)

    def _group_minimums(self) -> dict[str, tuple[float, float]]:
        return {g.id: (g.size.width, g.size.height) for g in self.compiled.nodes_of_kind("group")}

    def _after_edit(self) -> PositionMap:
        recompute_group_sizes(self.graph, minimums=self._group_minimums())
        positions = harvest_positions(self.graph)
        self._commit(self.graph, positions)
        return positions

    def _commit(self, graph: Graph, positions: PositionMap) -> None:
        self.graph = graph
        self.last_known = dict(positions)
        self._persist(positions)
        self.history.set_present(graph)

    def _load_persisted(self, key: str) -> PositionMap:
        try:
            return self.store.load(key)
        except (OSError, ValueError) as exc:
            logger.warning("Could not load stored positions for '%s': %s", key, exc)
            return {}

    def _persist(self, positions: PositionMap) -> None:
        if positions:
            try:
                self.store.save(self.key, positions)
            except (OSError, ValueError) as exc:
                logger.warning("Could not store positions for '%s': %s", self.key, exc)
        if self.on_positions_change is not None:
            self.on_positions_change(dict(positions))
