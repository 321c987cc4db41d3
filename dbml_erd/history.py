from __future__ import annotations

from copy import deepcopy
import logging

from dbml_erd.graph_model import Graph

logger = logging.getLogger("history")


class GraphHistory:
    """Linear undo/redo over graph snapshots.

    Every snapshot is a deep copy taken when it enters the history, so later
    in-place edits of the live graph never reach stored states.
    """

    def __init__(self, limit: int = 100) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError("History limit must be a positive integer. Fix: pass limit >= 1.")
        self.limit = limit
        self.past: list[Graph] = []
        self.present: Graph | None = None
        self.future: list[Graph] = []

    def set_present(self, snapshot: Graph) -> None:
        if self.present is not None:
            self.past.append(self.present)
            if len(self.past) > self.limit:
                del self.past[0 : len(self.past) - self.limit]
            self.future = []
        self.present = deepcopy(snapshot)

    def undo(self) -> Graph | None:
        if not self.past:
            return None
        if self.present is not None:
            self.future.insert(0, self.present)
        self.present = self.past.pop()
        logger.debug("Undo: past=%d future=%d", len(self.past), len(self.future))
        return self.present

    def redo(self) -> Graph | None:
        if not self.future:
            return None
        if self.present is not None:
            self.past.append(self.present)
        self.present = self.future.pop(0)
        logger.debug("Redo: past=%d future=%d", len(self.past), len(self.future))
        return self.present

    def can_undo(self) -> bool:
        return bool(self.past)

    def can_redo(self) -> bool:
        return bool(self.future)

    def clear(self) -> None:
        self.past = []
        self.present = None
        self.future = []
