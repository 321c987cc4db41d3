import math
import unittest

from dbml_erd.graph_compiler import compile_schema
from dbml_erd.graph_model import (
    GROUP_HEADER_HEIGHT,
    GROUP_PADDING,
    PROJECT_HEIGHT,
    PROJECT_WIDTH,
    harvest_positions,
)
from dbml_erd.position_reconciler import (
    SOURCE_CURRENT,
    SOURCE_DEFAULTS,
    SOURCE_LAST_KNOWN,
    SOURCE_LOADED,
    SOURCE_PERSISTED,
    choose_position_source,
    reconcile,
    required_group_size,
)
from dbml_erd.schema_model import PROJECT_NODE_ID, Group, ProjectMeta, Schema, Table


def _schema() -> Schema:
    return Schema(
        tables=[Table("users"), Table("posts"), Table("tags"), Table("audit")],
        groups=[Group("core", ["users", "posts", "tags"])],
        project=ProjectMeta(name="shop"),
    )


class TestPositionSourceChoice(unittest.TestCase):
    def test_precedence_order(self):
        a = {"n": {"x": 1, "y": 1}}
        b = {"n": {"x": 2, "y": 2}}
        c = {"n": {"x": 3, "y": 3}}
        d = {"n": {"x": 4, "y": 4}}
        self.assertEqual(choose_position_source(a, b, c, d), (SOURCE_LOADED, a))
        self.assertEqual(choose_position_source({}, b, c, d), (SOURCE_LAST_KNOWN, b))
        self.assertEqual(choose_position_source(None, {}, c, d), (SOURCE_CURRENT, c))
        self.assertEqual(choose_position_source(None, {}, {}, d), (SOURCE_PERSISTED, d))
        self.assertEqual(choose_position_source(None, {}, None, {}), (SOURCE_DEFAULTS, {}))


class TestReconcile(unittest.TestCase):
    def setUp(self) -> None:
        self.fresh = compile_schema(_schema())
        self.defaults = harvest_positions(self.fresh)

    def test_loaded_positions_beat_last_known(self):
        loaded = {"audit": {"x": 900, "y": 901}}
        last_known = {"audit": {"x": 10, "y": 11}}
        graph, positions = reconcile(self.fresh, loaded, last_known, {})
        audit = graph.node_by_id("audit")
        self.assertEqual((audit.position.x, audit.position.y), (900, 901))

        # the applied map becomes the next last-known source
        again, again_positions = reconcile(self.fresh, None, positions, {"audit": {"x": 1, "y": 1}})
        self.assertEqual(again_positions["audit"]["x"], 900)
        self.assertEqual(again_positions, positions)

    def test_persisted_positions_are_the_fallback(self):
        graph, _positions = reconcile(self.fresh, None, {}, {"audit": {"x": 5, "y": 6}})
        audit = graph.node_by_id("audit")
        self.assertEqual((audit.position.x, audit.position.y), (5, 6))

    def test_current_positions_beat_persisted(self):
        graph, _positions = reconcile(
            self.fresh,
            None,
            {},
            {"audit": {"x": 5, "y": 6}},
            current_positions={"audit": {"x": 7, "y": 8}},
        )
        audit = graph.node_by_id("audit")
        self.assertEqual((audit.position.x, audit.position.y), (7, 8))

    def test_invalid_coordinates_keep_defaults(self):
        bad = {
            "users": {"x": float("nan"), "y": 3},
            "posts": {"x": "12", "y": 4},
            "tags": {"x": True, "y": 1},
            "audit": {"x": float("inf"), "y": 0},
            "group-core": "not-a-mapping",
            PROJECT_NODE_ID: {"y": 5},
        }
        graph, positions = reconcile(self.fresh, None, bad, {})
        self.assertEqual(positions, self.defaults)
        self.assertEqual(graph, self.fresh)

    def test_sizes_apply_to_resizable_nodes_only(self):
        source = {
            PROJECT_NODE_ID: {"x": 1, "y": 2, "width": 600, "height": 300},
            "audit": {"x": 3, "y": 4, "width": 320, "height": 500},
            "group-core": {"x": 5, "y": 6, "width": 10, "height": 10},
        }
        graph, positions = reconcile(self.fresh, source, {}, {})
        project = graph.node_by_id(PROJECT_NODE_ID)
        self.assertEqual((project.size.width, project.size.height), (600, 300))
        audit = graph.node_by_id("audit")
        self.assertEqual((audit.size.width, audit.size.height), (320, 500))
        group = graph.node_by_id("group-core")
        self.assertEqual((group.position.x, group.position.y), (5, 6))
        self.assertGreater(group.size.width, 10)
        self.assertNotIn("width", positions["group-core"])
        self.assertEqual(positions["audit"]["height"], 500)

    def test_invalid_sizes_are_ignored(self):
        source = {PROJECT_NODE_ID: {"x": 1, "y": 2, "width": float("nan"), "height": -5}}
        graph, _positions = reconcile(self.fresh, source, {}, {})
        project = graph.node_by_id(PROJECT_NODE_ID)
        self.assertEqual((project.size.width, project.size.height), (PROJECT_WIDTH, PROJECT_HEIGHT))

    def test_group_grows_around_far_children(self):
        source = {
            "users": {"x": 2000, "y": 1500},
            "posts": {"x": -200, "y": 10},
        }
        graph, _positions = reconcile(self.fresh, None, source, {})
        group = graph.node_by_id("group-core")
        children = graph.children_of("group-core")
        min_x = min(c.position.x for c in children)
        min_y = min(c.position.y for c in children)
        max_x = max(c.position.x + c.size.width for c in children)
        max_y = max(c.position.y + c.size.height for c in children)

        self.assertGreaterEqual(group.size.width, max_x - min_x + 2 * GROUP_PADDING)
        self.assertGreaterEqual(group.size.height, max_y - min_y + GROUP_HEADER_HEIGHT + 2 * GROUP_PADDING)
        self.assertGreaterEqual(group.size.width, max_x + GROUP_PADDING)
        self.assertGreaterEqual(group.size.height, max_y + GROUP_PADDING)

    def test_group_never_shrinks_below_compiled_size(self):
        default = self.fresh.node_by_id("group-core").size
        source = {"users": {"x": 40, "y": 100}, "posts": {"x": 40, "y": 100}, "tags": {"x": 40, "y": 100}}
        graph, _positions = reconcile(self.fresh, None, source, {})
        group = graph.node_by_id("group-core")
        self.assertEqual((group.size.width, group.size.height), (default.width, default.height))

    def test_required_group_size_for_packed_children_matches_compiler(self):
        group = self.fresh.node_by_id("group-core")
        self.assertEqual(
            required_group_size(self.fresh.children_of("group-core")),
            (group.size.width, group.size.height),
        )
        self.assertIsNone(required_group_size([]))

    def test_reconcile_is_idempotent(self):
        last_known = {"users": {"x": 700, "y": 20}, "audit": {"x": 1, "y": 2}}
        persisted = {"posts": {"x": 9, "y": 9}}
        first = reconcile(self.fresh, None, last_known, persisted)
        second = reconcile(self.fresh, None, last_known, persisted)
        self.assertEqual(first, second)

        graph, positions = first
        replay_graph, replay_positions = reconcile(graph, None, positions, {})
        self.assertEqual(replay_graph, graph)
        self.assertEqual(replay_positions, positions)

    def test_round_trip_with_own_positions_is_a_no_op(self):
        graph, positions = reconcile(self.fresh, None, {}, {}, current_positions=harvest_positions(self.fresh))
        self.assertEqual(positions, self.defaults)
        self.assertEqual(graph, self.fresh)

    def test_input_graph_is_not_mutated(self):
        before = harvest_positions(self.fresh)
        reconcile(self.fresh, {"audit": {"x": 1234, "y": 5678}, "users": {"x": 5000, "y": 5000}}, {}, {})
        self.assertEqual(harvest_positions(self.fresh), before)
        self.assertEqual(self.fresh.node_by_id("group-core").size.width, 710)

    def test_positions_stay_finite(self):
        graph, positions = reconcile(
            self.fresh,
            None,
            {"users": {"x": float("-inf"), "y": float("nan")}},
            {},
        )
        for node in graph.nodes:
            self.assertTrue(math.isfinite(node.position.x))
            self.assertTrue(math.isfinite(node.position.y))
        for entry in positions.values():
            self.assertTrue(all(math.isfinite(v) for v in entry.values()))


if __name__ == "__main__":
    unittest.main()
