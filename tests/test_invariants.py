import math
import random
import unittest

from dbml_erd.graph_compiler import compile_schema
from dbml_erd.position_reconciler import reconcile
from dbml_erd.schema_model import Group, ProjectMeta, Relationship, Schema, Table


JUNK_VALUES = [
    float("nan"),
    float("inf"),
    float("-inf"),
    None,
    "12",
    True,
    [],
    {},
    -5,
    0,
    1e9,
    3.5,
]


def _schema(rng: random.Random) -> Schema:
    count = rng.randint(1, 9)
    tables = [Table(f"t{index}") for index in range(count)]
    names = [t.name for t in tables]
    groups = []
    remaining = list(names)
    rng.shuffle(remaining)
    for index in range(rng.randint(0, 3)):
        take = rng.randint(0, min(3, len(remaining)))
        groups.append(Group(f"g{index}", remaining[:take]))
        remaining = remaining[take:]
    refs = [
        Relationship(rng.choice(names), "id", rng.choice(names), "id")
        for _ in range(rng.randint(0, count))
    ]
    project = ProjectMeta(name="fuzz") if rng.random() < 0.5 else None
    return Schema(tables=tables, groups=groups, refs=refs, project=project)


def _junk_map(rng: random.Random, node_ids: list[str]) -> dict:
    positions: dict = {}
    for node_id in node_ids + ["ghost"]:
        roll = rng.random()
        if roll < 0.2:
            continue
        if roll < 0.3:
            positions[node_id] = rng.choice(JUNK_VALUES)
            continue
        positions[node_id] = {
            key: rng.choice(JUNK_VALUES) for key in ("x", "y", "width", "height") if rng.random() < 0.8
        }
    return positions


class TestReconcileInvariants(unittest.TestCase):
    def test_random_position_maps_keep_geometry_finite(self):
        rng = random.Random(20240601)
        for _ in range(200):
            fresh = compile_schema(_schema(rng))
            node_ids = [n.id for n in fresh.nodes]
            graph, positions = reconcile(
                fresh,
                _junk_map(rng, node_ids) if rng.random() < 0.5 else None,
                _junk_map(rng, node_ids),
                _junk_map(rng, node_ids),
            )

            ids = {n.id for n in graph.nodes}
            self.assertEqual(ids, set(node_ids))
            self.assertEqual(set(positions), ids)
            for node in graph.nodes:
                for value in (node.position.x, node.position.y, node.size.width, node.size.height):
                    self.assertTrue(math.isfinite(value), f"{node.id}: {value!r}")
                self.assertGreater(node.size.width, 0)
                self.assertGreater(node.size.height, 0)
                if node.parent_id is not None:
                    self.assertIn(node.parent_id, ids)
            for entry in positions.values():
                self.assertTrue(all(math.isfinite(v) for v in entry.values()))

    def test_groups_always_enclose_children(self):
        rng = random.Random(7)
        for _ in range(100):
            fresh = compile_schema(_schema(rng))
            graph, _ = reconcile(fresh, None, _junk_map(rng, [n.id for n in fresh.nodes]), None)
            for group in graph.nodes_of_kind("group"):
                for child in graph.children_of(group.id):
                    self.assertLessEqual(child.position.x + child.size.width, group.size.width)
                    self.assertLessEqual(child.position.y + child.size.height, group.size.height)


if __name__ == "__main__":
    unittest.main()
