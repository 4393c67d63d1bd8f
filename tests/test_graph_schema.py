"""Tests for the graph document model and its structural report."""

from __future__ import annotations

import json

from graphrunner.core.graph_schema import Graph, Link, Node


def _graph(nodes: list[tuple[str, str]], links: list[tuple[str, str]]) -> Graph:
    return Graph(
        nodes=[Node(id=node_id, name=node_id.upper(), type=t) for node_id, t in nodes],
        links=[Link(source_node_id=s, target_node_id=t) for s, t in links],
    )


class TestGraphParsing:
    """Tests for reading the persisted graph format."""

    def test_pascal_case_document(self):
        doc = {
            "Name": "Daily",
            "Version": "2.0",
            "Nodes": [
                {"Id": "a", "Name": "Start", "Type": "start", "JsonData": "", "X": 1, "Y": 2},
                {"Id": "b", "Type": "wait", "JsonData": '{"Type": "wait", "IntValues": [5]}'},
            ],
            "Links": [{"Id": "l1", "SourceNodeId": "a", "TargetNodeId": "b"}],
        }
        graph = Graph.model_validate_json(json.dumps(doc))
        assert graph.name == "Daily"
        assert graph.version == "2.0"
        assert [n.id for n in graph.nodes] == ["a", "b"]
        assert graph.nodes[0].x == 1
        assert graph.links[0].target_node_id == "b"

    def test_numeric_ids_and_inline_payload(self):
        graph = Graph.model_validate(
            {
                "nodes": [{"id": 1, "type": "wait", "json_data": {"Type": "wait"}}],
                "links": [{"source_node_id": 1, "target_node_id": 2}],
            }
        )
        assert graph.nodes[0].id == "1"
        assert json.loads(graph.nodes[0].json_data) == {"Type": "wait"}
        assert graph.links[0].source_node_id == "1"
        assert graph.links[0].id  # generated

    def test_null_collections(self):
        graph = Graph.model_validate({"Name": "x", "Nodes": None, "Links": None})
        assert graph.nodes == []
        assert graph.links == []

    def test_node_label_and_start(self):
        assert Node(id="n1", type="START").is_start
        assert Node(id="n1").label == "n1"
        assert Node(id="n1", name="Click").label == "Click"

    def test_outgoing_link_is_first_match(self):
        graph = _graph([("a", "start"), ("b", "wait"), ("c", "wait")], [("a", "b"), ("a", "c")])
        assert graph.outgoing_link("a").target_node_id == "b"
        assert graph.outgoing_link("c") is None


class TestValidateGraph:
    """Tests for Graph.validate_graph()."""

    def test_valid_chain(self, make_chain):
        graph = make_chain([{"Type": "wait"}, {"Type": "key_press"}])
        assert graph.validate_graph() == []

    def test_missing_start(self):
        graph = _graph([("a", "wait")], [])
        assert "No start node found" in graph.validate_graph()

    def test_multiple_starts(self):
        graph = _graph([("a", "start"), ("b", "start")], [])
        errors = graph.validate_graph()
        assert any("Multiple start nodes" in e for e in errors)

    def test_duplicate_node_id(self):
        graph = _graph([("a", "start"), ("a", "wait")], [])
        assert "Duplicate node ID: 'a'" in graph.validate_graph()

    def test_dangling_link(self):
        graph = _graph([("a", "start")], [("a", "ghost")])
        errors = graph.validate_graph()
        assert any("target 'ghost' not found" in e for e in errors)

    def test_branching_and_merging(self):
        graph = _graph(
            [("s", "start"), ("b", "wait"), ("c", "wait"), ("d", "wait")],
            [("s", "b"), ("s", "c"), ("b", "d"), ("c", "d")],
        )
        errors = graph.validate_graph()
        assert "Node 'S' has more than one exit link" in errors
        assert "Node 'D' has more than one entry link" in errors

    def test_cycle_reported(self):
        graph = _graph([("s", "start"), ("a", "wait"), ("b", "wait")], [("s", "a"), ("a", "b"), ("b", "a")])
        errors = graph.validate_graph()
        assert any(e.startswith("Cycle detected") for e in errors)

    def test_start_with_incoming_link(self):
        graph = _graph([("s", "start"), ("a", "wait")], [("s", "a"), ("a", "s")])
        errors = graph.validate_graph()
        assert "Start node 'S' must not have incoming links" in errors

    def test_self_loop(self):
        graph = _graph([("s", "start"), ("a", "wait")], [("s", "a"), ("a", "a")])
        errors = graph.validate_graph()
        assert any("self-loop on 'a'" in e for e in errors)


class TestWarningsAndStatistics:
    """Tests for non-fatal findings and statistics."""

    def test_orphan_and_unreachable(self):
        graph = _graph([("s", "start"), ("a", "wait"), ("lonely", "wait")], [("s", "a")])
        warnings = graph.warnings()
        assert "Found 1 orphaned node(s)" in warnings
        assert any("not reachable from start: LONELY" in w for w in warnings)

    def test_statistics_for_chain(self, make_chain):
        graph = make_chain([{"Type": "wait"}, {"Type": "wait"}, {"Type": "key_press"}])
        stats = graph.statistics()
        assert stats.total_nodes == 4
        assert stats.total_links == 3
        assert stats.orphaned_nodes == 0
        assert stats.max_depth == 4
        assert stats.node_type_distribution == {"start": 1, "wait": 2, "key_press": 1}

    def test_max_depth_with_cycle(self):
        graph = _graph([("r", "start"), ("a", "wait"), ("b", "wait")], [("r", "a"), ("a", "b"), ("b", "a")])
        assert graph.statistics().max_depth == 3

    def test_max_depth_with_long_cycle(self):
        ids = [f"n{i}" for i in range(1500)]
        links = [("s", ids[0])] + list(zip(ids, ids[1:])) + [(ids[-1], ids[0])]
        graph = _graph([("s", "start")] + [(i, "wait") for i in ids], links)
        assert graph.statistics().max_depth == 1501

    def test_empty_graph(self):
        stats = Graph().statistics()
        assert stats.total_nodes == 0
        assert stats.max_depth == 0
