"""Tests for the graph model and graph loading."""

import json

import pytest

from retro.scripting.graph import (
    FLOW,
    FLOW_FALSE,
    FLOW_TRUE,
    Graph,
    GraphLoadError,
    GraphStore,
    NodeCategory,
    load_graph_directory,
    load_graph_file,
    parse_graph,
    split_endpoint,
)


class TestSplitEndpoint:
    """Tests for "nodeId:port" parsing."""

    def test_node_and_port(self):
        assert split_endpoint("C1:flow_true") == ("C1", FLOW_TRUE)

    def test_bare_node_is_flow(self):
        assert split_endpoint("A1") == ("A1", FLOW)

    def test_empty_port_is_flow(self):
        assert split_endpoint("A1:") == ("A1", FLOW)

    def test_colon_in_node_id(self):
        """Only the last colon separates the port."""
        assert split_endpoint("room:A1:flow") == ("room:A1", FLOW)


class TestParseGraph:
    """Tests for document -> Graph conversion."""

    def test_parse_minimal(self, builder):
        doc = builder("g1", coins=0).event("E1", "OnStart").action("A1", "openGate", gateId="g").link("E1", "A1").build()

        graph = parse_graph(doc)

        assert graph.id == "g1"
        assert [n.id for n in graph.nodes] == ["E1", "A1"]
        assert graph.get_node("A1").category == NodeCategory.ACTION
        assert graph.get_node("A1").prop("gateId") == "g"
        assert graph.variables == {"coins": 0}

    def test_type_is_case_insensitive(self):
        graph = parse_graph({"id": "g", "nodes": [{"id": "E", "type": "event", "kind": "OnStart"}]})
        assert graph.get_node("E").category == NodeCategory.EVENT

    def test_edge_ids_generated(self, builder):
        doc = builder("g").event("E", "OnStart").action("A", "Wait").link("E", "A").build()
        graph = parse_graph(doc)
        assert graph.edges[0].id == "edge_0"

    def test_missing_graph_id(self):
        with pytest.raises(GraphLoadError):
            parse_graph({"nodes": []})

    def test_invalid_node_type(self):
        with pytest.raises(GraphLoadError) as exc_info:
            parse_graph({"id": "g", "nodes": [{"id": "X", "type": "Trigger", "kind": "OnStart"}]})
        assert exc_info.value.graph_id == "g"

    def test_duplicate_node_ids(self):
        doc = {"id": "g", "nodes": [
            {"id": "A", "type": "Action", "kind": "Wait"},
            {"id": "A", "type": "Action", "kind": "Jump"},
        ]}
        with pytest.raises(GraphLoadError, match="duplicate"):
            parse_graph(doc)

    def test_edge_needs_both_ends(self):
        doc = {"id": "g", "nodes": [], "edges": [{"from": "A:flow"}]}
        with pytest.raises(GraphLoadError):
            parse_graph(doc)

    def test_graph_passthrough(self):
        graph = Graph("g")
        assert parse_graph(graph) is graph

    def test_prop_default_when_none(self):
        graph = parse_graph({"id": "g", "nodes": [
            {"id": "A", "type": "Action", "kind": "Wait", "props": {"duration": None}},
        ]})
        assert graph.get_node("A").prop("duration", 1000) == 1000

    def test_to_dict_reparses(self, builder):
        doc = builder("g").event("E", "OnStart").condition("C", "HasFlag", flagId="f").link("E", "C").build()
        graph = parse_graph(doc)

        again = parse_graph(graph.to_dict())

        assert again.to_dict() == graph.to_dict()


class TestEdgeIndex:
    """Tests for successor lookup."""

    def test_first_edge_wins(self, builder):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Wait")
               .action("A2", "Wait")
               .link("E", "A1", edge_id="first")
               .link("E", "A2", edge_id="second")
               .build())

        graph = parse_graph(doc)

        assert graph.edge_from("E", FLOW).id == "first"
        assert [e.id for e in graph.shadowed_edges] == ["second"]

    def test_branch_ports_are_separate(self, builder):
        doc = (builder("g")
               .condition("C", "HasFlag")
               .action("T", "Wait")
               .action("F", "Wait")
               .link("C", "T", FLOW_TRUE)
               .link("C", "F", FLOW_FALSE)
               .build())

        graph = parse_graph(doc)

        assert graph.edge_from("C", FLOW_TRUE).target_node == "T"
        assert graph.edge_from("C", FLOW_FALSE).target_node == "F"
        assert graph.edge_from("C", FLOW) is None
        assert graph.shadowed_edges == []

    def test_event_nodes_in_document_order(self, builder):
        doc = builder("g").event("E2", "OnStart").action("A", "Wait").event("E1", "OnPlate").build()
        graph = parse_graph(doc)
        assert [n.id for n in graph.event_nodes()] == ["E2", "E1"]

    def test_nodes_of_kind(self, builder):
        doc = builder("g").event("E1", "OnPlate").event("E2", "OnPlate").event("E3", "OnStart").build()
        graph = parse_graph(doc)
        assert [n.id for n in graph.nodes_of_kind(NodeCategory.EVENT, "OnPlate")] == ["E1", "E2"]


class TestGraphFiles:
    """Tests for loading graph documents from disk."""

    def test_load_yaml_single(self, tmp_path):
        path = tmp_path / "level.yaml"
        path.write_text(
            "id: castle\n"
            "nodes:\n"
            "  - {id: E1, type: Event, kind: OnStart}\n"
            "  - {id: A1, type: Action, kind: openGate, props: {gateId: g1}}\n"
            "edges:\n"
            "  - {from: 'E1:flow', to: 'A1:flow'}\n"
        )

        graphs = load_graph_file(path)

        assert len(graphs) == 1
        assert graphs[0].edge_from("E1", FLOW).target_node == "A1"

    def test_load_graphs_key(self, tmp_path):
        path = tmp_path / "level.yml"
        path.write_text("graphs:\n  - {id: a, nodes: []}\n  - {id: b, nodes: []}\n")
        assert [g.id for g in load_graph_file(path)] == ["a", "b"]

    def test_load_json_list(self, tmp_path):
        path = tmp_path / "level.json"
        path.write_text(json.dumps([{"id": "a", "nodes": []}, {"id": "b", "nodes": []}]))
        assert [g.id for g in load_graph_file(path)] == ["a", "b"]

    def test_load_directory_sorted(self, tmp_path):
        (tmp_path / "b.yaml").write_text("id: second\nnodes: []\n")
        (tmp_path / "a.json").write_text('{"id": "first", "nodes": []}')
        (tmp_path / "notes.txt").write_text("not a graph")

        graphs = load_graph_directory(tmp_path)

        assert [g.id for g in graphs] == ["first", "second"]


class TestGraphStore:
    """Tests for GraphStore."""

    def test_add_and_replace(self):
        store = GraphStore()
        first = Graph("g")
        second = Graph("g")

        assert store.add(first) is None
        assert store.add(second) is first
        assert store.get("g") is second
        assert len(store) == 1

    def test_keeps_load_order(self):
        store = GraphStore()
        for graph_id in ("c", "a", "b"):
            store.add(Graph(graph_id))
        assert store.ids() == ["c", "a", "b"]

    def test_remove_during_iteration(self):
        store = GraphStore()
        store.add(Graph("a"))
        store.add(Graph("b"))

        seen = []
        for graph in store:
            seen.append(graph.id)
            store.remove("b")

        assert seen == ["a", "b"]
        assert "b" not in store
