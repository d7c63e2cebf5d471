"""Shared fixtures for scripting tests."""

from typing import Any, Dict, List

import pytest

from retro.logging import MemorySink, register_sink, unregister_sink
from retro.scripting import RecordingFacade, ScriptInterpreter


class GraphBuilder:
    """Builds graph documents without spelling out the dict shape.

    Usage:
        doc = (GraphBuilder("g1")
               .event("E1", "OnStart")
               .action("A1", "openGate", gateId="gate1")
               .link("E1", "A1")
               .build())
    """

    def __init__(self, graph_id: str, **variables):
        self.graph_id = graph_id
        self.nodes: List[Dict[str, Any]] = []
        self.edges: List[Dict[str, Any]] = []
        self.variables = dict(variables)

    def _node(self, node_id: str, node_type: str, kind: str, props: Dict[str, Any]) -> "GraphBuilder":
        self.nodes.append({"id": node_id, "type": node_type, "kind": kind, "props": props})
        return self

    def event(self, node_id: str, kind: str, **props) -> "GraphBuilder":
        return self._node(node_id, "Event", kind, props)

    def condition(self, node_id: str, kind: str, **props) -> "GraphBuilder":
        return self._node(node_id, "Condition", kind, props)

    def action(self, node_id: str, kind: str, **props) -> "GraphBuilder":
        return self._node(node_id, "Action", kind, props)

    def link(self, source: str, target: str, port: str = "flow", edge_id: str = None) -> "GraphBuilder":
        edge = {"from": f"{source}:{port}", "to": f"{target}:flow"}
        if edge_id:
            edge["id"] = edge_id
        self.edges.append(edge)
        return self

    def build(self) -> Dict[str, Any]:
        return {
            "id": self.graph_id,
            "name": self.graph_id,
            "nodes": list(self.nodes),
            "edges": list(self.edges),
            "variables": dict(self.variables),
        }


@pytest.fixture
def builder():
    return GraphBuilder


@pytest.fixture
def facade():
    return RecordingFacade()


@pytest.fixture
def interpreter(facade):
    interp = ScriptInterpreter(engine=facade)
    yield interp
    interp.close()


@pytest.fixture
def memory_sink():
    sink = MemorySink()
    register_sink('scripting', sink)
    yield sink
    unregister_sink('scripting')
