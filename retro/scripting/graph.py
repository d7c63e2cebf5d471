"""
Graph model - nodes, edges, and the per-graph lookup indexes.

Converts graph documents (dicts loaded from YAML/JSON) into Graph objects
that the executor walks. Edges address ports with "nodeId:port" strings;
the Graph precomputes a (node_id, port) -> edge index at construction so
successor lookup is a dict hit instead of a scan.

Document shape:
    id: castle_gate
    name: Castle gate logic
    nodes:
      - {id: E1, type: Event, kind: OnStart, x: 0, y: 0, props: {}}
      - {id: A1, type: Action, kind: openGate, props: {gateId: g1}}
    edges:
      - {id: e1, from: "E1:flow", to: "A1:flow"}
    variables: {coins: 0}
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from retro.logging import get_logger
from retro.yaml import load as yaml_load, YAML_SUFFIXES, JSON_SUFFIXES

log = get_logger('graph')


class NodeCategory(Enum):
    """What a node does when visited."""
    EVENT = "Event"          # Trigger evaluated every tick, starts a chain
    CONDITION = "Condition"  # Boolean, picks flow_true or flow_false
    ACTION = "Action"        # Side effect, possibly asynchronous


# Port names
FLOW = "flow"
FLOW_TRUE = "flow_true"
FLOW_FALSE = "flow_false"
BRANCH_PORTS = (FLOW_TRUE, FLOW_FALSE)


class GraphLoadError(ValueError):
    """Raised when a graph document cannot be turned into a Graph."""

    def __init__(self, message: str, graph_id: Optional[str] = None):
        self.graph_id = graph_id
        super().__init__(message)


def split_endpoint(endpoint: str) -> Tuple[str, str]:
    """
    Split "nodeId:port" into (node_id, port).

    A bare "nodeId" reads as the flow port. Only the last colon separates,
    so node ids may themselves contain colons.
    """
    if ':' not in endpoint:
        return endpoint, FLOW
    node_id, port = endpoint.rsplit(':', 1)
    return node_id, port or FLOW


@dataclass
class Node:
    """
    A graph node.

    Attributes:
        id: Unique within its graph
        category: Event, Condition, or Action
        kind: Selects the behavior (e.g., "OnStart", "HasFlag", "teleport")
        props: Property bag read by the handler
        x, y: Authoring position (not used at runtime)
    """
    id: str
    category: NodeCategory
    kind: str
    props: Dict[str, Any] = field(default_factory=dict)
    x: float = 0.0
    y: float = 0.0

    def prop(self, name: str, default: Any = None) -> Any:
        """Read a property, falling back to default when absent or None."""
        value = self.props.get(name)
        return default if value is None else value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.category.value,
            "kind": self.kind,
            "x": self.x,
            "y": self.y,
            "props": dict(self.props),
        }


@dataclass
class Edge:
    """A directed control-flow edge between two node ports."""
    id: str
    source: str   # "nodeId:port"
    target: str   # "nodeId:port"

    @property
    def source_node(self) -> str:
        return split_endpoint(self.source)[0]

    @property
    def source_port(self) -> str:
        return split_endpoint(self.source)[1]

    @property
    def target_node(self) -> str:
        return split_endpoint(self.target)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "from": self.source, "to": self.target}


class Graph:
    """
    A loaded script graph.

    Nodes keep document order; that order is the evaluation order of
    Event nodes within a tick.

    Args:
        graph_id: Graph identifier (unique within a GraphStore)
        name: Display name
        nodes: Nodes (ids must be unique)
        edges: Edges; when several share a source port the first one wins
        variables: Initial variables merged into interpreter state on load
    """

    def __init__(
        self,
        graph_id: str,
        name: str = "",
        nodes: Optional[Iterable[Node]] = None,
        edges: Optional[Iterable[Edge]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ):
        self.id = graph_id
        self.name = name or graph_id
        self.nodes: List[Node] = list(nodes or [])
        self.edges: List[Edge] = list(edges or [])
        self.variables: Dict[str, Any] = dict(variables or {})

        self._nodes_by_id: Dict[str, Node] = {}
        for node in self.nodes:
            if node.id in self._nodes_by_id:
                raise GraphLoadError(
                    f"Graph {graph_id}: duplicate node id {node.id!r}", graph_id
                )
            self._nodes_by_id[node.id] = node

        # (node_id, port) -> first edge leaving that port
        self._port_index: Dict[Tuple[str, str], Edge] = {}
        self._shadowed: List[Edge] = []
        for edge in self.edges:
            key = split_endpoint(edge.source)
            if key in self._port_index:
                self._shadowed.append(edge)
                continue
            self._port_index[key] = edge

        if self._shadowed:
            log.debug(
                "Graph %s: %d edge(s) share a source port with an earlier edge and are ignored",
                graph_id, len(self._shadowed),
            )

    def __repr__(self) -> str:
        return f"Graph(id={self.id!r}, nodes={len(self.nodes)}, edges={len(self.edges)})"

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get node by id, or None if no such node."""
        return self._nodes_by_id.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes_by_id

    def edge_from(self, node_id: str, port: str) -> Optional[Edge]:
        """The edge leaving node_id on port (first match), or None."""
        return self._port_index.get((node_id, port))

    def event_nodes(self) -> Iterator[Node]:
        """Event nodes in document order."""
        return (n for n in self.nodes if n.category == NodeCategory.EVENT)

    def nodes_of_kind(self, category: NodeCategory, kind: str) -> List[Node]:
        return [n for n in self.nodes if n.category == category and n.kind == kind]

    @property
    def shadowed_edges(self) -> List[Edge]:
        """Edges never followed because an earlier edge owns their source port."""
        return list(self._shadowed)

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the document shape."""
        return {
            "id": self.id,
            "name": self.name,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "variables": dict(self.variables),
        }


def _parse_category(value: Any, node_id: str, graph_id: str) -> NodeCategory:
    """Parse a node 'type' string (case-insensitive)."""
    if isinstance(value, NodeCategory):
        return value
    if isinstance(value, str):
        for category in NodeCategory:
            if category.value.lower() == value.lower():
                return category
    raise GraphLoadError(
        f"Graph {graph_id}: node {node_id!r} has invalid type {value!r} "
        f"(expected Event, Condition or Action)",
        graph_id,
    )


def _parse_node(data: Dict[str, Any], graph_id: str) -> Node:
    """Parse a single node from its document dict."""
    if not isinstance(data, dict):
        raise GraphLoadError(f"Graph {graph_id}: node entry must be a mapping, got {data!r}", graph_id)

    node_id = data.get('id')
    if node_id is None or node_id == "":
        raise GraphLoadError(f"Graph {graph_id}: node without id: {data!r}", graph_id)
    node_id = str(node_id)

    kind = data.get('kind')
    if not kind:
        raise GraphLoadError(f"Graph {graph_id}: node {node_id!r} has no kind", graph_id)

    props = data.get('props') or {}
    if not isinstance(props, dict):
        raise GraphLoadError(f"Graph {graph_id}: node {node_id!r} props must be a mapping", graph_id)

    return Node(
        id=node_id,
        category=_parse_category(data.get('type'), node_id, graph_id),
        kind=str(kind),
        props=dict(props),
        x=float(data.get('x') or 0.0),
        y=float(data.get('y') or 0.0),
    )


def _parse_edge(data: Dict[str, Any], index: int, graph_id: str) -> Edge:
    """Parse a single edge. Endpoints are not checked against the nodes."""
    if not isinstance(data, dict):
        raise GraphLoadError(f"Graph {graph_id}: edge entry must be a mapping, got {data!r}", graph_id)

    source = data.get('from')
    target = data.get('to')
    if not source or not target:
        raise GraphLoadError(f"Graph {graph_id}: edge {data!r} needs 'from' and 'to'", graph_id)

    return Edge(
        id=str(data.get('id') or f"edge_{index}"),
        source=str(source),
        target=str(target),
    )


def parse_graph(data: Union[Dict[str, Any], Graph]) -> Graph:
    """
    Build a Graph from a document dict.

    Passing a Graph returns it unchanged.

    Raises:
        GraphLoadError: Missing id, bad node type, duplicate node ids
    """
    if isinstance(data, Graph):
        return data
    if not isinstance(data, dict):
        raise GraphLoadError(f"Graph document must be a mapping, got {type(data).__name__}")

    graph_id = data.get('id')
    if graph_id is None or graph_id == "":
        raise GraphLoadError("Graph document has no id")
    graph_id = str(graph_id)

    variables = data.get('variables') or {}
    if not isinstance(variables, dict):
        raise GraphLoadError(f"Graph {graph_id}: variables must be a mapping", graph_id)

    nodes = [_parse_node(n, graph_id) for n in data.get('nodes') or []]
    edges = [_parse_edge(e, i, graph_id) for i, e in enumerate(data.get('edges') or [])]

    return Graph(
        graph_id=graph_id,
        name=str(data.get('name') or graph_id),
        nodes=nodes,
        edges=edges,
        variables=variables,
    )


def load_graph_file(path: Union[str, Path]) -> List[Graph]:
    """
    Load graphs from a YAML or JSON file.

    The file may hold a single graph document, a list of them, or a
    mapping with a 'graphs' list.
    """
    data = yaml_load(path)
    if isinstance(data, dict) and 'graphs' in data:
        data = data['graphs']
    if isinstance(data, list):
        return [parse_graph(item) for item in data]
    return [parse_graph(data)]


def load_graph_directory(directory: Union[str, Path]) -> List[Graph]:
    """Load every graph file in a directory, sorted by file name."""
    directory = Path(directory)
    graphs: List[Graph] = []
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() in YAML_SUFFIXES + JSON_SUFFIXES:
            graphs.extend(load_graph_file(path))
    log.debug("Loaded %d graph(s) from %s", len(graphs), directory)
    return graphs


class GraphStore:
    """
    Loaded graphs keyed by id, in load order.

    Loading a graph whose id is already present replaces it in place.
    """

    def __init__(self):
        self._graphs: Dict[str, Graph] = {}

    def add(self, graph: Graph) -> Optional[Graph]:
        """Store a graph; returns the graph it replaced, if any."""
        previous = self._graphs.get(graph.id)
        self._graphs[graph.id] = graph
        return previous

    def remove(self, graph_id: str) -> Optional[Graph]:
        return self._graphs.pop(graph_id, None)

    def get(self, graph_id: str) -> Optional[Graph]:
        return self._graphs.get(graph_id)

    def __iter__(self) -> Iterator[Graph]:
        # Snapshot so handlers may load/unload graphs mid-tick
        return iter(list(self._graphs.values()))

    def __len__(self) -> int:
        return len(self._graphs)

    def __contains__(self, graph_id: object) -> bool:
        return graph_id in self._graphs

    def ids(self) -> List[str]:
        return list(self._graphs)
