"""
Authoring-time lint for script graphs.

The interpreter never requires validation: dangling edges resolve to "no
successor" and cycles are cut by the visited-set guard at run time. This
module reports those situations (and a few more) so authors can fix them
before they turn into silently truncated chains.

Usage:
    issues = validate_graph(document_or_graph, registry, triggers)
    for issue in issues:
        print(issue)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from retro.yaml import iter_errors, load_schema, validate

from .graph import (
    BRANCH_PORTS, FLOW, FLOW_FALSE, FLOW_TRUE, Graph, GraphLoadError, NodeCategory, parse_graph,
)
from .handlers import register_builtin_handlers
from .registry import HandlerRegistry
from .triggers import TriggerEvaluator

SCHEMA_PATH = Path(__file__).parent / 'schemas' / 'graph.schema.json'

ERROR = "error"
WARNING = "warning"
INFO = "info"

_schema: Optional[Dict[str, Any]] = None


def _get_schema() -> Dict[str, Any]:
    """Lazy-load the graph schema."""
    global _schema
    if _schema is None:
        _schema = load_schema(SCHEMA_PATH)
    return _schema


@dataclass(frozen=True)
class ValidationIssue:
    """One finding about a graph."""
    level: str        # error, warning, info
    graph_id: str
    subject: str      # node id, edge id, or "" for the whole graph
    message: str

    def __str__(self) -> str:
        where = f"{self.graph_id}/{self.subject}" if self.subject else self.graph_id
        return f"{self.level.upper()} {where}: {self.message}"


def validate_document(data: Any) -> List[ValidationIssue]:
    """Check a graph document against the JSON schema."""
    graph_id = str(data.get('id', '?')) if isinstance(data, dict) else '?'
    return [ValidationIssue(ERROR, graph_id, "", msg) for msg in iter_errors(data, _get_schema())]


def check_document(data: Any, source_path: Optional[Union[str, Path]] = None) -> None:
    """
    Strict schema check for a graph document.

    Raises:
        SchemaValidationError: If the document does not match the schema
            (logged instead when RETRO_SKIP_SCHEMA_VALIDATION=1)
    """
    validate(data, _get_schema(), source_path=source_path)


def validate_graph(
    graph: Union[Graph, Dict[str, Any]],
    registry: Optional[HandlerRegistry] = None,
    triggers: Optional[TriggerEvaluator] = None,
) -> List[ValidationIssue]:
    """
    Lint a graph (or graph document).

    Checks, in order: document schema (documents only), node kinds known to
    the registry/trigger table, edge endpoints, ports that do not suit the
    source node, edges shadowed by an earlier edge on the same port, cycles
    reachable from an Event, nodes no Event can reach.

    Never raises; a document that cannot be parsed yields an error issue.
    """
    issues: List[ValidationIssue] = []

    if not isinstance(graph, Graph):
        issues.extend(validate_document(graph))
        try:
            graph = parse_graph(graph)
        except GraphLoadError as e:
            issues.append(ValidationIssue(ERROR, e.graph_id or '?', "", str(e)))
            return issues

    registry = registry if registry is not None else register_builtin_handlers()
    triggers = triggers if triggers is not None else TriggerEvaluator()

    issues.extend(_check_kinds(graph, registry, triggers))
    issues.extend(_check_edges(graph))
    issues.extend(_check_cycles(graph))
    issues.extend(_check_reachability(graph))
    return issues


def _check_kinds(graph: Graph, registry: HandlerRegistry, triggers: TriggerEvaluator) -> List[ValidationIssue]:
    issues = []
    for node in graph.nodes:
        if node.category == NodeCategory.EVENT:
            known = triggers.has(node.kind)
        else:
            known = registry.has(node.category, node.kind)
        if not known:
            issues.append(ValidationIssue(
                ERROR, graph.id, node.id,
                f"unknown {node.category.value} kind {node.kind!r}",
            ))
    return issues


def _check_edges(graph: Graph) -> List[ValidationIssue]:
    issues = []
    for edge in graph.edges:
        if not graph.has_node(edge.source_node):
            issues.append(ValidationIssue(ERROR, graph.id, edge.id, f"from node {edge.source_node!r} does not exist"))
            continue
        if not graph.has_node(edge.target_node):
            issues.append(ValidationIssue(ERROR, graph.id, edge.id, f"to node {edge.target_node!r} does not exist"))

        source = graph.get_node(edge.source_node)
        port = edge.source_port
        if source.category == NodeCategory.CONDITION and port not in BRANCH_PORTS:
            issues.append(ValidationIssue(
                WARNING, graph.id, edge.id,
                f"condition {source.id} leaves on port {port!r}; only {FLOW_TRUE}/{FLOW_FALSE} are followed",
            ))
        elif source.category != NodeCategory.CONDITION and port != FLOW:
            issues.append(ValidationIssue(
                WARNING, graph.id, edge.id,
                f"{source.category.value.lower()} {source.id} leaves on port {port!r}; only {FLOW} is followed",
            ))

    for edge in graph.shadowed_edges:
        issues.append(ValidationIssue(
            WARNING, graph.id, edge.id,
            f"port {edge.source} already has an edge; this one is never followed",
        ))
    return issues


def _successors(graph: Graph, node_id: str) -> List[str]:
    """Node ids reachable in one step, following only ports the executor follows."""
    node = graph.get_node(node_id)
    if node is None:
        return []
    ports = BRANCH_PORTS if node.category == NodeCategory.CONDITION else (FLOW,)
    result = []
    for port in ports:
        edge = graph.edge_from(node_id, port)
        if edge is not None and graph.has_node(edge.target_node):
            result.append(edge.target_node)
    return result


def _check_cycles(graph: Graph) -> List[ValidationIssue]:
    issues = []
    # Nodes whose successors are fully explored, shared across events
    finished: Set[str] = set()
    reported: Set[str] = set()

    for event in graph.event_nodes():
        if event.id in finished:
            continue
        on_path: Set[str] = {event.id}
        stack = [(event.id, iter(_successors(graph, event.id)))]

        while stack:
            node_id, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                on_path.discard(node_id)
                finished.add(node_id)
                continue
            if child in on_path:
                if child not in reported:
                    reported.add(child)
                    issues.append(ValidationIssue(
                        WARNING, graph.id, child,
                        f"cycle reachable from event {event.id}; the chain stops when it returns here",
                    ))
                continue
            if child in finished:
                continue
            stack.append((child, iter(_successors(graph, child))))
            on_path.add(child)
    return issues


def _check_reachability(graph: Graph) -> List[ValidationIssue]:
    reachable: Set[str] = set()
    frontier = [n.id for n in graph.event_nodes()]
    while frontier:
        node_id = frontier.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        frontier.extend(_successors(graph, node_id))

    return [
        ValidationIssue(INFO, graph.id, node.id, "not reachable from any event")
        for node in graph.nodes
        if node.id not in reachable
    ]
