"""
Node executor - walks a chain from a triggered Event node.

Traversal rules:
- Event nodes pass through on their "flow" port.
- Action nodes run their handler (awaiting it if it returns an awaitable)
  and continue on "flow".
- Condition nodes evaluate synchronously and continue on "flow_true" or
  "flow_false". A missing condition handler counts as false.
- Each port has at most one successor (the first matching edge), so a
  chain is a single path; it ends when a port has no edge, an edge points
  at a missing node, a node is visited twice, or a handler is missing or
  raises.

Handler failures are contained here: they are logged with the node id and
end the chain without affecting any other chain.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from retro.logging import get_logger

from .graph import FLOW, FLOW_FALSE, FLOW_TRUE, Graph, Node, NodeCategory
from .registry import HandlerRegistry, ScriptContext

log = get_logger('executor')


class ChainOutcome(Enum):
    """Why a chain stopped."""
    COMPLETED = "completed"              # Ran out of edges
    CYCLE = "cycle"                      # Revisited a node
    MISSING_HANDLER = "missing_handler"  # Action with no handler
    ERROR = "error"                      # Handler raised
    CANCELLED = "cancelled"              # Task cancelled while suspended


@dataclass
class ChainResult:
    """Record of one chain invocation."""
    graph_id: str
    event_id: str
    visited: List[str] = field(default_factory=list)
    outcome: ChainOutcome = ChainOutcome.COMPLETED
    failed_node: Optional[str] = None
    error: Optional[str] = None

    def to_record(self) -> dict:
        """Structured-log form."""
        return {
            "type": "chain",
            "graph": self.graph_id,
            "event": self.event_id,
            "visited": list(self.visited),
            "outcome": self.outcome.value,
            "failed_node": self.failed_node,
            "error": self.error,
        }


class NodeExecutor:
    """
    Executes chains against a handler registry.

    Args:
        registry: Source of Action and Condition handlers
    """

    def __init__(self, registry: HandlerRegistry):
        self.registry = registry

    def find_next_node(self, graph: Graph, node: Node, port: str) -> Optional[Node]:
        """
        Resolve the successor of node on port.

        Returns None when the port has no edge or the edge points at a node
        that does not exist (dangling references end the branch quietly).
        """
        edge = graph.edge_from(node.id, port)
        if edge is None:
            return None
        target = graph.get_node(edge.target_node)
        if target is None:
            log.debug("Graph %s: edge %s points at missing node %r", graph.id, edge.id, edge.target_node)
        return target

    async def execute_event_chain(self, ctx: ScriptContext, graph: Graph, event_node: Node) -> ChainResult:
        """
        Run the chain starting at event_node.

        The caller is responsible for marking the Event completed before
        scheduling this coroutine.
        """
        result = ChainResult(graph_id=graph.id, event_id=event_node.id)
        visited = set()
        node: Optional[Node] = event_node

        try:
            while node is not None:
                if node.id in visited:
                    log.debug("Graph %s: chain from %s revisits %s; stopping", graph.id, event_node.id, node.id)
                    result.outcome = ChainOutcome.CYCLE
                    break
                visited.add(node.id)
                result.visited.append(node.id)
                log.node(graph.id, node.id, node.kind)

                port = await self._visit(ctx, graph, node, result)
                if port is None:
                    break
                node = self.find_next_node(graph, node, port)
        except asyncio.CancelledError:
            result.outcome = ChainOutcome.CANCELLED
            raise

        return result

    async def _visit(self, ctx: ScriptContext, graph: Graph, node: Node, result: ChainResult) -> Optional[str]:
        """Dispatch one node. Returns the port to continue on, or None to stop."""
        if node.category == NodeCategory.EVENT:
            return FLOW

        if node.category == NodeCategory.ACTION:
            return await self._run_action(ctx, graph, node, result)

        return self._run_condition(ctx, graph, node, result)

    async def _run_action(self, ctx: ScriptContext, graph: Graph, node: Node, result: ChainResult) -> Optional[str]:
        handler = self.registry.lookup(NodeCategory.ACTION, node.kind)
        if handler is None:
            result.outcome = ChainOutcome.MISSING_HANDLER
            result.failed_node = node.id
            return None

        try:
            outcome = handler(ctx, node)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(graph, node, result, e)
            return None

        return FLOW

    def _run_condition(self, ctx: ScriptContext, graph: Graph, node: Node, result: ChainResult) -> Optional[str]:
        handler = self.registry.lookup(NodeCategory.CONDITION, node.kind)
        if handler is None:
            # Fail closed
            return FLOW_FALSE

        try:
            value = handler(ctx, node)
            if inspect.isawaitable(value):
                if inspect.iscoroutine(value):
                    value.close()
                raise TypeError(f"condition handler {node.kind!r} returned an awaitable")
        except Exception as e:
            self._fail(graph, node, result, e)
            return None

        log.node(graph.id, node.id, node.kind, f"-> {bool(value)}")
        return FLOW_TRUE if value else FLOW_FALSE

    def _fail(self, graph: Graph, node: Node, result: ChainResult, error: Exception) -> None:
        log.error("Graph %s: %s node %s (%s) raised %s: %s",
                  graph.id, node.category.value, node.id, node.kind, type(error).__name__, error)
        log.exception("Handler traceback")
        result.outcome = ChainOutcome.ERROR
        result.failed_node = node.id
        result.error = f"{type(error).__name__}: {error}"
