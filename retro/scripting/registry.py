"""
Handler registry - maps (category, kind) to executable behavior.

Action handlers perform effects and may be asynchronous. Condition
handlers are synchronous boolean predicates. Both receive the same
ScriptContext and the Node being visited.

Registering a pair that already exists replaces the old handler; this is
how built-ins are overridden.

Usage:
    registry = HandlerRegistry()

    @registry.action("openGate")
    def open_gate(ctx, node):
        ctx.facade.open_gate(node.prop("gateId"))

    @registry.condition("HasFlag")
    def has_flag(ctx, node):
        return ctx.state.has_flag(node.prop("flagId"))
"""

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union,
)

from retro.logging import get_logger

from .graph import Graph, Node, NodeCategory

if TYPE_CHECKING:
    from .entity import ScriptEntity
    from .facade import FacadeAdapter
    from .state import InterpreterState
    from .timers import WaitScheduler

log = get_logger('registry')


@dataclass
class ScriptContext:
    """
    Everything a handler may touch while a chain runs.

    Attributes:
        state: Shared interpreter state (by reference)
        facade: Host engine surface
        graph: Graph the chain belongs to
        entity: Entity bound to the graph, if any
        waits: Scheduler for actions that wait on the interpreter clock
        delta_time: Milliseconds advanced by the tick that started the chain
        data: Payload of the trigger_event() that re-armed the chain, if any
    """
    state: "InterpreterState"
    facade: "FacadeAdapter"
    graph: Graph
    entity: Optional["ScriptEntity"] = None
    waits: Optional["WaitScheduler"] = None
    delta_time: float = 0.0
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def current_time(self) -> float:
        """Interpreter clock (ms). Read live, so it advances across awaits."""
        return self.state.current_time


class ActionHandler(Protocol):
    """Protocol for action handlers."""

    def __call__(self, ctx: ScriptContext, node: Node) -> Union[None, Awaitable[None]]:
        ...


class ConditionHandler(Protocol):
    """Protocol for condition handlers."""

    def __call__(self, ctx: ScriptContext, node: Node) -> bool:
        ...


Handler = Callable[[ScriptContext, Node], Any]
HandlerKey = Tuple[NodeCategory, str]


def _as_category(category: Union[NodeCategory, str]) -> NodeCategory:
    if isinstance(category, NodeCategory):
        return category
    for member in NodeCategory:
        if member.value.lower() == str(category).lower():
            return member
    raise ValueError(f"Unknown node category: {category!r}")


class HandlerRegistry:
    """
    Lookup table of node handlers keyed by (category, kind).

    Event nodes are not dispatched through the registry; their trigger
    predicates live in TriggerEvaluator.
    """

    def __init__(self):
        self._handlers: Dict[HandlerKey, Handler] = {}

    def register(
        self,
        category: Union[NodeCategory, str],
        kind: str,
        handler: Handler,
    ) -> None:
        """Register a handler. The last registration for a pair wins."""
        key = (_as_category(category), kind)
        if key in self._handlers:
            log.debug("Overriding %s handler %r", key[0].value, kind)
        self._handlers[key] = handler

    def register_action(self, kind: str, handler: ActionHandler) -> None:
        self.register(NodeCategory.ACTION, kind, handler)

    def register_condition(self, kind: str, handler: ConditionHandler) -> None:
        self.register(NodeCategory.CONDITION, kind, handler)

    def action(self, kind: str) -> Callable[[Handler], Handler]:
        """Decorator form of register_action()."""
        def decorator(fn: Handler) -> Handler:
            self.register_action(kind, fn)
            return fn
        return decorator

    def condition(self, kind: str) -> Callable[[Handler], Handler]:
        """Decorator form of register_condition()."""
        def decorator(fn: Handler) -> Handler:
            self.register_condition(kind, fn)
            return fn
        return decorator

    def unregister(self, category: Union[NodeCategory, str], kind: str) -> Optional[Handler]:
        return self._handlers.pop((_as_category(category), kind), None)

    def lookup(self, category: Union[NodeCategory, str], kind: str) -> Optional[Handler]:
        """
        Find the handler for a pair.

        Returns:
            The handler, or None when nothing is registered (logged once)
        """
        key = (_as_category(category), kind)
        handler = self._handlers.get(key)
        if handler is None:
            log.warning_once(key, "No %s handler registered for kind %r", key[0].value, kind)
        return handler

    def has(self, category: Union[NodeCategory, str], kind: str) -> bool:
        return (_as_category(category), kind) in self._handlers

    def kinds(self, category: Union[NodeCategory, str]) -> List[str]:
        """Registered kinds for a category, sorted."""
        cat = _as_category(category)
        return sorted(kind for (c, kind) in self._handlers if c == cat)

    def __len__(self) -> int:
        return len(self._handlers)
