"""
Script Interpreter - tick driver and public API of the scripting core.

The interpreter:
1. Loads graphs (merging their initial variables into shared state)
2. Advances its clock by the tick's delta time
3. Resumes chains suspended on clock waits that are now due
4. Evaluates every not-yet-completed Event node, graphs then nodes in
   declaration order, and runs the chain of each one that triggers
5. Retires expired timers

Each chain runs as an asyncio task on the interpreter's private event
loop. A chain is pumped as soon as it is created, so a chain whose
handlers never suspend finishes before the next Event node is evaluated
and its state changes are visible to everything evaluated after it in the
same tick. Chains suspended inside an async action are resumed by later
ticks and never block other chains.

Usage:
    interpreter = ScriptInterpreter(engine=my_engine)
    interpreter.load_all(load_graph_file('level1.yaml'))
    interpreter.start()

    # In game loop:
    interpreter.tick(dt_ms)

    # Save / load:
    blob = interpreter.export_state()
    interpreter.import_state(blob)
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from retro.logging import emit_record, get_logger

from .config import InterpreterConfig
from .entity import ScriptEntity
from .executor import ChainResult, NodeExecutor
from .facade import FacadeAdapter
from .graph import Graph, GraphStore, Node, NodeCategory, parse_graph
from .handlers import register_builtin_handlers
from .registry import ActionHandler, ConditionHandler, HandlerRegistry, ScriptContext
from .state import InterpreterState, Position, StateSnapshot
from .timers import WaitScheduler
from .triggers import TriggerEvaluator, TriggerPredicate

log = get_logger('scripting')


def completion_key(graph_id: str, node_id: str) -> str:
    """Key recorded in completed_events for an Event node."""
    return f"{graph_id}:{node_id}"


class ScriptInterpreter:
    """
    Runs loaded script graphs once per tick against shared state.

    Args:
        engine: Host engine object (any subset of EngineFacade), or a
            FacadeAdapter
        config: Interpreter settings (default: InterpreterConfig())
        registry: Handler registry (default: built-in handlers)
        triggers: Event trigger table (default: built-in triggers)
    """

    def __init__(
        self,
        engine: Any = None,
        config: Optional[InterpreterConfig] = None,
        registry: Optional[HandlerRegistry] = None,
        triggers: Optional[TriggerEvaluator] = None,
    ):
        self.config = config or InterpreterConfig()
        self.facade = engine if isinstance(engine, FacadeAdapter) else FacadeAdapter(engine)
        if self.facade.engine is not None:
            missing = self.facade.missing_methods()
            if missing:
                log.debug("Engine lacks %s; those nodes fall back to defaults", ", ".join(missing))
        self.state = InterpreterState(start_time_ms=self.config.start_time_ms)
        self.registry = registry if registry is not None else register_builtin_handlers()
        self.triggers = triggers if triggers is not None else TriggerEvaluator()
        self.executor = NodeExecutor(self.registry)
        self.graphs = GraphStore()

        # Entities bound to graphs (graph id -> entity)
        self._entities: Dict[str, ScriptEntity] = {}

        # Payloads delivered by trigger_event(), consumed when the chain starts
        self._event_data: Dict[str, Dict[str, Any]] = {}

        self._loop = asyncio.new_event_loop()
        self.waits = WaitScheduler(self._loop, lambda: self.state.current_time)
        self._tasks: Set[asyncio.Task] = set()
        self._finished: List[ChainResult] = []

        self._running = False
        self._closed = False
        self._delta_time = 0.0

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, graph: Union[Graph, Dict[str, Any]], entity: Optional[ScriptEntity] = None) -> Graph:
        """
        Install a graph (a Graph or a graph document dict).

        The graph's initial variables are merged into the shared state.
        Loading a graph with an id that is already loaded replaces it.

        Raises:
            GraphLoadError: The document cannot be parsed
        """
        graph = parse_graph(graph)

        if self.config.validate_on_load:
            from .validation import validate_graph
            for issue in validate_graph(graph, self.registry, self.triggers):
                log.warning("%s", issue)

        previous = self.graphs.add(graph)
        if previous is not None:
            log.info("Replaced graph %s", graph.id)
            self._entities.pop(graph.id, None)

        self.state.merge_variables(graph.variables)
        if entity is not None:
            self.bind_entity(graph.id, entity)

        log.debug("Loaded graph %s (%d nodes, %d edges)", graph.id, len(graph.nodes), len(graph.edges))
        return graph

    def load_all(self, graphs: Iterable[Union[Graph, Dict[str, Any]]]) -> List[Graph]:
        """Install several graphs in order."""
        return [self.load(g) for g in graphs]

    def unload(self, graph_id: str) -> Optional[Graph]:
        """Remove a graph. Its chains already in flight keep running."""
        self._entities.pop(graph_id, None)
        return self.graphs.remove(graph_id)

    def get_graph(self, graph_id: str) -> Optional[Graph]:
        return self.graphs.get(graph_id)

    def bind_entity(self, graph_id: str, entity: Optional[ScriptEntity]) -> None:
        """Attach (or with None, detach) the entity a graph's handlers act on."""
        if entity is None:
            self._entities.pop(graph_id, None)
            return
        self._entities[graph_id] = entity
        self.state.set_entity_position(entity.id, entity.x, entity.y)

    def get_entity(self, graph_id: str) -> Optional[ScriptEntity]:
        return self._entities.get(graph_id)

    # =========================================================================
    # Handlers
    # =========================================================================

    def register_action(self, kind: str, handler: ActionHandler) -> None:
        self.registry.register_action(kind, handler)

    def register_condition(self, kind: str, handler: ConditionHandler) -> None:
        self.registry.register_condition(kind, handler)

    def register_trigger(self, kind: str, predicate: TriggerPredicate) -> None:
        self.triggers.register(kind, predicate)

    # =========================================================================
    # Run control
    # =========================================================================

    def start(self) -> None:
        """Start accepting ticks. Calling it again is harmless."""
        if self._closed:
            log.warning("start() on a closed interpreter ignored")
            return
        if not self._running:
            self._running = True
            log.info("Interpreter started with %d graph(s)", len(self.graphs))

    def stop(self) -> None:
        """
        Stop accepting ticks. Calling it again is harmless.

        Chains suspended in async actions are not cancelled; they simply
        stop being resumed until the interpreter is started again.
        """
        if self._running:
            self._running = False
            log.info("Interpreter stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_time(self) -> float:
        """Interpreter clock in milliseconds."""
        return self.state.current_time

    @property
    def in_flight(self) -> int:
        """Chains currently suspended in an async action."""
        return sum(1 for t in self._tasks if not t.done())

    def close(self) -> None:
        """Stop, cancel in-flight chains and release the event loop."""
        if self._closed:
            return
        self.stop()
        self._cancel_chains()
        self._loop.close()
        self._closed = True

    def __enter__(self) -> "ScriptInterpreter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Tick driver
    # =========================================================================

    def tick(self, delta_ms: float) -> List[ChainResult]:
        """
        Advance the interpreter by delta_ms.

        Never raises: failures are logged and the tick is abandoned.

        Returns:
            Chains that finished during this tick (including chains resumed
            from earlier ticks)
        """
        if not self._running:
            return []

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            log.error("tick() called from inside a running event loop; skipped")
            return []

        try:
            return self._tick(float(delta_ms))
        except Exception as e:
            log.exception("Tick failed: %s", e)
            return self._drain_finished()

    def _tick(self, delta_ms: float) -> List[ChainResult]:
        self._delta_time = delta_ms
        self.state.current_time += delta_ms

        self._sync_entity_positions()

        # Resume chains whose waits are now due, and any chain suspended on
        # a host awaitable that may have settled since the last tick
        self.waits.advance()
        if any(not t.done() for t in self._tasks):
            self._pump()

        for graph in self.graphs:
            for node in graph.event_nodes():
                self._evaluate_event(graph, node)

        expired = self.state.retire_expired_timers()
        if expired:
            log.debug("Timers expired: %s", ', '.join(expired))

        return self._drain_finished()

    def _evaluate_event(self, graph: Graph, node: Node) -> None:
        key = completion_key(graph.id, node.id)
        if self.state.is_completed(key):
            return

        ctx = self._make_context(graph)
        if not self.triggers.evaluate(ctx, node):
            return

        self.state.mark_completed(key)
        ctx.data = self._event_data.pop(key, {})
        log.debug("Event %s/%s (%s) fired", graph.id, node.id, node.kind)

        task = self._loop.create_task(self.executor.execute_event_chain(ctx, graph, node))
        self._tasks.add(task)
        self._pump()

    def _make_context(self, graph: Graph) -> ScriptContext:
        return ScriptContext(
            state=self.state,
            facade=self.facade,
            graph=graph,
            entity=self._entities.get(graph.id),
            waits=self.waits,
            delta_time=self._delta_time,
        )

    def _sync_entity_positions(self) -> None:
        for entity in self._entities.values():
            self.state.set_entity_position(entity.id, entity.x, entity.y)

    def _pump(self) -> None:
        """Run the event loop until ready chains have settled."""
        for _ in range(self.config.max_pump_iterations):
            self._loop.run_until_complete(asyncio.sleep(0))
        self._harvest()

    def _harvest(self) -> None:
        """Move finished chain tasks into the finished list."""
        for task in [t for t in self._tasks if t.done()]:
            self._tasks.discard(task)
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                log.error("Chain task failed outside a handler: %r", error)
                continue
            result: ChainResult = task.result()
            self._finished.append(result)
            if self.config.emit_chain_records:
                emit_record('scripting', {**result.to_record(), "time": self.state.current_time})

    def _drain_finished(self) -> List[ChainResult]:
        finished, self._finished = self._finished, []
        return finished

    def _cancel_chains(self) -> int:
        running = self._loop.is_running()
        current = asyncio.current_task(self._loop) if running else None
        pending = [t for t in self._tasks if not t.done() and t is not current]
        for task in pending:
            task.cancel()
        self.waits.cancel_all()
        self._finished.clear()
        # From inside a chain the loop is busy; the next pump harvests the cancelled tasks
        if not running:
            if pending and not self._loop.is_closed():
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._tasks.clear()
        if pending:
            log.debug("Cancelled %d in-flight chain(s)", len(pending))
        return len(pending)

    # =========================================================================
    # Events, variables, flags, positions, timers
    # =========================================================================

    def trigger_event(self, kind: str, data: Optional[Dict[str, Any]] = None) -> int:
        """
        Re-arm every Event node of a kind across all graphs.

        Completion is cleared so the nodes fire again the next time their
        trigger holds. A dict payload is merged into the variables and
        handed to the re-armed chains as ScriptContext.data.

        Returns:
            Number of Event nodes re-armed
        """
        if isinstance(data, dict):
            self.state.merge_variables(data)

        keys = []
        for graph in self.graphs:
            for node in graph.nodes_of_kind(NodeCategory.EVENT, kind):
                key = completion_key(graph.id, node.id)
                keys.append(key)
                if isinstance(data, dict):
                    self._event_data[key] = dict(data)

        cleared = self.state.clear_completed(keys)
        log.debug("trigger_event(%s): %d node(s), %d re-armed", kind, len(keys), cleared)
        return cleared

    def set_variable(self, name: str, value: Any) -> None:
        self.state.set_variable(name, value)

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self.state.get_variable(name, default)

    def set_flag(self, flag_id: str, value: bool = True) -> None:
        self.state.set_flag(flag_id, value)

    def has_flag(self, flag_id: str) -> bool:
        return self.state.has_flag(flag_id)

    def set_entity_position(self, entity_id: str, x: float, y: float) -> None:
        self.state.set_entity_position(entity_id, x, y)

    def get_entity_position(self, entity_id: str) -> Optional[Position]:
        return self.state.get_entity_position(entity_id)

    def set_timer(self, timer_id: str, duration_ms: float) -> None:
        self.state.set_timer(timer_id, duration_ms)

    def is_timer_active(self, timer_id: str) -> bool:
        return self.state.is_timer_active(timer_id)

    # =========================================================================
    # Reset and snapshots
    # =========================================================================

    def reset(self) -> None:
        """
        Clear variables, flags, timers, completed events and positions.

        In-flight chains are cancelled; graphs stay loaded. The clock keeps
        running from its current value. Called from inside a chain (a
        game-over handler, say), that chain runs to completion against the
        fresh state and still reports its result.
        """
        self.state.reset()
        self._event_data.clear()
        self._cancel_chains()
        log.info("Interpreter state reset")

    def _qualify_completed(self, ids: List[str]) -> List[str]:
        """Expand bare Event-node ids into completion keys of every loaded graph that has one."""
        keys = []
        for node_id in ids:
            if ':' in node_id:
                keys.append(node_id)
                continue
            matches = [
                completion_key(graph.id, node.id)
                for graph in self.graphs
                for node in graph.event_nodes()
                if node.id == node_id
            ]
            if not matches:
                log.warning("Snapshot event %s matches no loaded graph; kept as is", node_id)
            keys.extend(matches or [node_id])
        return keys

    def get_state(self) -> InterpreterState:
        return self.state

    def export_state(self) -> str:
        """Serialize the state to the save-format JSON string."""
        return self.state.export_json()

    def import_state(self, snapshot: Union[str, bytes, Dict[str, Any], StateSnapshot]) -> bool:
        """
        Replace the state with a snapshot.

        A malformed snapshot is logged and ignored; the current state is
        kept untouched.

        Returns:
            True if the snapshot was applied
        """
        try:
            parsed = InterpreterState.parse_snapshot(snapshot)
        except (ValidationError, ValueError, TypeError) as e:
            log.error("Rejected state snapshot: %s", e)
            return False

        parsed = parsed.model_copy(update={"completed_events": self._qualify_completed(parsed.completed_events)})
        self.state.restore(parsed)
        log.info("Imported state (%d variables, %d flags, %d timers)",
                 len(parsed.variables), len(parsed.flags), len(parsed.active_timers))
        return True
