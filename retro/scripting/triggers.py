"""
Event trigger predicates.

Every tick the interpreter asks, for each Event node that has not yet
completed, whether its trigger holds right now. Predicates are evaluated
fresh each time; they keep no memory of their own (the completed-events
set is what makes an Event fire once).
"""

from typing import Callable, Dict, List

from retro.logging import get_logger

from .graph import Node
from .registry import ScriptContext

log = get_logger('triggers')

TriggerPredicate = Callable[[ScriptContext, Node], bool]


def on_start(ctx: ScriptContext, node: Node) -> bool:
    return True


def on_enter_room(ctx: ScriptContext, node: Node) -> bool:
    return ctx.facade.is_player_in_room(node.prop("roomId"))


def on_plate(ctx: ScriptContext, node: Node) -> bool:
    return ctx.facade.is_pressure_plate_active(node.prop("plateId"))


def on_timer(ctx: ScriptContext, node: Node) -> bool:
    """Timer exists and the clock has reached its expiry."""
    return ctx.state.is_timer_expired(node.prop("timerId"))


def on_enemy_defeated(ctx: ScriptContext, node: Node) -> bool:
    return ctx.facade.is_enemy_defeated(node.prop("enemyId"))


def on_cutscene_end(ctx: ScriptContext, node: Node) -> bool:
    return ctx.facade.is_cutscene_ended(node.prop("cutsceneId"))


def on_noclip_exit(ctx: ScriptContext, node: Node) -> bool:
    return ctx.facade.is_noclip_exited()


def on_collision(ctx: ScriptContext, node: Node) -> bool:
    """The bound entity's collision tags include targetTag."""
    if ctx.entity is None:
        return False
    tag = node.prop("targetTag", node.prop("tag"))
    return tag is not None and tag in ctx.entity.collision_tags


def on_key_press(ctx: ScriptContext, node: Node) -> bool:
    """The named input action is currently down."""
    key = node.prop("key")
    return key is not None and ctx.facade.is_key_pressed(str(key))


BUILTIN_TRIGGERS: Dict[str, TriggerPredicate] = {
    "OnStart": on_start,
    "OnEnterRoom": on_enter_room,
    "OnPlate": on_plate,
    "OnTimer": on_timer,
    "OnEnemyDefeated": on_enemy_defeated,
    "OnCutsceneEnd": on_cutscene_end,
    "OnNoclipExit": on_noclip_exit,
    "OnCollision": on_collision,
    "OnKeyPress": on_key_press,
}


class TriggerEvaluator:
    """
    Table of Event-kind predicates.

    Usage:
        triggers = TriggerEvaluator()
        triggers.register("OnScoreReached", lambda ctx, node: ...)
        if triggers.evaluate(ctx, event_node):
            ...
    """

    def __init__(self, include_builtins: bool = True):
        self._predicates: Dict[str, TriggerPredicate] = {}
        if include_builtins:
            self._predicates.update(BUILTIN_TRIGGERS)

    def register(self, kind: str, predicate: TriggerPredicate) -> None:
        """Add or replace the predicate for an Event kind."""
        self._predicates[kind] = predicate

    def has(self, kind: str) -> bool:
        return kind in self._predicates

    def kinds(self) -> List[str]:
        return sorted(self._predicates)

    def evaluate(self, ctx: ScriptContext, node: Node) -> bool:
        """
        Evaluate the trigger for an Event node.

        Unknown kinds are false (logged once per kind). A predicate that
        raises is logged and counts as false.
        """
        predicate = self._predicates.get(node.kind)
        if predicate is None:
            log.warning_once(node.kind, "Unknown event kind %r (graph %s, node %s); never fires",
                             node.kind, ctx.graph.id, node.id)
            return False

        try:
            return bool(predicate(ctx, node))
        except Exception as e:
            log.error("Trigger %s failed for %s/%s: %s", node.kind, ctx.graph.id, node.id, e)
            return False
