"""
Built-in node handlers.

Each handler is a thin translator from node properties to a facade call
or a state mutation. Effects that the host implements asynchronously
(cutscenes, fades) return the host's awaitable so the executor can
suspend the chain on it.

Action kinds:
    openGate, playCutscene, teleport, setFlag, spawnEnemy, setTimer,
    showText, musicSwitch, Move, Jump, PlayAnimation, SetVariable,
    SpawnEntity, PlaySound, Wait

Condition kinds:
    HasFlag, IsEntityNear, TimerActive, IsAlive, HasItem, IsOnGround,
    IsMoving
"""

import math
from typing import Any, Optional

from retro.logging import get_logger

from .graph import Node
from .registry import HandlerRegistry, ScriptContext

log = get_logger('handlers')


# Defaults for omitted properties
DEFAULT_MOVE_SPEED = 100
DEFAULT_JUMP_FORCE = 300
DEFAULT_WAIT_MS = 1000
DEFAULT_TIMER_MS = 1000
DEFAULT_TEXT_MS = 3000
DEFAULT_FADE_MS = 1000
DEFAULT_NEAR_RADIUS = 32
MOVING_THRESHOLD = 0.1
PLAYER_ID = "player"


def _entity_id(ctx: ScriptContext, node: Node) -> str:
    """entityId prop, else the bound entity, else the player."""
    explicit = node.prop("entityId")
    if explicit is not None:
        return str(explicit)
    if ctx.entity is not None:
        return ctx.entity.id
    return PLAYER_ID


def _require_entity(ctx: ScriptContext, node: Node):
    if ctx.entity is None:
        log.debug("%s/%s (%s): no entity bound to graph", ctx.graph.id, node.id, node.kind)
    return ctx.entity


def _number(value: Any, default: float) -> float:
    if value is None:
        return default
    return float(value)


# =============================================================================
# Level actions (facade)
# =============================================================================

def open_gate(ctx: ScriptContext, node: Node):
    return ctx.facade.open_gate(node.prop("gateId"))


def play_cutscene(ctx: ScriptContext, node: Node):
    return ctx.facade.play_cutscene(node.prop("cutsceneId"))


def teleport(ctx: ScriptContext, node: Node):
    entity_id = _entity_id(ctx, node)
    x = _number(node.prop("x"), 0.0)
    y = _number(node.prop("y"), 0.0)

    ctx.state.set_entity_position(entity_id, x, y)
    if ctx.entity is not None and ctx.entity.id == entity_id:
        ctx.entity.x = x
        ctx.entity.y = y
    return ctx.facade.teleport_entity(entity_id, x, y)


def spawn_enemy(ctx: ScriptContext, node: Node):
    enemy_type = node.prop("enemyType", node.prop("type"))
    return ctx.facade.spawn_enemy(
        enemy_type,
        _number(node.prop("x"), 0.0),
        _number(node.prop("y"), 0.0),
    )


def show_text(ctx: ScriptContext, node: Node):
    return ctx.facade.show_text(
        str(node.prop("text", "")),
        _number(node.prop("duration"), DEFAULT_TEXT_MS),
    )


def music_switch(ctx: ScriptContext, node: Node):
    music_id = node.prop("musicId", node.prop("trackId"))
    return ctx.facade.switch_music(music_id, _number(node.prop("fadeMs"), DEFAULT_FADE_MS))


def play_sound(ctx: ScriptContext, node: Node):
    return ctx.facade.play_sound(node.prop("soundId"))


def spawn_entity(ctx: ScriptContext, node: Node):
    entity = ctx.entity
    x = node.prop("x", entity.x if entity is not None else 0.0)
    y = node.prop("y", entity.y if entity is not None else 0.0)
    return ctx.facade.spawn_entity(node.prop("entityType"), float(x), float(y))


# =============================================================================
# State actions
# =============================================================================

def set_flag(ctx: ScriptContext, node: Node) -> None:
    flag_id = node.prop("flagId")
    if flag_id is None:
        log.warning("%s/%s: setFlag without flagId", ctx.graph.id, node.id)
        return
    ctx.state.set_flag(str(flag_id), bool(node.prop("value", True)))


def set_timer(ctx: ScriptContext, node: Node) -> None:
    timer_id = node.prop("timerId")
    if timer_id is None:
        log.warning("%s/%s: setTimer without timerId", ctx.graph.id, node.id)
        return
    ctx.state.set_timer(str(timer_id), _number(node.prop("duration"), DEFAULT_TIMER_MS))


def set_variable(ctx: ScriptContext, node: Node) -> None:
    name = node.prop("variable")
    if name is None:
        log.warning("%s/%s: SetVariable without variable name", ctx.graph.id, node.id)
        return
    # value may legitimately be None/False/0, so read props directly
    ctx.state.set_variable(str(name), node.props.get("value"))


def wait(ctx: ScriptContext, node: Node):
    """Suspend the chain for 'duration' ms of interpreter time."""
    duration = _number(node.prop("duration"), DEFAULT_WAIT_MS)
    if ctx.waits is None:
        log.debug("%s/%s: no wait scheduler, Wait completes immediately", ctx.graph.id, node.id)
        return None
    return ctx.waits.wait(duration, label=f"{ctx.graph.id}/{node.id}")


# =============================================================================
# Entity actions
# =============================================================================

def move(ctx: ScriptContext, node: Node) -> None:
    entity = _require_entity(ctx, node)
    if entity is None:
        return

    direction = node.prop("direction", "right")
    speed = _number(node.prop("speed"), DEFAULT_MOVE_SPEED)

    if direction == "left":
        entity.vx = -speed
    elif direction == "right":
        entity.vx = speed
    elif direction == "up":
        entity.vy = -speed
    elif direction == "down":
        entity.vy = speed
    else:
        log.warning("%s/%s: unknown Move direction %r", ctx.graph.id, node.id, direction)


def jump(ctx: ScriptContext, node: Node) -> None:
    entity = _require_entity(ctx, node)
    if entity is None or not entity.on_ground:
        return
    entity.vy = -_number(node.prop("force"), DEFAULT_JUMP_FORCE)
    entity.on_ground = False


def play_animation(ctx: ScriptContext, node: Node) -> None:
    entity = _require_entity(ctx, node)
    if entity is None:
        return
    entity.play_animation(str(node.prop("animation", "")))


# =============================================================================
# Conditions
# =============================================================================

def has_flag(ctx: ScriptContext, node: Node) -> bool:
    return ctx.state.has_flag(node.prop("flagId"))


def timer_active(ctx: ScriptContext, node: Node) -> bool:
    return ctx.state.is_timer_active(node.prop("timerId"))


def has_item(ctx: ScriptContext, node: Node) -> bool:
    return ctx.state.get_variable(f"item_{node.prop('itemId')}") is True


def is_entity_near(ctx: ScriptContext, node: Node) -> bool:
    """
    Distance check against the cached entity positions.

    Compares entityId (default: bound entity or player) with targetId, or
    with a fixed point given as targetX/targetY.
    """
    source = ctx.state.get_entity_position(_entity_id(ctx, node))
    if source is None:
        return False

    target_id = node.prop("targetId")
    if target_id is not None:
        target = ctx.state.get_entity_position(str(target_id))
        if target is None:
            return False
        tx, ty = target.x, target.y
    elif node.prop("targetX") is not None and node.prop("targetY") is not None:
        tx, ty = float(node.prop("targetX")), float(node.prop("targetY"))
    else:
        log.warning("%s/%s: IsEntityNear needs targetId or targetX/targetY", ctx.graph.id, node.id)
        return False

    radius = _number(node.prop("radius"), DEFAULT_NEAR_RADIUS)
    return math.hypot(tx - source.x, ty - source.y) <= radius


def is_alive(ctx: ScriptContext, node: Node) -> bool:
    return ctx.entity is not None and ctx.entity.alive


def is_on_ground(ctx: ScriptContext, node: Node) -> bool:
    return ctx.entity is not None and ctx.entity.on_ground


def is_moving(ctx: ScriptContext, node: Node) -> bool:
    return ctx.entity is not None and ctx.entity.is_moving(MOVING_THRESHOLD)


BUILTIN_ACTIONS = {
    "openGate": open_gate,
    "playCutscene": play_cutscene,
    "teleport": teleport,
    "setFlag": set_flag,
    "spawnEnemy": spawn_enemy,
    "setTimer": set_timer,
    "showText": show_text,
    "musicSwitch": music_switch,
    "Move": move,
    "Jump": jump,
    "PlayAnimation": play_animation,
    "SetVariable": set_variable,
    "SpawnEntity": spawn_entity,
    "PlaySound": play_sound,
    "Wait": wait,
}

BUILTIN_CONDITIONS = {
    "HasFlag": has_flag,
    "IsEntityNear": is_entity_near,
    "TimerActive": timer_active,
    "IsAlive": is_alive,
    "HasItem": has_item,
    "IsOnGround": is_on_ground,
    "IsMoving": is_moving,
}


def register_builtin_handlers(registry: Optional[HandlerRegistry] = None) -> HandlerRegistry:
    """Register every built-in handler. Creates a registry if none is given."""
    if registry is None:
        registry = HandlerRegistry()
    for kind, handler in BUILTIN_ACTIONS.items():
        registry.register_action(kind, handler)
    for kind, handler in BUILTIN_CONDITIONS.items():
        registry.register_condition(kind, handler)
    return registry
