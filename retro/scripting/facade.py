"""
Engine facade - the narrow surface the interpreter calls into.

The host engine implements any subset of EngineFacade. FacadeAdapter
wraps whatever object the host passes in so that a missing method is
logged (once per method) and skipped instead of failing the chain:
effects become no-ops and queries answer False.
"""

import inspect
from typing import Any, Awaitable, List, Optional, Protocol, Union, runtime_checkable

from retro.logging import get_logger

log = get_logger('facade')


EFFECT_METHODS = (
    'open_gate',
    'play_cutscene',
    'teleport_entity',
    'spawn_enemy',
    'show_text',
    'switch_music',
    'spawn_entity',
    'play_sound',
)

QUERY_METHODS = (
    'is_player_in_room',
    'is_pressure_plate_active',
    'is_enemy_defeated',
    'is_cutscene_ended',
    'is_noclip_exited',
    'is_key_pressed',
)


@runtime_checkable
class EngineFacade(Protocol):
    """
    Protocol for the host engine.

    Every method is optional. Effect methods may return an awaitable
    (a cutscene that finishes later); the interpreter awaits it before
    continuing the chain.
    """

    # Effects
    def open_gate(self, gate_id: str) -> Optional[Awaitable[None]]: ...
    def play_cutscene(self, cutscene_id: str) -> Optional[Awaitable[None]]: ...
    def teleport_entity(self, entity_id: str, x: float, y: float) -> Optional[Awaitable[None]]: ...
    def spawn_enemy(self, enemy_type: str, x: float, y: float) -> Optional[Awaitable[None]]: ...
    def show_text(self, text: str, duration_ms: float) -> Optional[Awaitable[None]]: ...
    def switch_music(self, music_id: str, fade_ms: float) -> Optional[Awaitable[None]]: ...

    # Queries
    def is_player_in_room(self, room_id: str) -> bool: ...
    def is_pressure_plate_active(self, plate_id: str) -> bool: ...
    def is_enemy_defeated(self, enemy_id: str) -> bool: ...
    def is_cutscene_ended(self, cutscene_id: str) -> bool: ...
    def is_noclip_exited(self) -> bool: ...


class FacadeAdapter:
    """
    Tolerant wrapper around a host engine object.

    Usage:
        facade = FacadeAdapter(my_engine)
        result = facade.effect('open_gate', 'g1')      # None if unsupported
        if facade.query('is_player_in_room', 'hall'):
            ...

    Args:
        engine: Host object implementing some EngineFacade methods (or None)
    """

    def __init__(self, engine: Any = None):
        self.engine = engine

    def supports(self, method: str) -> bool:
        """True when the host implements method."""
        return self.engine is not None and callable(getattr(self.engine, method, None))

    def missing_methods(self) -> List[str]:
        """EngineFacade methods the host does not implement."""
        return [m for m in EFFECT_METHODS + QUERY_METHODS if not self.supports(m)]

    def effect(self, method: str, *args) -> Union[None, Awaitable[Any], Any]:
        """
        Call an effect method on the host.

        Returns:
            The host's return value (possibly awaitable), or None when the
            host does not implement the method.
        """
        fn = getattr(self.engine, method, None) if self.engine is not None else None
        if not callable(fn):
            log.warning_once(('effect', method), "Engine facade has no %s(); effect skipped", method)
            return None
        return fn(*args)

    def query(self, method: str, *args) -> bool:
        """
        Ask the host a yes/no question.

        Missing methods answer False. Awaitable answers are not supported
        (conditions and triggers are synchronous) and count as False.
        """
        fn = getattr(self.engine, method, None) if self.engine is not None else None
        if not callable(fn):
            log.warning_once(('query', method), "Engine facade has no %s(); answering False", method)
            return False
        result = fn(*args)
        if inspect.isawaitable(result):
            log.warning_once(('async-query', method), "Engine facade %s() returned an awaitable; answering False", method)
            if inspect.iscoroutine(result):
                result.close()
            return False
        return bool(result)

    # Effects

    def open_gate(self, gate_id: str):
        return self.effect('open_gate', gate_id)

    def play_cutscene(self, cutscene_id: str):
        return self.effect('play_cutscene', cutscene_id)

    def teleport_entity(self, entity_id: str, x: float, y: float):
        return self.effect('teleport_entity', entity_id, x, y)

    def spawn_enemy(self, enemy_type: str, x: float, y: float):
        return self.effect('spawn_enemy', enemy_type, x, y)

    def show_text(self, text: str, duration_ms: float):
        return self.effect('show_text', text, duration_ms)

    def switch_music(self, music_id: str, fade_ms: float):
        return self.effect('switch_music', music_id, fade_ms)

    def spawn_entity(self, entity_type: str, x: float, y: float):
        return self.effect('spawn_entity', entity_type, x, y)

    def play_sound(self, sound_id: str):
        return self.effect('play_sound', sound_id)

    # Queries

    def is_player_in_room(self, room_id: str) -> bool:
        return self.query('is_player_in_room', room_id)

    def is_pressure_plate_active(self, plate_id: str) -> bool:
        return self.query('is_pressure_plate_active', plate_id)

    def is_enemy_defeated(self, enemy_id: str) -> bool:
        return self.query('is_enemy_defeated', enemy_id)

    def is_cutscene_ended(self, cutscene_id: str) -> bool:
        return self.query('is_cutscene_ended', cutscene_id)

    def is_noclip_exited(self) -> bool:
        return self.query('is_noclip_exited')

    def is_key_pressed(self, key: str) -> bool:
        return self.query('is_key_pressed', key)


class RecordingFacade:
    """
    Facade that records every effect and answers queries from sets.

    Used by the development launcher and as a stand-in host in tests.

    Attributes:
        calls: (method, args) tuples in call order
        rooms, plates, defeated, ended_cutscenes, keys: query answers
        noclip_exited: answer for is_noclip_exited()
    """

    def __init__(self):
        self.calls: list = []
        self.rooms: set = set()
        self.plates: set = set()
        self.defeated: set = set()
        self.ended_cutscenes: set = set()
        self.keys: set = set()
        self.noclip_exited = False

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        log.info("%s(%s)", method, ', '.join(repr(a) for a in args))

    def calls_to(self, method: str) -> list:
        """Argument tuples of every call to method."""
        return [args for name, args in self.calls if name == method]

    def open_gate(self, gate_id):
        self._record('open_gate', gate_id)

    def play_cutscene(self, cutscene_id):
        self._record('play_cutscene', cutscene_id)

    def teleport_entity(self, entity_id, x, y):
        self._record('teleport_entity', entity_id, x, y)

    def spawn_enemy(self, enemy_type, x, y):
        self._record('spawn_enemy', enemy_type, x, y)

    def show_text(self, text, duration_ms):
        self._record('show_text', text, duration_ms)

    def switch_music(self, music_id, fade_ms):
        self._record('switch_music', music_id, fade_ms)

    def spawn_entity(self, entity_type, x, y):
        self._record('spawn_entity', entity_type, x, y)

    def play_sound(self, sound_id):
        self._record('play_sound', sound_id)

    def is_player_in_room(self, room_id):
        return room_id in self.rooms

    def is_pressure_plate_active(self, plate_id):
        return plate_id in self.plates

    def is_enemy_defeated(self, enemy_id):
        return enemy_id in self.defeated

    def is_cutscene_ended(self, cutscene_id):
        return cutscene_id in self.ended_cutscenes

    def is_noclip_exited(self):
        return self.noclip_exited

    def is_key_pressed(self, key):
        return key in self.keys
