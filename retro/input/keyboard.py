"""
Keyboard Actions - named input actions backed by pygame key state.

Answers the facade query is_key_pressed(name) for OnKeyPress events.
Action names map to pygame key codes; names that are not mapped are
looked up as pygame key names ("space", "a", "left").
"""
from typing import Callable, Dict, Iterable, Optional, Sequence, Set, Union

import pygame

from retro.logging import get_logger

log = get_logger('input')

DEFAULT_BINDINGS: Dict[str, Sequence[int]] = {
    "left": (pygame.K_LEFT, pygame.K_a),
    "right": (pygame.K_RIGHT, pygame.K_d),
    "up": (pygame.K_UP, pygame.K_w),
    "down": (pygame.K_DOWN, pygame.K_s),
    "jump": (pygame.K_SPACE,),
    "interact": (pygame.K_e, pygame.K_RETURN),
    "cancel": (pygame.K_ESCAPE,),
}

KeyState = Union[Sequence[bool], Set[int]]


class KeyboardActions:
    """Keyboard state lookup by action name.

    Args:
        bindings: Action name -> key codes (default: DEFAULT_BINDINGS)
        key_state: Callable returning the pressed-key state; defaults to
            pygame.key.get_pressed. Returning a set of key codes also works.
    """

    def __init__(
        self,
        bindings: Optional[Dict[str, Iterable[int]]] = None,
        key_state: Optional[Callable[[], KeyState]] = None,
    ):
        source = DEFAULT_BINDINGS if bindings is None else bindings
        self._bindings: Dict[str, tuple] = {name: tuple(codes) for name, codes in source.items()}
        self._key_state = key_state or pygame.key.get_pressed

    def bind(self, name: str, *codes: int) -> None:
        """Replace the keys bound to an action."""
        self._bindings[name] = tuple(codes)

    def codes_for(self, name: str) -> tuple:
        """Key codes for an action name; empty when the name is unknown."""
        if name in self._bindings:
            return self._bindings[name]
        try:
            return (pygame.key.key_code(name),)
        except ValueError:
            log.warning_once(name, "Unknown key or action %r", name)
            return ()

    def is_key_pressed(self, name: str) -> bool:
        """Whether any key bound to name is currently down."""
        codes = self.codes_for(name)
        if not codes:
            return False
        state = self._key_state()
        if isinstance(state, (set, frozenset)):
            return any(code in state for code in codes)
        return any(state[code] for code in codes)
