"""
ScriptEntity - the game object an entity-bound graph operates on.

A graph loaded with an entity gets it in every handler context. The
entity-scoped built-ins (Move, Jump, PlayAnimation, IsAlive, IsOnGround,
IsMoving, OnCollision) read and write it; the host engine syncs it with
its own physics objects.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class ScriptEntity:
    """A game entity that scripts can manipulate."""

    # Identity
    id: str
    entity_type: str = "entity"

    # Transform
    x: float = 0.0
    y: float = 0.0
    width: float = 16.0
    height: float = 16.0

    # Physics
    vx: float = 0.0
    vy: float = 0.0
    on_ground: bool = False

    # State
    alive: bool = True
    animation: str = ""
    collision_tags: List[str] = field(default_factory=list)

    # Custom properties (scripts can read/write)
    properties: Dict[str, Any] = field(default_factory=dict)

    def is_moving(self, threshold: float = 0.1) -> bool:
        """True when either velocity component exceeds threshold."""
        return abs(self.vx) > threshold or abs(self.vy) > threshold

    def play_animation(self, name: str) -> None:
        self.animation = name

    def destroy(self) -> None:
        """Mark entity for removal."""
        self.alive = False
