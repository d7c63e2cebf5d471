"""
Interpreter state - the mutable heap shared by every loaded graph.

Holds variables, flags, timers, completed events and cached entity
positions. The five containers keep their identity for the lifetime of
the state object: reset() and restore() clear and refill them in place,
so handlers may hold references across ticks.

Snapshots (save-game integration) use the StateSnapshot model, whose
JSON field names match the save format:

    {
      "variables": {...},
      "completedEvents": ["castle:E1", ...],
      "activeTimers": {"door1": 1500.0},
      "flags": ["torch"],
      "entityPositions": {"player": {"x": 10, "y": 20}},
      "currentTime": 1200.0
    }
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from retro.logging import get_logger

log = get_logger('state')


@dataclass(frozen=True)
class Position:
    """Last known coordinate of an entity."""
    x: float
    y: float


class PositionModel(BaseModel):
    """Serialized entity position."""
    x: float
    y: float


class StateSnapshot(BaseModel):
    """
    Serialized interpreter state.

    Validation happens as a whole before anything is applied, so a
    malformed snapshot never half-overwrites the live state.

    completedEvents holds "graph_id:node_id" keys, since node ids are
    only unique within a graph. Bare node ids from older saves are
    qualified against the loaded graphs on import.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    variables: Dict[str, Any] = Field(default_factory=dict)
    completed_events: List[str] = Field(default_factory=list, alias="completedEvents")
    active_timers: Dict[str, float] = Field(default_factory=dict, alias="activeTimers")
    flags: List[str] = Field(default_factory=list)
    entity_positions: Dict[str, PositionModel] = Field(default_factory=dict, alias="entityPositions")
    current_time: Optional[float] = Field(default=None, alias="currentTime")


class InterpreterState:
    """
    Shared mutable state for the script interpreter.

    Attributes:
        variables: Untyped named values
        flags: Names of set flags (absence = false)
        active_timers: Timer name -> absolute expiry (interpreter clock, ms)
        completed_events: Ids of Event nodes that already fired
        entity_positions: Entity id -> last known Position
        current_time: Interpreter clock in milliseconds
    """

    def __init__(self, start_time_ms: float = 0.0):
        self.variables: Dict[str, Any] = {}
        self.flags: Set[str] = set()
        self.active_timers: Dict[str, float] = {}
        self.completed_events: Set[str] = set()
        self.entity_positions: Dict[str, Position] = {}
        self.current_time: float = float(start_time_ms)

    # -- Variables ----------------------------------------------------------

    def set_variable(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def merge_variables(self, variables: Dict[str, Any]) -> None:
        """Merge a graph's initial variables (later loads win)."""
        self.variables.update(variables)

    # -- Flags --------------------------------------------------------------

    def set_flag(self, flag_id: str, value: bool = True) -> None:
        if value:
            self.flags.add(flag_id)
        else:
            self.flags.discard(flag_id)

    def has_flag(self, flag_id: str) -> bool:
        return flag_id in self.flags

    # -- Timers -------------------------------------------------------------

    def set_timer(self, timer_id: str, duration_ms: float) -> float:
        """
        Start (or restart) a timer.

        Returns:
            The absolute expiry time
        """
        expiry = self.current_time + float(duration_ms)
        self.active_timers[timer_id] = expiry
        return expiry

    def is_timer_active(self, timer_id: str) -> bool:
        """True while the timer exists and has not reached its expiry."""
        expiry = self.active_timers.get(timer_id)
        return expiry is not None and self.current_time < expiry

    def is_timer_expired(self, timer_id: str) -> bool:
        """True when the timer exists and its expiry has been reached."""
        expiry = self.active_timers.get(timer_id)
        return expiry is not None and self.current_time >= expiry

    def retire_expired_timers(self) -> List[str]:
        """
        Remove every timer whose expiry is <= the current time.

        Returns:
            Ids of the removed timers
        """
        expired = [tid for tid, expiry in self.active_timers.items() if expiry <= self.current_time]
        for timer_id in expired:
            del self.active_timers[timer_id]
        return expired

    # -- Completed events ---------------------------------------------------

    def mark_completed(self, node_id: str) -> None:
        self.completed_events.add(node_id)

    def is_completed(self, node_id: str) -> bool:
        return node_id in self.completed_events

    def clear_completed(self, node_ids) -> int:
        """Forget completion for the given node ids. Returns how many were cleared."""
        cleared = 0
        for node_id in node_ids:
            if node_id in self.completed_events:
                self.completed_events.discard(node_id)
                cleared += 1
        return cleared

    # -- Entity positions ---------------------------------------------------

    def set_entity_position(self, entity_id: str, x: float, y: float) -> None:
        self.entity_positions[entity_id] = Position(float(x), float(y))

    def get_entity_position(self, entity_id: str) -> Optional[Position]:
        return self.entity_positions.get(entity_id)

    # -- Lifecycle ----------------------------------------------------------

    def reset(self) -> None:
        """Clear every state category in place. The clock is kept."""
        self.variables.clear()
        self.flags.clear()
        self.active_timers.clear()
        self.completed_events.clear()
        self.entity_positions.clear()

    def snapshot(self) -> StateSnapshot:
        """Capture the current state."""
        return StateSnapshot(
            variables=dict(self.variables),
            completed_events=sorted(self.completed_events),
            active_timers=dict(self.active_timers),
            flags=sorted(self.flags),
            entity_positions={
                eid: PositionModel(x=pos.x, y=pos.y)
                for eid, pos in self.entity_positions.items()
            },
            current_time=self.current_time,
        )

    def restore(self, snapshot: StateSnapshot) -> None:
        """Replace the current state with a snapshot's contents."""
        self.variables.clear()
        self.variables.update(snapshot.variables)
        self.flags.clear()
        self.flags.update(snapshot.flags)
        self.active_timers.clear()
        self.active_timers.update(snapshot.active_timers)
        self.completed_events.clear()
        self.completed_events.update(snapshot.completed_events)
        self.entity_positions.clear()
        for eid, pos in snapshot.entity_positions.items():
            self.entity_positions[eid] = Position(pos.x, pos.y)
        if snapshot.current_time is not None:
            self.current_time = snapshot.current_time

    def export_json(self) -> str:
        """Serialize to the save-format JSON string."""
        return self.snapshot().model_dump_json(by_alias=True)

    @staticmethod
    def parse_snapshot(data: Union[str, bytes, Dict[str, Any], StateSnapshot]) -> StateSnapshot:
        """
        Parse a snapshot from JSON text, a dict, or an existing model.

        Raises:
            pydantic.ValidationError: Wrong shape or types
            json.JSONDecodeError: Text is not JSON
        """
        if isinstance(data, StateSnapshot):
            return data
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return StateSnapshot.model_validate(data)
