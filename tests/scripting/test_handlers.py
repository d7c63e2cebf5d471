"""Tests for the built-in action and condition handlers."""

import asyncio

import pytest

from retro.scripting.entity import ScriptEntity
from retro.scripting.facade import FacadeAdapter, RecordingFacade
from retro.scripting.graph import Graph, Node, NodeCategory
from retro.scripting.handlers import BUILTIN_ACTIONS, BUILTIN_CONDITIONS
from retro.scripting.registry import ScriptContext
from retro.scripting.state import InterpreterState, Position
from retro.scripting.timers import WaitScheduler


def action(kind, **props):
    return Node(id="A", category=NodeCategory.ACTION, kind=kind, props=props)


def condition(kind, **props):
    return Node(id="C", category=NodeCategory.CONDITION, kind=kind, props=props)


def run_action(ctx, kind, **props):
    return BUILTIN_ACTIONS[kind](ctx, action(kind, **props))


def check(ctx, kind, **props):
    return BUILTIN_CONDITIONS[kind](ctx, condition(kind, **props))


@pytest.fixture
def recorder():
    return RecordingFacade()


@pytest.fixture
def ctx(recorder):
    state = InterpreterState(start_time_ms=100)
    return ScriptContext(state=state, facade=FacadeAdapter(recorder), graph=Graph("g"))


@pytest.fixture
def hero():
    return ScriptEntity(id="hero", x=10, y=20, on_ground=True)


class TestLevelActions:

    def test_open_gate(self, ctx, recorder):
        run_action(ctx, "openGate", gateId="g1")
        assert recorder.calls == [("open_gate", ("g1",))]

    def test_play_cutscene(self, ctx, recorder):
        run_action(ctx, "playCutscene", cutsceneId="intro")
        assert recorder.calls_to("play_cutscene") == [("intro",)]

    def test_teleport_player_by_default(self, ctx, recorder):
        run_action(ctx, "teleport", x=5, y=6)

        assert ctx.state.get_entity_position("player") == Position(5.0, 6.0)
        assert recorder.calls_to("teleport_entity") == [("player", 5.0, 6.0)]

    def test_teleport_moves_bound_entity(self, ctx, recorder, hero):
        ctx.entity = hero
        run_action(ctx, "teleport", x=50, y=60)

        assert (hero.x, hero.y) == (50, 60)
        assert recorder.calls_to("teleport_entity") == [("hero", 50.0, 60.0)]

    def test_spawn_enemy_accepts_type_alias(self, ctx, recorder):
        run_action(ctx, "spawnEnemy", type="bat", x=1, y=2)
        assert recorder.calls_to("spawn_enemy") == [("bat", 1.0, 2.0)]

    def test_show_text_default_duration(self, ctx, recorder):
        run_action(ctx, "showText", text="Hello")
        assert recorder.calls_to("show_text") == [("Hello", 3000)]

    def test_music_switch(self, ctx, recorder):
        run_action(ctx, "musicSwitch", musicId="boss", fadeMs=250)
        run_action(ctx, "musicSwitch", trackId="calm")
        assert recorder.calls_to("switch_music") == [("boss", 250.0), ("calm", 1000)]

    def test_spawn_entity_at_bound_entity(self, ctx, recorder, hero):
        ctx.entity = hero
        run_action(ctx, "SpawnEntity", entityType="coin")
        assert recorder.calls_to("spawn_entity") == [("coin", 10.0, 20.0)]

    def test_play_sound(self, ctx, recorder):
        run_action(ctx, "PlaySound", soundId="chime")
        assert recorder.calls_to("play_sound") == [("chime",)]

    def test_missing_engine_method_is_skipped(self, ctx):
        ctx.facade = FacadeAdapter(object())
        assert run_action(ctx, "openGate", gateId="g1") is None


class TestStateActions:

    def test_set_flag(self, ctx):
        run_action(ctx, "setFlag", flagId="torch")
        assert ctx.state.has_flag("torch")

        run_action(ctx, "setFlag", flagId="torch", value=False)
        assert not ctx.state.has_flag("torch")

    def test_set_flag_without_id(self, ctx):
        run_action(ctx, "setFlag")
        assert not ctx.state.flags

    def test_set_timer_default_duration(self, ctx):
        run_action(ctx, "setTimer", timerId="door")
        assert ctx.state.active_timers["door"] == 1100

    def test_set_variable_keeps_falsy_values(self, ctx):
        run_action(ctx, "SetVariable", variable="coins", value=0)
        assert "coins" in ctx.state.variables
        assert ctx.state.get_variable("coins") == 0

    def test_wait_without_scheduler_is_immediate(self, ctx):
        assert run_action(ctx, "Wait", duration=500) is None

    def test_wait_returns_pending_future(self, ctx):
        loop = asyncio.new_event_loop()
        try:
            ctx.waits = WaitScheduler(loop, lambda: ctx.state.current_time)
            future = run_action(ctx, "Wait", duration=500)

            assert not future.done()
            ctx.state.current_time = 600
            assert ctx.waits.advance() == 1
            assert future.done()
        finally:
            loop.close()


class TestEntityActions:

    def test_move_directions(self, ctx, hero):
        ctx.entity = hero
        run_action(ctx, "Move", direction="left")
        assert hero.vx == -100

        run_action(ctx, "Move", direction="down", speed=40)
        assert hero.vy == 40

    def test_move_without_entity(self, ctx):
        assert run_action(ctx, "Move", direction="left") is None

    def test_jump_only_on_ground(self, ctx, hero):
        ctx.entity = hero
        run_action(ctx, "Jump", force=250)
        assert hero.vy == -250
        assert hero.on_ground is False

        hero.vy = 0
        run_action(ctx, "Jump")
        assert hero.vy == 0

    def test_play_animation(self, ctx, hero):
        ctx.entity = hero
        run_action(ctx, "PlayAnimation", animation="run")
        assert hero.animation == "run"

    def test_entities_have_own_properties(self, hero):
        other = ScriptEntity(id="villain")
        hero.properties["coins"] = 3

        assert other.properties == {}


class TestConditions:

    def test_has_flag(self, ctx):
        assert not check(ctx, "HasFlag", flagId="torch")
        ctx.state.set_flag("torch")
        assert check(ctx, "HasFlag", flagId="torch")

    def test_timer_active(self, ctx):
        ctx.state.set_timer("door", 50)
        assert check(ctx, "TimerActive", timerId="door")
        ctx.state.current_time = 150
        assert not check(ctx, "TimerActive", timerId="door")

    def test_has_item_requires_true(self, ctx):
        ctx.state.set_variable("item_key", 1)
        assert not check(ctx, "HasItem", itemId="key")
        ctx.state.set_variable("item_key", True)
        assert check(ctx, "HasItem", itemId="key")

    def test_entity_near_target_entity(self, ctx):
        ctx.state.set_entity_position("player", 0, 0)
        ctx.state.set_entity_position("chest", 30, 40)

        assert check(ctx, "IsEntityNear", targetId="chest", radius=50)
        assert not check(ctx, "IsEntityNear", targetId="chest")

    def test_entity_near_point(self, ctx):
        ctx.state.set_entity_position("player", 0, 0)
        assert check(ctx, "IsEntityNear", targetX=10, targetY=10)

    def test_entity_near_unknown_positions(self, ctx):
        assert not check(ctx, "IsEntityNear", targetId="chest")
        ctx.state.set_entity_position("player", 0, 0)
        assert not check(ctx, "IsEntityNear", targetId="chest")
        assert not check(ctx, "IsEntityNear")

    def test_entity_conditions_need_entity(self, ctx):
        assert not check(ctx, "IsAlive")
        assert not check(ctx, "IsOnGround")
        assert not check(ctx, "IsMoving")

    def test_entity_conditions(self, ctx, hero):
        ctx.entity = hero
        assert check(ctx, "IsAlive")
        assert check(ctx, "IsOnGround")
        assert not check(ctx, "IsMoving")

        hero.vx = 5
        hero.destroy()
        assert check(ctx, "IsMoving")
        assert not check(ctx, "IsAlive")
