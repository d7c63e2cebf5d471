"""
Retro Scripting - Event/Condition/Action graph interpreter

Level logic is authored as node graphs:
- Event nodes: triggers evaluated every tick; each fires once until re-armed
- Condition nodes: boolean checks that pick the true or false branch
- Action nodes: effects on the engine or the shared state, possibly async

Graphs share one InterpreterState (variables, flags, timers, completed
events, entity positions) that can be exported and imported as JSON.
"""

from .config import InterpreterConfig
from .entity import ScriptEntity
from .executor import ChainOutcome, ChainResult, NodeExecutor
from .facade import EngineFacade, FacadeAdapter, RecordingFacade
from .graph import (
    BRANCH_PORTS,
    FLOW,
    FLOW_FALSE,
    FLOW_TRUE,
    Edge,
    Graph,
    GraphLoadError,
    GraphStore,
    Node,
    NodeCategory,
    load_graph_directory,
    load_graph_file,
    parse_graph,
)
from .handlers import BUILTIN_ACTIONS, BUILTIN_CONDITIONS, register_builtin_handlers
from .interpreter import ScriptInterpreter, completion_key
from .registry import ActionHandler, ConditionHandler, HandlerRegistry, ScriptContext
from .state import InterpreterState, Position, StateSnapshot
from .timers import WaitScheduler
from .triggers import BUILTIN_TRIGGERS, TriggerEvaluator
from .validation import ValidationIssue, check_document, validate_graph

__all__ = [
    'InterpreterConfig',
    'ScriptEntity',
    'ChainOutcome',
    'ChainResult',
    'NodeExecutor',
    'EngineFacade',
    'FacadeAdapter',
    'RecordingFacade',
    'BRANCH_PORTS',
    'FLOW',
    'FLOW_FALSE',
    'FLOW_TRUE',
    'Edge',
    'Graph',
    'GraphLoadError',
    'GraphStore',
    'Node',
    'NodeCategory',
    'load_graph_directory',
    'load_graph_file',
    'parse_graph',
    'BUILTIN_ACTIONS',
    'BUILTIN_CONDITIONS',
    'register_builtin_handlers',
    'ScriptInterpreter',
    'completion_key',
    'ActionHandler',
    'ConditionHandler',
    'HandlerRegistry',
    'ScriptContext',
    'InterpreterState',
    'Position',
    'StateSnapshot',
    'WaitScheduler',
    'BUILTIN_TRIGGERS',
    'TriggerEvaluator',
    'ValidationIssue',
    'check_document',
    'validate_graph',
]
