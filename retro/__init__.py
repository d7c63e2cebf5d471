"""
Retro - event/condition/action scripting for a 2D game engine.

Level scripts are node graphs: Event nodes start chains, Condition nodes
branch, Action nodes act on the engine. See retro.scripting.
"""

__version__ = "0.1.0"

__all__ = ['__version__']
