"""Input adapters that answer facade key queries."""

from .keyboard import KeyboardActions, DEFAULT_BINDINGS

__all__ = ['KeyboardActions', 'DEFAULT_BINDINGS']
