"""Interpreter configuration."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "RETRO_SCRIPT_"


class InterpreterConfig(BaseModel):
    """
    Settings for ScriptInterpreter.

    Attributes:
        start_time_ms: Initial value of the interpreter clock
        validate_on_load: Lint graphs on load and log the issues found
        emit_chain_records: Emit a structured 'scripting' record per chain
        max_pump_iterations: Event-loop passes per pump; chains that need
            more passes to settle continue on the next tick
    """
    model_config = ConfigDict(frozen=True)

    start_time_ms: float = Field(default=0.0, ge=0)
    validate_on_load: bool = False
    emit_chain_records: bool = True
    max_pump_iterations: int = Field(default=2, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InterpreterConfig":
        """
        Build a config from RETRO_SCRIPT_* variables.

        RETRO_SCRIPT_VALIDATE_ON_LOAD=1 sets validate_on_load, and so on.
        Unset variables keep their defaults; values are validated by the model.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in environ:
                values[name] = environ[key]
        return cls.model_validate(values)
