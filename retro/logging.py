"""
Retro Logging System

Module-scoped loggers with per-module levels, plus structured records
that can be routed to sinks (JSONL files, in-memory buffers).

Usage:
    from retro.logging import get_logger

    log = get_logger('scripting')
    log.debug("Loading graph")
    log.info("Interpreter started")
    log.node("g1", "A1", "openGate")    # Per-node script tracing

    # Structured record logging (chain traces, etc.)
    from retro.logging import emit_record
    emit_record('scripting', {'type': 'chain', 'graph': 'g1', ...})

Configuration:
    Environment variables:
        RETRO_LOG_LEVEL=DEBUG           # Global default level
        RETRO_LOG_SCRIPTING=DEBUG       # Module-specific level
        RETRO_LOG_SCRIPT_TRACE=1        # Enable per-node tracing

        # Module-specific structured logging
        RETRO_LOGGING_SCRIPTING_ENABLED=true

    Or programmatically:
        from retro.logging import configure_logging
        configure_logging(level='DEBUG', modules={'scripting': 'INFO'})
"""

import json
import os
import sys
import time
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""
    TRACE = 5      # Even more verbose than DEBUG
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100      # Disable logging


# =============================================================================
# Sink-Based Structured Logging
# =============================================================================

class LogSink(ABC):
    """
    Abstract base class for log record sinks.

    Sinks receive structured log records and write them to their destination.
    """

    @abstractmethod
    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """
        Emit a structured log record.

        Args:
            module: Module name (e.g., 'scripting')
            record: Structured data to log (must be JSON-serializable)
        """
        pass

    @abstractmethod
    def flush(self) -> None:
        """Flush any buffered records."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the sink and release resources."""
        pass


class FileSink(LogSink):
    """
    Writes structured log records to JSONL files.

    Each module gets its own file in the log directory, one JSON object
    per line.

    Args:
        log_dir: Directory for log files (default: from get_log_dir())
        session_name: Session identifier for file naming (default: timestamp)
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        session_name: Optional[str] = None,
    ):
        self._log_dir = Path(log_dir) if log_dir else None
        self._session_name = session_name or time.strftime("%Y%m%d_%H%M%S")
        self._files: Dict[str, Any] = {}  # module -> file handle

    def _ensure_dir(self) -> Path:
        """Lazily initialize log directory."""
        if self._log_dir is None:
            self._log_dir = Path(get_log_dir())
        self._log_dir.mkdir(parents=True, exist_ok=True)
        return self._log_dir

    def _get_file(self, module: str):
        """Get or create file handle for module."""
        if module not in self._files:
            log_dir = self._ensure_dir()
            path = log_dir / f"{self._session_name}_{module}.jsonl"
            self._files[module] = open(path, 'a')

            header = {
                "type": "header",
                "module": module,
                "session_name": self._session_name,
                "start_time": time.time(),
            }
            self._files[module].write(json.dumps(header) + "\n")

        return self._files[module]

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """Write record to module's JSONL file."""
        f = self._get_file(module)
        if 'wall_time' not in record:
            record = {'wall_time': time.time(), **record}
        f.write(json.dumps(record, default=str) + "\n")

    def flush(self) -> None:
        """Flush all open files."""
        for f in self._files.values():
            f.flush()

    def close(self) -> None:
        """Close all open files."""
        for module, f in self._files.items():
            footer = {
                "type": "footer",
                "module": module,
                "end_time": time.time(),
            }
            f.write(json.dumps(footer) + "\n")
            f.close()
        self._files.clear()


class MemorySink(LogSink):
    """
    Keeps structured records in memory.

    Used by the development launcher and tests to inspect chain traces.

    Args:
        max_records: Oldest records are dropped beyond this count (0 = unbounded)
    """

    def __init__(self, max_records: int = 0):
        self.max_records = max_records
        self.records: List[Dict[str, Any]] = []

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        self.records.append({'module': module, **record})
        if self.max_records and len(self.records) > self.max_records:
            del self.records[0]

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.records.clear()

    def of_type(self, record_type: str) -> List[Dict[str, Any]]:
        """Records whose 'type' field equals record_type."""
        return [r for r in self.records if r.get('type') == record_type]


class NullSink(LogSink):
    """No-op sink when logging is disabled."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


# Sink registry - active sinks by module
_sinks: Dict[str, LogSink] = {}


def register_sink(module: str, sink: LogSink) -> None:
    """
    Register a sink for a specific module.

    Args:
        module: Module name (e.g., 'scripting')
        sink: Sink instance to receive records
    """
    _sinks[module] = sink


def unregister_sink(module: str) -> Optional[LogSink]:
    """Remove and return the sink registered for a module."""
    return _sinks.pop(module, None)


def get_sink(module: str) -> Optional[LogSink]:
    """Get the sink registered for a module."""
    return _sinks.get(module)


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """
    Emit a structured log record to the appropriate sink.

    Returns:
        True if record was emitted, False if no sink available
    """
    sink = get_sink(module)
    if sink:
        sink.emit(module, record)
        return True
    return False


def close_all_sinks() -> None:
    """Close all registered sinks."""
    for sink in _sinks.values():
        sink.close()
    _sinks.clear()


def create_sink_for_module(
    module: str,
    session_name: Optional[str] = None,
) -> LogSink:
    """
    Create the sink configured for a module.

    FileSink when RETRO_LOGGING_<MODULE>_ENABLED is set, NullSink otherwise.
    """
    config = get_module_config(module)
    if not config.get('enabled', False):
        return NullSink()
    return FileSink(log_dir=config.get('dir'), session_name=session_name)


# =============================================================================
# Global configuration
# =============================================================================

_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},
    'script_trace': False,   # Per-node tracing inside chains
    'log_dir': None,         # Override log directory (None = platform default)
    'modules': {},           # Per-module settings (hierarchical)
}


def get_log_dir() -> str:
    """Get the log directory, respecting RETRO_LOG_DIR.

    Priority:
    1. Configured log_dir in _config
    2. RETRO_LOG_DIR environment variable
    3. Platform-specific user data directory
    """
    if _config.get('log_dir'):
        return str(Path(_config['log_dir']).expanduser())

    env_dir = os.environ.get('RETRO_LOG_DIR')
    if env_dir:
        return str(Path(env_dir).expanduser())

    if sys.platform == 'darwin':
        user_data = Path.home() / 'Library' / 'Application Support' / 'Retro'
    elif sys.platform == 'win32':
        user_data = Path(os.environ.get('APPDATA', str(Path.home()))) / 'Retro'
    else:
        xdg_data = os.environ.get('XDG_DATA_HOME', str(Path.home() / '.local' / 'share'))
        user_data = Path(xdg_data) / 'retro'

    return str(user_data / 'logs')


def get_module_config(module: str) -> Dict[str, Any]:
    """Get hierarchical settings for a module.

    RETRO_LOGGING_SCRIPTING_ENABLED=true maps to {'enabled': True}.
    """
    return _config.get('modules', {}).get(module.lower(), {})


def _set_nested(d: Dict, keys: list, value: Any) -> None:
    """Set a value in a nested dict, creating intermediate dicts as needed."""
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    lower = value.lower()
    if lower in ('true', '1', 'yes', 'on'):
        return True
    if lower in ('false', '0', 'no', 'off'):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _format_message(module: str, level: str, msg: str) -> str:
    """Format a log message."""
    return f"[{module}] {level}: {msg}"


def _level_from_string(level_str: str) -> LogLevel:
    """Convert string to LogLevel."""
    mapping = {
        'TRACE': LogLevel.TRACE,
        'DEBUG': LogLevel.DEBUG,
        'INFO': LogLevel.INFO,
        'WARNING': LogLevel.WARNING,
        'WARN': LogLevel.WARNING,
        'ERROR': LogLevel.ERROR,
        'CRITICAL': LogLevel.CRITICAL,
        'OFF': LogLevel.OFF,
    }
    return mapping.get(level_str.upper(), LogLevel.INFO)


def configure_logging(
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
    script_trace: bool = False,
) -> None:
    """
    Configure the logging system.

    Args:
        level: Default log level for all modules
        modules: Dict of module_name -> level for per-module configuration
        script_trace: Log every node visited by a chain
    """
    _config['default_level'] = _level_from_string(level)

    if modules:
        for mod, mod_level in modules.items():
            _config['module_levels'][mod] = _level_from_string(mod_level)

    _config['script_trace'] = script_trace


def _load_env_config() -> None:
    """Load configuration from environment variables.

    Supports two prefixes:
    - RETRO_LOG_*: Log levels (RETRO_LOG_SCRIPTING=DEBUG)
    - RETRO_LOGGING_*: Module settings (RETRO_LOGGING_SCRIPTING_ENABLED=true)
    """
    if 'RETRO_LOG_LEVEL' in os.environ:
        _config['default_level'] = _level_from_string(os.environ['RETRO_LOG_LEVEL'])

    if 'RETRO_LOG_DIR' in os.environ:
        _config['log_dir'] = os.environ['RETRO_LOG_DIR']

    reserved = ('RETRO_LOG_LEVEL', 'RETRO_LOG_SCRIPT_TRACE', 'RETRO_LOG_DIR')
    for key, value in os.environ.items():
        if key.startswith('RETRO_LOG_') and key not in reserved:
            module_name = key[10:].lower()  # Remove 'RETRO_LOG_' prefix
            _config['module_levels'][module_name] = _level_from_string(value)

    _config['script_trace'] = os.environ.get('RETRO_LOG_SCRIPT_TRACE', '').lower() in ('1', 'true', 'yes')

    for key, value in os.environ.items():
        if key.startswith('RETRO_LOGGING_'):
            parts = key[14:].lower().split('_')  # Remove 'RETRO_LOGGING_' prefix
            if len(parts) >= 2:
                module = parts[0]
                if module not in _config['modules']:
                    _config['modules'][module] = {}
                _set_nested(_config['modules'][module], parts[1:], _parse_env_value(value))


# Load env config on import
_load_env_config()


class RetroLogger:
    """
    Logger for a specific module.

    Provides standard log levels plus node tracing for script chains.
    """

    def __init__(self, module: str):
        self.module = module
        self._module_key = module.lower().replace('.', '_').replace('/', '_')
        self._once: set = set()

    @property
    def level(self) -> LogLevel:
        """Get effective log level for this module."""
        if self._module_key in _config['module_levels']:
            return _config['module_levels'][self._module_key]
        return _config['default_level']

    def _should_log(self, level: LogLevel) -> bool:
        return level >= self.level

    def _log(self, level: LogLevel, level_name: str, msg: str, *args) -> None:
        if not self._should_log(level):
            return

        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"

        print(_format_message(self.module, level_name, msg), file=sys.stderr)

    def trace(self, msg: str, *args) -> None:
        """Log at TRACE level (very verbose)."""
        self._log(LogLevel.TRACE, 'TRACE', msg, *args)

    def debug(self, msg: str, *args) -> None:
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def error(self, msg: str, *args) -> None:
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def warning_once(self, key: Any, msg: str, *args) -> None:
        """
        Log a warning only the first time key is seen by this logger.

        Used for conditions that repeat every tick (unknown node kinds,
        missing facade methods).
        """
        if key in self._once:
            return
        self._once.add(key)
        self.warning(msg, *args)

    def exception(self, msg: str, *args, exc_info: bool = True) -> None:
        """
        Log an exception with traceback.

        Args:
            msg: Message describing what failed
            exc_info: If True, include current exception traceback
        """
        import traceback

        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

        if exc_info:
            tb = traceback.format_exc()
            if tb and tb.strip() != 'NoneType: None':
                for line in tb.strip().split('\n'):
                    self._log(LogLevel.DEBUG, 'TRACE', line)

    def node(self, graph_id: str, node_id: str, kind: str, note: str = '') -> None:
        """
        Trace a node visit inside a chain.

        Only logs if script tracing is enabled.
        """
        if not _config['script_trace']:
            return

        suffix = f" {note}" if note else ""
        self._log(LogLevel.DEBUG, 'NODE', f"{graph_id}/{node_id} ({kind}){suffix}")


@lru_cache(maxsize=64)
def get_logger(module: str) -> RetroLogger:
    """
    Get a logger for the specified module.

    Loggers are cached, so calling get_logger('foo') multiple times
    returns the same logger instance.
    """
    return RetroLogger(module)


def disable_logging() -> None:
    """Disable all logging."""
    _config['default_level'] = LogLevel.OFF
    _config['script_trace'] = False
