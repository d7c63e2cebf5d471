"""
Document loading and schema validation.

Graph documents are authored as YAML or JSON. This module is the single
place that reads them and checks them against JSON Schema files.

Usage:
    from retro.yaml import load, validate, load_schema

    data = load('levels/castle.yaml')
    validate(data, load_schema(schema_path), source_path='levels/castle.yaml')

Environment:
    RETRO_SKIP_SCHEMA_VALIDATION=1   # Downgrade schema errors to warnings
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema
import yaml

from retro.logging import get_logger

log = get_logger('yaml')

SKIP_VALIDATION = os.environ.get('RETRO_SKIP_SCHEMA_VALIDATION', '').lower() in ('1', 'true', 'yes')

YAML_SUFFIXES = ('.yaml', '.yml')
JSON_SUFFIXES = ('.json',)


class SchemaValidationError(Exception):
    """Raised when a document does not match its schema."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        path: Optional[Union[str, Path]] = None,
    ):
        self.errors = errors or []
        self.path = path
        super().__init__(message)


def loads(text: str, fmt: str = 'yaml') -> Any:
    """Parse YAML (default) or JSON text."""
    if fmt == 'json':
        return json.loads(text)
    return yaml.safe_load(text)


def load(path: Union[str, Path]) -> Any:
    """
    Load a YAML or JSON document from disk.

    The format is picked from the file suffix; unknown suffixes are read
    as YAML (a superset of JSON).
    """
    path = Path(path)
    text = path.read_text(encoding='utf-8')
    fmt = 'json' if path.suffix.lower() in JSON_SUFFIXES else 'yaml'
    return loads(text, fmt)


def load_schema(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a JSON Schema file."""
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def iter_errors(data: Any, schema: Dict[str, Any]) -> List[str]:
    """Collect every schema violation as 'path: message' strings."""
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        path = '/'.join(str(p) for p in error.absolute_path) or '<root>'
        errors.append(f"{path}: {error.message}")
    return errors


def validate(
    data: Any,
    schema: Dict[str, Any],
    source_path: Optional[Union[str, Path]] = None,
) -> None:
    """
    Validate data against a schema.

    Raises:
        SchemaValidationError: If validation fails (unless
            RETRO_SKIP_SCHEMA_VALIDATION=1, then a warning is logged)
    """
    errors = iter_errors(data, schema)
    if not errors:
        return

    where = f" in {source_path}" if source_path else ""
    message = f"Schema validation error{where}: {errors[0]}"
    if SKIP_VALIDATION:
        log.warning(message)
        return
    raise SchemaValidationError(message, errors=errors, path=source_path)
