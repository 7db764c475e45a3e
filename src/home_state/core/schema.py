"""
Config schema validation and defaulting.

Device class schemas are JSON-schema objects. Validation uses jsonschema;
defaults declared in the schema are filled into the config in place so the
config object keeps its identity.
"""

from typing import Any, Dict
import copy
import logging

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from home_state.core.errors import DeviceConfigError

logger = logging.getLogger(__name__)


def validate_config(config: Dict[str, Any], schema: Dict[str, Any], context: str) -> None:
    """
    Validate a config against a schema.

    Args:
        config: The config to check
        schema: JSON-schema object
        context: What is being validated, used in the error message

    Raises:
        DeviceConfigError: If the schema is malformed or the config invalid.
            All validation errors are reported together.
    """
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise DeviceConfigError(f"Invalid schema for {context}: {e.message}") from e

    validator = Draft7Validator(schema)
    errors = sorted(
        validator.iter_errors(config), key=lambda e: [str(p) for p in e.absolute_path]
    )
    if not errors:
        return

    messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path)
        messages.append(f"{path}: {error.message}" if path else error.message)
    raise DeviceConfigError(f"Invalid config of {context}: " + "; ".join(messages))


def enhance_config_with_defaults(schema: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill schema defaults for missing properties.

    Nested object properties that are present are defaulted recursively.

    Args:
        schema: JSON-schema object
        config: Config to fill (modified in place)

    Returns:
        The same config object
    """
    for name, prop in schema.get("properties", {}).items():
        if name not in config:
            if "default" in prop:
                config[name] = copy.deepcopy(prop["default"])
        elif prop.get("type") == "object" and isinstance(config[name], dict):
            enhance_config_with_defaults(prop, config[name])
    return config
