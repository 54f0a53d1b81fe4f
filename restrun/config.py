"""Client configuration dataclass and YAML loading."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigError

DEFAULT_CONFIG_NAMES = ("restrun.yml", "restrun.yaml", ".restrun.yml", ".restrun.yaml")

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "base_url": {"type": "string"},
        "default_headers": {
            "type": "object",
            "additionalProperties": {"type": ["string", "number", "boolean"]},
        },
        "vars": {
            "type": "object",
            "additionalProperties": {"type": ["string", "number", "boolean"]},
        },
        "environment": {"type": "string"},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "verify_tls": {"type": "boolean"},
        "follow_redirects": {"type": "boolean"},
        "cookie_jar": {"type": "boolean"},
    },
}


@dataclass
class ClientConfig:
    """Options applied to every request of an execution."""

    base_url: Optional[str] = None
    default_headers: Dict[str, str] = field(default_factory=dict)
    vars: Dict[str, str] = field(default_factory=dict)  # programmatic variables
    environment: Optional[str] = None
    timeout: float = 30.0  # seconds
    verify_tls: bool = True
    follow_redirects: bool = True
    cookie_jar: bool = True


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def schema_errors(data: Any) -> List[str]:
    """Human-readable schema violations, sorted by location."""
    validator = Draft7Validator(CONFIG_SCHEMA)
    messages = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(part) for part in error.path) or "<root>"
        messages.append(f"{location}: {error.message}")
    return messages


def config_from_dict(data: Dict[str, Any]) -> ClientConfig:
    """Build a ClientConfig from already validated data."""
    return ClientConfig(
        base_url=data.get("base_url"),
        default_headers={k: _stringify(v) for k, v in data.get("default_headers", {}).items()},
        vars={k: _stringify(v) for k, v in data.get("vars", {}).items()},
        environment=data.get("environment"),
        timeout=float(data.get("timeout", 30.0)),
        verify_tls=data.get("verify_tls", True),
        follow_redirects=data.get("follow_redirects", True),
        cookie_jar=data.get("cookie_jar", True),
    )


def load_config(config_path: Path) -> ClientConfig:
    """Load and validate a YAML client configuration.

    Args:
        config_path: Path to the YAML file

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
        ConfigError: If the content does not match the schema
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found at:\n  {config_path}")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return ClientConfig()

    errors = schema_errors(data)
    if errors:
        raise ConfigError(
            f"Invalid config {config_path}:\n  " + "\n  ".join(errors)
        )
    return config_from_dict(data)


def find_config(directory: Path) -> Optional[Path]:
    """First default-named config file in ``directory``, if any."""
    for name in DEFAULT_CONFIG_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def validate_config_file(file_path: Path) -> tuple[bool, Optional[str]]:
    """Validate a config file without building a ClientConfig.

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is None.
    """
    if not file_path.exists():
        return False, f"File not found: {file_path}"

    if not file_path.is_file():
        return False, f"Not a file: {file_path}"

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return False, f"Invalid YAML: {e}"

    if data is None:
        return True, None

    if not isinstance(data, dict):
        return False, "Config file must contain a YAML dictionary"

    errors = schema_errors(data)
    if errors:
        return False, "\n".join(errors)

    return True, None
