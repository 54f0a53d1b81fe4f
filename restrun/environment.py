"""Environment files next to a request script.

* ``http-client.env.json``: public values, one object per environment
* ``http-client.private.env.json``: private values, same layout, higher precedence
* ``.env``: values for ``{{$dotenv NAME}}``

An optional ``$shared`` object in either JSON file supplies defaults for
every environment.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import dotenv_values

from .errors import ConfigError

logger = logging.getLogger(__name__)

PUBLIC_ENV_FILE = "http-client.env.json"
PRIVATE_ENV_FILE = "http-client.private.env.json"
DOTENV_FILE = ".env"
SHARED_SECTION = "$shared"


@dataclass
class Environment:
    """Plain string maps that become stores in the scope chain."""

    name: Optional[str] = None
    public: Dict[str, str] = field(default_factory=dict)
    private: Dict[str, str] = field(default_factory=dict)
    dotenv: Dict[str, str] = field(default_factory=dict)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _read_env_json(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        logger.debug("Environment file not found: %s", path)
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"failed to read environment file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"environment file {path} must contain a JSON object")
    return data


def load_environment_file(path: Path, env_name: Optional[str]) -> Dict[str, str]:
    """Variables of ``env_name`` from one env JSON file, ``$shared`` merged under.

    A missing file or an unknown environment yields an empty mapping.

    Raises:
        ConfigError: If the file exists but is not a JSON object of objects
    """
    if not env_name:
        return {}
    data = _read_env_json(path)
    merged: Dict[str, str] = {}
    for section_name in (SHARED_SECTION, env_name):
        section = data.get(section_name)
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ConfigError(
                f"environment '{section_name}' in {path} must be a JSON object"
            )
        merged.update({key: _stringify(value) for key, value in section.items()})
    if env_name not in data:
        logger.debug("Environment %s not defined in %s", env_name, path)
    return merged


def load_dotenv_file(directory: Path) -> Dict[str, str]:
    path = directory / DOTENV_FILE
    if not path.is_file():
        return {}
    values = dotenv_values(path)
    return {key: value if value is not None else "" for key, value in values.items()}


def list_environments(directory: Path) -> List[str]:
    """Environment names defined in either env JSON file, sorted."""
    names = set()
    for filename in (PUBLIC_ENV_FILE, PRIVATE_ENV_FILE):
        names.update(_read_env_json(directory / filename).keys())
    names.discard(SHARED_SECTION)
    return sorted(names)


def load_environment(directory: Path, env_name: Optional[str] = None) -> Environment:
    """Load public, private and dotenv values for a script directory."""
    environment = Environment(
        name=env_name,
        public=load_environment_file(directory / PUBLIC_ENV_FILE, env_name),
        private=load_environment_file(directory / PRIVATE_ENV_FILE, env_name),
        dotenv=load_dotenv_file(directory),
    )
    logger.debug(
        "Loaded environment %s: %d public, %d private, %d dotenv values",
        env_name,
        len(environment.public),
        len(environment.private),
        len(environment.dotenv),
    )
    return environment
