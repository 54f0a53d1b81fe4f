"""Tests for restrun/environment.py environment file loading."""

import json
from pathlib import Path

import pytest

from restrun.environment import (
    DOTENV_FILE,
    PRIVATE_ENV_FILE,
    PUBLIC_ENV_FILE,
    list_environments,
    load_dotenv_file,
    load_environment,
    load_environment_file,
)
from restrun.errors import ConfigError


def write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def env_dir(tmp_path: Path) -> Path:
    write_json(
        tmp_path / PUBLIC_ENV_FILE,
        {
            "$shared": {"version": "v1", "host": "shared.example.com"},
            "dev": {"host": "dev.example.com", "port": 8080, "debug": True},
            "prod": {"host": "prod.example.com"},
        },
    )
    write_json(tmp_path / PRIVATE_ENV_FILE, {"dev": {"token": "dev-secret"}, "qa": {}})
    (tmp_path / DOTENV_FILE).write_text("API_KEY=from-dotenv\nEMPTY=\n", encoding="utf-8")
    return tmp_path


class TestLoadEnvironmentFile:
    """Tests for reading one env JSON file."""

    def test_selected_environment_overrides_shared(self, env_dir):
        values = load_environment_file(env_dir / PUBLIC_ENV_FILE, "dev")
        assert values["host"] == "dev.example.com"
        assert values["version"] == "v1"

    def test_non_string_values_are_json_encoded(self, env_dir):
        values = load_environment_file(env_dir / PUBLIC_ENV_FILE, "dev")
        assert values["port"] == "8080"
        assert values["debug"] == "true"

    def test_unknown_environment_gets_shared_only(self, env_dir):
        values = load_environment_file(env_dir / PUBLIC_ENV_FILE, "staging")
        assert values == {"version": "v1", "host": "shared.example.com"}

    def test_no_environment_selected(self, env_dir):
        assert load_environment_file(env_dir / PUBLIC_ENV_FILE, None) == {}

    def test_missing_file(self, tmp_path):
        assert load_environment_file(tmp_path / PUBLIC_ENV_FILE, "dev") == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / PUBLIC_ENV_FILE
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="failed to read environment file"):
            load_environment_file(path, "dev")

    def test_top_level_must_be_object(self, tmp_path):
        path = write_json(tmp_path / PUBLIC_ENV_FILE, ["dev"])
        with pytest.raises(ConfigError, match="must contain a JSON object"):
            load_environment_file(path, "dev")

    def test_environment_must_be_object(self, tmp_path):
        path = write_json(tmp_path / PUBLIC_ENV_FILE, {"dev": "oops"})
        with pytest.raises(ConfigError, match="environment 'dev'"):
            load_environment_file(path, "dev")


class TestLoadEnvironment:
    """Tests for the combined public, private and dotenv loader."""

    def test_all_sources(self, env_dir):
        environment = load_environment(env_dir, "dev")
        assert environment.name == "dev"
        assert environment.public["host"] == "dev.example.com"
        assert environment.private == {"token": "dev-secret"}
        assert environment.dotenv == {"API_KEY": "from-dotenv", "EMPTY": ""}

    def test_dotenv_is_loaded_without_environment(self, env_dir):
        environment = load_environment(env_dir)
        assert environment.public == {}
        assert environment.dotenv["API_KEY"] == "from-dotenv"

    def test_missing_dotenv(self, tmp_path):
        assert load_dotenv_file(tmp_path) == {}


class TestListEnvironments:
    """Tests for environment discovery."""

    def test_names_from_both_files(self, env_dir):
        assert list_environments(env_dir) == ["dev", "prod", "qa"]

    def test_shared_section_is_hidden(self, env_dir):
        assert "$shared" not in list_environments(env_dir)

    def test_no_files(self, tmp_path):
        assert list_environments(tmp_path) == []
