"""
Tests for configuration loading.

Run with: pytest tests/test_config.py -v
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import config as config_module
from core.config import (
    CONFIG_ENV_VAR,
    get_config,
    get_project_root,
    get_section,
    get_server_config,
    load_config,
    resolve_db_path,
)


class TestLoadConfig:
    """Tests for reading config.yaml."""

    def test_project_root_has_config(self):
        assert (get_project_root() / "config.yaml").exists()

    def test_default_config_sections(self):
        config = load_config()
        for section in ("matching", "evaluation", "enrollment", "storage", "api", "logging"):
            assert section in config
        assert config["matching"]["threshold"] == 0.85
        assert config["evaluation"]["impostor_samples_per_identity"] == 50
        assert config["enrollment"]["duplicate_threshold"] == 0.92

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("matching:\n  threshold: 0.7\n", encoding="utf-8")
        assert load_config(str(path)) == {"matching": {"threshold": 0.7}}

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("storage:\n  db_path: ':memory:'\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config()["storage"]["db_path"] == ":memory:"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))


class TestCachedConfig:
    """Tests for the cached accessors."""

    @pytest.fixture(autouse=True)
    def reset_cache(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config_instance", None)

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_get_section_unknown(self):
        with pytest.raises(KeyError):
            get_section("no_such_section")

    def test_server_config_from_base_url(self, monkeypatch):
        monkeypatch.setattr(
            config_module, "_config_instance", {"api": {"base_url": "http://127.0.0.1:9000"}}
        )
        assert get_server_config() == {"host": "127.0.0.1", "port": 9000}


class TestResolveDbPath:
    """Tests for database path resolution."""

    def test_relative_path_under_project_root(self):
        path = resolve_db_path({"db_path": "storage/faces.sqlite"})
        assert path == str(get_project_root() / "storage" / "faces.sqlite")

    def test_absolute_and_memory_paths_untouched(self, tmp_path):
        absolute = str(tmp_path / "faces.sqlite")
        assert resolve_db_path({"db_path": absolute}) == absolute
        assert resolve_db_path({"db_path": ":memory:"}) == ":memory:"
