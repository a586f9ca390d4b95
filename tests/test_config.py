"""
Tests for config loading, env resolution and runtime overrides.
"""

import os

import pytest
import yaml

from promptrelay import config as config_mod
from promptrelay.config import (
    get_config,
    get_runtime_config,
    get_section,
    get_tunable,
    load_config,
    set_config,
    update_runtime_config,
)


def _bump_mtime(path, seconds=10):
    st = path.stat()
    os.utime(path, (st.st_atime + seconds, st.st_mtime + seconds))


def test_env_vars_resolved(monkeypatch):
    monkeypatch.setenv("PR_TEST_KEY", "sk-123")
    set_config({"backend": {"api_key": "${PR_TEST_KEY}", "url": "${PR_TEST_UNSET}"}})
    assert get_section("backend") == {"api_key": "sk-123", "url": ""}


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"server": {"port": 9000}, "models": [{"id": "a"}]}))
    set_config(None)

    cfg = load_config(path)
    assert cfg["server"]["port"] == 9000
    assert get_config() is cfg


def test_load_config_missing_file(tmp_path):
    set_config(None)
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_get_section_tolerates_bad_shapes():
    set_config({"rewriter": None, "models": [1, 2]})
    assert get_section("rewriter") == {}
    assert get_section("models") == {}
    assert get_section("absent") == {}


def test_tunable_precedence(isolated_config):
    set_config({"rewriter": {"max_prompt_length": 120}})
    assert get_tunable("rewriter", "max_prompt_length", 150) == 120
    assert get_tunable("rewriter", "missing", "dflt") == "dflt"

    isolated_config.write_text(yaml.safe_dump({"runtime": {"rewriter": {"max_prompt_length": 80}}}))
    assert get_tunable("rewriter", "max_prompt_length", 150) == 80


def test_runtime_reload_on_change(isolated_config):
    isolated_config.write_text(yaml.safe_dump({"runtime": {"strategies": {"default": "speed"}}}))
    assert get_runtime_config()["strategies"]["default"] == "speed"

    isolated_config.write_text(yaml.safe_dump({"runtime": {"strategies": {"default": "consensus"}}}))
    _bump_mtime(isolated_config)
    assert get_runtime_config()["strategies"]["default"] == "consensus"


def test_runtime_parse_error_keeps_previous(isolated_config):
    isolated_config.write_text(yaml.safe_dump({"runtime": {"strategies": {"default": "speed"}}}))
    assert get_runtime_config()["strategies"]["default"] == "speed"

    isolated_config.write_text("runtime: [unclosed")
    _bump_mtime(isolated_config)
    assert get_runtime_config()["strategies"]["default"] == "speed"


def test_runtime_missing_file_is_empty(isolated_config):
    assert not isolated_config.exists()
    assert get_runtime_config() == {}


def test_update_runtime_config(isolated_config):
    assert update_runtime_config("strategies", "default", "cost_effective")
    assert config_mod._runtime_mtime == 0.0
    assert get_tunable("strategies", "default", "quality") == "cost_effective"

    assert update_runtime_config("rewriter", "max_prompt_length", 90)
    data = yaml.safe_load(isolated_config.read_text())
    assert data == {"runtime": {
        "strategies": {"default": "cost_effective"},
        "rewriter": {"max_prompt_length": 90},
    }}


def test_update_runtime_config_none_removes(isolated_config):
    update_runtime_config("strategies", "default", "speed")
    assert update_runtime_config("strategies", "default", None)
    assert yaml.safe_load(isolated_config.read_text()) == {"runtime": {}}
    assert get_tunable("strategies", "default", "quality") == "quality"
