"""
Config loader for promptrelay.
Reads config.yaml once at startup. All other modules import from here.
runtime_config.yaml is hot-reloaded on every call to get_runtime_config()
via mtime check, so rewriter thresholds and the default strategy can be
tuned without a restart.
"""

import logging
import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(
    os.environ.get("PROMPTRELAY_CONFIG", Path(__file__).parent.parent / "config.yaml")
)
_RUNTIME_CONFIG_PATH = Path(
    os.environ.get(
        "PROMPTRELAY_RUNTIME_CONFIG",
        Path(__file__).parent.parent / "runtime_config.yaml",
    )
)

_config: dict | None = None

# Runtime config hot-reload state
_runtime_config: dict = {}
_runtime_mtime: float = 0.0


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def load_config(path: Path | None = None) -> dict:
    """Load and cache config from YAML file."""
    global _config
    if _config is not None:
        return _config

    config_path = path or _CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    _config = _walk_and_resolve(raw)
    return _config


def get_config() -> dict:
    """Return cached base config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def set_config(data: dict | None) -> None:
    """Replace the cached config. None forces a reload from disk on next use."""
    global _config
    _config = _walk_and_resolve(data) if data is not None else None


def get_section(name: str) -> dict:
    """Return one top-level config block, {} when absent."""
    section = get_config().get(name) or {}
    return section if isinstance(section, dict) else {}


def get_tunable(section: str, key: str, default=None):
    """
    Resolve a tunable value: runtime_config.yaml wins over config.yaml,
    which wins over the supplied default.

        runtime:
          rewriter:
            max_prompt_length: 200
    """
    rt_section = get_runtime_config().get(section) or {}
    if isinstance(rt_section, dict) and key in rt_section:
        return rt_section[key]
    return get_section(section).get(key, default)


def get_runtime_config() -> dict:
    """
    Return runtime_config.yaml overrides, hot-reloading if the file changed.
    Returns the contents of the `runtime` key, or {} if file is missing/empty.
    """
    global _runtime_config, _runtime_mtime

    if not _RUNTIME_CONFIG_PATH.exists():
        return {}

    try:
        mtime = _RUNTIME_CONFIG_PATH.stat().st_mtime
    except OSError:
        return _runtime_config

    if mtime == _runtime_mtime:
        return _runtime_config

    # File changed, reload
    try:
        with open(_RUNTIME_CONFIG_PATH) as f:
            data = yaml.safe_load(f) or {}
        runtime = data.get("runtime") if isinstance(data, dict) else None
        _runtime_config = runtime if isinstance(runtime, dict) else {}
        _runtime_mtime = mtime
    except (OSError, yaml.YAMLError) as e:
        # Keep last good config on parse error
        logger.warning("runtime config reload failed, keeping previous: %s", e)

    return _runtime_config


def update_runtime_config(section: str, key: str, value) -> bool:
    """
    Set runtime.<section>.<key> in runtime_config.yaml, keeping every other
    override. A value of None removes the key. Returns True on success.
    """
    global _runtime_mtime
    try:
        data = {}
        if _RUNTIME_CONFIG_PATH.exists():
            with open(_RUNTIME_CONFIG_PATH) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                data = {}

        runtime = data.get("runtime")
        if not isinstance(runtime, dict):
            runtime = data["runtime"] = {}
        block = runtime.get(section)
        if not isinstance(block, dict):
            block = runtime[section] = {}

        if value is None:
            block.pop(key, None)
            if not block:
                runtime.pop(section)
        else:
            block[key] = value

        _RUNTIME_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(_RUNTIME_CONFIG_PATH, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True)

        # Force the next get_runtime_config() to re-read
        _runtime_mtime = 0.0
        logger.info("Runtime override %s.%s = %r", section, key, value)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error(
            "update_runtime_config(%s.%s) failed: %s (path=%s)",
            section, key, e, _RUNTIME_CONFIG_PATH,
        )
        return False
