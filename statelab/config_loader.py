"""
StateLab — Configuration

Settings come from four layers, each one overriding the one before:

  1. DEFAULTS below
  2. statelab.yaml in the project root
  3. config/<env>.yaml for the active profile (SL_ENV, default "dev")
  4. SL_* environment variables

Usage:
    from statelab.config_loader import get_config

    config = get_config()
    config.get("database.backend")        # "sqlite"
    config.get("api.port", 8080)
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("statelab.config")


DEFAULTS: dict[str, Any] = {
    "database": {
        "backend": "sqlite",
        "path": "statelab.db",
        "dsn": "",
    },
    "logging": {
        "level": "INFO",
    },
    "api": {
        "host": "127.0.0.1",
        "port": 8080,
    },
}

# Named variables → dotted config keys
_ENV_MAPPINGS: dict[str, str] = {
    "SL_DB_BACKEND": "database.backend",
    "SL_DB_PATH": "database.path",
    "SL_DB_DSN": "database.dsn",
    "SL_LOG_LEVEL": "logging.level",
    "SL_API_HOST": "api.host",
    "SL_API_PORT": "api.port",
}

# Kept verbatim: a file named "1" or a DSN must not turn into a number
_RAW_ENV_KEYS = frozenset({"SL_DB_PATH", "SL_DB_DSN"})

# SL_CONFIG__API__RELOAD=true → api.reload = True
_GENERIC_PREFIX = "SL_CONFIG__"


class ConfigLoader:
    """Merged view of every config layer, read with dotted keys."""

    def __init__(
        self,
        env: str = "dev",
        project_root: str = ".",
        base_files: list[str] | None = None,
    ):
        self.env = env
        self.project_root = Path(project_root)
        self.base_files = base_files or ["statelab.yaml"]
        self._data: dict[str, Any] | None = None

    def load(self) -> dict[str, Any]:
        """(Re)read every layer and return the merged mapping."""
        layers: list[tuple[str, dict[str, Any]]] = [("defaults", DEFAULTS)]

        for name in self.base_files:
            path = self.project_root / name
            if path.exists():
                layers.append((f"base:{name}", _read_yaml(path)))

        overlay = Path("config") / f"{self.env}.yaml"
        if (self.project_root / overlay).exists():
            layers.append((f"overlay:{overlay.as_posix()}", _read_yaml(self.project_root / overlay)))

        from_env = _load_env_overrides()
        if from_env:
            layers.append((f"env_vars({len(from_env)} keys)", from_env))

        merged: dict[str, Any] = {}
        for _, layer in layers:
            merged = _deep_merge(merged, layer)
        sources = [label for label, _ in layers]
        merged["_config_meta"] = {
            "env": self.env,
            "sources": sources,
            "project_root": str(self.project_root),
        }
        self._data = merged
        logger.info("Config loaded: env=%s sources=%s", self.env, sources)
        return merged

    reload = load

    def _ensure_loaded(self) -> dict[str, Any]:
        if self._data is None:
            return self.load()
        return self._data

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """``config.get("database.path")``; ``default`` when any segment is missing."""
        node: Any = self._ensure_loaded()
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, not {type(data).__name__}")
    return data


def _deep_merge(base: dict, overlay: dict) -> dict:
    """
    Return a new dict: ``overlay`` laid over ``base``.

    Nested mappings merge key by key; any other value (lists included)
    replaces what was there. Neither input is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ═══════════════════════════════════════════════════════════════════
# Environment Overrides
# ═══════════════════════════════════════════════════════════════════

def _set_dotted(target: dict, dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    for part in parents:
        target = target.setdefault(part, {})
    target[leaf] = value


def _load_env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, dotted in _ENV_MAPPINGS.items():
        raw = os.environ.get(var)
        if raw is None:
            continue
        _set_dotted(overrides, dotted, raw if var in _RAW_ENV_KEYS else _auto_convert(raw))

    for var, raw in os.environ.items():
        if var.startswith(_GENERIC_PREFIX):
            dotted = var[len(_GENERIC_PREFIX):].lower().replace("__", ".")
            _set_dotted(overrides, dotted, _auto_convert(raw))
    return overrides


_TRUE = frozenset({"true", "yes"})
_FALSE = frozenset({"false", "no"})


def _auto_convert(value: str) -> Any:
    """Booleans from yes/true and no/false, then int, then float, else the raw string."""
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


# ═══════════════════════════════════════════════════════════════════
# Process-wide Instance
# ═══════════════════════════════════════════════════════════════════

_instance: ConfigLoader | None = None


def get_config(env: str | None = None, project_root: str | None = None) -> ConfigLoader:
    """
    Shared loader for the process, built on first call from the arguments
    or SL_ENV / SL_PROJECT_ROOT. Later calls ignore their arguments.
    """
    global _instance
    if _instance is None:
        _instance = load_config(
            env=env or os.environ.get("SL_ENV", "dev"),
            project_root=project_root or os.environ.get("SL_PROJECT_ROOT", "."),
        )
    return _instance


def load_config(
    env: str = "dev",
    project_root: str = ".",
    base_files: list[str] | None = None,
) -> ConfigLoader:
    """A fresh, already loaded ConfigLoader that is not shared."""
    loader = ConfigLoader(env=env, project_root=project_root, base_files=base_files)
    loader.load()
    return loader


def reset_config() -> None:
    """Forget the shared loader (tests)."""
    global _instance
    _instance = None
