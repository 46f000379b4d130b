# === NAVMAP v1 ===
# {
#   "module": "LauncherKit.config.loader",
#   "purpose": "Configuration Loading with File/Env/CLI Precedence.",
#   "sections": [
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "merge-env-overrides",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: LAUNCHERKIT_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation:
  LAUNCHERKIT_HTTP__USER_AGENT="Custom UA"  →  http.user_agent="Custom UA"
  LAUNCHERKIT_SYNC__CONFLICT_POLICY=newer-wins  →  sync.conflict_policy="newer-wins"

JSON values are automatically parsed; strings are type-coerced when possible.
Variables whose names do not map onto a config section (for example the
account token variable) are ignored.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import LauncherConfig

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "LAUNCHERKIT_"

# ============================================================================
# Helpers
# ============================================================================


def _parse_yaml(text: str) -> Any:
    return yaml.safe_load(text) or {}


_PARSERS = {
    ".yaml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".yml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".json": (json.loads, json.JSONDecodeError, "JSON"),
}


def _read_file(path: str) -> dict[str, Any]:
    """Parse a ``.yaml``/``.yml``/``.json`` launcher config into a mapping.

    Every failure (missing file, unreadable file, bad syntax, non-mapping
    document) surfaces as :class:`ValueError` naming the file.
    """
    source = Path(path)
    parser = _PARSERS.get(source.suffix.lower())
    if parser is None:
        raise ValueError(f"Unsupported file format: {source.suffix}. Use .yaml or .json")
    parse, syntax_error, label = parser

    try:
        text = source.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ValueError(f"Cannot read config file {path}: {exc}") from exc

    try:
        loaded = parse(text)
    except syntax_error as exc:
        raise ValueError(f"Invalid {label} in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return loaded


def _assign_nested(data: dict[str, Any], path: list[str], value: Any) -> None:
    """Set ``data[path[0]][path[1]]... = value``, replacing non-dict parents."""
    node = data
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = node[key] = {}
        node = child
    node[path[-1]] = value


def _coerce_env_value(raw: str) -> Any:
    """JSON-decode ``raw`` when possible (numbers, lists, ``true``); else keep the string."""
    try:
        return json.loads(raw)
    except ValueError:
        lowered = raw.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return raw


def _merge_env_overrides(data: dict[str, Any], env_prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Overlay environment variables onto config dict.

    Only variables of the form ``<prefix><SECTION>__<KEY>`` whose section is a
    field of :class:`LauncherConfig` are considered.
    """
    sections = set(LauncherConfig.model_fields)
    for env_key in sorted(os.environ):
        if not env_key.startswith(env_prefix):
            continue
        path = env_key[len(env_prefix) :].lower().split("__")
        if len(path) < 2 or path[0] not in sections:
            continue
        _assign_nested(data, path, _coerce_env_value(os.environ[env_key]))
        _LOGGER.debug("Environment override: %s -> %s", env_key, ".".join(path))
    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """
    Recursively merge CLI overrides into base config dict.

    Later values win (standard dict.update() semantics).
    """
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = value
        _LOGGER.debug("CLI override: %s = %r", key, value)

    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> LauncherConfig:
    """
    Load LauncherConfig from file, environment, and CLI with proper precedence.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to YAML/JSON config file (optional)
        env_prefix: Environment variable prefix (default: LAUNCHERKIT_)
        cli_overrides: CLI overrides dict (optional)

    Returns:
        Validated LauncherConfig instance

    Raises:
        ValueError: If the file cannot be read or parsed
        pydantic.ValidationError: If the merged data is invalid
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    config = LauncherConfig.model_validate(data)
    _LOGGER.debug("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config


def validate_config_file(path: str) -> bool:
    """
    Validate a config file.

    Returns:
        True if valid

    Raises:
        ValueError / pydantic.ValidationError: If invalid
    """
    try:
        load_config(path=path)
        return True
    except Exception as e:
        _LOGGER.error("Config validation failed: %s", e)
        raise


def export_config_schema(output_path: str | None = None) -> dict[str, Any]:
    """
    Export JSON Schema for LauncherConfig.

    When ``output_path`` is given the schema is also written there.
    """
    schema = LauncherConfig.model_json_schema()
    if output_path:
        Path(output_path).write_text(json.dumps(schema, indent=2), encoding="utf-8")
    return schema
