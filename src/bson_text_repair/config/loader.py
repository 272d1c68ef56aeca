"""
bson-text-repair: runtime config loader.

Purpose
- Produce the effective config for a run from four layers, lowest first:
  built-in defaults, ``bson-text-repair.toml``, ``BSON_REPAIR_*`` environment
  variables, and CLI flags.

Behaviour
- A missing default config file is fine; a missing ``--config`` path is not.
- A profile (argument, CLI override, or ``BSON_REPAIR_PROFILE``) is applied on
  top of the file layer, so env and CLI still win over it.
- ``observability.log_dir`` is resolved against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from bson_text_repair.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)
from bson_text_repair.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "BSON_REPAIR_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Config file unreadable, or an override value cannot be converted."""


def _to_bool(raw: str) -> bool:
    word = raw.lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError("expected a boolean (true/false, yes/no, on/off, 1/0)")


def _to_int(raw: str) -> int:
    try:
        return int(raw, 16) if raw.lower().startswith("0x") else int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _to_list(raw: str) -> list[str]:
    # BSON_REPAIR_STORE_COLLECTIONS="users,orders"
    return [item.strip() for item in raw.split(",") if item.strip()]


# Every setting that can come from the environment, with its converter.
_ENV_SETTINGS: Final[dict[tuple[str, str], Callable[[str], object]]] = {
    ("store", "uri"): str,
    ("store", "database"): str,
    ("store", "collections"): _to_list,
    ("store", "server_selection_timeout_ms"): _to_int,
    ("repair", "confirm"): _to_bool,
    ("repair", "dry_run"): _to_bool,
    ("repair", "high_byte"): _to_int,
    ("repair", "on_replace_error"): str,
    ("repair", "max_concurrent_streams"): _to_int,
    ("observability", "log_level"): str,
    ("observability", "log_dir"): str,
    ("observability", "log_to_stderr"): _to_bool,
    ("observability", "redact_secrets"): _to_bool,
}


def env_var_name(section: str, key: str) -> str:
    """``("repair", "high_byte")`` -> ``BSON_REPAIR_REPAIR_HIGH_BYTE``."""

    return f"{ENV_PREFIX}{section}_{key}".upper()


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config (CLI > env > profile > file > defaults)."""

    environ = os.environ if environ is None else environ
    cli_overrides = cli_overrides or {}

    if config_path is None:
        path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
        file_layer = _read_toml(path) if path.exists() else {}
    else:
        path = Path(config_path).expanduser().resolve()
        if not path.exists():
            raise ConfigLoadError(f"config file not found: {path}")
        file_layer = _read_toml(path)

    config = assert_valid_config(merge_config(default_config(), file_layer))

    selected = _pick_profile(profile, cli_overrides, environ)
    if selected:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, _env_layer(environ))
    config = merge_config(config, _cli_layer(cli_overrides))
    config = normalize_paths(config, base_dir=path.parent)
    return assert_valid_config(config, active_profile=selected)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make relative path settings absolute against ``base_dir``; returns a copy."""

    normalized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        block = normalized.get(section)
        if isinstance(block, dict) and isinstance(block.get(key), str):
            block[key] = _absolute(block[key], base_dir)
    return normalized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Redacted copy of ``config`` that is safe to print or log."""

    return dump_redacted(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Stable JSON text of :func:`effective_config`."""

    return json.dumps(
        effective_config(config),
        sort_keys=True,
        indent=indent,
        separators=(",", ":") if indent is None else (",", ": "),
        ensure_ascii=False,
    )


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(
    explicit: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    for candidate in (explicit, cli_overrides.get("profile"), environ.get(PROFILE_ENV)):
        if candidate is None:
            continue
        if not isinstance(candidate, str):
            raise ConfigLoadError("profile must be a string")
        return candidate.strip() or None
    return None


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for (section, key), convert in _ENV_SETTINGS.items():
        name = env_var_name(section, key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = convert(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {section}.{key} {exc}") from exc
        layer.setdefault(section, {})[key] = value
    return layer


def _cli_layer(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in cli_overrides.items():
        if dotted == "profile" or value is None:
            continue
        *parents, leaf = dotted.split(".")
        if not leaf or not all(parents):
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        node = layer
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return layer


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
