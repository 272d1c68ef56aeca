"""
bson-text-repair: configuration schema and validation.

Purpose
- Hold the built-in defaults and the rules every effective config must pass.

Layout
- ``_SECTIONS`` maps each section to its fields and the converter that checks
  and normalizes a field's value. Converters raise ``_Invalid`` with a short
  message; the walker turns that into a ``ConfigValidationIssue`` carrying the
  dotted field path.
- Profiles are partial overlays of the ``store``, ``repair`` and
  ``observability`` sections and are checked with the same converters.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from bson_text_repair.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_LOG_DIR,
    DEFAULT_MONGO_URI,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from bson_text_repair.observability.logging import redact_text

BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("audit", "interactive")
REPLACE_ERROR_POLICIES: Final[tuple[str, ...]] = ("continue", "abort")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Relative values are resolved against the config file's directory.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (("observability", "log_dir"),)

# Values that may embed credentials and must be redacted before display.
URI_FIELDS: Final[tuple[tuple[str, str], ...]] = (("store", "uri"),)

_PROFILE_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")
_URI_SCHEMES: Final[tuple[str, ...]] = ("mongodb://", "mongodb+srv://")


class StoreConfig(TypedDict):
    uri: str
    database: str
    collections: list[str]
    server_selection_timeout_ms: int


class RepairConfig(TypedDict):
    confirm: bool
    dry_run: bool
    high_byte: int
    on_replace_error: Literal["continue", "abort"]
    max_concurrent_streams: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stderr: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    store: dict[str, object]
    repair: dict[str, object]
    observability: dict[str, object]


class RepairToolConfig(TypedDict):
    meta: dict[str, int]
    store: StoreConfig
    repair: RepairConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[RepairToolConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "store": {
        "uri": DEFAULT_MONGO_URI,
        "database": "",
        "collections": [],
        "server_selection_timeout_ms": DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    },
    "repair": {
        "confirm": False,
        "dry_run": False,
        "high_byte": 0,
        "on_replace_error": "continue",
        "max_concurrent_streams": 1,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": DEFAULT_LOG_DIR,
        "log_to_stderr": False,
        "redact_secrets": True,
    },
    "profiles": {
        "audit": {"repair": {"dry_run": True}},
        "interactive": {"repair": {"confirm": True}},
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One failed rule, addressed by dotted field path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Config failed validation; ``issues`` lists every problem found."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: unknown failure"))


class _Invalid(ValueError):
    pass


def _type_name(value: object) -> str:
    return type(value).__name__


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {_type_name(value)}")
    return value


def _integer(*, minimum: int, maximum: int | None = None) -> Callable[[object], int]:
    def convert(value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _Invalid(f"expected integer, got {_type_name(value)}")
        if value < minimum:
            raise _Invalid(f"must be >= {minimum}")
        if maximum is not None and value > maximum:
            raise _Invalid(f"must be <= {maximum}")
        return value

    return convert


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {_type_name(value)}")
    stripped = value.strip()
    if not stripped:
        raise _Invalid("must not be empty")
    return stripped


def _choice(allowed: tuple[str, ...], *, upper: bool = False) -> Callable[[object], str]:
    def convert(value: object) -> str:
        chosen = _text(value)
        if upper:
            chosen = chosen.upper()
        if chosen not in allowed:
            raise _Invalid(f"invalid value {chosen!r}; expected one of: {', '.join(allowed)}")
        return chosen

    return convert


def _mongo_uri(value: object) -> str:
    uri = _text(value)
    if not uri.startswith(_URI_SCHEMES):
        raise _Invalid("must start with mongodb:// or mongodb+srv://")
    return uri


def _database(value: object) -> str:
    # Empty is allowed here; the repair command refuses to run without one.
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {_type_name(value)}")
    return value.strip()


def _collection_names(value: object) -> list[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise _Invalid(f"expected list of strings, got {_type_name(value)}")
    names: list[str] = []
    for index, item in enumerate(value):
        try:
            name = _text(item)
        except _Invalid as exc:
            raise _Invalid(f"item {index}: {exc}") from None
        if name not in names:
            names.append(name)
    return names


def _directory(value: object) -> str:
    text = _text(value)
    if "\x00" in text:
        raise _Invalid("must not contain NUL bytes")
    return text


_SECTIONS: Final[dict[str, dict[str, Callable[[object], Any]]]] = {
    "meta": {
        "schema_version": _integer(minimum=1),
    },
    "store": {
        "uri": _mongo_uri,
        "database": _database,
        "collections": _collection_names,
        "server_selection_timeout_ms": _integer(minimum=1),
    },
    "repair": {
        "confirm": _flag,
        "dry_run": _flag,
        "high_byte": _integer(minimum=0, maximum=0xFF),
        "on_replace_error": _choice(REPLACE_ERROR_POLICIES),
        "max_concurrent_streams": _integer(minimum=1),
    },
    "observability": {
        "log_level": _choice(LOG_LEVELS, upper=True),
        "log_dir": _directory,
        "log_to_stderr": _flag,
        "redact_secrets": _flag,
    },
}
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = ("store", "repair", "observability")


def default_config() -> RepairToolConfig:
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Tell the operator which side needs upgrading for a schema version mismatch."""

    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade bson-text-repair.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the bson-text-repair runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; lists are replaced whole."""

    merged = _plain(base)
    _overlay_onto(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and validate the result."""

    name = (profile or "").strip()
    if not name:
        return _plain(config)

    profiles = config.get("profiles")
    overlay = profiles.get(name) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            [ConfigValidationIssue("profiles", f"profile {name!r} is not defined")]
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            [ConfigValidationIssue(f"profiles.{name}", "profile overlay must be an object")]
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=name)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Check every section; the normalized config is returned only when nothing failed."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", f"expected object, got {_type_name(config)}"))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    for key in config:
        if key not in _SECTIONS and key != "profiles":
            issues.append(ConfigValidationIssue(str(key), "unknown field"))

    normalized: dict[str, Any] = {}
    for name, fields in _SECTIONS.items():
        if name not in config:
            issues.append(ConfigValidationIssue(name, "missing required field"))
            continue
        checked = _check_section(config[name], name, fields, issues, partial=False)
        if checked is not None:
            normalized[name] = checked

    _check_cross_field_rules(normalized, issues)

    if "profiles" in config:
        normalized["profiles"] = _check_profiles(config["profiles"], issues)

    wanted = (active_profile or "").strip()
    if wanted and wanted not in normalized.get("profiles", {}):
        issues.append(ConfigValidationIssue("profiles", f"profile {wanted!r} is not defined"))

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with credentials masked in URI fields, profiles included."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _plain(config)
    blocks: list[object] = [redacted]
    profiles = redacted.get("profiles")
    if isinstance(profiles, dict):
        blocks.extend(profiles.values())
    for block in blocks:
        if not isinstance(block, dict):
            continue
        for section, key in URI_FIELDS:
            holder = block.get(section)
            if isinstance(holder, dict) and isinstance(holder.get(key), str):
                holder[key] = redact_text(holder[key])
    return redacted


dump_redacted = redact_config


def _check_section(
    raw: object,
    path: str,
    fields: Mapping[str, Callable[[object], Any]],
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any] | None:
    if not isinstance(raw, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {_type_name(raw)}"))
        return None

    for key in raw:
        if key not in fields:
            issues.append(ConfigValidationIssue(f"{path}.{key}", "unknown field"))

    checked: dict[str, Any] = {}
    for key, convert in fields.items():
        if key not in raw:
            if not partial:
                issues.append(ConfigValidationIssue(f"{path}.{key}", "missing required field"))
            continue
        try:
            checked[key] = convert(raw[key])
        except _Invalid as exc:
            issues.append(ConfigValidationIssue(f"{path}.{key}", str(exc)))
    return checked


def _check_cross_field_rules(
    normalized: Mapping[str, Any], issues: list[ConfigValidationIssue]
) -> None:
    version = normalized.get("meta", {}).get("schema_version")
    if version is not None and version != CONFIG_SCHEMA_VERSION:
        issues.append(ConfigValidationIssue("meta.schema_version", migration_guidance(version)))

    repair = normalized.get("repair", {})
    if repair.get("confirm") and repair.get("max_concurrent_streams", 1) > 1:
        issues.append(
            ConfigValidationIssue(
                "repair.max_concurrent_streams",
                "must be 1 when confirm is enabled; prompts cannot interleave",
            )
        )


def _check_profiles(raw: object, issues: list[ConfigValidationIssue]) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        issues.append(ConfigValidationIssue("profiles", f"expected object, got {_type_name(raw)}"))
        return {}

    profiles: dict[str, Any] = {}
    for name, overlay in raw.items():
        path = f"profiles.{name}"
        if not isinstance(name, str) or not _PROFILE_NAME.fullmatch(name):
            message = f"profile name must match {_PROFILE_NAME.pattern}"
            issues.append(ConfigValidationIssue(path, message))
            continue
        if not isinstance(overlay, Mapping):
            message = f"expected object, got {_type_name(overlay)}"
            issues.append(ConfigValidationIssue(path, message))
            continue
        for key in overlay:
            if key not in _OVERLAY_SECTIONS:
                issues.append(ConfigValidationIssue(f"{path}.{key}", "unknown field"))
        checked: dict[str, Any] = {}
        for section in _OVERLAY_SECTIONS:
            if section in overlay:
                block = _check_section(
                    overlay[section], f"{path}.{section}", _SECTIONS[section], issues, partial=True
                )
                if block is not None:
                    checked[section] = block
        profiles[name] = checked
    return profiles


def _overlay_onto(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key, value in overlay.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _overlay_onto(current, value)
        else:
            target[key] = _plain(value)


def _plain(value: Any) -> Any:
    """Deep copy into plain dicts and lists, with mapping keys in sorted order."""

    if isinstance(value, Mapping):
        return {key: _plain(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ProfileOverlay",
    "REPLACE_ERROR_POLICIES",
    "RepairToolConfig",
    "URI_FIELDS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
