"""Configuration helpers for environment-aware setup."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, MutableMapping
import os

from dotenv import dotenv_values

__all__ = [
    "EnvironmentSettings",
    "load_environment_settings",
    "build_hierarchical_tree",
    "log_configuration_snapshot",
    "lookup_hierarchical_value",
    "parse_bool",
    "split_env_list",
]


@dataclass(frozen=True)
class EnvironmentSettings:
    """Represents the environment configuration detected at runtime."""

    name: str
    loaded_files: tuple[str, ...]
    file_values: Mapping[str, str]
    hierarchical: Mapping[str, Any]

    def get(self, key: str) -> str | None:
        """Return the value for ``key`` considering hierarchical overrides."""

        value = os.getenv(key)
        if value is not None:
            return value
        return lookup_hierarchical_value(self.hierarchical, key)

    def get_section(self, name: str) -> Mapping[str, str]:
        """Return the flat ``KEY -> value`` mapping stored under section ``name``.

        Section names are matched case-insensitively, so ``jwtTokenConfig``
        resolves variables such as ``JWTTOKENCONFIG__SECRET``.
        """

        section = self.hierarchical.get(name.strip().upper())
        if not isinstance(section, Mapping):
            return {}
        return {
            key: str(value)
            for key, value in section.items()
            if not isinstance(value, Mapping)
        }


def split_env_list(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_hierarchical_tree(
    values: Mapping[str, str], *, delimiter: str = "__"
) -> Mapping[str, Any]:
    """Build a nested mapping from ``KEY__CHILD`` style environment variables."""

    tree: dict[str, Any] = {}
    for raw_key, value in values.items():
        if delimiter not in raw_key:
            continue
        segments = [segment.strip().upper() for segment in raw_key.split(delimiter) if segment.strip()]
        if not segments:
            continue
        current: MutableMapping[str, Any] = tree
        for part in segments[:-1]:
            nested = current.get(part)
            if not isinstance(nested, MutableMapping):
                nested = {}
                current[part] = nested
            current = nested
        current[segments[-1]] = value
    return tree


def lookup_hierarchical_value(tree: Mapping[str, Any], key: str) -> str | None:
    """Lookup ``key`` in ``tree`` by splitting on underscores."""

    if not key:
        return None
    segments = [segment.strip().upper() for segment in key.split("_") if segment.strip()]
    if not segments:
        return None
    current: Any = tree
    for part in segments:
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    if isinstance(current, Mapping):
        return None
    return str(current)


def load_environment_settings(
    *, env: str | None = None, project_root: str | Path | None = None
) -> EnvironmentSettings:
    """Load environment settings supporting layered ``.env`` files.

    Files are applied in order ``.env``, ``.env.local``, ``.env.<env>`` and
    ``.env.<env>.local``; later files win, and variables already present in the
    process environment beat every file.
    """

    root = Path(project_root or Path.cwd())
    name = (env or os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "production").strip()
    name = name or "production"
    ordered_files: list[Path] = [root / ".env", root / ".env.local"]
    slug = name.lower()
    ordered_files.extend([root / f".env.{slug}", root / f".env.{slug}.local"])

    # Variables set before startup always beat values from files.
    process_environment = dict(os.environ)
    loaded_files: list[str] = []
    file_values: dict[str, str] = {}
    for candidate in ordered_files:
        if not candidate.exists():
            continue
        loaded_files.append(str(candidate))
        for key, value in dotenv_values(candidate).items():
            if value is None:
                continue
            file_values[key] = value
            if key not in process_environment:
                os.environ[key] = value

    merged = dict(file_values)
    merged.update(process_environment)
    hierarchical = build_hierarchical_tree(merged)
    return EnvironmentSettings(
        name=name,
        loaded_files=tuple(loaded_files),
        file_values=file_values,
        hierarchical=hierarchical,
    )


_SENSITIVE_MARKERS = ("SECRET", "PASSWORD", "TOKEN", "KEY")


def _sanitize_value(key: str, value: Any) -> Any:
    upper_key = key.upper()
    if any(marker in upper_key for marker in _SENSITIVE_MARKERS):
        return "***"
    return value


def _sanitize_tree(tree: Mapping[str, Any]) -> Mapping[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in tree.items():
        if isinstance(value, Mapping):
            sanitized[key] = _sanitize_tree(value)
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def log_configuration_snapshot(
    *,
    logger: Any,
    settings: EnvironmentSettings,
    config: Mapping[str, Any],
    keys_of_interest: Iterable[str],
) -> None:
    """Log a sanitized snapshot of the runtime configuration."""

    snapshot = {
        key: _sanitize_value(key, config.get(key))
        for key in keys_of_interest
        if key in config
    }
    logger.info(
        "Runtime configuration initialised",
        extra={
            "environment": settings.name,
            "env_files": settings.loaded_files,
            "config_snapshot": snapshot,
            "hierarchical_overrides": _sanitize_tree(settings.hierarchical),
        },
    )
