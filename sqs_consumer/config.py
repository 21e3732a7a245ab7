"""
Configuration loader.
Merges YAML file + environment variables into a typed, frozen ConsumerConfig.
Defaults are applied once, by resolve_config(), when a Consumer is built.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import (
    CONFIG_KEYS,
    CONFIG_PATH_ENV,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_NUMBER_OF_MESSAGES,
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME_SECONDS,
    ENV_VARS,
    SQS_MAX_MESSAGES,
    SQS_MAX_VISIBILITY,
    SQS_MAX_WAIT_SECONDS,
    SQS_MIN_MESSAGES,
)
from .errors import ValidationError
from .logging import get_logger

_logger = get_logger("config")


# ============================================================================
# CONFIG SCHEMA
# ============================================================================

@dataclass(frozen=True)
class ConsumerConfig:
    """
    Consumer settings. None means "unset, use the default".
    Immutable once built; the Consumer only ever holds a resolved copy.
    """
    queue: str  # queue URL
    concurrency: Optional[int] = None  # number of workers
    max_number_of_messages: Optional[int] = None  # messages per poll, 1-10
    visibility_timeout: Optional[int] = None  # seconds, 0 = reappear immediately
    wait_time_seconds: Optional[int] = None  # long-poll seconds, 0-20

    @property
    def is_resolved(self) -> bool:
        return all(getattr(self, f.name) is not None for f in fields(self))


# ============================================================================
# DEFAULTING
# ============================================================================

def _as_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got bool")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e


def resolve_config(config: ConsumerConfig) -> ConsumerConfig:
    """
    Validate and apply defaults.

    - queue must be non-empty (ValidationError otherwise)
    - concurrency, max_number_of_messages: unset/zero/negative -> default
    - visibility_timeout, wait_time_seconds: unset/negative -> default, 0 kept
    - values above the SQS limits are clamped

    Resolving an already resolved config returns an equal config.
    """
    queue = config.queue.strip() if isinstance(config.queue, str) else ""
    if not queue:
        raise ValidationError("queue is required")

    concurrency = _as_int("concurrency", config.concurrency)
    if not concurrency or concurrency < 1:
        concurrency = DEFAULT_CONCURRENCY

    max_messages = _as_int("max_number_of_messages", config.max_number_of_messages)
    if not max_messages or max_messages < SQS_MIN_MESSAGES:
        max_messages = DEFAULT_MAX_NUMBER_OF_MESSAGES
    max_messages = min(max_messages, SQS_MAX_MESSAGES)

    visibility = _as_int("visibility_timeout", config.visibility_timeout)
    if visibility is None or visibility < 0:
        visibility = DEFAULT_VISIBILITY_TIMEOUT
    visibility = min(visibility, SQS_MAX_VISIBILITY)

    wait = _as_int("wait_time_seconds", config.wait_time_seconds)
    if wait is None or wait < 0:
        wait = DEFAULT_WAIT_TIME_SECONDS
    wait = min(wait, SQS_MAX_WAIT_SECONDS)

    return replace(
        config,
        queue=queue,
        concurrency=concurrency,
        max_number_of_messages=max_messages,
        visibility_timeout=visibility,
        wait_time_seconds=wait,
    )


# ============================================================================
# LOADING FUNCTIONS
# ============================================================================

def config_from_mapping(raw: Mapping[str, Any]) -> ConsumerConfig:
    """
    Build an (unresolved) config from a dict.
    Accepts the camelCase keys (queue, concurrency, maxNumberOfMessages,
    visibilityTimeout, waitTimeSeconds) and their snake_case field names.
    """
    field_names = set(CONFIG_KEYS.values())
    values: Dict[str, Any] = {}
    for key, value in (raw or {}).items():
        name = CONFIG_KEYS.get(key, key)
        if name not in field_names:
            _logger.warning("Ignoring unknown config key", {"key": key})
            continue
        values[name] = value

    queue = values.pop("queue", "") or ""
    ints = {name: _as_int(name, value) for name, value in values.items()}
    return ConsumerConfig(queue=str(queue), **ints)


def _env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    out: Dict[str, Any] = {}
    for name, var in ENV_VARS.items():
        value = environ.get(var)
        if value not in (None, ""):
            out[name] = value
    return out


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> ConsumerConfig:
    """Build a config from SQS_* environment variables only."""
    return config_from_mapping(_env_overrides(environ))


def load_yaml_file(filepath: str) -> Dict[str, Any]:
    """
    Parse a YAML config file. An optional top-level `consumer:` section is
    unwrapped. Raises FileNotFoundError when the file is missing.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Missing config file at {filepath}")
    with open(filepath, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Config file {filepath} must contain a mapping")
    section = data.get("consumer", data)
    if not isinstance(section, dict):
        raise ValidationError(f"'consumer' section in {filepath} must be a mapping")
    return section


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ConsumerConfig:
    """
    Main entry point.

    Priority (highest to lowest):
    1. Environment variables (SQS_QUEUE, SQS_CONCURRENCY, ...)
    2. YAML file at `path` or $SQS_CONSUMER_CONFIG (if set)
    3. Built-in defaults (applied later by resolve_config)
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_PATH_ENV)

    raw: Dict[str, Any] = {}
    if path:
        raw.update(load_yaml_file(path))
        _logger.debug("Loaded config file", {"path": path})

    # env uses field names; normalise file keys first so env wins
    merged = {CONFIG_KEYS.get(k, k): v for k, v in raw.items()}
    merged.update(_env_overrides(environ))
    return config_from_mapping(merged)


__all__ = [
    "ConsumerConfig",
    "resolve_config",
    "config_from_mapping",
    "config_from_env",
    "load_yaml_file",
    "load_config",
]
