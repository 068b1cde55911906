"""
Configuration loader.

Loads YAML config files and provides unified access.
Supports:
- dispatcher.example.yaml overridden by dispatcher.yaml
- Environment variable substitution
- Environment variable overrides for dispatcher and fetcher settings
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from queuefetch.core.exceptions import ConfigurationError
from queuefetch.core.primitives.dispatcher import DispatcherConfig
from queuefetch.core.primitives.fetcher import FetcherConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent.parent.parent.parent / "config"

CONFIG_FILES = ["dispatcher.example.yaml", "dispatcher.yaml"]

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config."""
    if isinstance(obj, str):
        return ENV_VAR_PATTERN.sub(
            lambda match: os.environ.get(match.group(1), match.group(2) or ""),
            obj,
        )

    elif isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}

    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]

    return obj


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a single YAML file."""
    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    return _substitute_env_vars(data)


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries. Override takes precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


@lru_cache(maxsize=1)
def get_config(config_dir: str | None = None) -> dict[str, Any]:
    """Load and merge all config files."""
    base_dir = Path(config_dir) if config_dir else CONFIG_DIR

    config: dict[str, Any] = {}

    for filename in CONFIG_FILES:
        file_path = base_dir / filename
        if file_path.exists():
            config = deep_merge(config, load_yaml(file_path))
            logger.debug(f"Loaded config: {filename}")

    return config


def reload_config(config_dir: str | None = None) -> dict[str, Any]:
    """Force reload config (clears cache)."""
    get_config.cache_clear()
    return get_config(config_dir)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"Invalid boolean value: {value!r}")


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def load_dispatcher_config(config_dir: str | None = None) -> DispatcherConfig:
    """
    Load dispatcher configuration from environment variables and config files.

    Environment variables take precedence over config files.

    Returns:
        Dispatcher configuration.
    """
    section = get_config(config_dir).get("dispatcher", {})

    return DispatcherConfig(
        max_workers=_to_int(
            os.environ.get("QUEUEFETCH_MAX_WORKERS", section.get("max_workers", 25)),
            "max_workers",
        ),
        check_result=_to_bool(
            os.environ.get("QUEUEFETCH_CHECK_RESULT", section.get("check_result", True))
        ),
    )


def load_fetcher_config(config_dir: str | None = None) -> FetcherConfig:
    """
    Load HTTP fetcher configuration from environment variables and config files.

    Returns:
        Fetcher configuration.
    """
    section = get_config(config_dir).get("fetcher", {})
    defaults = FetcherConfig()

    try:
        timeout = float(os.environ.get("QUEUEFETCH_TIMEOUT", section.get("timeout", defaults.timeout)))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"timeout must be a number: {e}") from e

    return FetcherConfig(
        timeout=timeout,
        user_agent=os.environ.get(
            "QUEUEFETCH_USER_AGENT",
            section.get("user_agent", defaults.user_agent),
        ),
        extra_headers=dict(section.get("extra_headers") or {}),
        follow_redirects=_to_bool(section.get("follow_redirects", defaults.follow_redirects)),
        verify_ssl=_to_bool(section.get("verify_ssl", defaults.verify_ssl)),
    )


def get_log_level(config_dir: str | None = None) -> str:
    """Get the configured log level."""
    section = get_config(config_dir).get("logging", {})
    return os.environ.get("QUEUEFETCH_LOG_LEVEL", section.get("level", "INFO"))
