"""Config module: loading and managing configuration."""

from queuefetch.core.config.loader import (
    get_config,
    get_log_level,
    load_dispatcher_config,
    load_fetcher_config,
    reload_config,
)

__all__ = [
    "get_config",
    "get_log_level",
    "load_dispatcher_config",
    "load_fetcher_config",
    "reload_config",
]
