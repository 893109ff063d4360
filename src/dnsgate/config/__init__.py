"""Configuration loading, validation and logging setup."""

from .config_parser import (
    load_config,
    normalize_upstream_config,
    parse_address,
    parse_upstream,
)
from .config_schema import ListenConfig, LoggingConfig, ProxyConfig, UpstreamEntry
from .logging_config import init_logging

__all__ = [
    "ListenConfig",
    "LoggingConfig",
    "ProxyConfig",
    "UpstreamEntry",
    "init_logging",
    "load_config",
    "normalize_upstream_config",
    "parse_address",
    "parse_upstream",
]
