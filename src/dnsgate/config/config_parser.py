"""Configuration parsing and normalization helpers for dnsgate.

Brief:
  Reads the YAML config file, layers CLI overrides on top, validates the
  result with the pydantic models in config_schema and normalizes upstream
  entries into Upstream tuples.

Inputs:
  - YAML config paths and CLI override mappings

Outputs:
  - Frozen ProxyConfig instances and normalized upstream lists
"""

from __future__ import annotations

import ipaddress
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from ..transports.exchange import TRANSPORTS, Upstream
from .config_schema import ProxyConfig, UpstreamEntry


def read_config_file(path: str) -> Dict[str, Any]:
    """Brief: Load a YAML config file into a mapping.

    Inputs:
      - path: config file path.

    Outputs:
      - dict: parsed mapping ({} for an empty file).

    Raises:
      - ConfigError: unreadable file, invalid YAML, or a non-mapping document.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ConfigError(f"config {path} must be a mapping at the top level")
    return cfg


def merge_overrides(
    cfg: Dict[str, Any], overrides: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Brief: Layer CLI overrides on top of a parsed config mapping.

    Inputs:
      - cfg: parsed config mapping (not mutated).
      - overrides: flat mapping; keys ``listen.host``, ``listen.port`` and
        ``listen.transport`` address the nested listen block, other keys are
        top-level. None values are ignored.

    Outputs:
      - dict: merged mapping.
    """
    merged = dict(cfg)
    listen = dict(merged.get("listen") or {})
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key.startswith("listen."):
            listen[key.split(".", 1)[1]] = value
        elif key == "logging.level":
            log_cfg = dict(merged.get("logging") or {})
            log_cfg["level"] = value
            merged["logging"] = log_cfg
        else:
            merged[key] = value
    if listen:
        merged["listen"] = listen
    for key in ("listen", "logging", "upstream"):
        if key in merged and merged[key] is None:
            del merged[key]
    return merged


def load_config(
    path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None
) -> ProxyConfig:
    """Brief: Build a validated ProxyConfig from a file and/or overrides.

    Inputs:
      - path: optional YAML config path.
      - overrides: optional CLI overrides (see merge_overrides).

    Outputs:
      - ProxyConfig

    Raises:
      - ConfigError: on unreadable/invalid files or schema violations.
    """
    cfg = read_config_file(path) if path else {}
    merged = merge_overrides(cfg, overrides)
    try:
        config = ProxyConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
    # Surface bad upstream addresses at load time rather than per query.
    normalize_upstream_config(config)
    return config


def parse_address(text: str, default_port: int) -> Tuple[str, int]:
    """Brief: Split "host", "host:port", "[v6]:port" or a bare IPv6 address.

    Inputs:
      - text: address text.
      - default_port: port used when text carries none.

    Outputs:
      - (host, port)

    Raises:
      - ConfigError: empty host or non-numeric/out-of-range port.

    Example:
      >>> parse_address("[2606:4700::1111]:5353", 53)
      ('2606:4700::1111', 5353)
      >>> parse_address("2606:4700::1111", 53)
      ('2606:4700::1111', 53)
    """
    text = str(text).strip()
    host, port_text = text, ""
    if text.startswith("["):
        end = text.find("]")
        if end < 0:
            raise ConfigError(f"unterminated IPv6 address: {text!r}")
        host = text[1:end]
        rest = text[end + 1 :]
        if rest:
            if not rest.startswith(":"):
                raise ConfigError(f"invalid address: {text!r}")
            port_text = rest[1:]
    elif text.count(":") == 1:
        host, port_text = text.split(":", 1)
    elif text.count(":") > 1:
        try:
            ipaddress.IPv6Address(text)
        except ValueError as e:
            raise ConfigError(f"invalid address: {text!r}") from e

    if not host:
        raise ConfigError(f"missing host in address: {text!r}")
    if not port_text:
        return host, int(default_port)
    try:
        port = int(port_text)
    except ValueError as e:
        raise ConfigError(f"invalid port in address: {text!r}") from e
    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range in address: {text!r}")
    return host, port


def parse_upstream(entry: Union[str, UpstreamEntry, Mapping[str, Any]]) -> Upstream:
    """Brief: Normalize one upstream entry.

    Inputs:
      - entry: "host", "host:port", "[v6]:port", "tcp://host:port",
        "udp://host", an UpstreamEntry or an equivalent mapping.

    Outputs:
      - Upstream(host, port, transport)
    """
    if isinstance(entry, Mapping):
        try:
            entry = UpstreamEntry(**entry)
        except ValidationError as e:
            raise ConfigError(f"invalid upstream entry {dict(entry)!r}: {e}") from e
    if isinstance(entry, UpstreamEntry):
        return Upstream(entry.host, int(entry.port), entry.transport)

    text = str(entry).strip()
    transport = "udp"
    if "://" in text:
        scheme, text = text.split("://", 1)
        transport = scheme.lower()
        if transport not in TRANSPORTS:
            raise ConfigError(f"unsupported upstream transport: {scheme!r}")
    host, port = parse_address(text, 53)
    if port == 0:
        raise ConfigError(f"upstream port must be non-zero: {entry!r}")
    return Upstream(host, port, transport)


def normalize_upstream_config(config: ProxyConfig) -> Tuple[List[Upstream], int]:
    """
    Brief: Normalize the upstream list to Upstream tuples plus a timeout.

    Inputs:
      - config: validated ProxyConfig.

    Outputs:
      - (upstreams, timeout_ms): upstreams in configured order; timeout_ms is
        applied per upstream attempt.
    """
    upstreams = [parse_upstream(u) for u in config.upstream]
    return upstreams, int(config.timeout_ms)
