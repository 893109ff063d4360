"""Typed configuration models for dnsgate.

Example config.yaml:

    listen:
      host: 127.0.0.1
      port: 5353
      transport: udp
    whitelist: ./lists/whitelist.txt   # optional; enables whitelisting mode
    blacklist: ./lists/blacklist.txt   # optional
    upstream:
      - 1.1.1.1
      - 9.9.9.9:53
      - {host: 8.8.8.8, port: 53, transport: tcp}
    timeout_ms: 2000
    logging:
      level: info
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, validator

from ..transports.exchange import TRANSPORTS

LOG_LEVELS = ("debug", "info", "warn", "warning", "error", "crit", "critical")


def _check_transport(value: Any) -> str:
    text = str(value or "udp").strip().lower()
    if text not in TRANSPORTS:
        raise ValueError(f"transport must be one of {', '.join(TRANSPORTS)}")
    return text


class ListenConfig(BaseModel):
    """Brief: Inbound listener settings (bind address and transport kind)."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5353, ge=0, le=65535)
    transport: str = Field(default="udp")

    @validator("transport", pre=True)
    def _transport(cls, v):
        return _check_transport(v)

    class Config:
        extra = "forbid"
        frozen = True


class UpstreamEntry(BaseModel):
    """Brief: Mapping form of an upstream entry."""

    host: str
    port: int = Field(default=53, ge=1, le=65535)
    transport: str = Field(default="udp")

    @validator("transport", pre=True)
    def _transport(cls, v):
        return _check_transport(v)

    class Config:
        extra = "forbid"
        frozen = True


class LoggingConfig(BaseModel):
    """Brief: Logging settings consumed by init_logging."""

    level: str = Field(default="info")
    stderr: bool = Field(default=True)
    file: Optional[str] = None
    syslog: Union[bool, Dict[str, Any]] = Field(default=False)

    @validator("level", pre=True)
    def _level(cls, v):
        text = str(v or "info").strip().lower()
        if text not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return text

    class Config:
        extra = "forbid"
        frozen = True


class ProxyConfig(BaseModel):
    """
    Brief: Top-level proxy configuration.

    Inputs:
      - listen: bind address and transport kind.
      - whitelist: optional whitelist path; non-empty enables whitelisting mode.
      - blacklist: optional blacklist path.
      - upstream: ordered upstream entries ("host", "host:port",
        "[v6addr]:port", "tcp://host:port" or a mapping).
      - timeout_ms: per-attempt upstream timeout in milliseconds.
      - logging: logging settings.

    Outputs:
      - Frozen ProxyConfig instance.
    """

    listen: ListenConfig = Field(default_factory=ListenConfig)
    whitelist: Optional[str] = None
    blacklist: Optional[str] = None
    upstream: List[Union[str, UpstreamEntry]] = Field(default_factory=list)
    timeout_ms: int = Field(default=2000, gt=0)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @validator("whitelist", "blacklist", pre=True)
    def _blank_path_is_none(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @validator("upstream", pre=True)
    def _upstream_list(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            return [v]
        return v

    class Config:
        extra = "forbid"
        frozen = True
