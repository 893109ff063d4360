from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple, Union

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def __init__(self, tag: str = "dnsgate") -> None:
        super().__init__()
        self.tag = tag

    def format(self, record):
        """Prefix the program tag and level tag; no timestamp."""
        record.level_tag = _level_tag(record.levelno)
        prefix = f"{self.tag}: " if self.tag else ""
        return f"{prefix}{record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Custom formatter that adds bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format the record's creation time as UTC ISO-8601 with Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def _syslog_address(value: Any) -> Union[str, Tuple[str, int]]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return str(value[0]), int(value[1])
    return str(value or "/dev/log")


def init_logging(cfg: Optional[Union[Mapping[str, Any], Any]]) -> None:
    """
    Initialize logging configuration based on the provided config.

    Args:
        cfg: Logging configuration mapping (or LoggingConfig model) with
            optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)
            - syslog: boolean or dict to enable syslog logging (optional)
                Can be a boolean (True uses defaults) or a dict with:
                - address: Unix socket path (default: /dev/log) or [host, port]
                - facility: syslog facility (default: USER)
                - tag: program identifier to prepend (default: dnsgate)

    Example config:
        {
            "level": "info",
            "stderr": True,
            "file": "./dnsgate.log",
            "syslog": {"address": "/dev/log", "tag": "dnsgate"}
        }
    """
    if cfg is None:
        cfg = {}
    elif not isinstance(cfg, Mapping):
        cfg = {
            key: getattr(cfg, key)
            for key in ("level", "stderr", "file", "syslog")
            if hasattr(cfg, key)
        }

    level = _LEVELS.get(str(cfg.get("level", "info")).lower(), logging.INFO)

    fmt = "%(asctime)s %(level_tag)s %(name)s: %(message)s"
    formatter = BracketLevelFormatter(fmt=fmt)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates on reinitialization
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        opts: Dict[str, Any] = syslog_cfg if isinstance(syslog_cfg, dict) else {}
        try:
            facility = getattr(
                logging.handlers.SysLogHandler,
                f"LOG_{str(opts.get('facility', 'USER')).upper()}",
                logging.handlers.SysLogHandler.LOG_USER,
            )
            syslog_handler = logging.handlers.SysLogHandler(
                address=_syslog_address(opts.get("address")), facility=facility
            )
            syslog_handler.setFormatter(SyslogFormatter(str(opts.get("tag", "dnsgate"))))
            root.addHandler(syslog_handler)
        except (
            OSError,
            ValueError,
        ) as e:
            root.warning("Failed to configure syslog: %s", e)

    logging.captureWarnings(True)
