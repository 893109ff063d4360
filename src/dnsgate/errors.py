"""Exception hierarchy for dnsgate.

Brief:
  Errors are raised where they are detected and handled at the seam that owns
  the recovery: transports raise UpstreamExchangeError, the upstream resolver
  recovers per attempt, the proxy handler turns exhaustion into SERVFAIL, and
  the CLI turns LoadError/ConfigError into a non-zero exit code.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple


class DnsgateError(Exception):
    """Base class for all dnsgate errors."""


class ConfigError(DnsgateError):
    """Invalid proxy configuration (bad YAML, schema violation, bad address)."""


class LoadError(DnsgateError):
    """
    A whitelist/blacklist source could not be loaded.

    Inputs:
      - message: description of the failure.
      - path: optional source path the failure refers to.
      - line: optional 1-based line number within path.

    Outputs:
      - Exception instance; fatal at proxy construction.
    """

    def __init__(
        self, message: str, path: Optional[str] = None, line: Optional[int] = None
    ) -> None:
        self.path = path
        self.line = line
        where = ""
        if path is not None:
            where = f"{path}:{line}: " if line is not None else f"{path}: "
        super().__init__(f"{where}{message}")


class UpstreamExchangeError(DnsgateError):
    """A single upstream attempt failed (timeout, transport or decode error)."""


class ResolutionExhausted(DnsgateError):
    """Every configured upstream failed, or none were configured.

    ``failures`` lists (upstream, error) pairs in the order they were tried;
    it is empty when no upstreams were configured.
    """

    def __init__(
        self,
        message: str,
        failures: Optional[List[Tuple[Any, Exception]]] = None,
    ) -> None:
        super().__init__(message)
        self.failures = list(failures or [])
