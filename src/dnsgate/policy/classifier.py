from __future__ import annotations

import enum
import logging
from typing import Optional

from .hosts import HostSet, Origin
from .patterns import PatternSet

logger = logging.getLogger(__name__)


class Mode(enum.Enum):
    """Filtering mode, fixed for the lifetime of a proxy instance."""

    WHITELISTING = "whitelisting"
    BLACKLISTING = "blacklisting"

    @classmethod
    def for_whitelist(cls, whitelist_path: Optional[str]) -> "Mode":
        """
        Derive the mode from the configured whitelist source.

        Inputs:
          - whitelist_path: configured whitelist path, possibly None or "".

        Outputs:
          - Mode.WHITELISTING iff a non-empty path was supplied.
        """
        if whitelist_path is not None and str(whitelist_path).strip():
            return cls.WHITELISTING
        return cls.BLACKLISTING


class Verdict(enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


class Classifier:
    """
    Combine exact and pattern membership with the active mode into a verdict.

    The effective origin of a name is the highest-precedence origin reported
    by either store (BLACKLISTED > WHITELISTED > UNLISTED). In whitelisting
    mode only WHITELISTED names are allowed; in blacklisting mode everything
    except BLACKLISTED names is allowed. A name on both lists is therefore
    always denied.

    Instances are read-only after construction and safe to share between
    concurrently handled queries.

    Example use:
        >>> c = Classifier(HostSet(whitelist=["good.com"]), PatternSet(), Mode.WHITELISTING)
        >>> c.decide("Good.com.")
        <Verdict.ALLOW: 'allow'>
        >>> c.decide("other.com")
        <Verdict.DENY: 'deny'>
    """

    __slots__ = ("_hosts", "_patterns", "_mode")

    def __init__(
        self,
        hosts: Optional[HostSet] = None,
        patterns: Optional[PatternSet] = None,
        mode: Mode = Mode.BLACKLISTING,
    ) -> None:
        self._hosts = hosts if hosts is not None else HostSet()
        self._patterns = patterns if patterns is not None else PatternSet()
        self._mode = Mode(mode)

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def hosts(self) -> HostSet:
        return self._hosts

    @property
    def patterns(self) -> PatternSet:
        return self._patterns

    def effective_origin(self, domain: str) -> Origin:
        exact = self._hosts.contains(domain)
        if exact is Origin.BLACKLISTED:
            return exact
        return max(exact, self._patterns.contains(domain))

    def decide(self, domain: str) -> Verdict:
        origin = self.effective_origin(domain)
        if self._mode is Mode.WHITELISTING:
            allowed = origin is Origin.WHITELISTED
        else:
            allowed = origin is not Origin.BLACKLISTED
        verdict = Verdict.ALLOW if allowed else Verdict.DENY
        logger.debug(
            "%s -> %s (origin=%s, mode=%s)",
            domain,
            verdict.value,
            origin.name.lower(),
            self._mode.value,
        )
        return verdict

    def __repr__(self) -> str:
        return (
            f"Classifier(mode={self._mode.value}, hosts={self._hosts!r}, "
            f"patterns={self._patterns!r})"
        )
