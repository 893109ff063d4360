from __future__ import annotations

import enum
import threading
from typing import Dict, Iterable, Mapping

from cachetools import LRUCache, cached


class Origin(enum.IntEnum):
    """Which list a domain was found on.

    Values are ordered by precedence so that ``max()`` over several lookups
    yields the effective origin: a blacklist hit always dominates.
    """

    UNLISTED = 0
    WHITELISTED = 1
    BLACKLISTED = 2


@cached(cache=LRUCache(maxsize=8192), lock=threading.Lock())
def normalize_domain(name: str) -> str:
    """
    Normalize a domain name for comparison and insertion.

    Inputs:
      - name: domain name, any case, with or without a trailing dot.

    Outputs:
      - str: lower-case name with exactly one trailing dot ("." for the root).

    Example:
      >>> normalize_domain("Example.COM")
      'example.com.'
      >>> normalize_domain(normalize_domain("Example.COM")) == normalize_domain("example.com.")
      True
    """
    return str(name).strip().lower().rstrip(".") + "."


class HostSet:
    """
    Exact-match membership store for whitelist and blacklist host names.

    Both lists are held in one mapping from normalized name to Origin. A name
    present on both lists is stored as BLACKLISTED regardless of insertion
    order. The mapping is not exposed for mutation after construction.

    Example use:
        >>> hosts = HostSet(whitelist=["good.com"], blacklist=["bad.com"])
        >>> hosts.contains("GOOD.com.")
        <Origin.WHITELISTED: 1>
    """

    __slots__ = ("_entries",)

    def __init__(
        self,
        whitelist: Iterable[str] = (),
        blacklist: Iterable[str] = (),
    ) -> None:
        entries: Dict[str, Origin] = {}
        for name in whitelist:
            entries.setdefault(normalize_domain(name), Origin.WHITELISTED)
        for name in blacklist:
            entries[normalize_domain(name)] = Origin.BLACKLISTED
        self._entries: Mapping[str, Origin] = entries

    def contains(self, domain: str) -> Origin:
        return self._entries.get(normalize_domain(domain), Origin.UNLISTED)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"HostSet(entries={len(self._entries)})"
