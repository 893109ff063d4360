from __future__ import annotations

import re
from typing import Iterable, List, Tuple, Union

from ..errors import LoadError
from .hosts import Origin, normalize_domain

PatternSource = Union[str, "re.Pattern[str]"]


def compile_pattern(source: PatternSource) -> "re.Pattern[str]":
    """
    Compile a list pattern, case-insensitively.

    Inputs:
      - source: regex source text or an already compiled pattern.

    Outputs:
      - re.Pattern

    Raises:
      - LoadError: when the source is not a valid regular expression.
    """
    if isinstance(source, re.Pattern):
        return source
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as e:
        raise LoadError(f"invalid regular expression {source!r}: {e}") from e


class PatternSet:
    """
    Regular-expression membership store for whitelist and blacklist patterns.

    Patterns are matched with full-match semantics against the normalized
    name without its trailing dot, so ``.*\\.ads\\.net`` matches
    ``x.ads.net.`` but not ``x.ads.net.evil.org.``.

    Malformed sources fail here, at construction, never at query time.
    """

    __slots__ = ("_whitelist", "_blacklist")

    def __init__(
        self,
        whitelist: Iterable[PatternSource] = (),
        blacklist: Iterable[PatternSource] = (),
    ) -> None:
        self._whitelist: Tuple["re.Pattern[str]", ...] = tuple(
            compile_pattern(p) for p in whitelist
        )
        self._blacklist: Tuple["re.Pattern[str]", ...] = tuple(
            compile_pattern(p) for p in blacklist
        )

    @property
    def whitelist(self) -> List["re.Pattern[str]"]:
        return list(self._whitelist)

    @property
    def blacklist(self) -> List["re.Pattern[str]"]:
        return list(self._blacklist)

    def contains(self, domain: str) -> Origin:
        name = normalize_domain(domain).rstrip(".")
        if any(p.fullmatch(name) for p in self._blacklist):
            return Origin.BLACKLISTED
        if any(p.fullmatch(name) for p in self._whitelist):
            return Origin.WHITELISTED
        return Origin.UNLISTED

    def __len__(self) -> int:
        return len(self._whitelist) + len(self._blacklist)

    def __repr__(self) -> str:
        return (
            f"PatternSet(whitelist={len(self._whitelist)}, "
            f"blacklist={len(self._blacklist)})"
        )
