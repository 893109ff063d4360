"""Whitelist/blacklist source loading.

Brief:
  Parses list files into exact host names and regular-expression sources and
  assembles the read-only Classifier snapshot used by the proxy.

Supported line formats (one entry per line):
  - ``# comment`` / ``! comment`` and blank lines are ignored; trailing
    `` # comment`` text is stripped.
  - ``/regex/``: regular expression, full-match, case-insensitive.
  - ``*.example.com``: any subdomain of example.com (not the apex).
  - ``0.0.0.0 example.com`` (hosts-file style; also 127.0.0.1, ::1, ::).
  - ``||example.com^`` (AdGuard/Adblock style).
  - ``{"domain": "example.com"}`` or ``{"pattern": "^ads\\\\..*"}`` (JSON Lines).
  - anything else: an exact domain name.
"""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from ..errors import LoadError
from .classifier import Classifier, Mode
from .hosts import HostSet
from .patterns import PatternSet, compile_pattern

logger = logging.getLogger(__name__)

_HOSTS_FILE_ADDRS = frozenset({"0.0.0.0", "127.0.0.1", "::1", "::"})


@dataclass
class PolicySource:
    """Entries parsed from a single list file."""

    path: Optional[str] = None
    hosts: List[str] = field(default_factory=list)
    patterns: List["re.Pattern[str]"] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.hosts) + len(self.patterns)


def _iter_noncomment_lines(path: str) -> Iterator[Tuple[int, str]]:
    """
    Yield (line_number, text) for each meaningful line of a list file.

    Raises:
      - LoadError: when the file cannot be opened or decoded.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for idx, raw in enumerate(fh, start=1):
                line = raw.strip()
                if not line or line.startswith(("#", "!")):
                    continue
                if " #" in line or "\t#" in line:
                    line = re.split(r"\s#", line, maxsplit=1)[0].strip()
                    if not line:
                        continue
                yield idx, line
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"cannot read list file: {e}", path) from e


def _wildcard_to_regex(token: str) -> str:
    """Translate ``*.example.com`` into a regex matching its subdomains."""
    suffix = token[2:].rstrip(".")
    return r"(?:[^.]+\.)+" + re.escape(suffix)


def _parse_token(token: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Classify a single non-JSON line.

    Outputs:
      - (host, None) for exact entries, (None, regex_source) for patterns,
        (None, None) when the line carries nothing usable.
    """
    if len(token) >= 2 and token.startswith("/") and token.endswith("/"):
        return None, token[1:-1]

    parts = token.split()
    if len(parts) >= 2 and parts[0] in _HOSTS_FILE_ADDRS:
        token = parts[1]
    else:
        token = parts[0]

    if token.startswith("||"):
        token = token[2:]
        if token.endswith("^"):
            token = token[:-1]
    if "^" in token:
        return None, None

    if token.startswith("*."):
        return None, _wildcard_to_regex(token)

    host = token.lower().strip(".")
    if not host:
        return None, None
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return host, None
    return None, None


def load_policy_file(path: str) -> PolicySource:
    """
    Parse a whitelist or blacklist file.

    Inputs:
      - path: list file path.

    Outputs:
      - PolicySource with host names (not yet normalized) and compiled patterns.

    Raises:
      - LoadError: missing/unreadable file, malformed JSON line, or invalid
        regular expression.

    Example:
      >>> # doctest: +SKIP
      >>> src = load_policy_file("blacklist.txt")
      >>> len(src.hosts), len(src.patterns)
      (2, 1)
    """
    if not os.path.isfile(path):
        raise LoadError("no such list file", path)

    source = PolicySource(path=path)
    for ln, text in _iter_noncomment_lines(path):
        host: Optional[str]
        regex: Optional[str]
        if text.startswith("{"):
            try:
                obj = json.loads(text)
            except json.JSONDecodeError as e:
                raise LoadError(f"invalid JSON entry: {e}", path, ln) from e
            if not isinstance(obj, dict):
                raise LoadError("JSON entry must be an object", path, ln)
            if "domain" in obj:
                if not isinstance(obj["domain"], str):
                    raise LoadError("JSON 'domain' must be a string", path, ln)
                host, regex = obj["domain"].lower().strip("."), None
            elif "pattern" in obj:
                if not isinstance(obj["pattern"], str):
                    raise LoadError("JSON 'pattern' must be a string", path, ln)
                host, regex = None, obj["pattern"]
            else:
                raise LoadError("JSON entry needs 'domain' or 'pattern'", path, ln)
        else:
            host, regex = _parse_token(text)

        if host:
            source.hosts.append(host)
        elif regex is not None:
            try:
                source.patterns.append(compile_pattern(regex))
            except LoadError as e:
                raise LoadError(str(e), path, ln) from e
        else:
            logger.warning("Skipping unusable list entry %s:%d: %r", path, ln, text)

    logger.info(
        "Loaded %d hosts and %d patterns from %s",
        len(source.hosts),
        len(source.patterns),
        path,
    )
    return source


def build_classifier(
    whitelist_path: Optional[str] = None,
    blacklist_path: Optional[str] = None,
) -> Classifier:
    """
    Build the read-only policy snapshot from the configured list files.

    Inputs:
      - whitelist_path: optional whitelist file; a non-empty value switches
        the proxy into whitelisting mode.
      - blacklist_path: optional blacklist file.

    Outputs:
      - Classifier holding HostSet, PatternSet and the derived Mode.

    Raises:
      - LoadError: when either source fails to load.
    """
    mode = Mode.for_whitelist(whitelist_path)
    white = load_policy_file(whitelist_path) if mode is Mode.WHITELISTING else PolicySource()
    black = (
        load_policy_file(blacklist_path)
        if blacklist_path is not None and str(blacklist_path).strip()
        else PolicySource()
    )
    classifier = Classifier(
        HostSet(whitelist=white.hosts, blacklist=black.hosts),
        PatternSet(whitelist=white.patterns, blacklist=black.patterns),
        mode,
    )
    logger.info("Policy ready: %r", classifier)
    return classifier
