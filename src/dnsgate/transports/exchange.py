from __future__ import annotations

import logging
import time
from typing import NamedTuple, Tuple

from dnslib import DNSError, DNSRecord

from ..errors import UpstreamExchangeError
from .tcp import tcp_query
from .udp import udp_query

logger = logging.getLogger(__name__)

TRANSPORTS = ("udp", "tcp")


class Upstream(NamedTuple):
    """A single upstream resolver endpoint."""

    host: str
    port: int = 53
    transport: str = "udp"

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}/{self.transport}"


def exchange(
    query: DNSRecord, upstream: Upstream, timeout_ms: int
) -> Tuple[DNSRecord, float]:
    """
    Brief: Perform one query/response round trip against a single upstream.

    Inputs:
      - query: DNSRecord to send (packed as-is).
      - upstream: endpoint to contact.
      - timeout_ms: per-attempt timeout in milliseconds, applied to connect
        and to each read.

    Outputs:
      - (response, rtt_seconds)

    Raises:
      - UpstreamExchangeError: on timeout, transport failure, undecodable
        reply, or a reply whose ID does not match the query.

    Notes:
      - A truncated UDP reply (TC=1) is retried once over TCP against the
        same upstream within the same attempt.
    """
    wire = query.pack()
    started = time.monotonic()
    if upstream.transport == "tcp":
        raw = tcp_query(
            upstream.host,
            upstream.port,
            wire,
            connect_timeout_ms=timeout_ms,
            read_timeout_ms=timeout_ms,
        )
    else:
        raw = udp_query(upstream.host, upstream.port, wire, timeout_ms=timeout_ms)

    response = _parse_reply(raw, query, upstream)
    if upstream.transport == "udp" and response.header.tc:
        logger.debug("Truncated UDP reply from %s; retrying over TCP", upstream)
        raw = tcp_query(
            upstream.host,
            upstream.port,
            wire,
            connect_timeout_ms=timeout_ms,
            read_timeout_ms=timeout_ms,
        )
        response = _parse_reply(raw, query, upstream)
    return response, time.monotonic() - started


def _parse_reply(raw: bytes, query: DNSRecord, upstream: Upstream) -> DNSRecord:
    try:
        response = DNSRecord.parse(raw)
    except (DNSError, ValueError, IndexError) as e:
        raise UpstreamExchangeError(f"malformed reply from {upstream}: {e}") from e
    if response.header.id != query.header.id:
        raise UpstreamExchangeError(
            f"reply id {response.header.id} from {upstream} does not match "
            f"query id {query.header.id}"
        )
    return response
