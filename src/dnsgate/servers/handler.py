"""Per-query orchestration: upstream check, filtering, forwarding.

Brief:
  ProxyHandler is an immutable bundle of the QueryFilter and the
  UpstreamResolver. Every inbound query walks the same small state machine:

    received -> no upstreams            -> SERVFAIL
    received -> filtered to nothing     -> empty-question reply
    received -> filtered -> resolved    -> upstream reply, relayed verbatim
    received -> filtered -> exhausted   -> SERVFAIL

  Nothing here is mutated after construction, so one handler instance serves
  all concurrent queries without locking.
"""

from __future__ import annotations

import enum
import logging
from typing import NamedTuple, Optional

from dnslib import RCODE, DNSError, DNSHeader, DNSRecord

from ..errors import ResolutionExhausted
from ..policy.query_filter import QueryFilter
from .upstream import UpstreamResolver

logger = logging.getLogger("dnsgate.server")


class Outcome(enum.Enum):
    NO_UPSTREAMS = "no_upstreams"
    EMPTY = "empty"
    RELAYED = "relayed"
    EXHAUSTED = "exhausted"


class HandleResult(NamedTuple):
    outcome: Outcome
    response: DNSRecord


def servfail_reply(request: DNSRecord) -> DNSRecord:
    """
    Build the standard failure response for a query.

    Inputs:
      - request: parsed client query.

    Outputs:
      - DNSRecord with the request's id, flags and questions, QR set and
        rcode SERVFAIL.
    """
    header = DNSHeader(
        id=request.header.id,
        bitmap=request.header.bitmap,
        qr=1,
        aa=0,
        ra=1,
        rcode=RCODE.SERVFAIL,
    )
    return DNSRecord(header, questions=list(request.questions))


class ProxyHandler:
    """
    Example use:
        >>> from dnsgate.policy import Classifier, HostSet, Mode
        >>> handler = ProxyHandler(
        ...     QueryFilter(Classifier(HostSet(blacklist=["bad.com"]), mode=Mode.BLACKLISTING)),
        ...     UpstreamResolver([]),
        ... )
        >>> RCODE.get(handler.handle(DNSRecord.question("bad.com")).header.rcode)
        'SERVFAIL'
    """

    __slots__ = ("_filter", "_resolver")

    def __init__(self, query_filter: QueryFilter, resolver: UpstreamResolver) -> None:
        self._filter = query_filter
        self._resolver = resolver

    @property
    def query_filter(self) -> QueryFilter:
        return self._filter

    @property
    def resolver(self) -> UpstreamResolver:
        return self._resolver

    def process(self, request: DNSRecord) -> HandleResult:
        """
        Run one query through the handling state machine.

        Inputs:
          - request: parsed client query; it is not mutated.

        Outputs:
          - HandleResult(outcome, response).
        """
        if not self._resolver.upstreams:
            logger.warning("No upstreams configured; failing query id=%d", request.header.id)
            return HandleResult(Outcome.NO_UPSTREAMS, servfail_reply(request))

        questions = self._filter.filter(request.questions)
        if not questions:
            # Echo the query back with no questions: nothing left to resolve.
            header = DNSHeader(id=request.header.id, bitmap=request.header.bitmap, qr=1)
            empty = DNSRecord(header, questions=[], ar=list(request.ar))
            return HandleResult(Outcome.EMPTY, empty)

        forward = DNSRecord(
            DNSHeader(id=request.header.id, bitmap=request.header.bitmap),
            questions=questions,
            ar=list(request.ar),
        )
        try:
            result = self._resolver.resolve(forward)
        except ResolutionExhausted as e:
            logger.debug("Resolution exhausted: %s", e)
            return HandleResult(Outcome.EXHAUSTED, servfail_reply(request))
        return HandleResult(Outcome.RELAYED, result.response)

    def handle(self, request: DNSRecord) -> DNSRecord:
        return self.process(request).response

    def handle_bytes(self, data: bytes) -> Optional[bytes]:
        """
        Wire-level entry point used by the listeners.

        Inputs:
          - data: wire-format query.

        Outputs:
          - bytes: wire-format response, or None when the query could not be
            parsed and should be dropped.
        """
        try:
            request = DNSRecord.parse(data)
        except (DNSError, ValueError, IndexError) as e:
            logger.debug("Dropping unparseable query (%d bytes): %s", len(data), e)
            return None
        try:
            return self.handle(request).pack()
        except Exception:  # pragma: no cover
            logger.exception("Unexpected error handling query id=%d", request.header.id)
            return servfail_reply(request).pack()
