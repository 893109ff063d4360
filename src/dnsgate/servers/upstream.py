from __future__ import annotations

import logging
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from dnslib import QTYPE, DNSRecord

from ..errors import ResolutionExhausted, UpstreamExchangeError
from ..transports.exchange import Upstream, exchange

logger = logging.getLogger("dnsgate.server")

ExchangeFunc = Callable[[DNSRecord, Upstream, int], Tuple[DNSRecord, float]]


class ResolveResult(NamedTuple):
    """Successful resolution.

    Inputs:
      - None (constructed by UpstreamResolver.resolve).
    Outputs:
      - response: parsed reply from the upstream that answered.
      - upstream: the endpoint that answered.
      - rtt: round-trip time of the successful attempt, in seconds.
      - attempts: number of upstreams contacted, including the successful one.
    """

    response: DNSRecord
    upstream: Upstream
    rtt: float
    attempts: int


class UpstreamResolver:
    """
    Sequential failover across an ordered list of upstream resolvers.

    Upstreams are tried strictly in configured order, one at a time. The
    first upstream that returns a decodable reply wins and no further
    upstreams are contacted. An exchange error (timeout, transport, decode)
    is logged and the next upstream is tried. A reply is relayed as-is
    whatever its rcode.

    Example use:
        >>> resolver = UpstreamResolver([Upstream("1.1.1.1"), Upstream("9.9.9.9")])
        >>> result = resolver.resolve(DNSRecord.question("example.com"))  # doctest: +SKIP
        >>> result.upstream
        Upstream(host='1.1.1.1', port=53, transport='udp')
    """

    def __init__(
        self,
        upstreams: Sequence[Upstream],
        timeout_ms: int = 2000,
        exchange_func: Optional[ExchangeFunc] = None,
    ) -> None:
        if int(timeout_ms) <= 0:
            raise ValueError("timeout_ms must be positive")
        self._upstreams: Tuple[Upstream, ...] = tuple(upstreams)
        self._timeout_ms = int(timeout_ms)
        self._exchange: ExchangeFunc = exchange_func or exchange

    @property
    def upstreams(self) -> Tuple[Upstream, ...]:
        return self._upstreams

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def resolve(self, query: DNSRecord) -> ResolveResult:
        """
        Resolve query against the configured upstreams.

        Inputs:
          - query: DNSRecord to forward unchanged.

        Outputs:
          - ResolveResult for the first upstream that answered.

        Raises:
          - ResolutionExhausted: the upstream list is empty or every upstream
            failed; carries the per-upstream errors in ``failures``.
        """
        label = _describe(query)
        if not self._upstreams:
            raise ResolutionExhausted(f"no upstreams configured for {label}")

        failures: List[Tuple[Upstream, UpstreamExchangeError]] = []
        for attempt, upstream in enumerate(self._upstreams, start=1):
            logger.debug("Forwarding %s to %s (attempt %d)", label, upstream, attempt)
            try:
                response, rtt = self._exchange(query, upstream, self._timeout_ms)
            except UpstreamExchangeError as e:
                logger.warning("Exchange with %s failed for %s: %s", upstream, label, e)
                failures.append((upstream, e))
                continue
            logger.debug(
                "Exchange with %s successful for %s, rtt=%.1fms",
                upstream,
                label,
                rtt * 1000.0,
            )
            return ResolveResult(response, upstream, rtt, attempt)

        logger.warning(
            "All %d upstreams failed for %s. Last error: %s",
            len(failures),
            label,
            failures[-1][1],
        )
        raise ResolutionExhausted(f"all upstreams failed for {label}", failures)


def _describe(query: DNSRecord) -> str:
    names = [f"{q.qname} {QTYPE.get(q.qtype, str(q.qtype))}" for q in query.questions]
    return ", ".join(names) or "<no question>"
