"""
Brief: Global pytest configuration: src/ on sys.path, per-test 10s timeout,
and shared DNS fakes.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
from typing import Dict, List, Optional, Tuple

import pytest

# Ensure 'src' is on sys.path so 'dnsgate' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnslib import RR, A, DNSRecord  # noqa: E402

from dnsgate.errors import UpstreamExchangeError  # noqa: E402
from dnsgate.transports.exchange import Upstream  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def make_answer(query: DNSRecord, ip: str = "192.0.2.1") -> DNSRecord:
    """Build a reply to query with one A record per question."""
    reply = query.reply()
    for q in query.questions:
        reply.add_answer(RR(q.qname, rdata=A(ip), ttl=60))
    return reply


class FakeExchange:
    """
    Instrumented stand-in for dnsgate.transports.exchange.

    Inputs:
      - behaviour: mapping of upstream host -> answer IP, or None to make
        that upstream fail with UpstreamExchangeError. Hosts missing from the
        mapping fail too.

    Outputs:
      - callable recording every (upstream, query) pair in ``calls``.
    """

    def __init__(self, behaviour: Dict[str, Optional[str]]):
        self.behaviour = dict(behaviour)
        self.calls: List[Tuple[Upstream, DNSRecord]] = []

    def __call__(self, query: DNSRecord, upstream: Upstream, timeout_ms: int):
        self.calls.append((upstream, query))
        ip = self.behaviour.get(upstream.host)
        if ip is None:
            raise UpstreamExchangeError(f"simulated failure from {upstream}")
        return make_answer(query, ip), 0.001

    @property
    def hosts(self) -> List[str]:
        return [u.host for u, _ in self.calls]


@pytest.fixture
def fake_exchange():
    """Factory fixture returning FakeExchange instances."""
    return FakeExchange
