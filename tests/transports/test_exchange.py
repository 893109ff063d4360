"""
Brief: Tests for the UDP/TCP transports and the parsed exchange wrapper
against loopback stubs.

Inputs:
  - None

Outputs:
  - None
"""

import socket
import threading
import time

import pytest
from dnslib import DNSRecord

from dnsgate.errors import UpstreamExchangeError
from dnsgate.servers.upstream import UpstreamResolver
from dnsgate.transports.exchange import Upstream, exchange
from dnsgate.transports.tcp import TCPError, frame, tcp_query
from dnsgate.transports.udp import UDPError, udp_query


def _free_udp_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def test_udp_query_roundtrip(udp_stub):
    udp_stub.responder = lambda data: data
    q = b"\x12\x34hello"
    assert udp_query(udp_stub.addr[0], udp_stub.addr[1], q, timeout_ms=500) == q


def test_udp_query_timeout_raises(udp_stub):
    udp_stub.responder = lambda data: None
    with pytest.raises(UDPError):
        udp_query(udp_stub.addr[0], udp_stub.addr[1], b"\x00\x01", timeout_ms=100)


def test_udp_query_rejects_non_positive_timeout():
    with pytest.raises(UDPError):
        udp_query("127.0.0.1", 53, b"\x00\x01", timeout_ms=0)


def test_udp_error_is_exchange_error():
    assert issubclass(UDPError, UpstreamExchangeError)
    assert issubclass(TCPError, UpstreamExchangeError)


def test_tcp_query_roundtrip(udp_tcp_stub):
    _, tcp = udp_tcp_stub
    q = DNSRecord.question("example.com")
    resp = tcp_query(tcp.addr[0], tcp.addr[1], q.pack(), connect_timeout_ms=500, read_timeout_ms=500)
    assert DNSRecord.parse(resp).header.id == q.header.id


def test_tcp_query_connection_refused():
    # Bind then close to obtain a port nobody listens on.
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    with pytest.raises(TCPError):
        tcp_query("127.0.0.1", port, b"\x00\x01", connect_timeout_ms=200, read_timeout_ms=200)


def test_frame_prefixes_length():
    assert frame(b"abc") == b"\x00\x03abc"
    with pytest.raises(TCPError):
        frame(b"x" * 70000)


def test_exchange_udp_success(udp_stub):
    query = DNSRecord.question("example.com")
    up = Upstream(udp_stub.addr[0], udp_stub.addr[1])
    response, rtt = exchange(query, up, 500)
    assert response.header.id == query.header.id
    assert str(response.rr[0].rdata) == "192.0.2.1"
    assert rtt >= 0.0


def test_exchange_timeout(udp_stub):
    udp_stub.responder = lambda data: None
    up = Upstream(udp_stub.addr[0], udp_stub.addr[1])
    with pytest.raises(UpstreamExchangeError):
        exchange(DNSRecord.question("example.com"), up, 100)


def test_exchange_malformed_reply(udp_stub):
    udp_stub.responder = lambda data: b"\xde\xad"
    up = Upstream(udp_stub.addr[0], udp_stub.addr[1])
    with pytest.raises(UpstreamExchangeError) as exc:
        exchange(DNSRecord.question("example.com"), up, 300)
    assert "malformed" in str(exc.value)


def test_exchange_mismatched_id(udp_stub):
    def wrong_id(data):
        reply = DNSRecord.parse(data).reply()
        reply.header.id = (reply.header.id + 1) % 65536
        return reply.pack()

    udp_stub.responder = wrong_id
    up = Upstream(udp_stub.addr[0], udp_stub.addr[1])
    with pytest.raises(UpstreamExchangeError) as exc:
        exchange(DNSRecord.question("example.com"), up, 300)
    assert "does not match" in str(exc.value)


def test_exchange_truncated_udp_retries_over_tcp(udp_tcp_stub):
    udp, tcp = udp_tcp_stub

    def truncated(data):
        reply = DNSRecord.parse(data).reply()
        reply.header.tc = 1
        return reply.pack()

    udp.responder = truncated
    query = DNSRecord.question("example.com")
    response, _ = exchange(query, Upstream("127.0.0.1", tcp.addr[1]), 500)
    assert response.header.tc == 0
    assert str(response.rr[0].rdata) == "192.0.2.1"
    assert len(udp.received) == 1
    assert len(tcp.received) == 1


def test_exchange_tcp_upstream(udp_tcp_stub):
    udp, tcp = udp_tcp_stub
    response, _ = exchange(
        DNSRecord.question("example.com"), Upstream("127.0.0.1", tcp.addr[1], "tcp"), 500
    )
    assert str(response.rr[0].rdata) == "192.0.2.1"
    assert udp.received == []


def test_exchange_unreachable_port_fails_fast():
    port = _free_udp_port()
    with pytest.raises(UpstreamExchangeError):
        exchange(DNSRecord.question("example.com"), Upstream("127.0.0.1", port), 200)


def test_upstream_str():
    assert str(Upstream("1.1.1.1")) == "1.1.1.1:53/udp"
    assert str(Upstream("2606:4700::1111", 5353, "tcp")) == "[2606:4700::1111]:5353/tcp"


def test_unencodable_upstream_host_fails_over(udp_stub):
    """An IDNA-invalid host fails its own attempt; the next upstream still answers."""
    bad = Upstream("a" * 64 + ".com", udp_stub.addr[1])
    good = Upstream(udp_stub.addr[0], udp_stub.addr[1])
    result = UpstreamResolver([bad, good], 300).resolve(DNSRecord.question("example.com"))

    assert result.upstream == good
    assert result.attempts == 2
    assert len(udp_stub.received) == 1


@pytest.mark.parametrize("query", [udp_query, tcp_query])
def test_unencodable_host_raises_transport_error(query):
    with pytest.raises(UpstreamExchangeError):
        query("a" * 64 + ".com", 53, b"\x00\x01")


def test_tcp_query_deadline_bounds_slow_upstream():
    """A response dripped one byte at a time cannot outlast the read timeout."""
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]

    def drip():
        conn, _ = listener.accept()
        with conn:
            try:
                conn.recv(512)
                conn.sendall(b"\x00\x40")
                for _ in range(64):
                    time.sleep(0.05)
                    conn.sendall(b"\x00")
            except OSError:
                return

    t = threading.Thread(target=drip, daemon=True)
    t.start()
    try:
        start = time.monotonic()
        with pytest.raises(TCPError):
            tcp_query("127.0.0.1", port, b"\x00\x01", connect_timeout_ms=500, read_timeout_ms=300)
        assert time.monotonic() - start < 1.0
    finally:
        listener.close()
        t.join(timeout=5.0)
