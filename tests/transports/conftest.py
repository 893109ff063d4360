"""
Brief: Loopback UDP/TCP DNS stubs for transport tests.

Inputs:
  - None

Outputs:
  - Fixtures ``udp_stub`` and ``udp_tcp_stub`` whose ``responder`` attribute
    maps query bytes to reply bytes (or None to stay silent).
"""

import socket
import threading
import time

import pytest
from dnslib import RR, A, DNSRecord


def answer(data: bytes) -> bytes:
    query = DNSRecord.parse(data)
    reply = query.reply()
    reply.add_answer(RR(query.q.qname, rdata=A("192.0.2.1"), ttl=60))
    return reply.pack()


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


class _UDPStub:
    def __init__(self, port: int = 0):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", port))
        self.addr = self.sock.getsockname()
        self.responder = answer
        self.received = []
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(4096)
            except Exception:
                continue
            self.received.append(data)
            try:
                reply = self.responder(data)
                if reply is not None:
                    self.sock.sendto(reply, peer)
            except Exception:
                pass

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except Exception:
            pass


class _TCPStub:
    def __init__(self, port: int = 0):
        self.sock = socket.socket()
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", port))
        self.sock.listen(5)
        self.addr = self.sock.getsockname()
        self.responder = answer
        self.received = []
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                conn, _ = self.sock.accept()
            except Exception:
                continue
            threading.Thread(target=self._conn, args=(conn,), daemon=True).start()

    def _conn(self, conn: socket.socket):
        with conn:
            try:
                hdr = _recv_exact(conn, 2)
                if len(hdr) != 2:
                    return
                body = _recv_exact(conn, int.from_bytes(hdr, "big"))
                self.received.append(body)
                reply = self.responder(body)
                if reply is not None:
                    conn.sendall(len(reply).to_bytes(2, "big") + reply)
            except Exception:
                return

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except Exception:
            pass


@pytest.fixture
def udp_stub():
    s = _UDPStub()
    s.start()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def udp_tcp_stub():
    """UDP and TCP stubs sharing one port number."""
    tcp = _TCPStub()
    try:
        udp = _UDPStub(tcp.addr[1])
    except OSError:
        tcp.close()
        pytest.skip("could not bind UDP and TCP on the same port")
    tcp.start()
    udp.start()
    try:
        yield udp, tcp
    finally:
        udp.close()
        tcp.close()
