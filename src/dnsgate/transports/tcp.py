import socket
import time
from typing import Optional

from ..errors import UpstreamExchangeError


class TCPError(UpstreamExchangeError):
    """
    A DNS-over-TCP transport error.

    Inputs:
      - message: Error description.
    Outputs:
      - Exception instance.

    Brief: Raised for connect/read/write or framing errors.
    """

    pass


def frame(message: bytes) -> bytes:
    """Prefix a DNS message with its 2-byte big-endian length (RFC 7766)."""
    if len(message) > 0xFFFF:
        raise TCPError(f"message too large for TCP framing: {len(message)} bytes")
    return len(message).to_bytes(2, byteorder="big") + message


def read_framed(sock: socket.socket, deadline: Optional[float] = None) -> bytes:
    """
    Read one length-prefixed DNS message from a connected socket.

    Inputs:
      - sock: connected stream socket with a timeout already set.
      - deadline: optional time.monotonic() value bounding the whole read;
        without it the socket timeout applies per recv() call.
    Outputs:
      - bytes: the message body; b"" when the peer closed cleanly before
        sending a length header.

    Raises:
      - TCPError: on a short read after a length header was started, or when
        the deadline passes.
    """
    hdr = _recv_exact(sock, 2, deadline)
    if not hdr:
        return b""
    if len(hdr) != 2:
        raise TCPError("short read on length header")
    ln = int.from_bytes(hdr, byteorder="big")
    body = _recv_exact(sock, ln, deadline)
    if len(body) != ln:
        raise TCPError("short read on body")
    return body


def tcp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    connect_timeout_ms: int = 1000,
    read_timeout_ms: int = 1500,
) -> bytes:
    """
    Perform a single DNS-over-TCP query to host:port using length-prefixed framing (RFC 7766).

    Inputs:
      - host: Upstream resolver host/IP.
      - port: Upstream TCP port (53 typically).
      - query: Wire-format DNS query bytes.
      - connect_timeout_ms: TCP connect timeout.
      - read_timeout_ms: Budget for sending the query and reading the whole
        response.
    Outputs:
      - bytes: Wire-format DNS response.

    Example:
      >>> resp = tcp_query('8.8.8.8', 53, b'\x12\x34...')
    """
    payload = frame(query)
    try:
        with socket.create_connection(
            (host, int(port)), timeout=connect_timeout_ms / 1000.0
        ) as sock:
            deadline = time.monotonic() + read_timeout_ms / 1000.0
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.settimeout(read_timeout_ms / 1000.0)
            sock.sendall(payload)
            resp = read_framed(sock, deadline)
            if not resp:
                raise TCPError("connection closed before response")
            return resp
    except (OSError, UnicodeError) as e:
        raise TCPError(f"Network error talking to {host}:{port}: {e}") from e


def _recv_exact(sock: socket.socket, n: int, deadline: Optional[float] = None) -> bytes:
    """
    Receive exactly n bytes from a blocking socket.

    Inputs:
      - sock: Socket
      - n: Number of bytes
      - deadline: optional time.monotonic() limit for the whole read
    Outputs:
      - bytes: Exactly n bytes unless EOF occurs.
    """
    remaining = n
    chunks = []
    while remaining > 0:
        if deadline is not None:
            left = deadline - time.monotonic()
            if left <= 0:
                raise TCPError("read timed out")
            sock.settimeout(left)
        chunk = sock.recv(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)
