import socket

from ..errors import UpstreamExchangeError


class UDPError(UpstreamExchangeError):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    max_size: int = 65535,
) -> bytes:
    """
    Brief: Perform a single UDP DNS round trip.

    Inputs:
    - host: upstream resolver host/IP (IPv4 or IPv6)
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds; must be positive
    - max_size: receive buffer size

    Outputs:
    - bytes: wire-format DNS response

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 9, b'\x00\x01', timeout_ms=50)
        ... except UDPError:
        ...     pass
    """
    if timeout_ms <= 0:
        raise UDPError("timeout_ms must be positive")
    try:
        infos = socket.getaddrinfo(host, int(port), type=socket.SOCK_DGRAM)
        family, _, _, _, addr = infos[0]
        with socket.socket(family, socket.SOCK_DGRAM) as s:
            s.settimeout(timeout_ms / 1000.0)
            s.connect(addr)
            s.send(query)
            return s.recv(max_size)
    except (OSError, UnicodeError) as e:
        raise UDPError(f"UDP error talking to {host}:{port}: {e}") from e
