"""Upstream transports: single UDP/TCP round trips with mandatory timeouts."""

from .exchange import TRANSPORTS, Upstream, exchange
from .tcp import TCPError, tcp_query
from .udp import UDPError, udp_query

__all__ = [
    "TRANSPORTS",
    "TCPError",
    "UDPError",
    "Upstream",
    "exchange",
    "tcp_query",
    "udp_query",
]
