"""Listeners, per-query handler and upstream failover."""

from .handler import HandleResult, Outcome, ProxyHandler, servfail_reply
from .server import ProxyServer, build_handler
from .upstream import ResolveResult, UpstreamResolver

__all__ = [
    "HandleResult",
    "Outcome",
    "ProxyHandler",
    "ProxyServer",
    "ResolveResult",
    "UpstreamResolver",
    "build_handler",
    "servfail_reply",
]
