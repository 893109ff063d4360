import logging
import socket
import socketserver
from typing import Optional, Tuple

from dnslib import QTYPE, DNSHeader, DNSRecord

from ..config.config_parser import normalize_upstream_config
from ..config.config_schema import ProxyConfig
from ..errors import LoadError
from ..policy.loader import build_classifier
from ..policy.query_filter import QueryFilter
from ..transports.tcp import TCPError, frame, read_framed
from .handler import ProxyHandler
from .upstream import ExchangeFunc, UpstreamResolver

logger = logging.getLogger("dnsgate.server")

# Classic DNS-over-UDP payload limit for clients without EDNS(0).
UDP_DEFAULT_PAYLOAD = 512

# Idle timeout for inbound TCP connections between queries.
TCP_IDLE_TIMEOUT = 10.0


def build_handler(
    config: ProxyConfig, exchange_func: Optional[ExchangeFunc] = None
) -> ProxyHandler:
    """
    Build the immutable per-proxy handler from configuration.

    Inputs:
      - config: validated ProxyConfig.
      - exchange_func: optional replacement for the upstream exchange, used by
        tests to inject instrumented fakes.

    Outputs:
      - ProxyHandler

    Raises:
      - LoadError: when a whitelist/blacklist source cannot be loaded.
    """
    classifier = build_classifier(config.whitelist, config.blacklist)
    upstreams, timeout_ms = normalize_upstream_config(config)
    resolver = UpstreamResolver(upstreams, timeout_ms, exchange_func)
    return ProxyHandler(QueryFilter(classifier), resolver)


def udp_payload_limit(request: DNSRecord) -> int:
    """Largest UDP reply the client accepts: its EDNS(0) size, or 512."""
    for rr in request.ar:
        if rr.rtype == QTYPE.OPT:
            return max(UDP_DEFAULT_PAYLOAD, int(rr.rclass))
    return UDP_DEFAULT_PAYLOAD


def truncate_reply(wire: bytes, limit: int) -> bytes:
    """
    Brief: Fit a UDP reply into the client's payload limit.

    Inputs:
      - wire: packed response.
      - limit: maximum size in bytes.

    Outputs:
      - bytes: wire unchanged when it fits, else header plus question section
        with TC set so the client retries over TCP.
    """
    if len(wire) <= limit:
        return wire
    reply = DNSRecord.parse(wire)
    header = DNSHeader(id=reply.header.id, bitmap=reply.header.bitmap, tc=1)
    return DNSRecord(header, questions=list(reply.questions)).pack()


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles one UDP DNS datagram.

    The proxy's current handler snapshot is read once per query, so a reload
    never changes policy half-way through a query.
    """

    def handle(self):
        data, sock = self.request
        proxy_handler: ProxyHandler = self.server.proxy.handler
        wire = proxy_handler.handle_bytes(data)
        if wire is None:
            return
        try:
            limit = udp_payload_limit(DNSRecord.parse(data))
            wire = truncate_reply(wire, limit)
        except Exception:  # pragma: no cover
            logger.debug("Could not apply UDP size limit", exc_info=True)
        sock.sendto(wire, self.client_address)


class DNSTCPHandler(socketserver.BaseRequestHandler):
    """
    Handles one TCP connection carrying length-prefixed DNS queries.

    Queries on a connection are answered in order until the client closes
    the connection or stays idle past TCP_IDLE_TIMEOUT.
    """

    def handle(self):
        sock = self.request
        sock.settimeout(TCP_IDLE_TIMEOUT)
        while True:
            try:
                data = read_framed(sock)
            except (TCPError, OSError) as e:
                logger.debug("TCP client %s: %s", self.client_address, e)
                return
            if not data:
                return
            wire = self.server.proxy.handler.handle_bytes(data)
            if wire is None:
                return
            try:
                sock.sendall(frame(wire))
            except (TCPError, OSError) as e:
                logger.debug("TCP client %s: send failed: %s", self.client_address, e)
                return


def _server_class(base: type, host: str) -> type:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return type(
        base.__name__,
        (base,),
        {"address_family": family, "daemon_threads": True, "allow_reuse_address": True},
    )


class ProxyServer:
    """
    The DNS filtering proxy: one listener plus the immutable handler snapshot.

    Example use:
        >>> from dnsgate.config import load_config
        >>> import threading
        >>> cfg = load_config(overrides={"listen.port": 5354, "upstream": ["1.1.1.1"]})
        >>> proxy = ProxyServer(cfg)  # doctest: +SKIP
        >>> threading.Thread(target=proxy.serve_forever, daemon=True).start()  # doctest: +SKIP
        >>> proxy.shutdown()  # doctest: +SKIP
    """

    def __init__(
        self, config: ProxyConfig, exchange_func: Optional[ExchangeFunc] = None
    ) -> None:
        """
        Inputs:
          - config: validated ProxyConfig.
          - exchange_func: optional upstream exchange replacement.

        Raises:
          - LoadError: list sources failed to load; nothing is bound.
          - OSError: the listen address could not be bound.
        """
        self.config = config
        self._exchange_func = exchange_func
        self._handler = build_handler(config, exchange_func)

        listen = config.listen
        if listen.transport == "tcp":
            base, request_handler = socketserver.ThreadingTCPServer, DNSTCPHandler
        else:
            base, request_handler = socketserver.ThreadingUDPServer, DNSUDPHandler
        try:
            self.server = _server_class(base, listen.host)(
                (listen.host, listen.port), request_handler
            )
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                listen.host,
                listen.port,
                e,
            )
            raise
        self.server.proxy = self
        self._serving = False
        logger.info(
            "DNS %s listener bound to %s:%d (mode=%s, upstreams=%d)",
            listen.transport.upper(),
            self.address[0],
            self.address[1],
            self._handler.query_filter.classifier.mode.value,
            len(self._handler.resolver.upstreams),
        )

    @property
    def handler(self) -> ProxyHandler:
        return self._handler

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.server.server_address[:2]
        return host, port

    def reload(self) -> bool:
        """
        Rebuild the policy snapshot from the configured list files.

        Outputs:
          - bool: True when the new snapshot was installed. On LoadError the
            previous snapshot stays in service and False is returned.

        Notes:
          - The new handler replaces the old one with a single reference
            assignment; queries already in flight finish on the snapshot they
            started with.
        """
        try:
            handler = build_handler(self.config, self._exchange_func)
        except LoadError as e:
            logger.error("Reload failed, keeping previous lists: %s", e)
            return False
        self._handler = handler
        logger.info("Reloaded lists: %r", handler.query_filter.classifier)
        return True

    def serve_forever(self) -> None:
        """Run the listener loop until shutdown() or KeyboardInterrupt."""
        self._serving = True
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            self._serving = False

    def shutdown(self) -> None:
        """
        Request graceful shutdown and close the listening socket.

        Inputs:
          - None
        Outputs:
          - None; best-effort shutdown suitable for use from signal handlers.
        """
        if self._serving:
            try:
                self.server.shutdown()
            except Exception:  # pragma: no cover
                logger.exception("Error while shutting down DNS server")
        try:
            self.server.server_close()
        except Exception:  # pragma: no cover
            logger.exception("Error while closing DNS server socket")
