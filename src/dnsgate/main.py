from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional

from .config.config_parser import load_config, parse_address
from .config.logging_config import init_logging
from .errors import ConfigError, LoadError
from .servers.server import ProxyServer
from .transports.exchange import TRANSPORTS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dnsgate",
        description="DNS proxy with whitelist/blacklist filtering and upstream failover",
    )
    parser.add_argument("--config", help="Path to YAML config")
    parser.add_argument(
        "--bind", metavar="HOST:PORT", help="Listen address (overrides listen.host/port)"
    )
    parser.add_argument(
        "--net", choices=TRANSPORTS, help="Listener transport (overrides listen.transport)"
    )
    parser.add_argument(
        "--whitelist",
        metavar="PATH",
        help="Whitelist file; when given, only whitelisted names resolve",
    )
    parser.add_argument("--blacklist", metavar="PATH", help="Blacklist file")
    parser.add_argument(
        "--resolve",
        action="append",
        metavar="ADDR",
        help="Upstream resolver (repeatable, tried in the order given)",
    )
    parser.add_argument(
        "--timeout-ms", type=int, help="Per-attempt upstream timeout in milliseconds"
    )
    parser.add_argument(
        "--log-level", choices=("debug", "info", "warn", "error", "crit"), help="Log level"
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Brief: Translate parsed CLI arguments into config overrides.

    Inputs:
      - args: argparse namespace from build_parser().

    Outputs:
      - dict: flat overrides accepted by load_config(); unset flags are omitted.

    Raises:
      - ConfigError: malformed --bind value.
    """
    overrides: Dict[str, Any] = {
        "listen.transport": args.net,
        "whitelist": args.whitelist,
        "blacklist": args.blacklist,
        "upstream": args.resolve,
        "timeout_ms": args.timeout_ms,
        "logging.level": args.log_level,
    }
    if args.bind:
        host, port = parse_address(args.bind, 5353)
        overrides["listen.host"] = host
        overrides["listen.port"] = port
    return {k: v for k, v in overrides.items() if v is not None}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the DNS proxy.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 after a clean shutdown, 1 on configuration or list
        loading errors.

    Example use:
        CLI:
            dnsgate --bind 127.0.0.1:5353 --blacklist ads.txt --resolve 1.1.1.1 --resolve 9.9.9.9
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, overrides_from_args(args))
    except ConfigError as exc:
        print(str(exc))
        return 1

    init_logging(config.logging)
    logger = logging.getLogger("dnsgate.main")
    if args.config:
        logger.info("Loaded config from %s", args.config)
    if not config.upstream:
        logger.warning("No upstreams configured; every query will fail")

    try:
        proxy = ProxyServer(config)
    except LoadError as exc:
        logger.error("Failed to load lists: %s", exc)
        return 1
    except OSError as exc:
        logger.error("Failed to start listener: %s", exc)
        return 1

    stop = threading.Event()

    def _request_stop(signum, frame):
        logger.info("Received signal %d, shutting down", signum)
        stop.set()

    def _reload(signum, frame):
        logger.info("Received SIGHUP, reloading lists")
        proxy.reload()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _reload)

    worker = threading.Thread(target=proxy.serve_forever, name="dnsgate-listener", daemon=True)
    worker.start()
    try:
        while not stop.wait(0.5):
            if not worker.is_alive():
                logger.error("Listener thread exited unexpectedly")
                break
    finally:
        proxy.shutdown()
        worker.join(timeout=5.0)
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
