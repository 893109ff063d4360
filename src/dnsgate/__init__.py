"""dnsgate: a DNS proxy with whitelist/blacklist filtering and upstream failover."""

__version__ = "0.1.0"
