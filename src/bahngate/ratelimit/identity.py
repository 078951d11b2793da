"""Client identity for rate limiting.

Headers are consulted in trust order; a header the client can set itself
never overrides one injected by the edge:

1. cf-connecting-ip   (edge-injected)
2. true-client-ip     (edge-injected)
3. x-forwarded-for    (first hop of the chain)
4. x-real-ip
5. "unknown"
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

UNKNOWN_IDENTITY = "unknown"

TRUSTED_EDGE_HEADERS = ("cf-connecting-ip", "true-client-ip")
FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"

_MAPPED_IPV4_PREFIX = "::ffff:"


def normalize_ip(ip: str) -> str:
    """Strip the IPv6-mapped prefix: ``::ffff:127.0.0.1`` -> ``127.0.0.1``."""
    if ip[: len(_MAPPED_IPV4_PREFIX)].lower() == _MAPPED_IPV4_PREFIX and "." in ip:
        return ip[len(_MAPPED_IPV4_PREFIX) :]
    return ip


def _lowercase_headers(headers: Mapping[str, str]) -> dict[str, str]:
    # Keep the first occurrence of repeated headers
    lookup: dict[str, str] = {}
    items: Iterable[tuple[str, str]] = headers.items()
    for name, value in items:
        lookup.setdefault(name.lower(), value)
    return lookup


def client_identity(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit identity (client IP) from request headers."""
    lookup = _lowercase_headers(headers)

    ip = ""
    for name in TRUSTED_EDGE_HEADERS:
        ip = lookup.get(name, "").strip()
        if ip:
            break

    if not ip:
        ip = lookup.get(FORWARDED_FOR_HEADER, "").split(",")[0].strip()

    if not ip:
        ip = lookup.get(REAL_IP_HEADER, "").strip()

    if not ip:
        return UNKNOWN_IDENTITY

    return normalize_ip(ip)
