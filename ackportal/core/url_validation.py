"""URL validation helpers for outbound HTTP requests (SSRF defense)."""

from __future__ import annotations

import ipaddress
import socket
from urllib.parse import urlsplit


class UnsafeURLError(ValueError):
    """The URL points somewhere the server must not fetch from."""


def _is_ip_global(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    # Rejects loopback, link-local, private RFC1918, multicast, etc.
    return ip.is_global


def _resolve_host(host: str, port: int) -> set[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except OSError as exc:
        raise UnsafeURLError("URL host could not be resolved") from exc

    resolved: set[ipaddress.IPv4Address | ipaddress.IPv6Address] = set()
    for info in infos:
        sockaddr = info[4]
        if not sockaddr:
            continue
        try:
            resolved.add(ipaddress.ip_address(sockaddr[0]))
        except ValueError:
            continue
    return resolved


def validate_outbound_url(url: str) -> str:
    """
    Validate a URL the server is about to fetch on someone else's behalf.

    - Only http:// and https:// URLs.
    - No credentials in the URL.
    - The host (IP literal or every resolved address) must be publicly routable.

    Returns the stripped URL or raises UnsafeURLError.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise UnsafeURLError("URL is required")

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise UnsafeURLError("URL is malformed") from exc

    scheme = (parts.scheme or "").lower()
    if scheme not in ("http", "https"):
        raise UnsafeURLError("URL must start with http:// or https://")

    if parts.username or parts.password:
        raise UnsafeURLError("URL must not include credentials")

    host = (parts.hostname or "").strip().lower().rstrip(".")
    if not host:
        raise UnsafeURLError("URL must include a host")

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None
    if ip is not None:
        if not _is_ip_global(ip):
            raise UnsafeURLError("URL host is not allowed")
        return candidate

    # Resolve DNS to catch internal hostnames and odd IP spellings
    resolved_ips = _resolve_host(host, port or (443 if scheme == "https" else 80))
    if not resolved_ips:
        raise UnsafeURLError("URL host could not be resolved")
    for resolved in resolved_ips:
        if not _is_ip_global(resolved):
            raise UnsafeURLError("URL host is not allowed")
    return candidate
