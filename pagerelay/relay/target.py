"""
Inbound target validation.

Every endpoint takes the target as ?url=. It is validated before any network
or engine work: it must be an absolute http(s) URL, and loopback / local
hosts are refused so the relay cannot be pointed back at its own machine.
"""

import ipaddress
import re
import socket
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from pagerelay.relay.viewport import Viewport
from pagerelay.utils.errors import ForbiddenTargetError, InvalidTargetError

ALLOWED_SCHEMES = frozenset({"http", "https"})

# Legacy IPv4 spellings the engine would still resolve ("127.1", "0x7f.0.0.1")
_LEGACY_IPV4_RE = re.compile(r"^[0-9a-fx.]+$")


class RelayMode(str, Enum):
    """Delivery mode for /proxy."""

    DEFAULT = "default"  # stream binaries, rewrite HTML
    RAW_GET = "raw_get"  # buffer binaries, return HTML unmodified


@dataclass(frozen=True)
class TargetRequest:
    """
    A validated relay request.

    Attributes:
        url: Absolute http(s) target URL.
        mode: Delivery mode (only meaningful for /proxy).
        viewport: Resolved viewport (only meaningful for /screenshot).
        full_page: Capture the whole document instead of the viewport.
    """

    url: str
    mode: RelayMode = RelayMode.DEFAULT
    viewport: Viewport | None = None
    full_page: bool = False


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a query-string flag ("true"/"1"/"yes"/"on" are truthy)."""
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def is_local_host(host: str) -> bool:
    """Whether host names the local machine (loopback, unspecified or *.localhost)."""
    host = host.strip().strip("[]").rstrip(".").lower()
    if not host:
        return False
    if host == "localhost" or host.endswith(".localhost"):
        return True

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        if not _LEGACY_IPV4_RE.match(host):
            return False
        try:
            ip = ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return False

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_loopback or ip.is_unspecified


def validate_target_url(url: str | None) -> str:
    """Validate a raw ?url= value.

    Returns:
        The stripped URL.

    Raises:
        InvalidTargetError: Missing, relative, or non-http(s) URL.
        ForbiddenTargetError: URL targets a local host.
    """
    if url is None or not url.strip():
        raise InvalidTargetError("Missing ?url=")

    url = url.strip()
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError as e:
        raise InvalidTargetError(f"Invalid url: {e}", received=url) from e

    if parts.scheme.lower() not in ALLOWED_SCHEMES or not host:
        raise InvalidTargetError("url must be an absolute http(s) URL", received=url)

    if is_local_host(host):
        raise ForbiddenTargetError(host)

    return url


def parse_target(
    url: str | None,
    *,
    mode: RelayMode = RelayMode.DEFAULT,
    viewport: Viewport | None = None,
    full_page: bool = False,
) -> TargetRequest:
    """Build a TargetRequest from query parameters (see validate_target_url)."""
    return TargetRequest(
        url=validate_target_url(url),
        mode=mode,
        viewport=viewport,
        full_page=full_page,
    )
