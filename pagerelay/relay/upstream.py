"""Shared httpx client for non-engine upstream requests (probe + passthrough)."""

import httpx

from pagerelay.relay.target import is_local_host
from pagerelay.utils.config import UpstreamConfig, get_settings
from pagerelay.utils.errors import ForbiddenTargetError
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)


async def screen_local_hosts(request: httpx.Request) -> None:
    """Request hook that refuses local hosts, including redirect hops."""
    host = request.url.host
    if is_local_host(host):
        logger.warning("Refused upstream request to local host", host=host, url=str(request.url))
        raise ForbiddenTargetError(host)


def create_upstream_client(
    config: UpstreamConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the app-lifetime upstream client.

    TLS verification is off by default: targets are arbitrary and often
    self-signed. Redirects are followed like a browser would, and every hop
    is screened for local hosts.

    Args:
        config: Upstream settings (defaults to settings.upstream).
        transport: Custom transport (tests pass httpx.MockTransport).
    """
    config = config or get_settings().upstream
    return httpx.AsyncClient(
        verify=config.verify_tls,
        follow_redirects=config.follow_redirects,
        timeout=httpx.Timeout(config.timeout_seconds),
        transport=transport,
        event_hooks={"request": [screen_local_hosts]},
    )


def describe_transport_error(exc: httpx.HTTPError) -> str:
    """Message for a transport failure (some httpx errors stringify to '')."""
    return str(exc) or type(exc).__name__
