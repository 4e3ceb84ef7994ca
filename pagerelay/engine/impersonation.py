"""
Browser header impersonation.

A plain HTTP client's default headers are easy to tell apart from a real
browser's, and many sites serve different content (or nothing) to it. Rather
than maintain a hand-built header list, capture_headers() lets the engine
navigate to the target and records the header set of the first request the
engine itself sends. The passthrough fetcher then replays those headers.
"""

import asyncio
import contextlib
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from pagerelay.engine.pool import EnginePool
from pagerelay.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page, Route

logger = get_logger(__name__)

# Transport-specific headers that are invalid when copied onto another request
TRANSPORT_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})


def reusable_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Drop transport-specific headers and HTTP/2 pseudo-headers.

    Args:
        headers: Captured header set (may be None when nothing was captured).

    Returns:
        Headers safe to send on a different downstream request.
    """
    if not headers:
        return {}
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in TRANSPORT_HEADERS and not name.startswith(":")
    }


async def _navigate_quietly(page: "Page", url: str, timeout_ms: float, wait_until: str) -> None:
    # Timeouts are expected here: whatever was captured before them is still useful
    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
    except PlaywrightError as e:
        logger.debug("Header capture navigation ended early", url=url[:120], error=e.message)


async def capture_headers(
    pool: EnginePool,
    url: str,
    *,
    timeout: float | None = None,
) -> dict[str, str] | None:
    """Capture the header set of the engine's first outbound request to load url.

    The first routed request may be a sub-resource rather than the document
    itself. Every request continues unmodified. Navigation races the capture
    under one time budget; a captured header set is returned as soon as it
    exists, without waiting for the page to finish loading.

    Args:
        pool: Engine pool to open the short-lived context from.
        url: Target URL.
        timeout: Budget in seconds (defaults to engine.header_capture_timeout_seconds).

    Returns:
        Captured headers, or None if no request fired in time. Never raises for
        navigation failures or timeouts.

    Raises:
        EngineUnavailableError: The engine itself could not provide a context.
    """
    budget = timeout if timeout is not None else pool.config.header_capture_timeout_seconds
    loop = asyncio.get_running_loop()
    first_request: asyncio.Future[dict[str, str]] = loop.create_future()

    async def on_route(route: "Route") -> None:
        if not first_request.done():
            first_request.set_result(dict(route.request.headers))
        with contextlib.suppress(PlaywrightError):
            # Fails once the context is torn down mid-request; nothing to continue then
            await route.continue_()

    async with pool.open_context() as context:
        page = await context.new_page()
        await page.route("**/*", on_route)

        navigation = asyncio.create_task(
            _navigate_quietly(page, url, budget * 1000, pool.config.wait_until)
        )
        try:
            await asyncio.wait(
                {first_request, navigation},
                timeout=budget,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if not navigation.done():
                navigation.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await navigation

    if first_request.done():
        headers = first_request.result()
        logger.debug("Captured browser headers", url=url[:120], header_count=len(headers))
        return headers

    first_request.cancel()
    logger.info("No outbound request observed for header capture", url=url[:120])
    return None
