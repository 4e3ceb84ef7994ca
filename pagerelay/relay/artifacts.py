"""
Artifact capture: screenshots, PDFs and response headers.

All three open a context, navigate under the engine's timeout, extract the
artifact and close the context, whatever happens in between.
"""

import asyncio
from typing import TYPE_CHECKING

from pagerelay.engine.pool import EnginePool
from pagerelay.relay.render import navigate
from pagerelay.relay.viewport import Viewport
from pagerelay.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Response

logger = get_logger(__name__)


async def capture_screenshot(
    pool: EnginePool,
    url: str,
    viewport: Viewport,
    *,
    full_page: bool = False,
) -> bytes:
    """PNG of url at the given viewport (whole document when full_page)."""
    async with pool.open_context(viewport=viewport.to_dict()) as context:
        page = await context.new_page()
        await navigate(page, url, pool)
        image = await page.screenshot(full_page=full_page, type="png")

    logger.info(
        "Captured screenshot",
        url=url[:120],
        viewport=f"{viewport.width}x{viewport.height}",
        full_page=full_page,
        size=len(image),
    )
    return image


async def capture_pdf(pool: EnginePool, url: str) -> bytes:
    """PDF print of url in the configured page format (A4)."""
    async with pool.open_context() as context:
        page = await context.new_page()
        await navigate(page, url, pool)
        document = await page.pdf(format=pool.config.pdf_format)

    logger.info("Captured PDF", url=url[:120], size=len(document))
    return document


async def capture_response_headers(pool: EnginePool, url: str) -> dict[str, str]:
    """Headers of the response whose URL equals url exactly.

    Sub-resource responses and redirect targets with a different URL are
    ignored.

    Returns:
        The matching response's headers, or {} if none was observed.
    """
    loop = asyncio.get_running_loop()
    observed: asyncio.Future[dict[str, str]] = loop.create_future()

    def on_response(response: "Response") -> None:
        if not observed.done() and response.url == url:
            observed.set_result(dict(response.headers))

    async with pool.open_context() as context:
        page = await context.new_page()
        page.on("response", on_response)
        await navigate(page, url, pool)

    if observed.done():
        return observed.result()

    observed.cancel()
    logger.info("No response matched the requested URL", url=url[:120])
    return {}
