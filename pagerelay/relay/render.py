"""
Render & rewrite pipeline for HTML targets.

The document is taken from the engine after navigation (page.content()),
not from the raw response bytes, so it reflects the engine's parsing and
normalization of the page.
"""

from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pagerelay.engine.pool import EnginePool
from pagerelay.relay.rewrite import DEFAULT_RELAY_PATH, rewrite_document
from pagerelay.utils.config import RewriteConfig
from pagerelay.utils.errors import NavigationError
from pagerelay.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page, Response

logger = get_logger(__name__)


async def navigate(page: "Page", url: str, pool: EnginePool) -> "Response | None":
    """Load url in page under the engine's navigation timeout.

    Raises:
        NavigationError: Timeout or navigation failure.
    """
    try:
        return await page.goto(
            url,
            wait_until=pool.config.wait_until,
            timeout=pool.navigation_timeout_ms,
        )
    except PlaywrightTimeoutError as e:
        raise NavigationError(url, e.message, timeout=True) from e
    except PlaywrightError as e:
        raise NavigationError(url, e.message) from e


async def capture_document(pool: EnginePool, url: str) -> str:
    """Navigate a fresh context to url and return the parsed document's HTML."""
    async with pool.open_context() as context:
        page = await context.new_page()
        await navigate(page, url, pool)
        return await page.content()


async def render_and_rewrite(
    pool: EnginePool,
    url: str,
    *,
    raw: bool = False,
    relay_path: str = DEFAULT_RELAY_PATH,
    config: RewriteConfig | None = None,
) -> str:
    """Render url and rewrite its links to route back through the relay.

    Args:
        pool: Engine pool.
        url: Target page URL.
        raw: Return the captured HTML without rewriting.
        relay_path: Path of the relay endpoint used in rewritten links.
        config: Rewrite settings (defaults to settings.rewrite).

    Raises:
        EngineUnavailableError: No engine/context.
        NavigationError: Page load failed or timed out.
    """
    html = await capture_document(pool, url)
    logger.info("Rendered page", url=url[:120], size=len(html), raw=raw)
    if raw:
        return html
    return rewrite_document(html, url, relay_path=relay_path, config=config)
