"""
Shared browser engine for pagerelay.

One headless Chromium instance serves the whole process. Requests never share
pages or contexts: each one opens an isolated BrowserContext (own cookies,
cache and permissions) through EnginePool.open_context(), which closes it on
every exit path.

The pool is an explicit handle. The process entry point creates it, injects it
into the HTTP app and shuts it down once on SIGINT/SIGTERM.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from playwright.async_api import Error as PlaywrightError

from pagerelay.engine.lifecycle import ResourceTracker, ResourceType
from pagerelay.utils.config import EngineConfig, get_settings
from pagerelay.utils.errors import EngineUnavailableError
from pagerelay.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = get_logger(__name__)

DriverFactory = Callable[[], Awaitable["Playwright"]]


async def _start_playwright() -> "Playwright":
    from playwright.async_api import async_playwright

    return await async_playwright().start()


class EnginePool:
    """
    Owner of the process-wide browser engine.

    Supports:
    - Lazy, single launch shared by concurrent first callers
    - Isolated per-request contexts (CSP bypass, TLS errors ignored by default)
    - Idempotent shutdown, also when nothing was ever launched
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        driver_factory: DriverFactory | None = None,
        tracker: ResourceTracker | None = None,
    ) -> None:
        self._config = config or get_settings().engine
        self._driver_factory = driver_factory or _start_playwright
        self.tracker = tracker or ResourceTracker()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_task: asyncio.Task[Browser] | None = None
        self._closed = False

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def is_launched(self) -> bool:
        return self._browser is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def navigation_timeout_ms(self) -> float:
        return self._config.navigation_timeout_seconds * 1000

    async def start(self) -> None:
        """Launch the engine eagerly.

        Failure is logged, not raised: the next request retries the launch.
        """
        try:
            await self.acquire_engine()
        except EngineUnavailableError as e:
            logger.warning("Eager engine start failed", error=e.message)

    async def acquire_engine(self) -> "Browser":
        """Return the shared browser, launching it on first use.

        Concurrent callers await the same launch. If it fails, every one of
        them gets the same EngineUnavailableError and a later call may retry.

        Raises:
            EngineUnavailableError: Launch failed or the pool is shut down.
        """
        if self._closed:
            raise EngineUnavailableError("engine has been shut down")
        if self._browser is not None:
            return self._browser

        if self._launch_task is None:
            self._launch_task = asyncio.create_task(self._launch())
        task = self._launch_task

        try:
            return await asyncio.shield(task)
        except EngineUnavailableError:
            if self._launch_task is task:
                self._launch_task = None
            raise

    async def _launch(self) -> "Browser":
        try:
            if self._playwright is None:
                self._playwright = await self._driver_factory()
                await self.tracker.register_resource(ResourceType.PLAYWRIGHT, self._playwright)
            browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
                args=list(self._config.launch_args),
            )
        except Exception as e:
            logger.error("Engine launch failed", error=str(e))
            raise EngineUnavailableError(str(e) or type(e).__name__) from e

        await self.tracker.register_resource(ResourceType.BROWSER, browser)
        self._browser = browser
        logger.info(
            "Engine launched",
            headless=self._config.headless,
            args=self._config.launch_args,
        )
        return browser

    async def new_context(self, **options: Any) -> "BrowserContext":
        """Create an isolated context from the shared engine.

        The caller owns the context and must pass it to close_context();
        prefer open_context() which does that on every exit path.

        Args:
            **options: Extra Browser.new_context() options (e.g. viewport).

        Raises:
            EngineUnavailableError: Engine unavailable or context creation failed.
        """
        browser = await self.acquire_engine()
        context_options = {
            "bypass_csp": self._config.bypass_csp,
            "ignore_https_errors": self._config.ignore_https_errors,
            **options,
        }
        try:
            context = await browser.new_context(**context_options)
        except PlaywrightError as e:
            raise EngineUnavailableError(f"context creation failed: {e.message}") from e

        request_id = structlog.contextvars.get_contextvars().get("request_id")
        await self.tracker.register_resource(ResourceType.BROWSER_CONTEXT, context, request_id)
        return context

    async def close_context(self, context: "BrowserContext") -> None:
        """Close a context created by new_context() and stop tracking it."""
        rid = ResourceTracker.resource_id(ResourceType.BROWSER_CONTEXT, context)
        try:
            await context.close()
        except PlaywrightError as e:
            logger.warning("Context close failed", error=e.message)
        finally:
            await self.tracker.unregister_resource(rid)

    @contextlib.asynccontextmanager
    async def open_context(self, **options: Any) -> AsyncIterator["BrowserContext"]:
        """Scoped context: created on entry, closed on any exit."""
        context = await self.new_context(**options)
        try:
            yield context
        finally:
            await self.close_context(context)

    def open_context_count(self) -> int:
        return self.tracker.get_resource_count(ResourceType.BROWSER_CONTEXT)

    async def shutdown(self) -> None:
        """Close contexts, browser and driver. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        task = self._launch_task
        if task is not None and not task.done():
            # Let an in-flight launch settle so its browser gets closed too
            with contextlib.suppress(EngineUnavailableError):
                await task

        results = await self.tracker.cleanup_all()
        self._browser = None
        self._playwright = None
        self._launch_task = None
        logger.info(
            "Engine shut down",
            closed=sum(1 for ok in results.values() if ok),
            failed=sum(1 for ok in results.values() if not ok),
        )

    def status(self) -> dict[str, Any]:
        """Engine state for the health document."""
        return {
            "launched": self.is_launched,
            "closed": self._closed,
            "open_contexts": self.open_context_count(),
        }
