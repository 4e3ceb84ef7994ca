"""
Pytest fixtures and configuration for pagerelay tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers (Execution Speed):
- @pytest.mark.unit: Single class/function, no external dependencies
  - Fast (<1s per test)
  - Playwright and upstream HTTP fully faked
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together (aiohttp app,
  engine pool, relay pipeline) over the same fakes
  - Medium (<5s per test)

- @pytest.mark.e2e: Real Chromium and real network
  - DEFAULT EXCLUDED: Must use `pytest -m e2e` to run

- @pytest.mark.slow: Tests taking >5 seconds
  - DEFAULT EXCLUDED: Must use `pytest -m slow` to run

=============================================================================
Mock Strategy
=============================================================================

- Browser engine: FakePlaywright below, injected via EnginePool(driver_factory=...)
- Upstream HTTP: httpx.MockTransport via create_upstream_client(transport=...)
- HTTP surface: aiohttp.test_utils.TestServer / TestClient
- Network: Prohibited in unit and integration tests
"""

import asyncio
import inspect
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

# Set test environment before importing anything else
os.environ["PAGERELAY_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["PAGERELAY_GENERAL__LOG_LEVEL"] = "DEBUG"


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with mocked external dependencies (<5s/test)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring real environment (excluded by default)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Auto-apply markers.

    Tests without explicit markers are assumed to be unit tests.
    """
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fake Playwright
# =============================================================================


@dataclass
class PageScript:
    """What every fake page does when navigated.

    Attributes:
        html: Returned by page.content().
        png: Returned by page.screenshot().
        pdf: Returned by page.pdf().
        requests: Header sets of the outbound requests fired through routes, in order.
        responses: (url, headers) pairs emitted to "response" listeners, in order.
        goto_error: Raised by page.goto() after requests/responses fired.
        hang: page.goto() never completes (until cancelled).
    """

    html: str = "<html><head></head><body></body></html>"
    png: bytes = b"\x89PNG\r\n\x1a\nfake"
    pdf: bytes = b"%PDF-1.4 fake"
    requests: list[dict[str, str]] = field(default_factory=list)
    responses: list[tuple[str, dict[str, str]]] = field(default_factory=list)
    goto_error: Exception | None = None
    hang: bool = False


class FakeRequest:
    def __init__(self, url: str, headers: dict[str, str]):
        self.url = url
        self.headers = headers


class FakeRoute:
    def __init__(self, request: FakeRequest):
        self.request = request
        self.continued = False

    async def continue_(self, **kwargs: Any) -> None:
        self.continued = True


class FakeResponse:
    def __init__(self, url: str, headers: dict[str, str], status: int = 200):
        self.url = url
        self.headers = headers
        self.status = status


class FakePage:
    def __init__(self, context: "FakeContext", script: PageScript):
        self.context = context
        self.script = script
        self.route_handlers: list[Callable] = []
        self.listeners: dict[str, list[Callable]] = {}
        self.goto_calls: list[dict[str, Any]] = []
        self.routes: list[FakeRoute] = []
        self.screenshot_calls: list[dict[str, Any]] = []
        self.pdf_calls: list[dict[str, Any]] = []

    async def route(self, pattern: str, handler: Callable) -> None:
        self.route_handlers.append(handler)

    def on(self, event: str, callback: Callable) -> None:
        self.listeners.setdefault(event, []).append(callback)

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.goto_calls.append({"url": url, **kwargs})

        for headers in self.script.requests:
            for handler in self.route_handlers:
                route = FakeRoute(FakeRequest(url, dict(headers)))
                self.routes.append(route)
                result = handler(route)
                if inspect.isawaitable(result):
                    await result

        for response_url, headers in self.script.responses:
            for callback in self.listeners.get("response", []):
                callback(FakeResponse(response_url, dict(headers)))

        if self.script.hang:
            await asyncio.sleep(3600)
        if self.script.goto_error is not None:
            raise self.script.goto_error
        return FakeResponse(url, {})

    async def content(self) -> str:
        return self.script.html

    async def screenshot(self, **kwargs: Any) -> bytes:
        self.screenshot_calls.append(kwargs)
        return self.script.png

    async def pdf(self, **kwargs: Any) -> bytes:
        self.pdf_calls.append(kwargs)
        return self.script.pdf


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: dict[str, Any]):
        self.browser = browser
        self.options = options
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self, self.browser.script)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, script: PageScript):
        self.script = script
        self.contexts: list[FakeContext] = []
        self.closed = False
        self.context_error: Exception | None = None

    async def new_context(self, **options: Any) -> FakeContext:
        if self.context_error is not None:
            raise self.context_error
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True

    @property
    def open_contexts(self) -> list[FakeContext]:
        return [c for c in self.contexts if not c.closed]

    @property
    def last_page(self) -> FakePage:
        return self.contexts[-1].pages[-1]


class FakeChromium:
    def __init__(self, script: PageScript):
        self.script = script
        self.launch_calls: list[dict[str, Any]] = []
        self.launch_error: Exception | None = None
        self.launch_delay = 0.0
        self.browsers: list[FakeBrowser] = []

    async def launch(self, **kwargs: Any) -> FakeBrowser:
        self.launch_calls.append(kwargs)
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.launch_error is not None:
            raise self.launch_error
        browser = FakeBrowser(self.script)
        self.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, script: PageScript):
        self.chromium = FakeChromium(script)
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True

    @property
    def browser(self) -> FakeBrowser:
        return self.chromium.browsers[-1]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def page_script() -> PageScript:
    """Behaviour of every page opened in the fake engine."""
    return PageScript()


@pytest.fixture
def fake_playwright(page_script: PageScript) -> FakePlaywright:
    return FakePlaywright(page_script)


@pytest.fixture
def engine_config():
    """Engine settings with short timeouts and no eager launch."""
    from pagerelay.utils.config import EngineConfig

    return EngineConfig(
        eager_start=False,
        navigation_timeout_seconds=1.0,
        header_capture_timeout_seconds=0.5,
    )


@pytest.fixture
def driver_factory(fake_playwright: FakePlaywright):
    async def _factory() -> FakePlaywright:
        return fake_playwright

    return _factory


@pytest_asyncio.fixture
async def engine_pool(engine_config, driver_factory):
    """EnginePool backed by the fake engine; shut down after the test."""
    from pagerelay.engine.pool import EnginePool

    pool = EnginePool(engine_config, driver_factory=driver_factory)
    yield pool
    await pool.shutdown()


@pytest.fixture
def test_settings(engine_config):
    """Settings with the fake-friendly engine section."""
    from pagerelay.utils.config import Settings

    return Settings(engine=engine_config)
