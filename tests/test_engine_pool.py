"""
Tests for the shared browser engine (pagerelay.engine.pool).

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-EP-N-01 | First acquire | Equivalence – normal | Chromium launched headless, --no-sandbox | Launch |
| TC-EP-N-02 | Second acquire | Equivalence – normal | Same browser, one launch | Memoized |
| TC-EP-N-03 | 10 concurrent first callers | Boundary – concurrency | Exactly one launch | Shared launch |
| TC-EP-A-01 | Launch raises | Abnormal – launch | EngineUnavailableError | - |
| TC-EP-N-04 | Launch fails then succeeds | Equivalence – retry | Second acquire launches | Retry |
| TC-EP-N-05 | new_context defaults | Equivalence – normal | bypass_csp / ignore_https_errors | Options |
| TC-EP-N-06 | new_context with viewport | Equivalence – normal | Options merged | Options |
| TC-EP-A-02 | Context creation fails | Abnormal – context | EngineUnavailableError | - |
| TC-EP-N-07 | open_context body raises | Equivalence – cleanup | Context closed | No leak |
| TC-EP-N-08 | N scoped contexts | Equivalence – cleanup | Count back to baseline | No leak |
| TC-EP-N-09 | Shutdown twice | Boundary – idempotent | Browser/driver closed once | - |
| TC-EP-B-01 | Shutdown before launch | Boundary – empty | No error, nothing launched | - |
| TC-EP-A-03 | Acquire after shutdown | Abnormal – closed | EngineUnavailableError | No relaunch |
| TC-EP-N-10 | Shutdown with open context | Equivalence – cleanup | Context closed first | Leak recovery |
| TC-EP-N-11 | start() with failing launch | Equivalence – eager | Logged, not raised | Eager start |
| TC-EP-N-12 | status() | Equivalence – normal | launched/closed/open_contexts | Health |
"""

import asyncio

import pytest

pytestmark = pytest.mark.unit

from playwright.async_api import Error as PlaywrightError

from pagerelay.engine.pool import EnginePool
from pagerelay.utils.config import EngineConfig
from pagerelay.utils.errors import EngineUnavailableError


class TestAcquireEngine:
    """Tests for EnginePool.acquire_engine()."""

    @pytest.mark.asyncio
    async def test_first_acquire_launches_chromium(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-01: The first acquire launches headless Chromium with --no-sandbox.

        // Given: a fresh pool
        // When:  acquire_engine() is called
        // Then:  chromium.launch(headless=True, args=["--no-sandbox"]) ran once
        """
        # When
        browser = await engine_pool.acquire_engine()

        # Then
        assert browser is fake_playwright.browser
        assert fake_playwright.chromium.launch_calls == [
            {"headless": True, "args": ["--no-sandbox"]}
        ]
        assert engine_pool.is_launched is True

    @pytest.mark.asyncio
    async def test_second_acquire_reuses_browser(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-02: The engine is memoized.
        """
        first = await engine_pool.acquire_engine()
        second = await engine_pool.acquire_engine()

        assert first is second
        assert len(fake_playwright.chromium.launch_calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_callers_share_one_launch(
        self, engine_pool, fake_playwright
    ) -> None:
        """
        TC-EP-N-03: Concurrent first callers never launch twice.

        // Given: a slow launch
        // When:  10 tasks call acquire_engine() at once
        // Then:  exactly one launch, every task gets the same browser
        """
        # Given
        fake_playwright.chromium.launch_delay = 0.05

        # When
        browsers = await asyncio.gather(*(engine_pool.acquire_engine() for _ in range(10)))

        # Then
        assert len(fake_playwright.chromium.launch_calls) == 1
        assert all(b is browsers[0] for b in browsers)

    @pytest.mark.asyncio
    async def test_launch_failure_raises_engine_unavailable(
        self, engine_pool, fake_playwright
    ) -> None:
        """
        TC-EP-A-01: A launch error surfaces as EngineUnavailableError (500).
        """
        # Given
        fake_playwright.chromium.launch_error = PlaywrightError("Executable doesn't exist")

        # When / Then
        with pytest.raises(EngineUnavailableError) as exc_info:
            await engine_pool.acquire_engine()

        assert "Executable doesn't exist" in exc_info.value.message
        assert exc_info.value.http_status == 500
        assert engine_pool.is_launched is False

    @pytest.mark.asyncio
    async def test_launch_retried_after_failure(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-04: A failed launch does not poison the pool.

        // Given: the first launch fails
        // When:  the error is cleared and acquire_engine() is called again
        // Then:  the second launch succeeds
        """
        # Given
        fake_playwright.chromium.launch_error = PlaywrightError("boom")
        with pytest.raises(EngineUnavailableError):
            await engine_pool.acquire_engine()

        # When
        fake_playwright.chromium.launch_error = None
        browser = await engine_pool.acquire_engine()

        # Then
        assert browser is fake_playwright.browser
        assert len(fake_playwright.chromium.launch_calls) == 2

    @pytest.mark.asyncio
    async def test_driver_start_failure(self, engine_config) -> None:
        async def failing_factory():
            raise RuntimeError("driver missing")

        pool = EnginePool(engine_config, driver_factory=failing_factory)

        with pytest.raises(EngineUnavailableError, match="driver missing"):
            await pool.acquire_engine()

        await pool.shutdown()


class TestContexts:
    """Tests for new_context() / open_context()."""

    @pytest.mark.asyncio
    async def test_context_defaults(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-05: Contexts bypass CSP and ignore TLS errors by default.
        """
        async with engine_pool.open_context() as context:
            assert context.options == {"bypass_csp": True, "ignore_https_errors": True}

    @pytest.mark.asyncio
    async def test_context_options_merged(self, engine_pool) -> None:
        """
        TC-EP-N-06: Caller options are added to the defaults.
        """
        async with engine_pool.open_context(viewport={"width": 375, "height": 812}) as context:
            assert context.options["viewport"] == {"width": 375, "height": 812}
            assert context.options["bypass_csp"] is True

    @pytest.mark.asyncio
    async def test_context_defaults_follow_config(self, driver_factory) -> None:
        pool = EnginePool(
            EngineConfig(bypass_csp=False, ignore_https_errors=False),
            driver_factory=driver_factory,
        )
        try:
            async with pool.open_context() as context:
                assert context.options == {"bypass_csp": False, "ignore_https_errors": False}
        finally:
            await pool.shutdown()

    @pytest.mark.asyncio
    async def test_context_creation_failure(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-A-02: Context creation errors are EngineUnavailableError.
        """
        # Given
        await engine_pool.acquire_engine()
        fake_playwright.browser.context_error = PlaywrightError("Target closed")

        # When / Then
        with pytest.raises(EngineUnavailableError, match="context creation failed"):
            async with engine_pool.open_context():
                pass
        assert engine_pool.open_context_count() == 0

    @pytest.mark.asyncio
    async def test_context_closed_when_body_raises(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-07: A failing request still closes its context.

        // Given: an open_context() block that raises
        // When:  the block exits
        // Then:  the context is closed and untracked
        """
        with pytest.raises(RuntimeError):
            async with engine_pool.open_context():
                raise RuntimeError("handler failed")

        assert fake_playwright.browser.contexts[0].closed is True
        assert engine_pool.open_context_count() == 0

    @pytest.mark.asyncio
    async def test_no_context_leak_across_requests(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-08: Open-context count returns to baseline after N requests.

        // Given: a launched engine
        // When:  20 concurrent scoped contexts run, some failing
        // Then:  every context is closed and the count is back to zero
        """
        # Given
        await engine_pool.acquire_engine()
        baseline = engine_pool.open_context_count()

        async def one_request(i: int) -> None:
            async with engine_pool.open_context():
                await asyncio.sleep(0)
                if i % 3 == 0:
                    raise ValueError(i)

        # When
        await asyncio.gather(*(one_request(i) for i in range(20)), return_exceptions=True)

        # Then
        assert engine_pool.open_context_count() == baseline
        assert len(fake_playwright.browser.contexts) == 20
        assert fake_playwright.browser.open_contexts == []


class TestShutdown:
    """Tests for EnginePool.shutdown()."""

    @pytest.mark.asyncio
    async def test_shutdown_idempotent(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-09: Shutdown closes the browser and driver, once.
        """
        # Given
        await engine_pool.acquire_engine()
        browser = fake_playwright.browser

        # When
        await engine_pool.shutdown()
        await engine_pool.shutdown()

        # Then
        assert browser.closed is True
        assert fake_playwright.stopped is True
        assert engine_pool.is_closed is True
        assert engine_pool.tracker.get_resource_count() == 0

    @pytest.mark.asyncio
    async def test_shutdown_before_launch(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-B-01: Shutting down a never-launched pool is a no-op.
        """
        await engine_pool.shutdown()

        assert fake_playwright.chromium.launch_calls == []
        assert engine_pool.is_closed is True

    @pytest.mark.asyncio
    async def test_acquire_after_shutdown(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-A-03: The engine is not relaunched after shutdown.
        """
        await engine_pool.acquire_engine()
        await engine_pool.shutdown()

        with pytest.raises(EngineUnavailableError, match="shut down"):
            await engine_pool.acquire_engine()
        assert len(fake_playwright.chromium.launch_calls) == 1

    @pytest.mark.asyncio
    async def test_shutdown_closes_leaked_context(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-10: Contexts still open at shutdown are closed.
        """
        # Given
        context = await engine_pool.new_context()

        # When
        await engine_pool.shutdown()

        # Then
        assert context.closed is True
        assert fake_playwright.browser.closed is True

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_inflight_launch(self, engine_pool, fake_playwright) -> None:
        fake_playwright.chromium.launch_delay = 0.05
        launch = asyncio.create_task(engine_pool.acquire_engine())
        await asyncio.sleep(0)

        await engine_pool.shutdown()

        await launch
        assert fake_playwright.browser.closed is True


class TestStartAndStatus:
    """Tests for start() and status()."""

    @pytest.mark.asyncio
    async def test_start_swallows_launch_failure(self, engine_pool, fake_playwright) -> None:
        """
        TC-EP-N-11: Eager start failure is logged, and later acquires retry.
        """
        # Given
        fake_playwright.chromium.launch_error = PlaywrightError("no display")

        # When
        await engine_pool.start()

        # Then
        assert engine_pool.is_launched is False
        fake_playwright.chromium.launch_error = None
        await engine_pool.acquire_engine()
        assert engine_pool.is_launched is True

    @pytest.mark.asyncio
    async def test_status(self, engine_pool) -> None:
        """
        TC-EP-N-12: status() reports launch state and open contexts.
        """
        assert engine_pool.status() == {"launched": False, "closed": False, "open_contexts": 0}

        async with engine_pool.open_context():
            assert engine_pool.status() == {
                "launched": True,
                "closed": False,
                "open_contexts": 1,
            }

        await engine_pool.shutdown()
        assert engine_pool.status()["closed"] is True

    def test_navigation_timeout_ms(self) -> None:
        pool = EnginePool(EngineConfig(navigation_timeout_seconds=10))
        assert pool.navigation_timeout_ms == 10000
