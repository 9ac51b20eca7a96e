"""
Integration tests that drive a real Chromium through the Playwright adapter.
"""

import pytest

from stepwright.browser.driver import PlaywrightBrowser
from stepwright.core.types import ExecutionStatus, FrameConfig, StepStatus, TestCase
from stepwright.execution.resolver import ElementResolver
from stepwright.execution.runner import ExecutionOrchestrator
from stepwright.storage.artifacts import LocalArtifactStore

SHOP_PAGE = """<!doctype html>
<html>
<head><title>Test Shop</title></head>
<body>
  <input type="search" placeholder="Search products">
  <button id="go" onclick="document.getElementById('out').textContent = 'clicked'">Go</button>
  <textarea placeholder="Notes"></textarea>
  <p id="out"></p>
</body>
</html>
"""


@pytest.fixture
def shop_url(tmp_path):
    page = tmp_path / "shop.html"
    page.write_text(SHOP_PAGE, encoding="utf-8")
    return page.as_uri()


@pytest.fixture
def browser_settings(settings):
    return settings.model_copy(update={"network_idle_timeout_ms": 2000, "locator_probe_timeout_ms": 500})


@pytest.mark.integration
class TestPlaywrightAdapter:
    """Adapter primitives against a local page."""

    @pytest.mark.asyncio
    async def test_locate_fill_and_snapshot(self, shop_url):
        session = await PlaywrightBrowser(headless=True).launch()
        try:
            page = await session.new_page()
            await page.navigate(shop_url, 10000)

            assert await page.title() == "Test Shop"
            assert await page.locate('input[type="search"]').is_visible(1000)
            assert not await page.locate("#does-not-exist").is_visible(100)

            await page.locate("textarea").fill("hello")
            snapshot = await page.snapshot_elements(50)
            tags = [element.tag for element in snapshot.elements]
            assert tags[:3] == ["input", "button", "textarea"]

            assert (await page.screenshot()).startswith(b"\x89PNG")
        finally:
            await session.close()

    @pytest.mark.asyncio
    async def test_frame_stream_stops_cleanly(self, shop_url):
        session = await PlaywrightBrowser(headless=True).launch()
        frames = []

        async def on_frame(frame):
            frames.append(frame)

        try:
            page = await session.new_page()
            await page.navigate(shop_url, 10000)
            stream = await page.stream_frames(FrameConfig(), on_frame)
            if stream is not None:
                await stream.stop()
                await stream.stop()
        finally:
            await session.close()

        assert all(frame.startswith("data:image/jpeg;base64,") for frame in frames)


@pytest.mark.integration
class TestOrchestratorInBrowser:

    @pytest.mark.asyncio
    async def test_steps_run_against_local_page(self, shop_url, browser_settings, tmp_path):
        test_case = TestCase(
            id="tc-local",
            name="Local shop",
            steps=[
                f'Navigate to "{shop_url}"',
                'Search for "lamp"',
                'Click "Go"',
                'Type "fragile" into notes',
            ],
        )
        orchestrator = ExecutionOrchestrator(
            test_case=test_case,
            launcher=PlaywrightBrowser(headless=True),
            artifact_store=LocalArtifactStore(directory=tmp_path / "shots", url_prefix=""),
            resolver=ElementResolver(probe_timeout_ms=500),
            settings=browser_settings,
        )

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED, record.error
        assert len(record.step_results) == 5
        assert all(r.status == StepStatus.COMPLETED for r in record.step_results)
        assert len(list((tmp_path / "shots").glob("*.png"))) == 5

    @pytest.mark.asyncio
    async def test_missing_element_fails_run(self, shop_url, browser_settings, tmp_path):
        test_case = TestCase(
            id="tc-missing",
            name="Missing button",
            steps=[f'Navigate to "{shop_url}"', 'Click "Nonexistent Button"'],
        )
        orchestrator = ExecutionOrchestrator(
            test_case=test_case,
            launcher=PlaywrightBrowser(headless=True),
            artifact_store=LocalArtifactStore(directory=tmp_path / "shots", url_prefix=""),
            resolver=ElementResolver(probe_timeout_ms=200),
            settings=browser_settings,
        )

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert [r.status for r in record.step_results] == [
            StepStatus.COMPLETED,
            StepStatus.COMPLETED,
            StepStatus.FAILED,
        ]
        assert "Nonexistent Button" in record.step_results[-1].message
