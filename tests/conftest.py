"""
Shared fakes for the browser adapter, artifact store and cron evaluator.
"""

from typing import Awaitable, Callable, Dict, List, Optional

import pytest

from stepwright.config.settings import Settings
from stepwright.core.interfaces import (
    ArtifactStore,
    BrowserLauncher,
    BrowserPage,
    BrowserSession,
    CronEvaluator,
    CronHandle,
    ElementLocator,
    FrameStream,
)
from stepwright.core.types import FrameConfig, PageSnapshot


class FakeLocator(ElementLocator):
    def __init__(self, visible: bool = True, error: Optional[Exception] = None):
        self.visible = visible
        self.error = error
        self.clicks = 0
        self.fills: List[str] = []

    async def is_visible(self, timeout_ms: int) -> bool:
        return self.visible

    async def click(self, timeout_ms: Optional[int] = None) -> None:
        if self.error:
            raise self.error
        self.clicks += 1

    async def fill(self, value: str, timeout_ms: Optional[int] = None) -> None:
        if self.error:
            raise self.error
        self.fills.append(value)


class FakeFrameStream(FrameStream):
    def __init__(self):
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class FakePage(BrowserPage):
    """Selector-keyed page: unknown selectors resolve to invisible locators."""

    def __init__(
        self,
        locators: Optional[Dict[str, FakeLocator]] = None,
        groups: Optional[Dict[str, List[FakeLocator]]] = None,
        snapshot: Optional[PageSnapshot] = None,
        network_idle: bool = True,
    ):
        self.locators = locators or {}
        self.groups = groups or {}
        self.snapshot = snapshot or PageSnapshot()
        self.network_idle = network_idle
        self.current_url = "about:blank"
        self.navigations: List[str] = []
        self.keys: List[str] = []
        self.scrolls: List[int] = []
        self.waits: List[int] = []
        self.scrolled_to_top = 0
        self.screenshots = 0
        self.probed: List[str] = []
        self.frame_stream: Optional[FakeFrameStream] = None
        self.emit_frames: List[str] = []

    @property
    def url(self) -> str:
        return self.current_url

    async def title(self) -> str:
        return "Fake page"

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigations.append(url)
        self.current_url = url

    def locate(self, selector: str) -> ElementLocator:
        self.probed.append(selector)
        return self.locators.get(selector, FakeLocator(visible=False))

    async def locate_all(self, selector: str) -> List[ElementLocator]:
        return list(self.groups.get(selector, []))

    async def screenshot(self) -> bytes:
        self.screenshots += 1
        return b"\x89PNG"

    async def wait_network_idle(self, timeout_ms: int) -> bool:
        return self.network_idle

    async def keyboard_press(self, key: str) -> None:
        self.keys.append(key)

    async def scroll_by(self, delta_y: int) -> None:
        self.scrolls.append(delta_y)

    async def scroll_to_top(self) -> None:
        self.scrolled_to_top += 1

    async def wait(self, milliseconds: int) -> None:
        self.waits.append(milliseconds)

    async def snapshot_elements(self, limit: int) -> PageSnapshot:
        return PageSnapshot(
            url=self.snapshot.url,
            title=self.snapshot.title,
            elements=self.snapshot.elements[:limit],
        )

    async def stream_frames(
        self,
        config: FrameConfig,
        on_frame: Callable[[str], Awaitable[None]],
    ) -> Optional[FrameStream]:
        for frame in self.emit_frames:
            await on_frame(frame)
        self.frame_stream = FakeFrameStream()
        return self.frame_stream


class FakeSession(BrowserSession):
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = 0

    async def new_page(self) -> BrowserPage:
        return self.page

    async def close(self) -> None:
        self.closed += 1


class FakeLauncher(BrowserLauncher):
    def __init__(self, page: Optional[FakePage] = None, error: Optional[Exception] = None):
        self.page = page or FakePage()
        self.error = error
        self.sessions: List[FakeSession] = []

    async def launch(self) -> BrowserSession:
        if self.error:
            raise self.error
        session = FakeSession(self.page)
        self.sessions.append(session)
        return session


class FakeArtifactStore(ArtifactStore):
    def __init__(self):
        self.saved: List[str] = []

    async def save(self, data: bytes, name: Optional[str] = None) -> str:
        self.saved.append(name)
        return f"/screenshots/{name}.png?t=0"


class FakeCronHandle(CronHandle):
    def __init__(self, expression: str, callback):
        self.expression = expression
        self.callback = callback
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeCronEvaluator(CronEvaluator):
    """Accepts five-field expressions; callbacks are fired by the test."""

    def __init__(self):
        self.handles: List[FakeCronHandle] = []

    def validate(self, expression: str) -> bool:
        return bool(expression) and len(expression.split()) == 5

    def schedule(self, expression: str, callback) -> CronHandle:
        handle = FakeCronHandle(expression, callback)
        self.handles.append(handle)
        return handle


@pytest.fixture
def settings(tmp_path):
    """Settings with every settle delay disabled."""
    return Settings(
        settle_delay_ms=0,
        post_step_delay_ms=0,
        network_idle_timeout_ms=0,
        locator_probe_timeout_ms=100,
        screencast_enabled=False,
        ai_selector_enabled=False,
        data_dir=tmp_path,
        screenshots_dir=tmp_path / "screenshots",
    )


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def artifact_store():
    return FakeArtifactStore()
