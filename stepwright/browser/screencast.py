"""
Live-frame streaming over the Chrome DevTools screencast.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import CDPSession, Error as PlaywrightError, Page

from stepwright.core.interfaces import FrameStream
from stepwright.core.types import FrameConfig
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


class CDPFrameStream(FrameStream):
    """Throttled screencast: every frame is acknowledged, excess frames are dropped."""

    def __init__(
        self,
        session: CDPSession,
        config: FrameConfig,
        on_frame: Callable[[str], Awaitable[None]],
    ) -> None:
        self._session = session
        self._config = config
        self._on_frame = on_frame
        self._last_emit_ms = 0.0
        self._stopped = False
        self.frames_emitted = 0
        self.frames_dropped = 0

    @classmethod
    async def start(
        cls,
        page: Page,
        config: FrameConfig,
        on_frame: Callable[[str], Awaitable[None]],
    ) -> Optional["CDPFrameStream"]:
        """Open a CDP session on the page and start the screencast.

        Returns None when the browser does not support it.
        """
        try:
            session = await page.context.new_cdp_session(page)
            stream = cls(session, config, on_frame)
            session.on("Page.screencastFrame", stream._handle_frame)
            await session.send(
                "Page.startScreencast",
                {
                    "format": "jpeg",
                    "quality": config.quality,
                    "maxWidth": config.max_width,
                    "maxHeight": config.max_height,
                    "everyNthFrame": config.every_nth_frame,
                },
            )
        except PlaywrightError as e:
            logger.warning(f"Screencast unavailable: {e}")
            return None

        logger.debug("Screencast started")
        return stream

    def should_emit(self, now_ms: float) -> bool:
        if self._stopped:
            return False
        return now_ms - self._last_emit_ms >= self._config.min_interval_ms

    async def _handle_frame(self, event: Dict[str, Any]) -> None:
        now_ms = time.monotonic() * 1000
        if self.should_emit(now_ms):
            self._last_emit_ms = now_ms
            self.frames_emitted += 1
            try:
                await self._on_frame(f"data:image/jpeg;base64,{event['data']}")
            except Exception:
                logger.debug("Frame subscriber failed", exc_info=True)
        else:
            self.frames_dropped += 1

        try:
            await self._session.send(
                "Page.screencastFrameAck", {"sessionId": event["sessionId"]}
            )
        except PlaywrightError:
            pass

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        try:
            await self._session.send("Page.stopScreencast")
            await self._session.detach()
        except PlaywrightError:
            # Session already gone with its browser
            pass
        logger.debug(
            "Screencast stopped",
            extra={"emitted": self.frames_emitted, "dropped": self.frames_dropped},
        )
