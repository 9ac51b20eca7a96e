"""
Capability interfaces consumed by the step execution engine.

The browser adapter, artifact store, AI selector service and cron evaluator
are external collaborators; the engine only depends on these contracts.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from stepwright.core.types import ElementSuggestion, FrameConfig, PageSnapshot, TestCase


class ElementLocator(ABC):
    """A lazily evaluated reference to an on-page element."""

    @abstractmethod
    async def is_visible(self, timeout_ms: int) -> bool:
        """Return True when the element becomes visible within the probe window.

        Implementations must return False rather than raise.
        """

    @abstractmethod
    async def click(self, timeout_ms: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def fill(self, value: str, timeout_ms: Optional[int] = None) -> None:
        pass


class FrameStream(ABC):
    """Handle of an active live-frame subscription."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop streaming. Idempotent, never raises."""


class BrowserPage(ABC):
    """Primitive operations against the page a run drives."""

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @abstractmethod
    async def title(self) -> str:
        pass

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        pass

    @abstractmethod
    def locate(self, selector: str) -> ElementLocator:
        pass

    @abstractmethod
    async def locate_all(self, selector: str) -> List[ElementLocator]:
        """Return every match of the selector in DOM order."""

    @abstractmethod
    async def screenshot(self) -> bytes:
        pass

    @abstractmethod
    async def wait_network_idle(self, timeout_ms: int) -> bool:
        """Best-effort settle wait. Returns False on timeout instead of raising."""

    @abstractmethod
    async def keyboard_press(self, key: str) -> None:
        pass

    @abstractmethod
    async def scroll_by(self, delta_y: int) -> None:
        pass

    @abstractmethod
    async def scroll_to_top(self) -> None:
        pass

    @abstractmethod
    async def wait(self, milliseconds: int) -> None:
        pass

    @abstractmethod
    async def snapshot_elements(self, limit: int) -> PageSnapshot:
        pass

    @abstractmethod
    async def stream_frames(
        self,
        config: FrameConfig,
        on_frame: Callable[[str], Awaitable[None]],
    ) -> Optional[FrameStream]:
        """Start a live-frame stream; returns None when unsupported or failed."""


class BrowserSession(ABC):
    """An exclusive browser process owned by one run."""

    @abstractmethod
    async def new_page(self) -> BrowserPage:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Idempotent."""


class BrowserLauncher(ABC):
    """Factory of browser sessions."""

    @abstractmethod
    async def launch(self) -> BrowserSession:
        pass


class ArtifactStore(ABC):
    """Persists evidence bytes and returns a retrievable reference."""

    @abstractmethod
    async def save(self, data: bytes, name: Optional[str] = None) -> str:
        pass


class SelectorSuggester(ABC):
    """Optional language-model service that proposes a selector."""

    @abstractmethod
    async def suggest_selector(
        self, snapshot: PageSnapshot, action_text: str
    ) -> ElementSuggestion:
        pass


class CronHandle(ABC):
    @abstractmethod
    def stop(self) -> None:
        pass


class CronEvaluator(ABC):
    """Validates cron expressions and drives recurring callbacks."""

    @abstractmethod
    def validate(self, expression: str) -> bool:
        pass

    @abstractmethod
    def schedule(
        self, expression: str, callback: Callable[[], Awaitable[None]]
    ) -> CronHandle:
        pass


class TestCaseRepository(ABC):
    """Read access to the external test case store."""

    __test__ = False

    @abstractmethod
    async def get(self, test_case_id: str) -> Optional[TestCase]:
        pass


class ConfigProvider(ABC):
    """Abstract base class for configuration providers."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        pass

    @abstractmethod
    def get_required(self, key: str) -> Any:
        """
        Get a required configuration value.

        Args:
            key: Configuration key

        Returns:
            Configuration value

        Raises:
            KeyError: If key not found
        """
        pass

    @abstractmethod
    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        pass
