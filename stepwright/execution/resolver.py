"""
Element resolution: from an action intent to a concrete, visible locator.

Each action category owns an ordered list of strategies. The resolver probes
them in order and accepts the first one that yields a visible element; it
never scores across strategies. Unclassified steps go to the AI element
finder instead.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from stepwright.core.interfaces import BrowserPage, ElementLocator
from stepwright.core.types import (
    ActionIntent,
    AddToCollection,
    Click,
    IntentKind,
    Search,
    SelectItem,
    TypeText,
    Unclassified,
)
from stepwright.error_handling import ElementNotFound
from stepwright.execution.ai_finder import AIElementFinder
from stepwright.execution.css import css_string
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


class LocatorStrategy(ABC):
    """One way of turning the live page into a candidate element."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def find(self, page: BrowserPage, probe_timeout_ms: int) -> Optional[ElementLocator]:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class SelectorStrategy(LocatorStrategy):
    """First match of a selector, accepted if it turns visible within the probe window."""

    def __init__(self, name: str, selector: str) -> None:
        super().__init__(name)
        self.selector = selector

    async def find(self, page: BrowserPage, probe_timeout_ms: int) -> Optional[ElementLocator]:
        locator = page.locate(self.selector)
        if await locator.is_visible(probe_timeout_ms):
            return locator
        return None

    def __repr__(self) -> str:
        return f"SelectorStrategy({self.name!r}, {self.selector!r})"


class NthVisibleStrategy(LocatorStrategy):
    """The ordinal-th currently visible match of a selector, in DOM order."""

    def __init__(self, name: str, selector: str, ordinal: int) -> None:
        super().__init__(name)
        self.selector = selector
        self.ordinal = ordinal

    async def find(self, page: BrowserPage, probe_timeout_ms: int) -> Optional[ElementLocator]:
        seen = 0
        for candidate in await page.locate_all(self.selector):
            if await candidate.is_visible(0):
                seen += 1
                if seen == self.ordinal:
                    return candidate
        return None


@dataclass
class Resolution:
    """A resolved target and the strategy that produced it."""

    locator: ElementLocator
    strategy: str
    category: str


# Strategy tables ---------------------------------------------------------------

SEARCH_SELECTORS = [
    'input[type="search"]',
    'input[name="q"]',
    'input[name="query"]',
    'input[name="search"]',
    'input[name="search_query"]',
    'input[name="keyword"]',
    'input[name="keywords"]',
    'input[placeholder*="search" i]',
    'input[placeholder*="find" i]',
    'input[placeholder*="what are you looking" i]',
    'input[aria-label*="search" i]',
    'input[class*="search" i]',
    'input[id*="search" i]',
    'input[id*="query" i]',
    "#search",
    "#searchInput",
    "#search-input",
    "#twotabsearchtextbox",
    ".search-input",
    ".searchInput",
    '[data-testid*="search"]',
]

SEARCH_FALLBACK_SELECTOR = (
    'input:not([type]), input[type="text"], input[type="search"] >> visible=true'
)

PRODUCT_CARD_SELECTORS = [
    '[data-component-type="s-search-result"]',
    ".s-result-item[data-asin]",
    ".product-card",
    ".product-item",
    ".product-tile",
    ".product-box",
    '[class*="ProductCard"]',
    '[class*="product-card"]',
    '[class*="productCard"]',
    ".item-card",
    ".search-result",
    '[class*="result-item"]',
    '[class*="search-result"]',
    '[data-testid*="product"]',
    '[data-testid*="item"]',
    "article",
    ".card",
    '[class*="product"]',
]

PRODUCT_LINK_SELECTOR = 'a[href*="product"], a[href*="item"], a[href*="/dp/"], a[href*="/p/"]'
CLICKABLE_IMAGE_SELECTOR = "div[onclick], a:has(img)"

ADD_TO_CART_SELECTORS = [
    'button:has-text("Add to Cart")',
    'button:has-text("Add to Bag")',
    'button:has-text("Add to basket")',
    "#add-to-cart-button",
    'input[name="submit.add-to-cart"]',
    "#buy-now-button",
    '[id*="add-to-cart"]',
    '[id*="addToCart"]',
    '[class*="add-to-cart"]',
    '[class*="addToCart"]',
    '[class*="add_to_cart"]',
    'button[data-testid*="cart"]',
    'button[data-action*="cart"]',
    '[data-button-action="add-to-cart"]',
    'button:has-text("Buy Now")',
    'button:has-text("Buy")',
    'button[class*="add"]',
    'button[class*="cart"]',
    'input[type="submit"][value*="cart" i]',
    'input[type="submit"][value*="add" i]',
]


def click_strategies(target: str) -> List[LocatorStrategy]:
    t = css_string(target)
    return [
        SelectorStrategy("exact_text", f'text="{t}"'),
        SelectorStrategy("button_text", f'button:has-text("{t}")'),
        SelectorStrategy("link_text", f'a:has-text("{t}")'),
        SelectorStrategy("role_button_text", f'[role="button"]:has-text("{t}")'),
        SelectorStrategy("partial_text", f"text={t}"),
        SelectorStrategy("aria_label_exact", f'[aria-label="{t}"]'),
        SelectorStrategy("aria_label_partial", f'[aria-label*="{t}" i]'),
        SelectorStrategy("title_exact", f'[title="{t}"]'),
        SelectorStrategy("title_partial", f'[title*="{t}" i]'),
        SelectorStrategy("placeholder_exact", f'[placeholder="{t}"]'),
        SelectorStrategy("placeholder_partial", f'[placeholder*="{t}" i]'),
        SelectorStrategy("name_exact", f'[name="{t}"]'),
        SelectorStrategy("name_partial", f'[name*="{t}" i]'),
        SelectorStrategy("id_exact", f'[id="{t}"]'),
        SelectorStrategy("id_partial", f'[id*="{t}" i]'),
        SelectorStrategy("class_contains", f'[class*="{t}" i]'),
        SelectorStrategy("test_id_contains", f'[data-testid*="{t}" i]'),
        SelectorStrategy("raw_selector", target),
    ]


def type_strategies(target: str) -> List[LocatorStrategy]:
    t = css_string(target)
    return [
        SelectorStrategy("input_placeholder", f'input[placeholder*="{t}" i]'),
        SelectorStrategy("textarea_placeholder", f'textarea[placeholder*="{t}" i]'),
        SelectorStrategy("input_name", f'input[name*="{t}" i]'),
        SelectorStrategy("textarea_name", f'textarea[name*="{t}" i]'),
        SelectorStrategy("input_aria_label", f'input[aria-label*="{t}" i]'),
        SelectorStrategy("textarea_aria_label", f'textarea[aria-label*="{t}" i]'),
        SelectorStrategy("input_id", f'input[id*="{t}" i]'),
        SelectorStrategy("textarea_id", f'textarea[id*="{t}" i]'),
        SelectorStrategy("label_adjacent", f'label:has-text("{t}") + input'),
        SelectorStrategy("label_sibling", f'label:has-text("{t}") ~ input'),
        SelectorStrategy("text_input", 'input[type="text"]'),
        SelectorStrategy("search_input", 'input[type="search"]'),
        SelectorStrategy("email_input", 'input[type="email"]'),
        SelectorStrategy("password_input", 'input[type="password"]'),
        SelectorStrategy(
            "any_input",
            'input:not([type="hidden"]):not([type="submit"]):not([type="button"])',
        ),
        SelectorStrategy("textarea", "textarea"),
        SelectorStrategy("editable_region", '[contenteditable="true"]'),
        SelectorStrategy("raw_selector", target),
    ]


def search_strategies() -> List[LocatorStrategy]:
    strategies: List[LocatorStrategy] = [
        SelectorStrategy(f"search_field:{selector}", selector) for selector in SEARCH_SELECTORS
    ]
    strategies.append(SelectorStrategy("first_text_input", SEARCH_FALLBACK_SELECTOR))
    return strategies


def select_item_strategies(ordinal: int) -> List[LocatorStrategy]:
    strategies: List[LocatorStrategy] = [
        NthVisibleStrategy(f"product_card:{selector}", selector, ordinal)
        for selector in PRODUCT_CARD_SELECTORS
    ]
    strategies.append(NthVisibleStrategy("product_link", PRODUCT_LINK_SELECTOR, ordinal))
    strategies.append(NthVisibleStrategy("clickable_image", CLICKABLE_IMAGE_SELECTOR, ordinal))
    return strategies


def add_to_collection_strategies() -> List[LocatorStrategy]:
    return [
        SelectorStrategy(f"add_to_cart:{selector}", selector) for selector in ADD_TO_CART_SELECTORS
    ]


def describe_target(intent: ActionIntent) -> str:
    """Human-readable target used in ElementNotFound messages."""
    if isinstance(intent, (Click, TypeText)):
        return intent.target
    if isinstance(intent, Search):
        return "search input"
    if isinstance(intent, SelectItem):
        return f"product at position {intent.ordinal}"
    if isinstance(intent, AddToCollection):
        return "Add to Cart button"
    if isinstance(intent, Unclassified):
        return intent.raw_text
    return intent.kind


class ElementResolver:
    """Cascading, first-success-wins resolution of intent targets."""

    def __init__(
        self,
        probe_timeout_ms: int = 2000,
        element_finder: Optional[AIElementFinder] = None,
    ) -> None:
        self.probe_timeout_ms = probe_timeout_ms
        self.element_finder = element_finder

    def strategies_for(self, intent: ActionIntent) -> List[LocatorStrategy]:
        if isinstance(intent, Click):
            return click_strategies(intent.target)
        if isinstance(intent, TypeText):
            return type_strategies(intent.target)
        if isinstance(intent, Search):
            return search_strategies()
        if isinstance(intent, SelectItem):
            return select_item_strategies(intent.ordinal)
        if isinstance(intent, AddToCollection):
            return add_to_collection_strategies()
        raise ValueError(f"Intent '{intent.kind}' has no on-page target")

    async def first_match(
        self, page: BrowserPage, strategies: List[LocatorStrategy]
    ) -> Optional[Resolution]:
        for strategy in strategies:
            locator = await strategy.find(page, self.probe_timeout_ms)
            if locator is not None:
                return Resolution(locator=locator, strategy=strategy.name, category="")
        return None

    async def resolve(self, intent: ActionIntent, page: BrowserPage) -> Resolution:
        """Find the element an intent targets or raise ElementNotFound."""
        target = describe_target(intent)

        if isinstance(intent, Unclassified):
            return await self._resolve_unclassified(intent, page)

        strategies = self.strategies_for(intent)
        resolution = await self.first_match(page, strategies)

        if resolution is None and intent.kind == IntentKind.ADD_TO_COLLECTION:
            # Purchase buttons often sit above the fold on product pages
            await page.scroll_to_top()
            resolution = await self.first_match(page, strategies)

        if resolution is None:
            logger.info(
                "No strategy matched",
                extra={"category": intent.kind, "target": target, "tried": len(strategies)},
            )
            raise ElementNotFound(target, category=intent.kind)

        resolution.category = intent.kind
        logger.debug(
            "Element resolved",
            extra={"category": intent.kind, "target": target, "strategy": resolution.strategy},
        )
        return resolution

    async def _resolve_unclassified(
        self, intent: Unclassified, page: BrowserPage
    ) -> Resolution:
        if self.element_finder is None:
            raise ElementNotFound(intent.raw_text, category=intent.kind)

        suggestion = await self.element_finder.find(page, intent.raw_text)
        if not suggestion.selector:
            raise ElementNotFound(intent.raw_text, category=intent.kind)

        logger.info(
            "Element suggested for unclassified step",
            extra={
                "selector": suggestion.selector,
                "source": suggestion.source,
                "confidence": suggestion.confidence,
            },
        )
        return Resolution(
            locator=page.locate(suggestion.selector),
            strategy=f"{suggestion.source}:{suggestion.selector}",
            category=intent.kind,
        )


