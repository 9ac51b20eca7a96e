"""
Tests for the cascading element resolver.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeLocator, FakePage
from stepwright.core.types import (
    AddToCollection,
    Click,
    ElementInfo,
    ElementSuggestion,
    OpenBrowser,
    PageSnapshot,
    Search,
    SelectItem,
    TypeText,
    Unclassified,
    Wait,
)
from stepwright.error_handling import ElementNotFound
from stepwright.execution.ai_finder import AIElementFinder
from stepwright.execution.resolver import (
    ElementResolver,
    NthVisibleStrategy,
    SelectorStrategy,
    click_strategies,
    css_string,
)


@pytest.fixture
def resolver():
    return ElementResolver(probe_timeout_ms=100)


class TestStrategies:
    """Individual strategy behavior."""

    @pytest.mark.asyncio
    async def test_selector_strategy_requires_visibility(self):
        page = FakePage(locators={"#a": FakeLocator(visible=False), "#b": FakeLocator()})

        assert await SelectorStrategy("a", "#a").find(page, 100) is None
        assert await SelectorStrategy("b", "#b").find(page, 100) is page.locators["#b"]

    @pytest.mark.asyncio
    async def test_nth_visible_skips_hidden_matches(self):
        cards = [FakeLocator(), FakeLocator(visible=False), FakeLocator(), FakeLocator()]
        page = FakePage(groups={".card": cards})

        assert await NthVisibleStrategy("card", ".card", 2).find(page, 100) is cards[2]
        assert await NthVisibleStrategy("card", ".card", 3).find(page, 100) is cards[3]
        assert await NthVisibleStrategy("card", ".card", 4).find(page, 100) is None

    def test_quotes_in_targets_are_escaped(self):
        assert css_string('Say "hi"') == 'Say \\"hi\\"'
        first = click_strategies('Say "hi"')[0]
        assert first.selector == 'text="Say \\"hi\\""'


class TestResolve:
    """Category cascades."""

    @pytest.mark.asyncio
    async def test_earlier_strategy_wins(self, resolver):
        exact = FakeLocator()
        button = FakeLocator()
        page = FakePage(locators={'text="Login"': exact, 'button:has-text("Login")': button})

        resolution = await resolver.resolve(Click(target="Login"), page)

        assert resolution.locator is exact
        assert resolution.strategy == "exact_text"
        assert resolution.category == "click"

    @pytest.mark.asyncio
    async def test_falls_through_to_later_strategy(self, resolver):
        labelled = FakeLocator()
        page = FakePage(locators={'[aria-label="Login"]': labelled})

        resolution = await resolver.resolve(Click(target="Login"), page)

        assert resolution.locator is labelled
        assert resolution.strategy == "aria_label_exact"

    @pytest.mark.asyncio
    async def test_click_not_found(self, resolver):
        page = FakePage()

        with pytest.raises(ElementNotFound) as exc_info:
            await resolver.resolve(Click(target="Nonexistent Button"), page)

        assert "Nonexistent Button" in str(exc_info.value)
        assert exc_info.value.category == "click"
        # Every strategy was probed, ending with the raw descriptor
        assert page.probed[-1] == "Nonexistent Button"

    @pytest.mark.asyncio
    async def test_type_text_prefers_placeholder(self, resolver):
        by_placeholder = FakeLocator()
        generic = FakeLocator()
        page = FakePage(
            locators={
                'input[placeholder*="email" i]': by_placeholder,
                'input[type="email"]': generic,
            }
        )

        resolution = await resolver.resolve(TypeText(target="email", value="a@b.c"), page)

        assert resolution.locator is by_placeholder

    @pytest.mark.asyncio
    async def test_search_uses_known_conventions(self, resolver):
        query_box = FakeLocator()
        page = FakePage(locators={'input[name="q"]': query_box})

        resolution = await resolver.resolve(Search(query="shoes"), page)

        assert resolution.locator is query_box
        assert resolution.strategy == 'search_field:input[name="q"]'

    @pytest.mark.asyncio
    async def test_search_not_found_names_the_category(self, resolver):
        with pytest.raises(ElementNotFound) as exc_info:
            await resolver.resolve(Search(query="shoes"), FakePage())

        assert "search input" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_select_item_picks_ordinal(self, resolver):
        results = [FakeLocator(), FakeLocator(), FakeLocator()]
        page = FakePage(groups={".product-card": results})

        resolution = await resolver.resolve(SelectItem(ordinal=2), page)

        assert resolution.locator is results[1]
        assert resolution.strategy == "product_card:.product-card"

    @pytest.mark.asyncio
    async def test_select_item_falls_back_to_product_links(self, resolver):
        links = [FakeLocator()]
        page = FakePage(
            groups={
                'a[href*="product"], a[href*="item"], a[href*="/dp/"], a[href*="/p/"]': links
            }
        )

        resolution = await resolver.resolve(SelectItem(ordinal=1), page)

        assert resolution.strategy == "product_link"

    @pytest.mark.asyncio
    async def test_add_to_collection_retries_after_scrolling_to_top(self, resolver):
        button = FakeLocator(visible=False)
        page = FakePage(locators={'button:has-text("Add to Cart")': button})

        async def reveal():
            page.scrolled_to_top += 1
            button.visible = True

        page.scroll_to_top = reveal

        resolution = await resolver.resolve(AddToCollection(), page)

        assert resolution.locator is button
        assert page.scrolled_to_top == 1

    @pytest.mark.asyncio
    async def test_add_to_collection_not_found_after_retry(self, resolver):
        page = FakePage()

        with pytest.raises(ElementNotFound):
            await resolver.resolve(AddToCollection(), page)

        assert page.scrolled_to_top == 1

    @pytest.mark.asyncio
    async def test_intents_without_target_are_rejected(self, resolver):
        with pytest.raises(ValueError):
            await resolver.resolve(OpenBrowser(), FakePage())
        with pytest.raises(ValueError):
            await resolver.resolve(Wait(duration_ms=10), FakePage())


class TestUnclassified:
    """Unclassified steps go to the element finder."""

    @pytest.mark.asyncio
    async def test_without_finder_is_not_found(self, resolver):
        with pytest.raises(ElementNotFound):
            await resolver.resolve(Unclassified(raw_text="Hover the avatar"), FakePage())

    @pytest.mark.asyncio
    async def test_uses_finder_selector(self):
        finder = AsyncMock()
        finder.find.return_value = ElementSuggestion(selector="#avatar", source="scored", score=10)
        avatar = FakeLocator()
        page = FakePage(locators={"#avatar": avatar})
        resolver = ElementResolver(probe_timeout_ms=100, element_finder=finder)

        resolution = await resolver.resolve(Unclassified(raw_text="Hover the avatar"), page)

        finder.find.assert_awaited_once_with(page, "Hover the avatar")
        assert resolution.locator is avatar
        assert resolution.strategy == "scored:#avatar"
        assert resolution.category == "unclassified"

    @pytest.mark.asyncio
    async def test_finder_without_selector_is_not_found(self):
        finder = AsyncMock()
        finder.find.return_value = ElementSuggestion(selector=None)
        resolver = ElementResolver(probe_timeout_ms=100, element_finder=finder)

        with pytest.raises(ElementNotFound) as exc_info:
            await resolver.resolve(Unclassified(raw_text="Hover the avatar"), FakePage())

        assert "Hover the avatar" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_scored_selector_with_quotes_resolves(self):
        field = FakeLocator()
        page = FakePage(
            locators={'[placeholder="Search \\"books\\""]': field},
            snapshot=PageSnapshot(
                url="https://shop.test",
                title="Shop",
                elements=[ElementInfo(index=0, tag="input", placeholder='Search "books"')],
            ),
        )
        resolver = ElementResolver(probe_timeout_ms=100, element_finder=AIElementFinder())

        resolution = await resolver.resolve(Unclassified(raw_text="Fill search books"), page)

        assert resolution.locator is field
