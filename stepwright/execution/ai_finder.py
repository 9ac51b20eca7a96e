"""
AI-assisted element finding for steps no pattern rule recognizes.

The finder asks an optional language-model service for a selector and
accepts it only when it resolves to a visible element. Otherwise, or when
the service is absent or fails, it falls back to deterministic keyword
scoring over a bounded snapshot of the page's interactive elements.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from stepwright.config.prompts import (
    ELEMENT_FINDER_SYSTEM_PROMPT,
    ELEMENT_FINDER_USER_TEMPLATE,
)
from stepwright.config.settings import get_settings
from stepwright.core.interfaces import BrowserPage, SelectorSuggester
from stepwright.core.types import ElementInfo, ElementSuggestion, PageSnapshot
from stepwright.execution.classifier import extract_value
from stepwright.execution.css import css_string
from stepwright.models.openai_client import OpenAIClient
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)

KEYWORD_POINTS = 10
AFFINITY_POINTS = 5
HIGH_CONFIDENCE_SCORE = 15
TEXT_SELECTOR_LIMIT = 50

CLICK_VERBS = ("click", "press", "tap", "select", "choose", "open")
TYPE_VERBS = ("type", "enter", "input", "fill", "write")
NAVIGATION_VERBS = ("go", "navigate", "link", "visit")

_WORD_RE = re.compile(r"[a-z0-9]+")


def action_keywords(action_text: str) -> List[str]:
    """Lower-cased words of three or more characters."""
    return [word for word in _WORD_RE.findall(action_text.lower()) if len(word) >= 3]


def _mentions(action: str, verbs) -> bool:
    return any(re.search(rf"\b{verb}\b", action) for verb in verbs)


def score_element(element: ElementInfo, action_text: str) -> int:
    action = action_text.lower()
    haystack = element.searchable_text()
    score = sum(KEYWORD_POINTS for word in action_keywords(action) if word in haystack)

    if _mentions(action, CLICK_VERBS) and (
        element.tag == "button" or element.type == "submit"
    ):
        score += AFFINITY_POINTS
    if _mentions(action, TYPE_VERBS) and element.tag in ("input", "textarea"):
        score += AFFINITY_POINTS
    if _mentions(action, NAVIGATION_VERBS) and element.tag == "a":
        score += AFFINITY_POINTS
    return score


def build_selector(element: ElementInfo) -> str:
    """Most specific selector available for an element."""
    if element.id:
        return f'[id="{css_string(element.id)}"]'
    if element.name:
        return f'[name="{css_string(element.name)}"]'
    if element.placeholder:
        return f'[placeholder="{css_string(element.placeholder)}"]'
    if element.aria_label:
        return f'[aria-label="{css_string(element.aria_label)}"]'
    text = (element.text or "").strip()[:TEXT_SELECTOR_LIMIT]
    return f'text="{css_string(text)}"'



def score_elements(elements: List[ElementInfo], action_text: str) -> ElementSuggestion:
    """Pick the highest-scoring element; earliest wins ties.

    Returns a suggestion without a selector when nothing scores above zero.
    """
    best: Optional[ElementInfo] = None
    best_score = 0
    for element in elements:
        score = score_element(element, action_text)
        if score > best_score:
            best, best_score = element, score

    if best is None:
        return ElementSuggestion(
            selector=None,
            confidence="low",
            reason="No element matched the step keywords",
            source="scored",
        )

    return ElementSuggestion(
        selector=build_selector(best),
        confidence="high" if best_score > HIGH_CONFIDENCE_SCORE else "medium",
        reason=f"Keyword match score {best_score}",
        source="scored",
        score=best_score,
        element=best,
    )


def format_elements(elements: List[ElementInfo]) -> str:
    lines = []
    for element in elements:
        data: Dict[str, Any] = element.model_dump(exclude_none=True)
        lines.append(json.dumps(data))
    return "\n".join(lines)


class OpenAISelectorService(SelectorSuggester):
    """Selector suggestions from an OpenAI chat model."""

    def __init__(
        self,
        client: Optional[OpenAIClient] = None,
        prompt_element_limit: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.client = client or OpenAIClient()
        self.prompt_element_limit = prompt_element_limit or settings.ai_prompt_element_limit
        self.temperature = (
            temperature if temperature is not None else settings.openai_temperature
        )

    async def suggest_selector(
        self, snapshot: PageSnapshot, action_text: str
    ) -> ElementSuggestion:
        prompt = ELEMENT_FINDER_USER_TEMPLATE.format(
            title=snapshot.title,
            url=snapshot.url,
            action=action_text,
            elements=format_elements(snapshot.elements[: self.prompt_element_limit]),
        )
        response = await self.client.call(
            messages=[{"role": "user", "content": prompt}],
            system_prompt=ELEMENT_FINDER_SYSTEM_PROMPT,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )

        content = response.get("content")
        if not isinstance(content, dict) or "error" in content:
            logger.warning("Unusable selector suggestion", extra={"content": str(content)[:200]})
            return ElementSuggestion(selector=None, reason="Unparseable model response", source="ai")

        selector = content.get("selector") or None
        return ElementSuggestion(
            selector=selector,
            confidence=str(content.get("confidence") or "low"),
            reason=str(content.get("reason") or ""),
            source="ai",
        )


class AIElementFinder:
    """Selector discovery for unclassified steps."""

    def __init__(
        self,
        suggester: Optional[SelectorSuggester] = None,
        snapshot_limit: int = 50,
        probe_timeout_ms: int = 2000,
    ) -> None:
        self.suggester = suggester
        self.snapshot_limit = snapshot_limit
        self.probe_timeout_ms = probe_timeout_ms

    async def find(self, page: BrowserPage, action_text: str) -> ElementSuggestion:
        snapshot = await page.snapshot_elements(self.snapshot_limit)

        if self.suggester is not None:
            try:
                suggestion = await self.suggester.suggest_selector(snapshot, action_text)
                if suggestion.selector and await page.locate(suggestion.selector).is_visible(
                    self.probe_timeout_ms
                ):
                    return suggestion
                logger.info(
                    "Model selector not usable, falling back to scoring",
                    extra={"selector": suggestion.selector},
                )
            except Exception as e:
                logger.warning(
                    "Selector suggestion failed, falling back to scoring",
                    extra={"error": str(e)},
                )

        return score_elements(snapshot.elements, action_text)


def build_element_finder() -> AIElementFinder:
    """Finder configured from settings; model-backed only when a key is present."""
    settings = get_settings()
    suggester: Optional[SelectorSuggester] = None
    if settings.ai_selector_enabled and settings.openai_api_key:
        suggester = OpenAISelectorService()
    return AIElementFinder(
        suggester=suggester,
        snapshot_limit=settings.ai_snapshot_limit,
        probe_timeout_ms=settings.locator_probe_timeout_ms,
    )


SEARCH_VERB_RE = re.compile(r"\bsearch\b\s*(?:for\s+)?(?P<rest>.*)$", re.I)
CLICK_VERB_RE = re.compile(r"\b(?:click|press|tap|select|choose|open)\b", re.I)
ENTRY_VERB_RE = re.compile(r"\b(?:type|enter|input|fill|write)\b\s*(?P<rest>.*)$", re.I)


def infer_action(action_text: str) -> Tuple[str, Optional[str]]:
    """Primitive action for an unclassified step: ("click" | "fill" | "search", value)."""
    if CLICK_VERB_RE.search(action_text):
        return "click", None
    entry = ENTRY_VERB_RE.search(action_text)
    if entry:
        rest = entry.group("rest")
        if '"' not in rest and "'" not in rest:
            rest = re.split(r"\s+(?:in|into)\s+", rest, maxsplit=1)[0]
        return "fill", extract_value(rest)
    search = SEARCH_VERB_RE.search(action_text)
    if search:
        return "search", extract_value(search.group("rest"))
    return "click", None
