"""
Step classification: natural-language step text to a typed action intent.

Rules are evaluated in a fixed order and the first one that matches wins.
Matching is case-insensitive; extracted values keep the casing the user wrote.
"""

import re
from typing import Callable, List, Optional, Tuple

from stepwright.core.types import (
    ActionIntent,
    AddToCollection,
    Click,
    Navigate,
    OpenBrowser,
    PressKey,
    Scroll,
    Search,
    SelectItem,
    TypeText,
    Unclassified,
    Wait,
)
from stepwright.error_handling import ClassificationUnclassified

DEFAULT_WAIT_MS = 2000
DEFAULT_TYPE_TARGET = "input"

_QUOTED = re.compile(r"\"([^\"]*)\"|'([^']*)'")

OPEN_BROWSER_RE = re.compile(r"\b(?:open|launch)\s+(?:the\s+|a\s+)?browser\b", re.I)
NAVIGATE_RE = re.compile(r"\b(?:navigate\s+to|go\s+to|open)\s+(?P<rest>.+)", re.I)
SEARCH_RE = re.compile(
    r"\bsearch\s+(?:for\s+)?(?:the\s+)?(?:product\s+)?(?:called\s+)?(?P<rest>.+)", re.I
)
ORDINAL_RE = re.compile(r"(\d+)(?:st|nd|rd|th)\b", re.I)
CLICK_RE = re.compile(r"\bclick\s+(?:on\s+)?(?P<rest>.+)", re.I)
TYPE_INTO_RE = re.compile(
    r"\b(?:type|enter|fill)\s+(?P<value>\"[^\"]*\"|'[^']*'|.+?)\s+(?:in|into)\s+(?P<target>.+)$",
    re.I,
)
TYPE_BARE_RE = re.compile(r"\b(?:type|enter|fill)\s+(?P<value>.+)$", re.I)
WAIT_SECONDS_RE = re.compile(r"(\d+)\s*(?:seconds?|secs?|s)\b", re.I)
WAIT_MILLIS_RE = re.compile(r"(\d+)\s*(?:ms|milliseconds?)\b", re.I)
PRESS_RE = re.compile(r"\bpress\s+(?:the\s+)?[\"']?(?P<key>[\w+]+)", re.I)

KEY_NAMES = {
    "enter": "Enter",
    "return": "Enter",
    "tab": "Tab",
    "escape": "Escape",
    "esc": "Escape",
    "space": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "arrowup": "ArrowUp",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
}


def extract_value(rest: str) -> str:
    """Return the quoted part of ``rest`` if any, else the bare remainder.

    Bare text stops at the first stray quote and loses trailing sentence
    punctuation.
    """
    match = _QUOTED.search(rest)
    if match:
        return (match.group(1) if match.group(1) is not None else match.group(2)).strip()
    bare = re.split(r"[\"']", rest, maxsplit=1)[0]
    return bare.strip().rstrip(".,;!").strip()


def _strip_article(text: str) -> str:
    return re.sub(r"^(?:the|a|an)\s+", "", text, flags=re.I)


def normalize_key(key: str) -> str:
    if len(key) == 1:
        return key
    return KEY_NAMES.get(key.lower(), key[:1].upper() + key[1:])


def parse_ordinal(text: str) -> int:
    """Ordinal from a '2nd'/'3rd' style token; 1 when absent."""
    match = ORDINAL_RE.search(text)
    if not match:
        return 1
    return max(1, int(match.group(1)))


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{word}", text, re.I) is not None


# Rules, in priority order ----------------------------------------------------


def _open_browser(text: str) -> Optional[ActionIntent]:
    if OPEN_BROWSER_RE.search(text):
        return OpenBrowser()
    return None


def _navigate(text: str) -> Optional[ActionIntent]:
    match = NAVIGATE_RE.search(text)
    if match:
        url = extract_value(match.group("rest"))
        if url:
            return Navigate(url=url)
    return None


def _search(text: str) -> Optional[ActionIntent]:
    match = SEARCH_RE.search(text)
    if match:
        query = extract_value(match.group("rest"))
        if query:
            return Search(query=query)
    return None


def _select_item(text: str) -> Optional[ActionIntent]:
    if _has_word(text, "select") and _has_word(text, "product"):
        return SelectItem(ordinal=parse_ordinal(text))
    return None


def _add_to_collection(text: str) -> Optional[ActionIntent]:
    if _has_word(text, "add") and _has_word(text, "cart"):
        return AddToCollection()
    return None


def _click(text: str) -> Optional[ActionIntent]:
    match = CLICK_RE.search(text)
    if match:
        rest = match.group("rest")
        target = extract_value(rest) if _QUOTED.search(rest) else _strip_article(extract_value(rest))
        if target:
            return Click(target=target)
    return None


def _type_into(text: str) -> Optional[ActionIntent]:
    match = TYPE_INTO_RE.search(text)
    if match:
        value = extract_value(match.group("value"))
        target = _strip_article(extract_value(match.group("target")))
        if value and target:
            return TypeText(value=value, target=target)
    return None


def _wait(text: str) -> Optional[ActionIntent]:
    if not _has_word(text, "wait"):
        return None
    millis = WAIT_MILLIS_RE.search(text)
    if millis:
        return Wait(duration_ms=int(millis.group(1)))
    seconds = WAIT_SECONDS_RE.search(text)
    if seconds:
        return Wait(duration_ms=int(seconds.group(1)) * 1000)
    return Wait(duration_ms=DEFAULT_WAIT_MS)


def _scroll(text: str) -> Optional[ActionIntent]:
    if _has_word(text, "scroll"):
        return Scroll()
    return None


def _press_key(text: str) -> Optional[ActionIntent]:
    match = PRESS_RE.search(text)
    if match:
        return PressKey(key=normalize_key(match.group("key")))
    return None


def _type_bare(text: str) -> Optional[ActionIntent]:
    # "type X" without an in/into clause; evaluated after press so that
    # "press enter" stays a key press.
    match = TYPE_BARE_RE.search(text)
    if match:
        value = extract_value(match.group("value"))
        if value:
            return TypeText(value=value, target=DEFAULT_TYPE_TARGET)
    return None


Rule = Tuple[str, Callable[[str], Optional[ActionIntent]]]

RULES: List[Rule] = [
    ("open_browser", _open_browser),
    ("navigate", _navigate),
    ("search", _search),
    ("select_item", _select_item),
    ("add_to_collection", _add_to_collection),
    ("click", _click),
    ("type_text", _type_into),
    ("wait", _wait),
    ("scroll", _scroll),
    ("press_key", _press_key),
    ("type_text_default_target", _type_bare),
]


class StepClassifier:
    """Ordered, first-match-wins rule list over step text."""

    def __init__(self, rules: Optional[List[Rule]] = None) -> None:
        self.rules = list(rules if rules is not None else RULES)

    def classify(self, text: str) -> ActionIntent:
        stripped = text.strip()
        for _name, rule in self.rules:
            intent = rule(stripped)
            if intent is not None:
                return intent
        return Unclassified(raw_text=text)

    def classify_strict(self, text: str) -> ActionIntent:
        """Like classify(), but raise when no rule matches."""
        intent = self.classify(text)
        if isinstance(intent, Unclassified):
            raise ClassificationUnclassified(text)
        return intent


_default_classifier = StepClassifier()


def classify(text: str) -> ActionIntent:
    """Classify a step with the default rule list."""
    return _default_classifier.classify(text)


# Step normalization ----------------------------------------------------------

_LIST_PREFIX_RE = re.compile(r"^\s*\d+[.)]\s*")
_FILLER_RE = re.compile(r"^(?:(?:then|and|next)\s+)+", re.I)


def ordinal_suffix(n: int) -> str:
    if 10 <= n % 100 <= 20:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


def normalize_steps(text: str) -> List[str]:
    """Split a free-text block into canonical step strings."""
    steps: List[str] = []
    for line in re.split(r"[\r\n]+", text):
        cleaned = _FILLER_RE.sub("", _LIST_PREFIX_RE.sub("", line).strip()).strip()
        if not cleaned:
            continue

        if re.match(r"^open\s+(?:the\s+)?browser", cleaned, re.I):
            steps.append("Open browser")
            continue

        match = re.match(r"^(?:go\s+to|navigate\s+to|open)\s+(.+)$", cleaned, re.I)
        if match:
            steps.append(f'Navigate to "{extract_value(match.group(1))}"')
            continue

        match = SEARCH_RE.match(cleaned)
        if match:
            steps.append(f'Search for "{extract_value(match.group("rest"))}"')
            continue

        if re.search(r"select.*product", cleaned, re.I):
            ordinal = parse_ordinal(cleaned)
            steps.append(f"Select {ordinal}{ordinal_suffix(ordinal)} product")
            continue

        if re.search(r"add.*cart", cleaned, re.I):
            steps.append("Add the product to the cart")
            continue

        steps.append(cleaned)
    return steps
