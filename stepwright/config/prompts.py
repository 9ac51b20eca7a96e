"""
Prompt templates for the AI element finder.
"""

ELEMENT_FINDER_SYSTEM_PROMPT = """You are a web automation assistant. Given a list of page elements and an action to perform, identify the best element to interact with.

Return a JSON object with:
- selector: the best CSS selector to find this element (use id, name, placeholder, class or text selectors)
- confidence: how confident you are (high/medium/low)
- reason: brief explanation

Prefer selectors in this order: #id, [name=""], [placeholder=""], .class, text="...".
If no element fits the action, return {"selector": null, "confidence": "low", "reason": "..."}."""

ELEMENT_FINDER_USER_TEMPLATE = """Page: {title} ({url})

Action to perform: {action}

Available elements:
{elements}

Which element should I interact with?"""
