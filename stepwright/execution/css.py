"""
Selector string helpers shared by the resolver and the AI element finder.
"""


def css_string(value: str) -> str:
    """Escape a value for use inside a double-quoted selector string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')
