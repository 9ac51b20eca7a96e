"""
Browser automation module exports.
"""

from stepwright.browser.driver import (
    PlaywrightBrowser,
    PlaywrightLocator,
    PlaywrightPage,
    PlaywrightSession,
    normalize_url,
)
from stepwright.browser.screencast import CDPFrameStream

__all__ = [
    "CDPFrameStream",
    "PlaywrightBrowser",
    "PlaywrightLocator",
    "PlaywrightPage",
    "PlaywrightSession",
    "normalize_url",
]
