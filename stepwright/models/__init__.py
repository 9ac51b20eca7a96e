"""
Language model client exports.
"""

from stepwright.models.openai_client import OpenAIClient

__all__ = ["OpenAIClient"]
