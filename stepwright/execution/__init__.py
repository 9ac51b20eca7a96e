"""
Step execution module exports.
"""

from stepwright.execution.ai_finder import AIElementFinder, OpenAISelectorService
from stepwright.execution.classifier import StepClassifier, classify, normalize_steps
from stepwright.execution.resolver import ElementResolver, Resolution
from stepwright.execution.runner import ExecutionOrchestrator

__all__ = [
    "AIElementFinder",
    "ElementResolver",
    "ExecutionOrchestrator",
    "OpenAISelectorService",
    "Resolution",
    "StepClassifier",
    "classify",
    "normalize_steps",
]
