"""
Error types raised by the step execution engine and scheduler.
"""

from .exceptions import (
    StepwrightError,
    ClassificationUnclassified,
    StepExecutionError,
    ElementNotFound,
    ActionTimeout,
    NavigationTimeout,
    BrowserActionError,
    ScheduleValidationError,
    ScheduleMissingTestCase,
    ExecutionNotFound,
)

__all__ = [
    "StepwrightError",
    "ClassificationUnclassified",
    "StepExecutionError",
    "ElementNotFound",
    "ActionTimeout",
    "NavigationTimeout",
    "BrowserActionError",
    "ScheduleValidationError",
    "ScheduleMissingTestCase",
    "ExecutionNotFound",
]
