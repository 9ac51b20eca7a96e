"""
Exception hierarchy for stepwright.

Step-level errors are fatal to the current step (and therefore the run),
scheduling errors are raised at registration time or logged at fire time.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StepwrightError(Exception):
    """Base exception for all stepwright errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ClassificationUnclassified(StepwrightError):
    """Raised when no pattern rule matches a step.

    Not fatal on its own: the orchestrator routes the step to the AI element
    finder instead.
    """

    def __init__(self, raw_text: str, **kwargs):
        super().__init__(f"Could not classify step: {raw_text}", **kwargs)
        self.raw_text = raw_text
        self.details.update({"raw_text": raw_text})


class StepExecutionError(StepwrightError):
    """Base class for errors that fail the current step."""


class ElementNotFound(StepExecutionError):
    """Raised when every resolution strategy is exhausted."""

    def __init__(self, target: str, category: Optional[str] = None, **kwargs):
        label = f"{category} target" if category else "element"
        super().__init__(f"Could not find {label}: {target}", **kwargs)
        self.target = target
        self.category = category
        self.details.update({"target": target, "category": category})


class ActionTimeout(StepExecutionError):
    """Raised when a primary browser action exceeds its timeout."""

    def __init__(self, action: str, timeout_ms: int, **kwargs):
        super().__init__(
            f"Action '{action}' timed out after {timeout_ms}ms", **kwargs
        )
        self.action = action
        self.timeout_ms = timeout_ms
        self.details.update({"action": action, "timeout_ms": timeout_ms})


class NavigationTimeout(StepExecutionError):
    """Raised when a page navigation exceeds its timeout."""

    def __init__(self, url: str, timeout_ms: int, **kwargs):
        super().__init__(
            f"Navigation to {url} timed out after {timeout_ms}ms", **kwargs
        )
        self.url = url
        self.timeout_ms = timeout_ms
        self.details.update({"url": url, "timeout_ms": timeout_ms})


class BrowserActionError(StepExecutionError):
    """Raised when the browser adapter fails for a reason other than a timeout."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        selector: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.action = action
        self.selector = selector
        self.details.update({"action": action, "selector": selector})


class ScheduleValidationError(StepwrightError):
    """Raised when a schedule is rejected at creation."""

    def __init__(self, reason: str, schedule_id: Optional[str] = None, **kwargs):
        super().__init__(f"Invalid schedule: {reason}", **kwargs)
        self.reason = reason
        self.schedule_id = schedule_id
        self.details.update({"reason": reason, "schedule_id": schedule_id})


class ScheduleMissingTestCase(StepwrightError):
    """Raised when a schedule fires for a test case that no longer exists."""

    def __init__(self, schedule_id: str, test_case_id: str, **kwargs):
        super().__init__(
            f"Test case {test_case_id} not found for schedule {schedule_id}",
            **kwargs
        )
        self.schedule_id = schedule_id
        self.test_case_id = test_case_id
        self.details.update(
            {"schedule_id": schedule_id, "test_case_id": test_case_id}
        )


class ExecutionNotFound(StepwrightError):
    """Raised when an execution id is unknown to the history store."""

    def __init__(self, execution_id: str, **kwargs):
        super().__init__(f"Execution not found: {execution_id}", **kwargs)
        self.execution_id = execution_id
        self.details.update({"execution_id": execution_id})
