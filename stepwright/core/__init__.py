"""
Core module exports.
"""

from stepwright.core.interfaces import (
    ArtifactStore,
    BrowserLauncher,
    BrowserPage,
    BrowserSession,
    ConfigProvider,
    CronEvaluator,
    CronHandle,
    ElementLocator,
    FrameStream,
    SelectorSuggester,
    TestCaseRepository,
)
from stepwright.core.types import (
    ActionIntent,
    ElementInfo,
    ElementSuggestion,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    IntentKind,
    LiveFrame,
    PageSnapshot,
    ProgressStatus,
    RunState,
    Schedule,
    ScheduledRunStarted,
    StepProgress,
    StepResult,
    StepStatus,
    TestCase,
    TriggerKind,
)

__all__ = [
    # Interfaces
    "ArtifactStore",
    "BrowserLauncher",
    "BrowserPage",
    "BrowserSession",
    "ConfigProvider",
    "CronEvaluator",
    "CronHandle",
    "ElementLocator",
    "FrameStream",
    "SelectorSuggester",
    "TestCaseRepository",
    # Types
    "ActionIntent",
    "ElementInfo",
    "ElementSuggestion",
    "ExecutionRecord",
    "ExecutionStatus",
    "ExecutionSummary",
    "IntentKind",
    "LiveFrame",
    "PageSnapshot",
    "ProgressStatus",
    "RunState",
    "Schedule",
    "ScheduledRunStarted",
    "StepProgress",
    "StepResult",
    "StepStatus",
    "TestCase",
    "TriggerKind",
]
