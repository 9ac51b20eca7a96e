"""
Orchestration module for run coordination, progress events and history.
"""

from stepwright.orchestration.communication import EventType, ProgressBroadcaster
from stepwright.orchestration.history import ExecutionHistoryStore
from stepwright.orchestration.repository import InMemoryTestCaseRepository
from stepwright.orchestration.coordinator import ExecutionService

__all__ = [
    "EventType",
    "ExecutionHistoryStore",
    "ExecutionService",
    "InMemoryTestCaseRepository",
    "ProgressBroadcaster",
]
