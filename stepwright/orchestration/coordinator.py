"""
Execution service: the collaborator-facing surface of the engine.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from stepwright.browser.driver import PlaywrightBrowser
from stepwright.config.settings import Settings, get_settings
from stepwright.core.interfaces import (
    ArtifactStore,
    BrowserLauncher,
    CronEvaluator,
    TestCaseRepository,
)
from stepwright.core.types import (
    ExecutionRecord,
    ExecutionSummary,
    Schedule,
    TestCase,
    UpcomingRun,
)
from stepwright.error_handling import ExecutionNotFound
from stepwright.execution.ai_finder import build_element_finder
from stepwright.execution.classifier import StepClassifier
from stepwright.execution.resolver import ElementResolver
from stepwright.execution.runner import ExecutionOrchestrator
from stepwright.monitoring.logger import get_logger
from stepwright.orchestration.communication import EventType, Handler, ProgressBroadcaster
from stepwright.orchestration.history import ExecutionHistoryStore
from stepwright.orchestration.repository import InMemoryTestCaseRepository
from stepwright.scheduling.scheduler import Scheduler
from stepwright.storage.artifacts import LocalArtifactStore

logger = get_logger(__name__)


class ExecutionService:
    """
    Wires the engine components together and manages concurrent runs.

    Every run gets its own orchestrator and browser session. The registry of
    active runs is owned by this instance: an entry is added when a run
    starts and released by the orchestrator's cleanup.
    """

    def __init__(
        self,
        launcher: Optional[BrowserLauncher] = None,
        artifact_store: Optional[ArtifactStore] = None,
        broadcaster: Optional[ProgressBroadcaster] = None,
        history: Optional[ExecutionHistoryStore] = None,
        repository: Optional[TestCaseRepository] = None,
        cron: Optional[CronEvaluator] = None,
        classifier: Optional[StepClassifier] = None,
        resolver: Optional[ElementResolver] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the execution service.

        Args:
            launcher: Browser launcher; Playwright Chromium by default
            artifact_store: Screenshot store; local directory by default
            broadcaster: Event channel shared by all runs
            history: Execution history ledger
            repository: Test case lookup for scheduled runs
            cron: Cron evaluator for recurring schedules
            classifier: Step classifier shared by all runs
            resolver: Element resolver shared by all runs
            settings: Settings override
        """
        self.settings = settings or get_settings()
        self.launcher = launcher or PlaywrightBrowser()
        self.artifact_store = artifact_store or LocalArtifactStore()
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self.history = history or ExecutionHistoryStore(cap=self.settings.history_cap)
        self.repository = repository or InMemoryTestCaseRepository()
        self.classifier = classifier or StepClassifier()
        self.resolver = resolver or ElementResolver(
            probe_timeout_ms=self.settings.locator_probe_timeout_ms,
            element_finder=build_element_finder(),
        )
        self.scheduler = Scheduler(
            repository=self.repository,
            start_run=self.run_test_case,
            broadcaster=self.broadcaster,
            cron=cron,
        )

        self._active: Dict[str, ExecutionOrchestrator] = {}
        self._tasks: Dict[str, "asyncio.Task[ExecutionRecord]"] = {}

        logger.info("Execution service initialized")

    # Runs ------------------------------------------------------------------

    def create_orchestrator(self, test_case: TestCase) -> ExecutionOrchestrator:
        return ExecutionOrchestrator(
            test_case=test_case,
            launcher=self.launcher,
            artifact_store=self.artifact_store,
            broadcaster=self.broadcaster,
            history=self.history,
            classifier=self.classifier,
            resolver=self.resolver,
            settings=self.settings,
            on_release=self._release,
        )

    async def run_test_case(self, test_case: TestCase) -> str:
        """Start a run in the background and return its execution id."""
        orchestrator = self.create_orchestrator(test_case)
        execution_id = orchestrator.execution_id

        self._active[execution_id] = orchestrator
        task = asyncio.create_task(orchestrator.run(), name=f"execution-{execution_id}")
        self._tasks[execution_id] = task
        task.add_done_callback(lambda t: self._on_task_done(execution_id, t))

        logger.info(
            "Execution queued",
            extra={"execution_id": execution_id, "test_case_id": test_case.id},
        )
        return execution_id

    async def execute(self, test_case: TestCase) -> ExecutionRecord:
        """Run a test case and wait for its record."""
        execution_id = await self.run_test_case(test_case)
        return await self.wait_for(execution_id)

    async def wait_for(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> ExecutionRecord:
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return self.get_execution(execution_id)

    async def stop_execution(self, execution_id: str) -> bool:
        orchestrator = self._active.get(execution_id)
        if orchestrator is None:
            return False
        await orchestrator.stop()
        return True

    def active_executions(self) -> List[str]:
        return list(self._active.keys())

    def _release(self, execution_id: str) -> None:
        self._active.pop(execution_id, None)

    def _on_task_done(self, execution_id: str, task: "asyncio.Task[ExecutionRecord]") -> None:
        self._tasks.pop(execution_id, None)
        self._active.pop(execution_id, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Execution task crashed",
                extra={"execution_id": execution_id, "error": str(error)},
            )

    # History ---------------------------------------------------------------

    def get_execution_history(self, limit: Optional[int] = None) -> List[ExecutionSummary]:
        return self.history.list_summaries(
            limit if limit is not None else self.settings.history_list_limit
        )

    def get_execution(self, execution_id: str) -> ExecutionRecord:
        """Full record; a running execution returns its live record."""
        orchestrator = self._active.get(execution_id)
        if orchestrator is not None:
            return orchestrator.record
        record = self.history.find(execution_id)
        if record is None:
            raise ExecutionNotFound(execution_id)
        return record

    # Schedules -------------------------------------------------------------

    def add_schedule(self, schedule: Schedule) -> Schedule:
        return self.scheduler.add_schedule(schedule)

    def create_schedule(
        self,
        test_case_id: str,
        cron_expression: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        enabled: bool = True,
    ) -> Schedule:
        return self.scheduler.create_schedule(
            test_case_id,
            cron_expression=cron_expression,
            scheduled_time=scheduled_time,
            enabled=enabled,
        )

    def remove_schedule(self, schedule_id: str) -> bool:
        return self.scheduler.remove_schedule(schedule_id)

    def list_schedules(self) -> List[Schedule]:
        return self.scheduler.list_schedules()

    async def get_upcoming_runs(self, now: Optional[datetime] = None) -> List[UpcomingRun]:
        return await self.scheduler.get_upcoming_runs(now)

    # Subscriptions ---------------------------------------------------------

    def subscribe(
        self, event_type: EventType, handler: Handler, execution_id: Optional[str] = None
    ) -> str:
        return self.broadcaster.subscribe(event_type, handler, execution_id)

    def unsubscribe(self, subscription_id: str) -> bool:
        return self.broadcaster.unsubscribe(subscription_id)

    # Lifecycle -------------------------------------------------------------

    async def shutdown(self) -> None:
        """Stop all schedules and runs."""
        logger.info("Shutting down execution service", extra={"active_runs": len(self._active)})
        await self.scheduler.shutdown()

        for orchestrator in list(self._active.values()):
            await orchestrator.stop()

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.broadcaster.shutdown()
        logger.info("Execution service shutdown complete")
