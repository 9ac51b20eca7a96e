"""
Execution orchestrator: drives one test case run from browser launch to
the final execution record.
"""

import asyncio
from typing import TYPE_CHECKING, Callable, List, Optional

from stepwright.config.settings import Settings, get_settings
from stepwright.core.interfaces import (
    ArtifactStore,
    BrowserLauncher,
    BrowserPage,
    BrowserSession,
    FrameStream,
)
from stepwright.core.types import (
    ActionIntent,
    AddToCollection,
    Click,
    ExecutionRecord,
    ExecutionStatus,
    FrameConfig,
    LiveFrame,
    Navigate,
    OpenBrowser,
    PressKey,
    ProgressStatus,
    RunState,
    Scroll,
    Search,
    SelectItem,
    StepProgress,
    StepResult,
    StepStatus,
    TestCase,
    TypeText,
    Unclassified,
    Wait,
    new_id,
    utc_now,
)
from stepwright.execution.ai_finder import build_element_finder, infer_action
from stepwright.execution.classifier import StepClassifier
from stepwright.execution.resolver import ElementResolver
from stepwright.monitoring.logger import (
    get_logger,
    log_execution_event,
    log_performance_metric,
)
from stepwright.storage.artifacts import artifact_name

if TYPE_CHECKING:
    from stepwright.orchestration.communication import ProgressBroadcaster
    from stepwright.orchestration.history import ExecutionHistoryStore

logger = get_logger(__name__)

INIT_STEP_DESCRIPTION = "Browser Initialization"


class ExecutionOrchestrator:
    """
    Runs the steps of one test case, strictly in order, against one
    exclusive browser session.

    An instance owns exactly one ExecutionRecord and is used for one run.
    The first failing step aborts the run; cleanup of the frame stream,
    the session and the caller's registry slot happens on every exit path.
    """

    def __init__(
        self,
        test_case: TestCase,
        launcher: BrowserLauncher,
        artifact_store: ArtifactStore,
        broadcaster: Optional["ProgressBroadcaster"] = None,
        history: Optional["ExecutionHistoryStore"] = None,
        classifier: Optional[StepClassifier] = None,
        resolver: Optional[ElementResolver] = None,
        settings: Optional[Settings] = None,
        execution_id: Optional[str] = None,
        on_release: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.test_case = test_case
        self.launcher = launcher
        self.artifact_store = artifact_store
        self.broadcaster = broadcaster
        self.history = history
        self.classifier = classifier or StepClassifier()
        self.resolver = resolver or ElementResolver(
            probe_timeout_ms=self.settings.locator_probe_timeout_ms,
            element_finder=build_element_finder(),
        )
        self.on_release = on_release

        self.steps: List[str] = [step for step in test_case.steps if step.strip()]
        self.record = ExecutionRecord(
            test_case_id=test_case.id,
            test_case_name=test_case.name,
            execution_id=execution_id or new_id(),
        )

        self._state = RunState.IDLE
        self.state_history: List[RunState] = [RunState.IDLE]
        self._session: Optional[BrowserSession] = None
        self._page: Optional[BrowserPage] = None
        self._frame_stream: Optional[FrameStream] = None
        self._stop_requested = False
        self._completed = False

    @property
    def execution_id(self) -> str:
        return self.record.execution_id

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def _transition(self, state: RunState) -> None:
        logger.debug(
            f"Run state {self._state.value} -> {state.value}",
            extra={"execution_id": self.execution_id},
        )
        self._state = state
        self.state_history.append(state)

    async def run(self) -> ExecutionRecord:
        """Execute the run and return the frozen record."""
        if self._state != RunState.IDLE:
            raise RuntimeError(f"Execution {self.execution_id} has already been started")

        loop = asyncio.get_running_loop()
        started = loop.time()
        cancelled = False

        logger.info(
            "Starting execution",
            extra={
                "execution_id": self.execution_id,
                "test_case_id": self.test_case.id,
                "total_steps": len(self.steps),
            },
        )
        log_execution_event("execution_started", self.execution_id, data={"test_case_id": self.test_case.id})

        try:
            if await self._initialize():
                await self._run_steps()
        except asyncio.CancelledError:
            cancelled = True
            await self._fail_step(self._current_step_number(), "Execution cancelled")
        finally:
            await self._release()

        try:
            self._finalize((loop.time() - started) * 1000)
            await self._publish_completion()
        finally:
            # The record is in history before the registry slot goes away
            self._release_slot()

        if cancelled:
            raise asyncio.CancelledError()
        return self.record

    async def stop(self) -> None:
        """Abort the run by closing its browser session.

        Any in-flight browser action fails promptly; effects already applied
        to the target site are not undone.
        """
        self._stop_requested = True
        logger.info("Stop requested", extra={"execution_id": self.execution_id})
        if self._session is not None:
            await self._session.close()

    # Lifecycle -------------------------------------------------------------

    async def _initialize(self) -> bool:
        self._transition(RunState.INITIALIZING)
        try:
            self._session = await self.launcher.launch()
            self._page = await self._session.new_page()
            await self._start_frame_stream()
            artifact = await self._capture(0)
        except Exception as e:
            logger.error(
                "Browser initialization failed",
                extra={"execution_id": self.execution_id, "error": str(e)},
            )
            await self._fail_step(0, f"Browser initialization failed: {e}")
            return False

        self._append(0, INIT_STEP_DESCRIPTION, StepStatus.COMPLETED, "Browser launched", artifact)
        self._transition(RunState.STEP_COMPLETED)
        await self._publish(0, INIT_STEP_DESCRIPTION, ProgressStatus.COMPLETED, "Browser launched", artifact)
        return True

    async def _run_steps(self) -> None:
        for number, description in enumerate(self.steps, start=1):
            if self._stop_requested:
                await self._fail_step(number, "Execution stopped")
                return

            self._transition(RunState.STEP_RUNNING)
            await self._publish(number, description, ProgressStatus.RUNNING, f"Executing: {description}")
            step_started = asyncio.get_running_loop().time()

            try:
                message = await self.execute_step(description)
            except Exception as e:
                reason = "Execution stopped" if self._stop_requested else str(e)
                logger.warning(
                    "Step failed",
                    extra={"execution_id": self.execution_id, "step_number": number, "error": reason},
                )
                await self._fail_step(number, reason)
                return

            artifact = await self._capture(number)
            self._append(number, description, StepStatus.COMPLETED, message, artifact)
            self._transition(RunState.STEP_COMPLETED)
            await self._publish(number, description, ProgressStatus.COMPLETED, message, artifact)

            log_performance_metric(
                "step_duration",
                (asyncio.get_running_loop().time() - step_started) * 1000,
                context={"execution_id": self.execution_id, "step_number": number},
            )
            log_execution_event("step_completed", self.execution_id, step_number=number)

    async def _fail_step(self, number: int, message: str) -> None:
        if self.record.step_results and self.record.step_results[-1].step_number == number:
            return
        description = INIT_STEP_DESCRIPTION if number == 0 else self.steps[number - 1]
        artifact = await self._capture(number) if self._page is not None else None
        self._append(number, description, StepStatus.FAILED, message, artifact)
        self.record.error = message
        self._transition(RunState.STEP_FAILED)
        await self._publish(number, description, ProgressStatus.FAILED, message, artifact)
        log_execution_event("step_failed", self.execution_id, step_number=number, data={"error": message})

    async def _release(self) -> None:
        if self._frame_stream is not None:
            try:
                await self._frame_stream.stop()
            except Exception as e:
                logger.warning("Failed to stop frame stream", extra={"execution_id": self.execution_id, "error": str(e)})
            self._frame_stream = None

        if self._session is not None:
            try:
                await self._session.close()
            except Exception as e:
                logger.warning("Failed to close browser session", extra={"execution_id": self.execution_id, "error": str(e)})

    def _release_slot(self) -> None:
        if self.on_release is not None:
            try:
                self.on_release(self.execution_id)
            except Exception as e:
                logger.warning("Release callback failed", extra={"execution_id": self.execution_id, "error": str(e)})

    def _finalize(self, duration_ms: float) -> None:
        failed = any(r.status == StepStatus.FAILED for r in self.record.step_results)
        self.record.status = ExecutionStatus.FAILED if failed else ExecutionStatus.PASSED
        self.record.duration_ms = int(duration_ms)
        self.record.completed_at = utc_now()
        self._transition(RunState.RUN_FAILED if failed else RunState.RUN_PASSED)

        logger.info(
            "Execution finished",
            extra={
                "execution_id": self.execution_id,
                "status": self.record.status.value,
                "duration_ms": self.record.duration_ms,
                "steps_recorded": len(self.record.step_results),
            },
        )

    async def _publish_completion(self) -> None:
        if self._completed:
            return
        self._completed = True

        if self.history is not None:
            await self.history.append(self.record)

        if self.record.status == ExecutionStatus.PASSED:
            last = self.record.step_results[-1]
            await self._publish(
                len(self.steps),
                last.description,
                ProgressStatus.PASSED,
                "All steps completed",
                last.artifact,
            )

        if self.broadcaster is not None:
            await self.broadcaster.publish_completion(self.record)
        log_execution_event(
            "execution_completed",
            self.execution_id,
            data={"status": self.record.status.value, "duration_ms": self.record.duration_ms},
        )

    # Step execution --------------------------------------------------------

    async def execute_step(self, description: str) -> str:
        """Classify, resolve and perform one step, then let the page settle."""
        intent = self.classifier.classify(description)
        logger.info(
            "Step classified",
            extra={"execution_id": self.execution_id, "intent": intent.kind},
        )
        message = await self.perform(intent)
        await self._settle()
        return message

    async def perform(self, intent: ActionIntent) -> str:
        page = self._require_page()
        settings = self.settings

        if isinstance(intent, OpenBrowser):
            return "Browser already open"

        if isinstance(intent, Navigate):
            await page.navigate(intent.url, settings.navigation_timeout_ms)
            return f"Navigated to {page.url}"

        if isinstance(intent, Search):
            resolution = await self.resolver.resolve(intent, page)
            await resolution.locator.fill(intent.query)
            await page.keyboard_press("Enter")
            await page.wait_network_idle(settings.network_idle_timeout_ms)
            return f'Searched for "{intent.query}"'

        if isinstance(intent, (Click, SelectItem, AddToCollection)):
            resolution = await self.resolver.resolve(intent, page)
            await resolution.locator.click()
            if isinstance(intent, SelectItem):
                return f"Selected product {intent.ordinal}"
            if isinstance(intent, AddToCollection):
                return "Added product to cart"
            return f'Clicked "{intent.target}"'

        if isinstance(intent, TypeText):
            resolution = await self.resolver.resolve(intent, page)
            await resolution.locator.click()
            await resolution.locator.fill("")
            await resolution.locator.fill(intent.value)
            return f'Typed "{intent.value}" into {intent.target}'

        if isinstance(intent, Wait):
            await page.wait(intent.duration_ms)
            return f"Waited {intent.duration_ms} ms"

        if isinstance(intent, Scroll):
            await page.scroll_by(settings.scroll_amount_px)
            return "Scrolled down"

        if isinstance(intent, PressKey):
            await page.keyboard_press(intent.key)
            return f"Pressed {intent.key}"

        if isinstance(intent, Unclassified):
            return await self._perform_unclassified(intent, page)

        raise TypeError(f"Unsupported intent: {intent!r}")

    async def _perform_unclassified(self, intent: Unclassified, page: BrowserPage) -> str:
        resolution = await self.resolver.resolve(intent, page)
        action, value = infer_action(intent.raw_text)

        if action == "fill":
            await resolution.locator.fill(value or "")
        elif action == "search":
            await resolution.locator.fill(value or "")
            await page.keyboard_press("Enter")
        else:
            await resolution.locator.click()
        return f"Performed {action} via {resolution.strategy}"

    async def _settle(self) -> None:
        page = self._require_page()
        await page.wait(self.settings.settle_delay_ms)
        settled = await page.wait_network_idle(self.settings.network_idle_timeout_ms)
        if not settled:
            logger.debug("Page did not reach network idle", extra={"execution_id": self.execution_id})
        await page.wait(self.settings.post_step_delay_ms)

    # Helpers ---------------------------------------------------------------

    def _require_page(self) -> BrowserPage:
        if self._page is None:
            raise RuntimeError("Browser page is not open")
        return self._page

    def _current_step_number(self) -> int:
        if not self.record.step_results:
            return 0
        last = self.record.step_results[-1]
        if last.status == StepStatus.COMPLETED and last.step_number < len(self.steps):
            return last.step_number + 1
        return last.step_number

    def _append(
        self,
        number: int,
        description: str,
        status: StepStatus,
        message: str,
        artifact: Optional[str],
    ) -> None:
        self.record.step_results.append(
            StepResult(
                step_number=number,
                description=description,
                status=status,
                message=message,
                artifact=artifact,
            )
        )

    async def _capture(self, number: int) -> Optional[str]:
        """Screenshot the page into the artifact store; evidence is best-effort."""
        if self._page is None:
            return None
        try:
            data = await self._page.screenshot()
            return await self.artifact_store.save(data, artifact_name(self.execution_id, number))
        except Exception as e:
            logger.warning(
                "Artifact capture failed",
                extra={"execution_id": self.execution_id, "step_number": number, "error": str(e)},
            )
            return None

    async def _start_frame_stream(self) -> None:
        if not self.settings.screencast_enabled or self.broadcaster is None:
            return

        config = FrameConfig(
            quality=self.settings.screencast_quality,
            max_width=self.settings.screencast_max_width,
            max_height=self.settings.screencast_max_height,
            every_nth_frame=self.settings.screencast_every_nth_frame,
            max_fps=self.settings.screencast_max_fps,
        )

        async def on_frame(data_url: str) -> None:
            await self.broadcaster.publish_frame(
                LiveFrame(execution_id=self.execution_id, frame=data_url)
            )

        try:
            self._frame_stream = await self._require_page().stream_frames(config, on_frame)
        except Exception as e:
            logger.warning("Live frames unavailable", extra={"execution_id": self.execution_id, "error": str(e)})
            self._frame_stream = None

    async def _publish(
        self,
        number: int,
        description: str,
        status: ProgressStatus,
        message: str = "",
        artifact: Optional[str] = None,
    ) -> None:
        if self.broadcaster is None:
            return
        await self.broadcaster.publish_progress(
            StepProgress(
                execution_id=self.execution_id,
                test_case_id=self.test_case.id,
                test_case_name=self.test_case.name,
                current_step=number,
                total_steps=len(self.steps),
                step_description=description,
                status=status,
                message=message,
                artifact=artifact,
            )
        )
