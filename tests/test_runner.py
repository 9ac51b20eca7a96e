"""
Tests for the execution orchestrator.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeArtifactStore, FakeLauncher, FakeLocator, FakePage
from stepwright.core.types import (
    ElementSuggestion,
    ExecutionStatus,
    ProgressStatus,
    RunState,
    StepStatus,
    TestCase,
)
from stepwright.execution.resolver import ElementResolver
from stepwright.execution.runner import INIT_STEP_DESCRIPTION, ExecutionOrchestrator
from stepwright.orchestration.communication import EventType, ProgressBroadcaster
from stepwright.orchestration.history import ExecutionHistoryStore


def shop_page() -> FakePage:
    """A page with a search box, three results and an Add to Cart button."""
    return FakePage(
        locators={
            'input[type="search"]': FakeLocator(),
            'button:has-text("Add to Cart")': FakeLocator(),
        },
        groups={
            '[data-component-type="s-search-result"]': [FakeLocator(), FakeLocator(), FakeLocator()],
        },
    )


def make_orchestrator(steps, settings, page=None, launcher=None, **kwargs):
    test_case = TestCase(id="tc-1", name="Checkout", steps=steps)
    kwargs.setdefault("artifact_store", FakeArtifactStore())
    kwargs.setdefault("resolver", ElementResolver(probe_timeout_ms=100))
    return ExecutionOrchestrator(
        test_case=test_case,
        launcher=launcher or FakeLauncher(page or FakePage()),
        settings=settings,
        **kwargs,
    )


CHECKOUT_STEPS = [
    'Navigate to "example.com"',
    'Search for "shoes"',
    "Select 2nd product",
    "Add the product to the cart",
]


class TestSuccessfulRun:
    """All steps complete."""

    @pytest.mark.asyncio
    async def test_checkout_flow_passes(self, settings):
        page = shop_page()
        history = ExecutionHistoryStore()
        orchestrator = make_orchestrator(CHECKOUT_STEPS, settings, page=page, history=history)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED
        assert [r.step_number for r in record.step_results] == [0, 1, 2, 3, 4]
        assert all(r.status == StepStatus.COMPLETED for r in record.step_results)
        assert record.step_results[0].description == INIT_STEP_DESCRIPTION
        assert all(r.artifact for r in record.step_results)
        assert record.completed_at is not None
        assert record.duration_ms is not None

        assert page.navigations == ["example.com"]
        assert page.locators['input[type="search"]'].fills == ["shoes"]
        assert page.keys == ["Enter"]
        results = page.groups['[data-component-type="s-search-result"]']
        assert [r.clicks for r in results] == [0, 1, 0]
        assert page.locators['button:has-text("Add to Cart")'].clicks == 1

        assert history.get(record.execution_id) is record

    @pytest.mark.asyncio
    async def test_result_count_is_steps_plus_one(self, settings):
        steps = ["Open browser", "Wait 1 second", "Scroll down", "Press Tab"]
        page = FakePage()
        orchestrator = make_orchestrator(steps, settings, page=page)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED
        assert len(record.step_results) == len(steps) + 1
        assert page.scrolls == [settings.scroll_amount_px]
        assert page.keys == ["Tab"]
        assert 1000 in page.waits

    @pytest.mark.asyncio
    async def test_blank_steps_are_skipped(self, settings):
        orchestrator = make_orchestrator(["Scroll down", "   ", ""], settings)

        record = await orchestrator.run()

        assert len(record.step_results) == 2

    @pytest.mark.asyncio
    async def test_type_text_clears_then_fills(self, settings):
        field = FakeLocator()
        page = FakePage(locators={'input[placeholder*="email" i]': field})
        orchestrator = make_orchestrator(['Type "me@test.dev" into email'], settings, page=page)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED
        assert field.clicks == 1
        assert field.fills == ["", "me@test.dev"]

    @pytest.mark.asyncio
    async def test_unsettled_network_does_not_fail_step(self, settings):
        page = FakePage(network_idle=False)
        orchestrator = make_orchestrator(["Scroll down"], settings, page=page)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED

    @pytest.mark.asyncio
    async def test_unclassified_step_uses_element_finder(self, settings):
        finder = AsyncMock()
        finder.find.return_value = ElementSuggestion(selector="#avatar", source="scored", score=10)
        avatar = FakeLocator()
        page = FakePage(locators={"#avatar": avatar})
        resolver = ElementResolver(probe_timeout_ms=100, element_finder=finder)
        orchestrator = make_orchestrator(["Tap the avatar"], settings, page=page, resolver=resolver)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.PASSED
        assert avatar.clicks == 1

    @pytest.mark.asyncio
    async def test_state_machine_transitions(self, settings):
        orchestrator = make_orchestrator(["Scroll down"], settings)

        await orchestrator.run()

        assert orchestrator.state_history == [
            RunState.IDLE,
            RunState.INITIALIZING,
            RunState.STEP_COMPLETED,
            RunState.STEP_RUNNING,
            RunState.STEP_COMPLETED,
            RunState.RUN_PASSED,
        ]

    @pytest.mark.asyncio
    async def test_cannot_run_twice(self, settings):
        orchestrator = make_orchestrator(["Scroll down"], settings)
        await orchestrator.run()

        with pytest.raises(RuntimeError):
            await orchestrator.run()


class TestFailedRun:
    """Fail-fast behavior."""

    @pytest.mark.asyncio
    async def test_missing_element_fails_run(self, settings):
        orchestrator = make_orchestrator(['Click "Nonexistent Button"'], settings)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert len(record.step_results) == 2
        assert record.step_results[0].status == StepStatus.COMPLETED
        failed = record.step_results[1]
        assert failed.status == StepStatus.FAILED
        assert "Nonexistent Button" in failed.message
        assert failed.artifact is not None
        assert record.error == failed.message
        assert orchestrator.state == RunState.RUN_FAILED

    @pytest.mark.asyncio
    async def test_remaining_steps_are_aborted(self, settings):
        page = FakePage()
        orchestrator = make_orchestrator(
            ["Press Tab", 'Click "Missing"', "Scroll down"], settings, page=page
        )

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert [r.step_number for r in record.step_results] == [0, 1, 2]
        assert page.scrolls == []

    @pytest.mark.asyncio
    async def test_action_error_fails_step(self, settings):
        page = FakePage(locators={'text="Pay"': FakeLocator(error=RuntimeError("detached"))})
        orchestrator = make_orchestrator(['Click "Pay"'], settings, page=page)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert record.step_results[-1].message == "detached"

    @pytest.mark.asyncio
    async def test_launch_failure_records_init_step(self, settings):
        launcher = FakeLauncher(error=RuntimeError("no chromium"))
        orchestrator = make_orchestrator(["Scroll down"], settings, launcher=launcher)

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert len(record.step_results) == 1
        assert record.step_results[0].step_number == 0
        assert "no chromium" in record.step_results[0].message

    @pytest.mark.asyncio
    async def test_stop_before_steps(self, settings):
        orchestrator = make_orchestrator(["Scroll down", "Press Tab"], settings)
        await orchestrator.stop()

        record = await orchestrator.run()

        assert record.status == ExecutionStatus.FAILED
        assert len(record.step_results) == 2
        assert record.step_results[1].message == "Execution stopped"


class TestCleanupAndEvents:
    """Resource release and event emission."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("steps", [["Scroll down"], ['Click "Missing"']])
    async def test_session_always_closed_and_slot_released(self, settings, steps):
        launcher = FakeLauncher(FakePage())
        released = []
        orchestrator = make_orchestrator(
            steps, settings, launcher=launcher, on_release=released.append
        )

        await orchestrator.run()

        assert launcher.sessions[0].closed == 1
        assert released == [orchestrator.execution_id]

    @pytest.mark.asyncio
    async def test_frame_stream_stopped_and_frames_forwarded(self, settings):
        settings.screencast_enabled = True
        page = FakePage()
        page.emit_frames = ["data:image/jpeg;base64,AAAA"]
        broadcaster = ProgressBroadcaster()
        frames = []

        async def on_frame(frame):
            frames.append(frame)

        broadcaster.subscribe(EventType.LIVE_FRAME, on_frame)
        orchestrator = make_orchestrator(
            ['Click "Missing"'], settings, page=page, broadcaster=broadcaster
        )

        await orchestrator.run()

        assert page.frame_stream.stopped == 1
        assert [f.frame for f in frames] == ["data:image/jpeg;base64,AAAA"]
        assert frames[0].execution_id == orchestrator.execution_id

    @pytest.mark.asyncio
    async def test_progress_order_and_single_completion(self, settings):
        broadcaster = ProgressBroadcaster()
        progress, completions = [], []

        async def on_progress(event):
            progress.append((event.current_step, event.status))

        async def on_complete(record):
            completions.append(record)

        broadcaster.subscribe(EventType.STEP_PROGRESS, on_progress)
        broadcaster.subscribe(EventType.EXECUTION_COMPLETE, on_complete)
        orchestrator = make_orchestrator(
            ["Scroll down", "Press Tab"], settings, broadcaster=broadcaster
        )

        record = await orchestrator.run()

        assert progress == [
            (0, ProgressStatus.COMPLETED),
            (1, ProgressStatus.RUNNING),
            (1, ProgressStatus.COMPLETED),
            (2, ProgressStatus.RUNNING),
            (2, ProgressStatus.COMPLETED),
            (2, ProgressStatus.PASSED),
        ]
        assert completions == [record]

    @pytest.mark.asyncio
    async def test_failed_run_emits_failed_progress_then_completion(self, settings):
        broadcaster = ProgressBroadcaster()
        events = []

        async def on_progress(event):
            events.append(("progress", event.status))

        async def on_complete(record):
            events.append(("complete", record.status))

        broadcaster.subscribe(EventType.STEP_PROGRESS, on_progress)
        broadcaster.subscribe(EventType.EXECUTION_COMPLETE, on_complete)
        orchestrator = make_orchestrator(['Click "Missing"'], settings, broadcaster=broadcaster)

        await orchestrator.run()

        assert events[-2:] == [
            ("progress", ProgressStatus.FAILED),
            ("complete", ExecutionStatus.FAILED),
        ]
        assert sum(1 for kind, _ in events if kind == "complete") == 1

    @pytest.mark.asyncio
    async def test_passed_run_reuses_last_artifact(self, settings):
        broadcaster = ProgressBroadcaster()
        store = FakeArtifactStore()
        final = []

        async def on_progress(event):
            if event.status == ProgressStatus.PASSED:
                final.append(event)

        broadcaster.subscribe(EventType.STEP_PROGRESS, on_progress)
        orchestrator = make_orchestrator(
            ["Scroll down"], settings, broadcaster=broadcaster, artifact_store=store
        )

        record = await orchestrator.run()

        assert len(store.saved) == 2
        assert final[0].artifact == record.step_results[-1].artifact
