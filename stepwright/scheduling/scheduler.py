"""
Scheduler for one-shot and recurring test case runs.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from stepwright.core.interfaces import CronEvaluator, CronHandle, TestCaseRepository
from stepwright.core.types import (
    Schedule,
    ScheduledRunStarted,
    TestCase,
    TriggerKind,
    UpcomingRun,
    utc_now,
)
from stepwright.error_handling import ScheduleMissingTestCase, ScheduleValidationError
from stepwright.monitoring.logger import get_logger
from stepwright.scheduling.cron import CroniterEvaluator, next_fire_time

logger = get_logger(__name__)

RunStarter = Callable[[TestCase], Awaitable[str]]


class OneShotTimer:
    """Deferred single fire of a schedule."""

    def __init__(self, task: "asyncio.Task[None]", fire_at: datetime):
        self.task = task
        self.fire_at = fire_at

    def stop(self) -> None:
        if not self.task.done():
            self.task.cancel()


Job = Union[OneShotTimer, CronHandle]


class Scheduler:
    """
    Owns the schedule registry and the armed timers.

    Registration and removal never await, so a schedule and its timer are
    always added or dropped together. Runs are started fire-and-forget
    through ``start_run``; the scheduler never waits for a run to finish.
    """

    def __init__(
        self,
        repository: TestCaseRepository,
        start_run: RunStarter,
        broadcaster=None,
        cron: Optional[CronEvaluator] = None,
    ):
        self.repository = repository
        self.start_run = start_run
        self.broadcaster = broadcaster
        self.cron = cron or CroniterEvaluator()

        self._schedules: Dict[str, Schedule] = {}
        self._jobs: Dict[str, Job] = {}

        logger.info("Scheduler initialized")

    # Registration ----------------------------------------------------------

    def create_schedule(
        self,
        test_case_id: str,
        cron_expression: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        enabled: bool = True,
    ) -> Schedule:
        """Build and register a schedule from raw trigger values."""
        try:
            schedule = Schedule(
                test_case_id=test_case_id,
                cron_expression=cron_expression,
                scheduled_time=scheduled_time,
                enabled=enabled,
            )
        except ValidationError as e:
            reason = "; ".join(error["msg"] for error in e.errors())
            raise ScheduleValidationError(reason, cause=e) from e
        return self.add_schedule(schedule)

    def add_schedule(self, schedule: Schedule) -> Schedule:
        """
        Register a schedule, replacing any earlier registration of the same id.

        Raises:
            ScheduleValidationError: If the cron expression is invalid. The
                schedule is not stored in that case.
        """
        if schedule.trigger == TriggerKind.RECURRING and not self.cron.validate(
            schedule.cron_expression
        ):
            raise ScheduleValidationError(
                f"invalid cron expression '{schedule.cron_expression}'",
                schedule_id=schedule.id,
            )

        # Arm before touching the registry so a failure leaves it unchanged
        job = self._arm(schedule) if schedule.enabled else None

        self._disarm(schedule.id)
        self._schedules[schedule.id] = schedule
        if job is not None:
            self._jobs[schedule.id] = job

        logger.info(
            "Schedule registered",
            extra={
                "schedule_id": schedule.id,
                "test_case_id": schedule.test_case_id,
                "trigger": schedule.trigger.value,
                "enabled": schedule.enabled,
            },
        )
        return schedule

    def remove_schedule(self, schedule_id: str) -> bool:
        """Remove a schedule and stop its timer. Idempotent."""
        self._disarm(schedule_id)
        removed = self._schedules.pop(schedule_id, None)
        if removed is not None:
            logger.info("Schedule removed", extra={"schedule_id": schedule_id})
        return removed is not None

    def initialize(self, schedules: Iterable[Schedule]) -> int:
        """Register stored schedules at start-up; invalid ones are logged and skipped."""
        armed = 0
        for schedule in schedules:
            try:
                self.add_schedule(schedule)
            except ScheduleValidationError as e:
                logger.error(
                    "Skipping invalid schedule",
                    extra={"schedule_id": schedule.id, "error": e.message},
                )
                continue
            if schedule.enabled:
                armed += 1
        logger.info(f"Scheduler initialized with {armed} active schedules")
        return armed

    def _arm(self, schedule: Schedule) -> Job:
        if schedule.trigger == TriggerKind.ONE_SHOT:
            now = datetime.now(timezone.utc)
            delay = (schedule.scheduled_time - now).total_seconds()
            if delay < 0:
                logger.warning(
                    "Scheduled time already passed, firing immediately",
                    extra={"schedule_id": schedule.id, "scheduled_time": schedule.scheduled_time.isoformat()},
                )
                delay = 0
            task = asyncio.create_task(self._fire_later(schedule.id, delay))
            return OneShotTimer(task, schedule.scheduled_time)

        schedule_id = schedule.id

        async def fire() -> None:
            await self._fire(schedule_id)

        return self.cron.schedule(schedule.cron_expression, fire)

    def _disarm(self, schedule_id: str) -> None:
        job = self._jobs.pop(schedule_id, None)
        if job is not None:
            job.stop()

    # Firing ----------------------------------------------------------------

    async def _fire_later(self, schedule_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._fire(schedule_id)

    async def _fire(self, schedule_id: str) -> Optional[str]:
        schedule = self._schedules.get(schedule_id)
        if schedule is None or not schedule.enabled:
            return None

        if schedule.trigger == TriggerKind.ONE_SHOT:
            # Deregister before starting so the schedule fires at most once
            self._jobs.pop(schedule_id, None)
            self._schedules.pop(schedule_id, None)

        test_case = await self.repository.get(schedule.test_case_id)
        if test_case is None:
            error = ScheduleMissingTestCase(schedule_id, schedule.test_case_id)
            logger.warning(error.message, extra={"schedule_id": schedule_id, "test_case_id": schedule.test_case_id})
            return None

        try:
            execution_id = await self.start_run(test_case)
        except Exception as e:
            logger.error(
                "Failed to start scheduled run",
                extra={"schedule_id": schedule_id, "error": str(e)},
            )
            return None

        fired_at = utc_now()
        if schedule_id in self._schedules:
            self._schedules[schedule_id] = schedule.model_copy(update={"last_run": fired_at})

        logger.info(
            "Scheduled run started",
            extra={"schedule_id": schedule_id, "execution_id": execution_id, "test_case_id": test_case.id},
        )

        if self.broadcaster is not None:
            await self.broadcaster.publish_scheduled_run(
                ScheduledRunStarted(
                    schedule_id=schedule_id,
                    execution_id=execution_id,
                    test_case_id=test_case.id,
                    test_case_name=test_case.name,
                    started_at=fired_at,
                )
            )
        return execution_id

    # Queries ---------------------------------------------------------------

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        return self._schedules.get(schedule_id)

    def list_schedules(self) -> List[Schedule]:
        return sorted(self._schedules.values(), key=lambda s: s.created_at)

    def is_armed(self, schedule_id: str) -> bool:
        return schedule_id in self._jobs

    @property
    def active_job_count(self) -> int:
        return len(self._jobs)

    async def get_upcoming_runs(self, now: Optional[datetime] = None) -> List[UpcomingRun]:
        """Next fire time of every enabled schedule whose test case exists."""
        now = now or datetime.now(timezone.utc)
        upcoming: List[UpcomingRun] = []

        for schedule in self.list_schedules():
            if not schedule.enabled:
                continue
            if schedule.trigger == TriggerKind.ONE_SHOT:
                if schedule.scheduled_time <= now:
                    continue
                next_run = schedule.scheduled_time
            else:
                next_run = next_fire_time(schedule.cron_expression, now)

            test_case = await self.repository.get(schedule.test_case_id)
            if test_case is None:
                continue

            upcoming.append(
                UpcomingRun(
                    schedule_id=schedule.id,
                    test_case_id=test_case.id,
                    test_case_name=test_case.name,
                    trigger=schedule.trigger,
                    next_run=next_run,
                )
            )

        return sorted(upcoming, key=lambda run: run.next_run)

    async def shutdown(self) -> None:
        logger.info("Shutting down scheduler", extra={"active_jobs": len(self._jobs)})
        for schedule_id in list(self._jobs):
            self._disarm(schedule_id)
