"""
Cron expression evaluation backed by croniter.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from croniter import croniter

from stepwright.core.interfaces import CronEvaluator, CronHandle
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


def next_fire_time(expression: str, after: Optional[datetime] = None) -> datetime:
    """Next UTC fire time of a cron expression strictly after ``after``."""
    base = after or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    return croniter(expression, base).get_next(datetime)


class CroniterHandle(CronHandle):
    """Recurring trigger running as an asyncio task."""

    def __init__(self, expression: str, task: "asyncio.Task[None]"):
        self.expression = expression
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def stop(self) -> None:
        if not self._task.done():
            self._task.cancel()


class CroniterEvaluator(CronEvaluator):
    """Standard 5-field cron expressions evaluated in UTC."""

    def validate(self, expression: str) -> bool:
        if not expression or len(expression.split()) != 5:
            return False
        return croniter.is_valid(expression)

    def next_run(self, expression: str, after: Optional[datetime] = None) -> datetime:
        return next_fire_time(expression, after)

    def schedule(
        self, expression: str, callback: Callable[[], Awaitable[None]]
    ) -> CronHandle:
        if not self.validate(expression):
            raise ValueError(f"Invalid cron expression: {expression}")
        task = asyncio.create_task(self._loop(expression, callback))
        return CroniterHandle(expression, task)

    async def _loop(self, expression: str, callback: Callable[[], Awaitable[None]]) -> None:
        iterator = croniter(expression, datetime.now(timezone.utc))
        while True:
            fire_at = iterator.get_next(datetime)
            delay = (fire_at - datetime.now(timezone.utc)).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                await callback()
            except Exception as e:
                logger.error(
                    "Cron callback failed",
                    extra={"expression": expression, "error": str(e)},
                )
