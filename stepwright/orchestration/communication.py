"""
Progress broadcasting between running executions and live subscribers.
"""

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

from pydantic import BaseModel

from stepwright.core.types import (
    ExecutionRecord,
    LiveFrame,
    ScheduledRunStarted,
    StepProgress,
    new_id,
)
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Classes of events multicast to subscribers."""

    STEP_PROGRESS = "step_progress"
    LIVE_FRAME = "live_frame"
    EXECUTION_COMPLETE = "execution_complete"
    SCHEDULED_RUN_STARTED = "scheduled_run_started"


Handler = Callable[[BaseModel], Any]


@dataclass
class Subscription:
    subscription_id: str
    event_type: EventType
    handler: Handler
    execution_id: Optional[str] = None

    def accepts(self, execution_id: Optional[str]) -> bool:
        return self.execution_id is None or self.execution_id == execution_id


class ProgressBroadcaster:
    """
    Publish-subscribe channel for execution lifecycle events.

    Delivery is "send what you have at emit time": subscribers registered
    after an event was published never see it. Publishing awaits every
    handler, so events of one execution reach each subscriber in emit order.
    A failing handler is logged and never affects the publisher.
    """

    def __init__(self):
        self._subscriptions: Dict[EventType, List[Subscription]] = defaultdict(list)
        self._event_count: Dict[str, int] = defaultdict(int)
        self._streams: Set[asyncio.Queue] = set()
        logger.info("Progress broadcaster initialized")

    def subscribe(
        self,
        event_type: EventType,
        handler: Handler,
        execution_id: Optional[str] = None,
    ) -> str:
        """
        Subscribe to one event class.

        Args:
            event_type: Class of events to receive
            handler: Sync or async callable receiving the event model
            execution_id: Only deliver events of this execution when set

        Returns:
            Subscription id for unsubscribe()
        """
        subscription = Subscription(
            subscription_id=new_id(),
            event_type=EventType(event_type),
            handler=handler,
            execution_id=execution_id,
        )
        self._subscriptions[subscription.event_type].append(subscription)
        logger.debug(
            f"Subscription added for {subscription.event_type.value}",
            extra={"execution_id": execution_id},
        )
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        for event_type, subscriptions in self._subscriptions.items():
            for subscription in subscriptions:
                if subscription.subscription_id == subscription_id:
                    subscriptions.remove(subscription)
                    logger.debug(f"Subscription removed for {event_type.value}")
                    return True
        return False

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        if event_type is not None:
            return len(self._subscriptions.get(EventType(event_type), []))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def publish(
        self, event_type: EventType, event: BaseModel, execution_id: Optional[str] = None
    ) -> None:
        """Deliver an event to every matching subscriber."""
        event_type = EventType(event_type)
        self._event_count[event_type.value] += 1

        for queue in list(self._streams):
            queue.put_nowait((event_type, execution_id, event))

        handlers = [
            sub.handler
            for sub in self._subscriptions.get(event_type, [])
            if sub.accepts(execution_id)
        ]
        if not handlers:
            return

        tasks = []
        for handler in handlers:
            if inspect.iscoroutinefunction(handler):
                tasks.append(handler(event))
            else:
                tasks.append(asyncio.to_thread(handler, event))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    f"Subscriber failed handling {event_type.value}",
                    extra={"execution_id": execution_id, "error": str(result)},
                )

    async def publish_progress(self, progress: StepProgress) -> None:
        await self.publish(EventType.STEP_PROGRESS, progress, progress.execution_id)

    async def publish_frame(self, frame: LiveFrame) -> None:
        await self.publish(EventType.LIVE_FRAME, frame, frame.execution_id)

    async def publish_completion(self, record: ExecutionRecord) -> None:
        await self.publish(EventType.EXECUTION_COMPLETE, record, record.execution_id)

    async def publish_scheduled_run(self, notice: ScheduledRunStarted) -> None:
        await self.publish(EventType.SCHEDULED_RUN_STARTED, notice, notice.execution_id)

    async def stream(
        self,
        execution_id: Optional[str] = None,
        event_types: Optional[List[EventType]] = None,
        until_complete: bool = True,
    ) -> AsyncIterator[BaseModel]:
        """
        Iterate over events as they are published.

        With an execution id and ``until_complete`` the iterator ends after
        that execution's completion event.
        """
        wanted = {EventType(t) for t in event_types} if event_types else None
        queue: asyncio.Queue = asyncio.Queue()
        self._streams.add(queue)
        try:
            while True:
                event_type, event_execution_id, event = await queue.get()
                if execution_id is not None and event_execution_id != execution_id:
                    continue
                if wanted is None or event_type in wanted:
                    yield event
                if (
                    until_complete
                    and execution_id is not None
                    and event_type == EventType.EXECUTION_COMPLETE
                ):
                    return
        finally:
            self._streams.discard(queue)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_events": sum(self._event_count.values()),
            "event_counts": dict(self._event_count),
            "active_streams": len(self._streams),
            "active_subscriptions": {
                event_type.value: len(subs)
                for event_type, subs in self._subscriptions.items()
            },
        }

    async def shutdown(self) -> None:
        logger.info("Shutting down progress broadcaster")
        self._subscriptions.clear()
        self._streams.clear()
