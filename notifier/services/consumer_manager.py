# notifier/services/consumer_manager.py
import asyncio
import json
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel

from notifier.config import LaneConfig
from notifier.models.events import BusMessage, ProcessingContext
from notifier.models.notification import utcnow
from notifier.processors.base import RetryingEventProcessor
from notifier.services.dead_letter import DeadLetterHandler

logger = logging.getLogger(__name__)


class LaneConsumer(Protocol):
    async def run(self, on_message: Callable[[BusMessage], Awaitable[None]]) -> None:
        ...

    async def close(self) -> None:
        ...


ConsumerFactory = Callable[[LaneConfig], LaneConsumer]


class LaneStatus(BaseModel):
    name: str
    consumerGroup: str
    topics: Tuple[str, ...]
    concurrency: int
    running: bool = False
    startedAt: Optional[datetime] = None
    lastMessageAt: Optional[datetime] = None
    lastError: Optional[str] = None
    processed: int = 0
    failed: int = 0
    skipped: int = 0


class ConsumerLane:
    """
    One consumer group with its own subscriptions. The semaphore caps how
    many messages (hence partitions) are in flight at once; the consumer
    itself never hands over a partition's next message before the current
    one returns.
    """

    def __init__(self, config: LaneConfig, consumer: LaneConsumer, dispatch):
        self.config = config
        self._consumer = consumer
        self._dispatch = dispatch
        self._semaphore = asyncio.Semaphore(config.concurrency)
        self.status = LaneStatus(
            name=config.name,
            consumerGroup=config.consumer_group,
            topics=config.topics,
            concurrency=config.concurrency,
        )

    async def on_message(self, message: BusMessage) -> None:
        async with self._semaphore:
            await self._dispatch(self, message)

    async def run(self) -> None:
        self.status.running = True
        self.status.startedAt = utcnow()
        logger.info("[%s] Lane started on %s", self.config.name, ", ".join(self.config.topics))
        try:
            await self._consumer.run(self.on_message)
        except Exception as e:
            self.status.lastError = str(e)
            logger.error("[%s] Lane stopped with error: %s", self.config.name, e)
        finally:
            self.status.running = False

    async def close(self) -> None:
        await self._consumer.close()


class PriorityConsumerManager:
    """
    Runs the high- and standard-priority lanes side by side and routes
    each message to the processor registered for its topic.
    """

    def __init__(
        self,
        lanes: Sequence[LaneConfig],
        processors: Mapping[str, RetryingEventProcessor],
        dead_letter: DeadLetterHandler,
        consumer_factory: ConsumerFactory,
    ):
        self._processors = dict(processors)
        self._dead_letter = dead_letter
        self.lanes: List[ConsumerLane] = [
            ConsumerLane(config, consumer_factory(config), self.dispatch) for config in lanes
        ]
        self._tasks: List[asyncio.Task] = []

    async def dispatch(self, lane: ConsumerLane, message: BusMessage) -> None:
        """Handles one message. Nothing raised here reaches the lane."""
        lane.status.lastMessageAt = utcnow()
        try:
            try:
                event = json.loads(message.value.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                lane.status.skipped += 1
                logger.error(
                    "[%s] Malformed message at %s-%s-%s skipped: %s",
                    lane.config.name, message.topic, message.partition, message.offset, e,
                )
                return

            processor = self._processors.get(message.topic)
            if processor is None:
                lane.status.skipped += 1
                logger.warning("[%s] No processor registered for topic %s", lane.config.name, message.topic)
                return

            logger.debug("[%s] Processing event from %s: %s", lane.config.name, message.topic, event)
            context = ProcessingContext(topic=message.topic, partition=message.partition, offset=message.offset)
            if await processor.process_with_retry(event, context):
                lane.status.processed += 1
                return

            lane.status.failed += 1
            await self._dead_letter.handle_failed_message(
                message.topic,
                message.value,
                lane.config.failure_reason,
                partition=message.partition,
                offset=message.offset,
            )
        except Exception as e:
            lane.status.lastError = str(e)
            logger.error("[%s] Event processing error on %s: %s", lane.config.name, message.topic, e)

    async def start(self) -> None:
        for lane in self.lanes:
            self._tasks.append(asyncio.create_task(lane.run(), name=f"lane-{lane.config.name}"))
        logger.info("Priority consumers started (%d lanes)", len(self.lanes))

    async def shutdown(self, timeout: float = 10.0) -> None:
        # each lane closes on its own; one failing must not keep the other open
        for lane in self.lanes:
            try:
                await lane.close()
            except Exception as e:
                logger.error("[%s] Error during lane shutdown: %s", lane.config.name, e)

        if self._tasks:
            _, pending = await asyncio.wait(self._tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            self._tasks = []
        logger.info("Priority consumers stopped")

    def status(self) -> Dict[str, dict]:
        return {lane.config.name: lane.status.model_dump(mode="json") for lane in self.lanes}
