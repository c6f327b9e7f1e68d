"""
Tests for the two-lane consumer manager: routing, dead-lettering, skipped
messages and shutdown behaviour.
"""

import asyncio
import json
from typing import List

import pytest

from conftest import FakeDeadLetterPublisher
from notifier.config import Settings
from notifier.models.events import BusMessage
from notifier.services.consumer_manager import PriorityConsumerManager
from notifier.services.dead_letter import DeadLetterHandler


class FakeLaneConsumer:
    def __init__(self, messages: List[BusMessage], close_error: Exception = None):
        self.messages = messages
        self.close_error = close_error
        self.closed = False
        self._stop = asyncio.Event()

    async def run(self, on_message):
        await asyncio.gather(*(on_message(m) for m in self.messages))
        await self._stop.wait()

    async def close(self):
        self.closed = True
        self._stop.set()
        if self.close_error is not None:
            raise self.close_error


class StubProcessor:
    def __init__(self, result=True, error: Exception = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.seen = []
        self.active = 0
        self.max_active = 0

    async def process_with_retry(self, event, context, attempt=0):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.seen.append((event, context))
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            self.active -= 1


def message(topic, value, partition=0, offset="0"):
    raw = value if isinstance(value, bytes) else json.dumps(value).encode("utf-8")
    return BusMessage(topic=topic, partition=partition, offset=offset, value=raw)


def build_manager(processors, messages_by_lane=None, close_errors=None, publisher=None):
    settings = Settings()
    messages_by_lane = messages_by_lane or {}
    close_errors = close_errors or {}
    consumers = {}

    def factory(lane):
        consumers[lane.name] = FakeLaneConsumer(messages_by_lane.get(lane.name, []), close_errors.get(lane.name))
        return consumers[lane.name]

    manager = PriorityConsumerManager(
        [settings.high_priority_lane, settings.standard_priority_lane],
        processors,
        DeadLetterHandler(publisher or FakeDeadLetterPublisher()),
        factory,
    )
    return manager, consumers


def lane(manager, name):
    return next(l for l in manager.lanes if l.config.name == name)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_routes_by_topic(self):
        user_processor, promo_processor = StubProcessor(), StubProcessor()
        manager, _ = build_manager({"user-events": user_processor, "promotional-events": promo_processor})

        await manager.dispatch(lane(manager, "high"), message("user-events", {"userId": "u1"}, offset="3"))

        (event, context), = user_processor.seen
        assert event == {"userId": "u1"}
        assert (context.topic, context.partition, context.offset) == ("user-events", 0, "3")
        assert promo_processor.seen == []
        assert lane(manager, "high").status.processed == 1

    @pytest.mark.asyncio
    async def test_failed_event_is_dead_lettered_with_lane_reason(self):
        publisher = FakeDeadLetterPublisher()
        manager, _ = build_manager({"order-events": StubProcessor(result=False)}, publisher=publisher)
        raw = b'{"userId": "u1", "orderId": "o1"}'

        await manager.dispatch(lane(manager, "high"), message("order-events", raw, partition=2, offset="11"))

        (published,) = publisher.published
        assert published["key"] == "order-events-2-11"
        assert published["body"]["metadata"]["reason"] == "High Priority Event Processing Failed"
        assert lane(manager, "high").status.failed == 1

    @pytest.mark.asyncio
    async def test_standard_lane_uses_its_own_reason(self):
        publisher = FakeDeadLetterPublisher()
        manager, _ = build_manager({"promotional-events": StubProcessor(result=False)}, publisher=publisher)

        await manager.dispatch(lane(manager, "standard"), message("promotional-events", {"userId": "u1"}))

        assert publisher.published[0]["body"]["metadata"]["reason"] == "Standard Priority Event Processing Failed"

    @pytest.mark.asyncio
    async def test_malformed_json_is_skipped_without_dead_letter(self):
        publisher = FakeDeadLetterPublisher()
        processor = StubProcessor()
        manager, _ = build_manager({"user-events": processor}, publisher=publisher)

        await manager.dispatch(lane(manager, "high"), message("user-events", b"{not json"))

        assert processor.seen == []
        assert publisher.published == []
        assert lane(manager, "high").status.skipped == 1

    @pytest.mark.asyncio
    async def test_processor_exception_does_not_escape(self):
        manager, _ = build_manager({"user-events": StubProcessor(error=RuntimeError("kaboom"))})
        high = lane(manager, "high")

        await manager.dispatch(high, message("user-events", {"userId": "u1"}))

        assert high.status.lastError == "kaboom"

    @pytest.mark.asyncio
    async def test_unknown_topic_is_skipped(self):
        manager, _ = build_manager({})

        await manager.dispatch(lane(manager, "high"), message("audit-events", {"userId": "u1"}))

        assert lane(manager, "high").status.skipped == 1


class TestLanes:
    def test_lane_layout(self):
        manager, _ = build_manager({})
        high, standard = lane(manager, "high"), lane(manager, "standard")

        assert high.config.topics == ("user-events", "order-events")
        assert high.config.concurrency == 5
        assert high.config.consumer_group == "priority1-notification-group"
        assert standard.config.topics == ("promotional-events", "recommendation-events")
        assert standard.config.concurrency == 2
        assert standard.config.consumer_group == "priority2-notification-group"

    @pytest.mark.asyncio
    async def test_concurrency_is_capped_per_lane(self):
        processor = StubProcessor(delay=0.01)
        messages = [message("promotional-events", {"userId": f"u{i}"}, partition=i) for i in range(6)]
        manager, _ = build_manager({"promotional-events": processor}, {"standard": messages})

        await manager.start()
        for _ in range(100):
            if len(processor.seen) == 6:
                break
            await asyncio.sleep(0.01)
        await manager.shutdown(timeout=1.0)

        assert len(processor.seen) == 6
        assert processor.max_active <= 2

    @pytest.mark.asyncio
    async def test_shutdown_closes_every_lane_even_if_one_fails(self):
        manager, consumers = build_manager({}, close_errors={"high": RuntimeError("close failed")})

        await manager.start()
        await asyncio.sleep(0)
        await manager.shutdown(timeout=1.0)

        assert consumers["high"].closed is True
        assert consumers["standard"].closed is True
        status = manager.status()
        assert status["high"]["running"] is False
        assert status["standard"]["running"] is False

    @pytest.mark.asyncio
    async def test_consumer_crash_is_recorded(self):
        manager, consumers = build_manager({})
        high = lane(manager, "high")

        async def broken_run(on_message):
            raise ConnectionError("broker unreachable")

        consumers["high"].run = broken_run
        await high.run()

        assert high.status.running is False
        assert high.status.lastError == "broker unreachable"
