import random

import pytest

from conftest import FakeUserDirectory, InMemoryNotificationStore
from notifier.config import RetryPolicy
from notifier.processors.promotion import PromotionEventProcessor
from notifier.services.campaigns import CampaignTrigger
from notifier.services.notification_handler import NotificationHandler

USERS = [
    {"_id": "u1", "email": "ana@example.com", "name": "Ana", "preferences": {"promotions": True}},
    {"_id": "u2", "email": "bo@example.com", "name": "Bo"},
    {"_id": "u3", "email": "not-an-email", "name": "Cy"},
    {"_id": "u4", "email": "dee@example.com", "name": "Dee", "preferences": {"promotions": False}},
    {"_id": "u5", "name": "Eve"},
    {"_id": "u6", "email": "fin@example.com", "name": "Fin", "preferences": {"orderUpdates": False}},
]


def build_trigger(store, email_transport, sleep, directory=None, sample_size=10):
    directory = directory or FakeUserDirectory(users=USERS)
    handler = NotificationHandler(store, email_transport, directory)
    processor = PromotionEventProcessor(handler, RetryPolicy(max_retries=1, base_delay=0.01), sleep=sleep)
    return CampaignTrigger(directory, processor, sample_size=sample_size, rng=random.Random(7))


class TestCampaignTrigger:
    @pytest.mark.asyncio
    async def test_only_eligible_users_are_selected(self, store, email_transport, sleep):
        trigger = build_trigger(store, email_transport, sleep)

        eligible = await trigger.eligible_users()

        assert sorted(u.id for u in eligible) == ["u1", "u2", "u6"]

    @pytest.mark.asyncio
    async def test_tick_notifies_each_sampled_user_once(self, store, email_transport, sleep):
        trigger = build_trigger(store, email_transport, sleep)

        succeeded, failed = await trigger.run_tick()

        assert (succeeded, failed) == (3, 0)
        assert sorted(n.userId for n in store.records.values()) == ["u1", "u2", "u6"]
        batch_ids = {n.metadata["batchId"] for n in store.records.values()}
        assert len(batch_ids) == 1
        assert batch_ids.pop().startswith("PROMO_")
        assert all(n.metadata["isAutomated"] is True for n in store.records.values())
        assert sorted(m["to"] for m in email_transport.sent) == ["ana@example.com", "bo@example.com", "fin@example.com"]

    @pytest.mark.asyncio
    async def test_sample_is_capped_and_has_no_duplicates(self, store, email_transport, sleep):
        many = [{"_id": f"u{i}", "email": f"user{i}@example.com"} for i in range(25)]
        trigger = build_trigger(store, email_transport, sleep, FakeUserDirectory(users=many), sample_size=10)

        succeeded, _ = await trigger.run_tick()

        user_ids = [n.userId for n in store.records.values()]
        assert succeeded == 10
        assert len(user_ids) == len(set(user_ids)) == 10

    @pytest.mark.asyncio
    async def test_directory_failure_skips_the_tick(self, store, email_transport, sleep):
        trigger = build_trigger(store, email_transport, sleep, FakeUserDirectory(fail=True))

        assert await trigger.run_tick() == (0, 0)
        assert store.records == {}

    @pytest.mark.asyncio
    async def test_failures_are_counted(self, email_transport, sleep):
        store = InMemoryNotificationStore(fail_times=-1)
        trigger = build_trigger(store, email_transport, sleep)

        assert await trigger.run_tick() == (0, 3)

    @pytest.mark.asyncio
    async def test_null_preferences_count_as_opted_in(self, store, email_transport, sleep):
        directory = FakeUserDirectory(users=[
            {"_id": "u7", "email": "gus@example.com", "name": None, "preferences": None},
            {"_id": "u8", "email": "hal@example.com", "preferences": {"promotions": None}},
        ])
        trigger = build_trigger(store, email_transport, sleep, directory)

        eligible = await trigger.eligible_users()

        assert sorted(u.id for u in eligible) == ["u7", "u8"]
        assert await trigger.run_tick() == (2, 0)
