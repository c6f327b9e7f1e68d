"""
Shared fakes for the notification pipeline tests.
Every collaborator the core talks to is replaced by an in-memory double.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

import pytest

from notifier.errors import CatalogError, DirectoryError, EmailDeliveryError, PublishError, StoreError
from notifier.infra.email_client import EmailResult
from notifier.models.notification import Notification, NotificationType
from notifier.models.purchase import Product, PurchaseRecord
from notifier.models.user import DirectoryUser
from notifier.services.notification_handler import NotificationHandler


class InMemoryNotificationStore:
    def __init__(self, fail_times: int = 0):
        self.records: Dict[str, Notification] = {}
        self.fail_times = fail_times
        self.create_calls = 0
        self.update_calls = 0

    async def open(self):
        pass

    async def close(self):
        pass

    async def create(self, notification: Notification) -> Notification:
        self.create_calls += 1
        if self.fail_times < 0 or self.create_calls <= self.fail_times:
            raise StoreError("table storage unreachable")
        self.records[notification.id] = notification.model_copy(deep=True)
        return notification

    async def update(self, notification: Notification) -> Notification:
        self.update_calls += 1
        self.records[notification.id] = notification.model_copy(deep=True)
        return notification

    async def list_pending_recommendation_emails(self, limit: int = 10) -> List[Notification]:
        pending = [
            n.model_copy(deep=True) for n in self.records.values()
            if n.type == NotificationType.RECOMMENDATION and not n.emailSent
        ]
        return pending[:limit]


class FakeEmailTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to, subject, notification_type, content):
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.sent.append({"to": to, "subject": subject, "type": notification_type, "content": content})
        return EmailResult(success=True, messageId=f"<{len(self.sent)}@test>")


class FakeUserDirectory:
    def __init__(self, emails: Optional[Dict[str, str]] = None, users: Optional[List[dict]] = None, fail: bool = False):
        self.emails = emails or {}
        self.users = [DirectoryUser.model_validate(u) for u in (users or [])]
        self.fail = fail

    async def get_email(self, user_id):
        if self.fail:
            raise DirectoryError("users service down")
        return self.emails.get(user_id)

    async def list_users(self):
        if self.fail:
            raise DirectoryError("users service down")
        return list(self.users)


class FakeCatalog:
    def __init__(self, by_category: Optional[Dict[str, List[dict]]] = None, failing: Optional[Set[str]] = None):
        self.by_category = {
            category: [Product.model_validate(p) for p in products]
            for category, products in (by_category or {}).items()
        }
        self.failing = failing or set()
        self.category_calls: List[str] = []

    async def get_by_category(self, category):
        self.category_calls.append(category)
        if category in self.failing:
            raise CatalogError(f"catalog down for {category}")
        return list(self.by_category.get(category, []))

    async def get_by_id(self, product_id):
        for products in self.by_category.values():
            for product in products:
                if product.id == product_id:
                    return product
        raise CatalogError(f"product {product_id} not found")


class InMemoryPurchaseHistory:
    def __init__(self, history: Optional[Dict[str, List[dict]]] = None):
        self.history: Dict[str, List[PurchaseRecord]] = {
            user_id: [PurchaseRecord.model_validate(r) for r in records]
            for user_id, records in (history or {}).items()
        }
        self.snapshots: Dict[str, dict] = {}

    async def append_record(self, user_id, record):
        self.history.setdefault(user_id, []).append(record)

    async def read_history(self, user_id):
        return list(self.history.get(user_id, []))

    async def write_order_snapshot(self, order_id, user_id, lines, date=None):
        self.snapshots[order_id] = {"userId": user_id, "orderId": order_id, "products": lines}


class FakeProducer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, topic, value, key=None):
        if self.fail:
            raise PublishError("event hub down")
        self.sent.append({"topic": topic, "value": value, "key": key})


class FakeDeadLetterPublisher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[Dict[str, Any]] = []

    async def publish(self, key, body):
        if self.fail:
            raise RuntimeError("service bus down")
        self.published.append({"key": key, "body": body})


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeOrderSource:
    def __init__(self, orders=None, fail: bool = False):
        from notifier.models.purchase import Order

        self.orders = [Order.model_validate(o) for o in (orders or [])]
        self.fail = fail

    async def list_orders(self):
        if self.fail:
            from notifier.errors import OrderSourceError

            raise OrderSourceError("orders service down")
        return list(self.orders)


@pytest.fixture
def store():
    return InMemoryNotificationStore()


@pytest.fixture
def email_transport():
    return FakeEmailTransport()


@pytest.fixture
def users():
    return FakeUserDirectory(emails={"u1": "ana@example.com", "u2": "bo@example.com"})


@pytest.fixture
def handler(store, email_transport, users):
    return NotificationHandler(store, email_transport, users)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def dlq_publisher():
    return FakeDeadLetterPublisher()
