# notifier/infra/purchase_history.py
import json
import logging
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from notifier.errors import StoreError
from notifier.models.purchase import PurchaseRecord, SnapshotLine

logger = logging.getLogger(__name__)


def history_key(user_id: str) -> str:
    return f"user:{user_id}:purchaseHistory"


def order_key(order_id: str) -> str:
    return f"order:{order_id}"


class PurchaseHistoryStore:
    """
    Per-user purchase history as a Redis list (RPUSH keeps append order)
    and per-order snapshots as Redis hashes.
    """

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "PurchaseHistoryStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def close(self) -> None:
        await self._redis.aclose()

    async def append_record(self, user_id: str, record: PurchaseRecord) -> None:
        try:
            await self._redis.rpush(history_key(user_id), record.model_dump_json())
        except RedisError as e:
            raise StoreError(f"Could not append purchase record for user {user_id}: {e}") from e

    async def read_history(self, user_id: str) -> List[PurchaseRecord]:
        try:
            items = await self._redis.lrange(history_key(user_id), 0, -1)
        except RedisError as e:
            raise StoreError(f"Could not read purchase history for user {user_id}: {e}") from e

        history: List[PurchaseRecord] = []
        for raw in items:
            try:
                history.append(PurchaseRecord.model_validate_json(raw))
            except ValueError:
                logger.warning("Skipping unreadable purchase record for user %s: %r", user_id, raw)
        return history

    async def write_order_snapshot(
        self,
        order_id: str,
        user_id: str,
        lines: List[SnapshotLine],
        date: Optional[str] = None,
    ) -> None:
        fields = {
            "userId": user_id,
            "orderId": order_id,
            "products": json.dumps([line.model_dump() for line in lines]),
        }
        if date:
            fields["date"] = date
        try:
            await self._redis.hset(order_key(order_id), mapping=fields)
        except RedisError as e:
            raise StoreError(f"Could not write snapshot for order {order_id}: {e}") from e
