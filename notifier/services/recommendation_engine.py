# notifier/services/recommendation_engine.py
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from notifier.config import RECOMMENDATION_EVENTS_TOPIC
from notifier.errors import NotifierError
from notifier.models.purchase import (
    UNKNOWN_CATEGORY,
    Order,
    OrderLine,
    Product,
    PurchaseRecord,
    RecommendationItem,
    RecommendationSet,
    SnapshotLine,
)

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3

# last tier: used when neither the ranked categories nor the default one
# have anything in stock the user has not bought yet
HARDCODED_RECOMMENDATIONS: List[RecommendationItem] = [
    RecommendationItem(productId="featured-gift-card", name="Gift Card", price=25.0, category="Gifts"),
    RecommendationItem(productId="featured-tote-bag", name="Canvas Tote Bag", price=14.99, category="Accessories"),
    RecommendationItem(productId="featured-water-bottle", name="Insulated Water Bottle", price=19.99, category="Outdoors"),
    RecommendationItem(productId="featured-notebook", name="Dotted Notebook", price=9.99, category="Stationery"),
    RecommendationItem(productId="featured-earbuds", name="Wireless Earbuds", price=49.99, category="Electronics"),
]


def aggregate_categories(history: Iterable[PurchaseRecord]) -> Dict[str, int]:
    """Quantity per category, in order of first appearance. Unknown categories are ignored."""
    counts: Dict[str, int] = {}
    for record in history:
        if not record.category or record.category == UNKNOWN_CATEGORY:
            continue
        counts[record.category] = counts.get(record.category, 0) + record.quantity
    return counts


def rank_categories(history: Iterable[PurchaseRecord]) -> List[str]:
    counts = aggregate_categories(history)
    # sorted() is stable, so equal totals keep first-appearance order
    return [category for category, _ in sorted(counts.items(), key=lambda item: item[1], reverse=True)]


def select_candidates(
    products: Sequence[Product],
    purchased_ids: Set[str],
    limit: int = MAX_RECOMMENDATIONS,
) -> List[Product]:
    picked = [p for p in products if p.id not in purchased_ids and p.quantity > 0]
    return picked[:limit]


class RecommendationEngine:
    def __init__(
        self,
        history_store,
        catalog,
        producer,
        order_source=None,
        default_category: Optional[str] = None,
        fallback_products: Sequence[RecommendationItem] = HARDCODED_RECOMMENDATIONS,
        topic: str = RECOMMENDATION_EVENTS_TOPIC,
    ):
        self._history = history_store
        self._catalog = catalog
        self._producer = producer
        self._orders = order_source
        self.default_category = default_category
        self.fallback_products = list(fallback_products)
        self.topic = topic

    async def _resolve_line(self, line: OrderLine) -> SnapshotLine:
        category, price, name = line.category, line.price, line.name
        if not category or price is None or not name:
            try:
                product = await self._catalog.get_by_id(line.id)
                category, price, name = product.category, product.price, product.name
            except NotifierError as e:
                logger.error("Error fetching product data for %s: %s", line.id, e)
                category, price, name = UNKNOWN_CATEGORY, 0.0, f"Product {line.id}"

        return SnapshotLine(
            productId=line.id,
            quantity=line.quantity,
            name=name,
            category=category,
            price=price,
        )

    async def ingest_order(self, order: Order) -> List[PurchaseRecord]:
        lines = [await self._resolve_line(line) for line in order.products]
        await self._history.write_order_snapshot(order.id, order.userId, lines)

        records = []
        for line in lines:
            record = PurchaseRecord(
                productId=line.productId,
                category=line.category,
                quantity=line.quantity,
                price=line.price,
                name=line.name,
            )
            await self._history.append_record(order.userId, record)
            records.append(record)

        logger.info("Ingested order %s for user %s (%d lines)", order.id, order.userId, len(records))
        return records

    async def _candidates_for(self, category: str, purchased_ids: Set[str]) -> List[Product]:
        try:
            products = await self._catalog.get_by_category(category)
        except NotifierError as e:
            logger.error("Catalog lookup failed for category %s: %s", category, e)
            return []
        return select_candidates(products, purchased_ids)

    async def recommend(self, user_id: str) -> RecommendationSet:
        history = await self._history.read_history(user_id)
        purchased_ids = {record.productId for record in history}

        if history:
            ranked = rank_categories(history)
            logger.debug("Category ranking for user %s: %s", user_id, ranked)
            for category in ranked:
                candidates = await self._candidates_for(category, purchased_ids)
                if candidates:
                    return self._build(user_id, "ranked", [RecommendationItem.from_product(p) for p in candidates])
        else:
            logger.info("No purchase history for user %s, using fallback recommendations", user_id)

        if self.default_category:
            candidates = await self._candidates_for(self.default_category, purchased_ids)
            if candidates:
                return self._build(user_id, "default_category", [RecommendationItem.from_product(p) for p in candidates])

        fallback = [item for item in self.fallback_products if item.productId not in purchased_ids]
        if not fallback:
            # every featured item already bought: use the full set
            logger.info("User %s already owns every featured product, sending them unfiltered", user_id)
            fallback = list(self.fallback_products)
        return self._build(user_id, "hardcoded", fallback[:MAX_RECOMMENDATIONS])

    def _build(self, user_id: str, source: str, items: List[RecommendationItem]) -> RecommendationSet:
        return RecommendationSet(userId=user_id, source=source, recommendations=items[:MAX_RECOMMENDATIONS])

    async def generate_and_send(self, user_id: str) -> RecommendationSet:
        recommendation_set = await self.recommend(user_id)
        if not recommendation_set.recommendations:
            logger.warning("No recommendations available for user %s, nothing published", user_id)
            return recommendation_set
        await self._producer.send(self.topic, recommendation_set.model_dump(mode="json"), key=user_id)
        logger.info(
            "Recommendations sent for user %s (source=%s, count=%d)",
            user_id, recommendation_set.source, len(recommendation_set.recommendations),
        )
        return recommendation_set

    async def process_all_orders(self) -> List[str]:
        """Pulls every order, ingests it, then emits one recommendation set per user seen."""
        if self._orders is None:
            raise RuntimeError("No order source configured")

        orders = await self._orders.list_orders()
        if not orders:
            logger.info("No orders found to process")
            return []

        for order in orders:
            try:
                await self.ingest_order(order)
            except NotifierError as e:
                logger.error("Error processing order %s: %s", order.id, e)

        user_ids = list(dict.fromkeys(order.userId for order in orders))
        for user_id in user_ids:
            try:
                await self.generate_and_send(user_id)
            except NotifierError as e:
                logger.error("Error generating recommendations for user %s: %s", user_id, e)

        logger.info("Order processing completed for %d users", len(user_ids))
        return user_ids
