# notifier/models/purchase.py
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_CATEGORY = "Unknown"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Product(BaseModel):
    """Catalog entry. The catalog service returns Mongo-style `_id`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    name: str
    price: float
    quantity: int = 0
    category: str


class OrderLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    quantity: int
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    userId: str
    products: List[OrderLine] = Field(default_factory=list)


class PurchaseRecord(BaseModel):
    productId: str
    category: str
    quantity: int
    price: float
    name: str
    date: str = Field(default_factory=_now_iso)


class SnapshotLine(BaseModel):
    productId: str
    quantity: int
    name: str
    category: str
    price: float


class RecommendationItem(BaseModel):
    productId: str
    name: str
    price: float
    category: str

    @classmethod
    def from_product(cls, product: Product) -> "RecommendationItem":
        return cls(
            productId=product.id,
            name=product.name,
            price=product.price,
            category=product.category,
        )


class RecommendationSet(BaseModel):
    type: str = "PRODUCT_RECOMMENDATIONS"
    userId: str
    timestamp: str = Field(default_factory=_now_iso)
    source: str
    recommendations: List[RecommendationItem] = Field(max_length=3)
