# notifier/models/events.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BusMessage(BaseModel):
    """A message as read from the bus; `value` holds the raw JSON bytes."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int
    offset: str
    key: Optional[str] = None
    value: bytes


class ProcessingContext(BaseModel):
    topic: str
    partition: int
    offset: str


class DomainEvent(BaseModel):
    # unknown fields are kept in model_extra; numeric ids arrive as strings
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    userId: str = Field(min_length=1)

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class UserUpdateEvent(DomainEvent):
    details: Any = None
    updateType: Optional[str] = None
    email: Optional[str] = None


class OrderUpdateEvent(DomainEvent):
    orderId: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None


class PromotionEvent(DomainEvent):
    email: Optional[str] = None
    eventType: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RecommendedProduct(BaseModel):
    productId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: float = Field(strict=True)
    category: str = Field(min_length=1)


class RecommendationEvent(DomainEvent):
    recommendations: List[RecommendedProduct] = Field(min_length=1)
    timestamp: Optional[str] = None
    type: Optional[str] = None
