# notifier/models/notification.py
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    PROMOTION = "promotion"
    ORDER_UPDATE = "order_update"
    RECOMMENDATION = "recommendation"
    USER_UPDATE = "user_update"


class NotificationPriority(str, Enum):
    CRITICAL = "critical"  # high lane
    STANDARD = "standard"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    userId: str
    email: Optional[str] = None
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.STANDARD
    content: Any
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sentAt: datetime = Field(default_factory=utcnow)
    read: bool = False
    readAt: Optional[datetime] = None

    # email tracking, written by the recommendation sweep
    emailSent: bool = False
    emailError: Optional[str] = None
    lastEmailAttempt: Optional[datetime] = None

    def to_entity(self) -> Dict[str, Any]:
        """
        Flattens the record into a Table Storage entity.
        PartitionKey = userId, RowKey = id; content and metadata go as JSON text.
        """
        return {
            "PartitionKey": self.userId,
            "RowKey": self.id,
            "email": self.email or "",
            "type": self.type.value,
            "priority": self.priority.value,
            "content": json.dumps(self.content, default=str),
            "metadata": json.dumps(self.metadata, default=str),
            "sentAt": self.sentAt.isoformat(),
            "read": self.read,
            "readAt": self.readAt.isoformat() if self.readAt else "",
            "emailSent": self.emailSent,
            "emailError": self.emailError or "",
            "lastEmailAttempt": self.lastEmailAttempt.isoformat() if self.lastEmailAttempt else "",
        }

    @classmethod
    def from_entity(cls, entity: Dict[str, Any]) -> "Notification":
        return cls(
            id=entity["RowKey"],
            userId=entity["PartitionKey"],
            email=entity.get("email") or None,
            type=NotificationType(entity["type"]),
            priority=NotificationPriority(entity.get("priority", NotificationPriority.STANDARD.value)),
            content=json.loads(entity["content"]),
            metadata=json.loads(entity.get("metadata") or "{}"),
            sentAt=_parse_dt(entity.get("sentAt")) or utcnow(),
            read=bool(entity.get("read", False)),
            readAt=_parse_dt(entity.get("readAt")),
            emailSent=bool(entity.get("emailSent", False)),
            emailError=entity.get("emailError") or None,
            lastEmailAttempt=_parse_dt(entity.get("lastEmailAttempt")),
        )
