# notifier/processors/promotion.py
from notifier.config import PROMOTION_POLICY
from notifier.models.events import PromotionEvent
from notifier.models.notification import NotificationPriority, NotificationType
from notifier.processors.base import RetryingEventProcessor, should_send_email


class PromotionEventProcessor(RetryingEventProcessor[PromotionEvent]):
    """Promotional/product events, both from the bus and from the campaign trigger."""

    family = "promotion"
    event_model = PromotionEvent

    def __init__(self, handler, policy=PROMOTION_POLICY, **kwargs):
        super().__init__(handler, policy, **kwargs)

    async def handle(self, event: PromotionEvent, attempt: int) -> None:
        content = event.details or {
            "message": "Promotional event processed",
            "eventType": event.eventType,
        }
        metadata = dict(event.metadata)
        metadata["retryCount"] = attempt
        await self.handler.create_notification(
            user_id=event.userId,
            notification_type=NotificationType.PROMOTION,
            priority=NotificationPriority.STANDARD,
            content=content,
            metadata=metadata,
            email=event.email,
            send_email=should_send_email(NotificationType.PROMOTION, NotificationPriority.STANDARD),
        )
