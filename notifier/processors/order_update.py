# notifier/processors/order_update.py
import logging

from notifier.config import ORDER_UPDATE_POLICY
from notifier.models.events import OrderUpdateEvent
from notifier.models.notification import NotificationPriority, NotificationType
from notifier.processors.base import RetryingEventProcessor, should_send_email

logger = logging.getLogger(__name__)


class OrderUpdateEventProcessor(RetryingEventProcessor[OrderUpdateEvent]):
    family = "order-update"
    event_model = OrderUpdateEvent

    def __init__(self, handler, policy=ORDER_UPDATE_POLICY, **kwargs):
        super().__init__(handler, policy, **kwargs)

    async def handle(self, event: OrderUpdateEvent, attempt: int) -> None:
        await self.handler.create_notification(
            user_id=event.userId,
            notification_type=NotificationType.ORDER_UPDATE,
            priority=NotificationPriority.STANDARD,
            content={
                "orderId": event.orderId,
                "eventDetails": event.model_dump(mode="json"),
            },
            metadata={"retryCount": attempt, "status": event.status},
            email=event.email,
            send_email=should_send_email(NotificationType.ORDER_UPDATE, NotificationPriority.STANDARD),
        )
        logger.info("Order event processed: user=%s order=%s", event.userId, event.orderId)
