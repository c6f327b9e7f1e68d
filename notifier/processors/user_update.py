# notifier/processors/user_update.py
from notifier.config import USER_UPDATE_POLICY
from notifier.models.events import UserUpdateEvent
from notifier.models.notification import NotificationPriority, NotificationType
from notifier.processors.base import RetryingEventProcessor, should_send_email


class UserUpdateEventProcessor(RetryingEventProcessor[UserUpdateEvent]):
    family = "user-update"
    event_model = UserUpdateEvent

    def __init__(self, handler, policy=USER_UPDATE_POLICY, **kwargs):
        super().__init__(handler, policy, **kwargs)

    async def handle(self, event: UserUpdateEvent, attempt: int) -> None:
        content = event.details if event.details is not None else {"updateType": event.updateType}
        await self.handler.create_notification(
            user_id=event.userId,
            notification_type=NotificationType.USER_UPDATE,
            priority=NotificationPriority.CRITICAL,
            content=content,
            metadata={"updateType": event.updateType, "retryCount": attempt},
            email=event.email,
            send_email=should_send_email(NotificationType.USER_UPDATE, NotificationPriority.CRITICAL),
        )
