# notifier/services/notification_handler.py
import logging
from typing import Any, Dict, Optional

from notifier.errors import NotifierError
from notifier.models.notification import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)


class NotificationHandler:
    """
    Persists notification records and dispatches their emails.
    Record creation errors propagate (the caller retries); email errors never do.
    """

    def __init__(self, store, email_transport, user_directory):
        self._store = store
        self._email = email_transport
        self._users = user_directory

    async def resolve_email(self, user_id: str, known: Optional[str] = None) -> Optional[str]:
        if known:
            return known
        try:
            return await self._users.get_email(user_id)
        except NotifierError as e:
            logger.warning("Could not resolve email for user %s: %s", user_id, e)
            return None

    async def create_notification(
        self,
        user_id: str,
        notification_type: NotificationType,
        priority: NotificationPriority,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None,
        email: Optional[str] = None,
        send_email: bool = False,
    ) -> Notification:
        notification = Notification(
            userId=user_id,
            email=await self.resolve_email(user_id, email),
            type=notification_type,
            priority=priority,
            content=content if content is not None else {},
            metadata=metadata or {},
        )

        # 1. persist (may raise -> retried by the processor)
        await self._store.create(notification)
        logger.info(
            "Notification record created: id=%s user=%s type=%s priority=%s",
            notification.id, user_id, notification_type.value, priority.value,
        )

        # 2. email, best effort
        if send_email:
            await self.try_send_email(notification)

        return notification

    async def try_send_email(self, notification: Notification, subject: Optional[str] = None) -> bool:
        if not notification.email:
            logger.warning("No email found for user %s, skipping email", notification.userId)
            return False

        try:
            await self._email.send(
                notification.email,
                subject or f"Notification: {notification.type.value}",
                notification.type,
                notification.content,
            )
        except Exception as e:
            logger.error(
                "Email sending failed for user %s (%s): %s",
                notification.userId, notification.type.value, e,
            )
            return False

        logger.info("Email sent for user %s (%s)", notification.userId, notification.type.value)
        return True
