# notifier/processors/recommendation.py
import logging
from typing import Optional

from notifier.config import RECOMMENDATION_POLICY
from notifier.models.events import RecommendationEvent
from notifier.models.notification import NotificationPriority, NotificationType
from notifier.processors.base import RetryingEventProcessor
from notifier.services.recommendation_emails import RecommendationEmailSweep

logger = logging.getLogger(__name__)


class RecommendationEventProcessor(RetryingEventProcessor[RecommendationEvent]):
    """
    Stores recommendation notifications. Emails are left to the
    recommendation sweep unless `email_sweep` is given (inline mode),
    in which case one send is attempted right after the record is stored.
    """

    family = "recommendation"
    event_model = RecommendationEvent

    def __init__(self, handler, policy=RECOMMENDATION_POLICY, email_sweep: Optional[RecommendationEmailSweep] = None, **kwargs):
        super().__init__(handler, policy, **kwargs)
        self._email_sweep = email_sweep

    async def handle(self, event: RecommendationEvent, attempt: int) -> None:
        notification = await self.handler.create_notification(
            user_id=event.userId,
            notification_type=NotificationType.RECOMMENDATION,
            priority=NotificationPriority.STANDARD,
            content={
                "recommendations": [r.model_dump() for r in event.recommendations],
                "timestamp": event.timestamp,
            },
            metadata={
                "retryCount": attempt,
                "recommendationSource": event.type or "PRODUCT_RECOMMENDATIONS",
                "generatedAt": event.timestamp,
            },
            send_email=False,
        )

        if self._email_sweep is not None:
            try:
                await self._email_sweep.deliver(notification)
            except Exception as e:
                logger.error("Inline recommendation email failed, the sweep will retry: %s", e)
