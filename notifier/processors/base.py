# notifier/processors/base.py
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Mapping, Type, TypeVar

from pydantic import ValidationError

from notifier.config import RetryPolicy
from notifier.errors import EventValidationError
from notifier.models.events import DomainEvent, ProcessingContext
from notifier.models.notification import NotificationPriority, NotificationType
from notifier.services.notification_handler import NotificationHandler

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)

Sleep = Callable[[float], Awaitable[Any]]


class RetryingEventProcessor(ABC, Generic[E]):
    """
    One processor per event family.

    process_with_retry never raises: it resolves to True once the
    notification is stored, or False when the event is invalid or every
    attempt (initial + max_retries) has failed. Backoff is
    base_delay * 2**attempt between attempts.
    """

    family: str = "event"
    event_model: Type[E]

    def __init__(self, handler: NotificationHandler, policy: RetryPolicy, sleep: Sleep = asyncio.sleep):
        self.handler = handler
        self.policy = policy
        self._sleep = sleep

    def decode(self, event: Mapping[str, Any]) -> E:
        if not isinstance(event, Mapping):
            raise EventValidationError(f"{self.family} event must be a JSON object")
        try:
            return self.event_model.model_validate(event)
        except ValidationError as e:
            raise EventValidationError(str(e)) from e

    @abstractmethod
    async def handle(self, event: E, attempt: int) -> None:
        """Family-specific side effect. Raising means the attempt failed."""

    async def process_with_retry(
        self,
        event: Mapping[str, Any],
        context: ProcessingContext,
        attempt: int = 0,
    ) -> bool:
        try:
            decoded = self.decode(event)
        except EventValidationError as e:
            logger.error(
                "Invalid %s event at %s-%s-%s, not retrying: %s",
                self.family, context.topic, context.partition, context.offset, e,
            )
            return False

        while True:
            try:
                await self.handle(decoded, attempt)
                return True
            except Exception as e:
                logger.error(
                    "%s event processing failed (retry %d) for user %s: %s",
                    self.family, attempt, decoded.userId, e,
                )
                if attempt >= self.policy.max_retries:
                    logger.error(
                        "%s event exhausted %d retries at %s-%s-%s",
                        self.family, self.policy.max_retries,
                        context.topic, context.partition, context.offset,
                    )
                    return False

            delay = self.policy.delay_for(attempt)
            logger.info("Retrying %s event after %.0f ms", self.family, delay * 1000)
            await self._sleep(delay)
            attempt += 1


def should_send_email(notification_type: NotificationType, priority: NotificationPriority) -> bool:
    # recommendation emails go out through the sweep, never from here
    if notification_type == NotificationType.RECOMMENDATION:
        return False
    return (
        priority == NotificationPriority.CRITICAL
        or notification_type in (NotificationType.ORDER_UPDATE, NotificationType.PROMOTION)
    )
