# notifier/services/recommendation_emails.py
import asyncio
import logging

from notifier.errors import EmailDeliveryError, NotifierError
from notifier.infra.email_client import format_recommendation_email
from notifier.models.notification import Notification, NotificationType, utcnow
from notifier.models.user import is_valid_email

logger = logging.getLogger(__name__)

SUBJECT = "Your Personalized Product Recommendations"


class RecommendationEmailSweep:
    """
    Emails recommendation notifications out of band.
    Each run picks up to `batch_limit` records with emailSent == False and
    sends them `concurrency` at a time; a failure is written back onto the
    record (emailError, lastEmailAttempt) and does not stop the others.
    """

    def __init__(self, store, handler, email_transport, website_url: str = "", batch_limit: int = 10, concurrency: int = 5):
        self._store = store
        self._handler = handler
        self._email = email_transport
        self._website_url = website_url
        self.batch_limit = batch_limit
        self.concurrency = max(1, concurrency)

    async def deliver(self, notification: Notification) -> None:
        if notification.emailSent:
            return

        try:
            email = await self._handler.resolve_email(notification.userId, notification.email)
            if not email:
                raise EmailDeliveryError(f"No email found for user {notification.userId}")
            if not is_valid_email(email):
                raise EmailDeliveryError(f"Invalid email format for user {notification.userId}: {email}")
            notification.email = email

            content = notification.content if isinstance(notification.content, dict) else {}
            body = format_recommendation_email(content.get("recommendations") or [], self._website_url)
            await self._email.send(email, SUBJECT, NotificationType.RECOMMENDATION, body)
        except Exception as e:
            notification.lastEmailAttempt = utcnow()
            notification.emailError = str(e)
            try:
                await self._store.update(notification)
            except NotifierError as store_error:
                logger.error("Could not record email failure on %s: %s", notification.id, store_error)
            raise EmailDeliveryError(f"Recommendation email for {notification.id} failed: {e}") from e

        now = utcnow()
        notification.emailSent = True
        notification.emailError = None
        notification.sentAt = now
        notification.lastEmailAttempt = now
        await self._store.update(notification)
        logger.info("Recommendation email sent to %s (notification %s)", notification.email, notification.id)

    async def run_once(self) -> int:
        logger.info("[recommendation-sweep] Starting scheduled email processing")
        try:
            pending = await self._store.list_pending_recommendation_emails(limit=self.batch_limit)
        except NotifierError as e:
            logger.error("[recommendation-sweep] Could not load pending notifications: %s", e)
            return 0

        logger.info("[recommendation-sweep] Found %d pending notifications", len(pending))
        sent = 0
        for i in range(0, len(pending), self.concurrency):
            batch = pending[i:i + self.concurrency]
            results = await asyncio.gather(*(self.deliver(n) for n in batch), return_exceptions=True)
            for notification, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Failed to process notification %s: %s", notification.id, result)
                else:
                    sent += 1
        return sent
