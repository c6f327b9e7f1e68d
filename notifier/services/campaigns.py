# notifier/services/campaigns.py
import logging
import random
import time
from typing import List, Optional, Tuple

from notifier.config import PROMOTIONAL_EVENTS_TOPIC
from notifier.errors import NotifierError
from notifier.models.events import ProcessingContext
from notifier.models.user import DirectoryUser, is_valid_email
from notifier.processors.promotion import PromotionEventProcessor

logger = logging.getLogger(__name__)

CAMPAIGN_MESSAGE = "Check out our latest promotions!"
CAMPAIGN_EVENT_TYPE = "PROMOTIONAL_CAMPAIGN"


class CampaignTrigger:
    """
    One tick: pick up to `sample_size` random users who can receive
    promotions and push a synthetic promotion event for each through the
    promotion processor.
    """

    def __init__(
        self,
        user_directory,
        processor: PromotionEventProcessor,
        sample_size: int = 10,
        rng: Optional[random.Random] = None,
    ):
        self._users = user_directory
        self._processor = processor
        self.sample_size = sample_size
        self._rng = rng or random.Random()

    async def eligible_users(self) -> List[DirectoryUser]:
        users = await self._users.list_users()
        eligible = []
        for user in users:
            if not is_valid_email(user.email):
                logger.debug("Skipping user %s: invalid email", user.id)
            elif not user.accepts_promotions:
                logger.debug("Skipping user %s: promotions disabled", user.id)
            else:
                eligible.append(user)
        return eligible

    def sample(self, users: List[DirectoryUser]) -> List[DirectoryUser]:
        return self._rng.sample(users, min(self.sample_size, len(users)))

    def build_event(self, user: DirectoryUser, batch_id: str) -> dict:
        return {
            "userId": user.id,
            "email": user.email,
            "eventType": CAMPAIGN_EVENT_TYPE,
            "details": {
                "message": CAMPAIGN_MESSAGE,
                "eventType": CAMPAIGN_EVENT_TYPE,
                "name": user.name,
            },
            "metadata": {
                "batchId": batch_id,
                "isAutomated": True,
                "userPreferences": user.preferences.model_dump(),
            },
        }

    async def run_tick(self) -> Tuple[int, int]:
        """Returns (succeeded, failed)."""
        logger.info("[campaign] Tick triggered: sending promotional notifications")
        try:
            users = await self.eligible_users()
        except NotifierError as e:
            logger.error("[campaign] Could not fetch users, skipping this tick: %s", e)
            return 0, 0

        if not users:
            logger.info("[campaign] No valid users available for promotions")
            return 0, 0

        selected = self.sample(users)
        batch_id = f"PROMO_{int(time.time() * 1000)}"
        context = ProcessingContext(topic=PROMOTIONAL_EVENTS_TOPIC, partition=-1, offset=batch_id)

        succeeded = failed = 0
        for user in selected:
            if await self._processor.process_with_retry(self.build_event(user, batch_id), context):
                succeeded += 1
            else:
                failed += 1
                logger.error("[campaign] Failed to notify user %s", user.id)

        logger.info("[campaign] Batch %s complete. Success: %d, Failed: %d", batch_id, succeeded, failed)
        return succeeded, failed
