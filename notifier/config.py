# notifier/config.py
import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel

# topics
USER_EVENTS_TOPIC = "user-events"
ORDER_EVENTS_TOPIC = "order-events"
PROMOTIONAL_EVENTS_TOPIC = "promotional-events"
RECOMMENDATION_EVENTS_TOPIC = "recommendation-events"
DEAD_LETTER_QUEUE = "dead-letter-queue"


class RetryPolicy(BaseModel):
    max_retries: int
    base_delay: float  # seconds

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)


USER_UPDATE_POLICY = RetryPolicy(max_retries=5, base_delay=0.5)
ORDER_UPDATE_POLICY = RetryPolicy(max_retries=3, base_delay=1.0)
PROMOTION_POLICY = RetryPolicy(max_retries=5, base_delay=0.5)
RECOMMENDATION_POLICY = RetryPolicy(max_retries=3, base_delay=1.0)


class LaneConfig(BaseModel):
    name: str
    consumer_group: str
    topics: Tuple[str, ...]
    concurrency: int
    failure_reason: str


class Settings(BaseModel):
    eventhub_connection_string: Optional[str] = None
    servicebus_connection_string: Optional[str] = None
    dead_letter_queue_name: str = DEAD_LETTER_QUEUE
    storage_connection_string: Optional[str] = None
    table_name: str = "notifications"
    redis_url: str = "redis://localhost:6379"

    users_service_url: str = ""
    products_service_url: str = ""
    orders_service_url: str = ""
    website_url: str = ""

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: bool = False
    sender_email: str = "no-reply@localhost"

    high_priority_group: str = "priority1-notification-group"
    standard_priority_group: str = "priority2-notification-group"

    default_recommendation_category: str = "Electronics"
    recommendation_email_inline: bool = False

    campaign_interval_seconds: int = 60
    campaign_sample_size: int = 10
    order_ingest_interval_seconds: int = 120
    email_sweep_interval_seconds: int = 60
    email_sweep_batch_limit: int = 10
    email_sweep_concurrency: int = 5

    log_level: str = "INFO"

    @property
    def high_priority_lane(self) -> LaneConfig:
        return LaneConfig(
            name="high",
            consumer_group=self.high_priority_group,
            topics=(USER_EVENTS_TOPIC, ORDER_EVENTS_TOPIC),
            concurrency=5,
            failure_reason="High Priority Event Processing Failed",
        )

    @property
    def standard_priority_lane(self) -> LaneConfig:
        return LaneConfig(
            name="standard",
            consumer_group=self.standard_priority_group,
            topics=(PROMOTIONAL_EVENTS_TOPIC, RECOMMENDATION_EVENTS_TOPIC),
            concurrency=2,
            failure_reason="Standard Priority Event Processing Failed",
        )

    @classmethod
    def from_env(cls) -> "Settings":
        # .env first, real environment wins
        load_dotenv()
        env = os.getenv
        return cls(
            eventhub_connection_string=env("EVENTHUB_CONNECTION_STRING"),
            servicebus_connection_string=env("SERVICEBUS_CONNECTION_STRING"),
            dead_letter_queue_name=env("DEAD_LETTER_QUEUE_NAME", DEAD_LETTER_QUEUE),
            storage_connection_string=env("AZURE_STORAGE_CONNECTION_STRING"),
            table_name=env("TABLE_NAME", "notifications"),
            redis_url=env("REDIS_URL", "redis://localhost:6379"),
            users_service_url=env("USERS_SERVICE_URL", ""),
            products_service_url=env("PRODUCTS_SERVICE_URL", ""),
            orders_service_url=env("ORDERS_SERVICE_URL", ""),
            website_url=env("WEBSITE_URL", ""),
            smtp_host=env("SMTP_HOST", "localhost"),
            smtp_port=int(env("SMTP_PORT", "587")),
            smtp_user=env("SMTP_USER"),
            smtp_pass=env("SMTP_PASS"),
            smtp_secure=env("SMTP_SECURE", "false").lower() == "true",
            sender_email=env("SENDER_EMAIL", "no-reply@localhost"),
            high_priority_group=env("HIGH_PRIORITY_CONSUMER_GROUP", "priority1-notification-group"),
            standard_priority_group=env("STANDARD_PRIORITY_CONSUMER_GROUP", "priority2-notification-group"),
            default_recommendation_category=env("DEFAULT_RECOMMENDATION_CATEGORY", "Electronics"),
            recommendation_email_inline=env("RECOMMENDATION_EMAIL_INLINE", "false").lower() == "true",
            campaign_interval_seconds=int(env("CAMPAIGN_INTERVAL_SECONDS", "60")),
            campaign_sample_size=int(env("CAMPAIGN_SAMPLE_SIZE", "10")),
            order_ingest_interval_seconds=int(env("ORDER_INGEST_INTERVAL_SECONDS", "120")),
            email_sweep_interval_seconds=int(env("EMAIL_SWEEP_INTERVAL_SECONDS", "60")),
            log_level=env("LOG_LEVEL", "INFO").upper(),
        )
