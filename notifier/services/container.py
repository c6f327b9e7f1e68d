# notifier/services/container.py
import logging
from typing import Optional

from notifier.config import (
    ORDER_EVENTS_TOPIC,
    PROMOTIONAL_EVENTS_TOPIC,
    RECOMMENDATION_EVENTS_TOPIC,
    USER_EVENTS_TOPIC,
    Settings,
)
from notifier.infra.email_client import SmtpEmailTransport
from notifier.infra.eventhub import EventHubLaneConsumer, EventHubProducer
from notifier.infra.http_clients import OrderSource, ProductCatalog, UserDirectory
from notifier.infra.purchase_history import PurchaseHistoryStore
from notifier.infra.servicebus_publisher import ServiceBusQueuePublisher
from notifier.infra.table_client import NotificationStore
from notifier.processors.order_update import OrderUpdateEventProcessor
from notifier.processors.promotion import PromotionEventProcessor
from notifier.processors.recommendation import RecommendationEventProcessor
from notifier.processors.user_update import UserUpdateEventProcessor
from notifier.services.campaigns import CampaignTrigger
from notifier.services.consumer_manager import ConsumerFactory, PriorityConsumerManager
from notifier.services.dead_letter import DeadLetterHandler
from notifier.services.notification_handler import NotificationHandler
from notifier.services.recommendation_emails import RecommendationEmailSweep
from notifier.services.recommendation_engine import RecommendationEngine
from notifier.services.scheduler import JobScheduler, PeriodicJob

logger = logging.getLogger(__name__)

CAMPAIGN_JOB = "promotional-campaign"
ORDER_INGEST_JOB = "order-ingest"
EMAIL_SWEEP_JOB = "recommendation-email-sweep"


class ServiceContainer:
    """
    Every client and component of the service, built once at startup and
    handed to whoever needs it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        notification_store,
        history_store,
        catalog,
        user_directory,
        order_source,
        email_transport,
        producer=None,
        dead_letter_publisher=None,
        consumer_factory: Optional[ConsumerFactory] = None,
    ):
        self.settings = settings
        self.notification_store = notification_store
        self.history_store = history_store
        self.catalog = catalog
        self.user_directory = user_directory
        self.order_source = order_source
        self.email_transport = email_transport
        self.producer = producer
        self.dead_letter_publisher = dead_letter_publisher

        self.handler = NotificationHandler(notification_store, email_transport, user_directory)
        self.email_sweep = RecommendationEmailSweep(
            notification_store,
            self.handler,
            email_transport,
            website_url=settings.website_url,
            batch_limit=settings.email_sweep_batch_limit,
            concurrency=settings.email_sweep_concurrency,
        )
        self.dead_letter = DeadLetterHandler(dead_letter_publisher)

        self.user_processor = UserUpdateEventProcessor(self.handler)
        self.order_processor = OrderUpdateEventProcessor(self.handler)
        self.promotion_processor = PromotionEventProcessor(self.handler)
        self.recommendation_processor = RecommendationEventProcessor(
            self.handler,
            email_sweep=self.email_sweep if settings.recommendation_email_inline else None,
        )
        self.processors = {
            USER_EVENTS_TOPIC: self.user_processor,
            ORDER_EVENTS_TOPIC: self.order_processor,
            PROMOTIONAL_EVENTS_TOPIC: self.promotion_processor,
            RECOMMENDATION_EVENTS_TOPIC: self.recommendation_processor,
        }

        self.consumer_manager: Optional[PriorityConsumerManager] = None
        if consumer_factory is not None:
            self.consumer_manager = PriorityConsumerManager(
                [settings.high_priority_lane, settings.standard_priority_lane],
                self.processors,
                self.dead_letter,
                consumer_factory,
            )

        self.engine = RecommendationEngine(
            history_store,
            catalog,
            producer,
            order_source=order_source,
            default_category=settings.default_recommendation_category,
        )
        self.campaigns = CampaignTrigger(
            user_directory,
            self.promotion_processor,
            sample_size=settings.campaign_sample_size,
        )

        self.scheduler = JobScheduler()
        self.scheduler.add(PeriodicJob(CAMPAIGN_JOB, self.campaigns.run_tick, settings.campaign_interval_seconds))
        self.scheduler.add(PeriodicJob(EMAIL_SWEEP_JOB, self.email_sweep.run_once, settings.email_sweep_interval_seconds))
        if producer is not None:
            self.scheduler.add(
                PeriodicJob(ORDER_INGEST_JOB, self.engine.process_all_orders, settings.order_ingest_interval_seconds)
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        producer = None
        consumer_factory = None
        if settings.eventhub_connection_string:
            conn = settings.eventhub_connection_string
            producer = EventHubProducer(conn)

            def consumer_factory(lane):
                return EventHubLaneConsumer(conn, lane.consumer_group, lane.topics)
        else:
            logger.warning("EVENTHUB_CONNECTION_STRING missing: lanes and recommendation events disabled")

        dead_letter_publisher = None
        if settings.servicebus_connection_string:
            dead_letter_publisher = ServiceBusQueuePublisher(
                settings.servicebus_connection_string, settings.dead_letter_queue_name
            )
        else:
            logger.warning("SERVICEBUS_CONNECTION_STRING missing: dead-lettered events will only be logged")

        return cls(
            settings,
            notification_store=NotificationStore(settings.storage_connection_string, settings.table_name),
            history_store=PurchaseHistoryStore.from_url(settings.redis_url),
            catalog=ProductCatalog(settings.products_service_url),
            user_directory=UserDirectory(settings.users_service_url),
            order_source=OrderSource(settings.orders_service_url),
            email_transport=SmtpEmailTransport(
                settings.smtp_host,
                settings.smtp_port,
                settings.sender_email,
                username=settings.smtp_user,
                password=settings.smtp_pass,
                use_ssl=settings.smtp_secure,
            ),
            producer=producer,
            dead_letter_publisher=dead_letter_publisher,
            consumer_factory=consumer_factory,
        )

    async def start(self) -> None:
        await self.notification_store.open()
        if self.consumer_manager is not None:
            await self.consumer_manager.start()
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.shutdown()
        if self.consumer_manager is not None:
            await self.consumer_manager.shutdown()

        for name in ("producer", "dead_letter_publisher", "notification_store", "history_store",
                     "catalog", "user_directory", "order_source"):
            resource = getattr(self, name)
            if resource is None or not hasattr(resource, "close"):
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.error("Error closing %s: %s", name, e)

    def status(self) -> dict:
        return {
            "lanes": self.consumer_manager.status() if self.consumer_manager else {},
            "jobs": self.scheduler.get_status(),
            "deadLetterConfigured": self.dead_letter_publisher is not None,
        }
