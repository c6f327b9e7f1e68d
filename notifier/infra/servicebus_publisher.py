# notifier/infra/servicebus_publisher.py
import json
import logging
from typing import Any, Dict, Optional

from azure.servicebus import ServiceBusMessage, TransportType
from azure.servicebus.aio import ServiceBusClient, ServiceBusSender

logger = logging.getLogger(__name__)


class ServiceBusQueuePublisher:
    """
    Sends JSON messages to a single Service Bus queue.
    AMQP over WebSocket (443) so it also works from App Service.
    """

    def __init__(self, conn_str: str, queue_name: str):
        self._conn_str = conn_str
        self.queue_name = queue_name
        self._client: Optional[ServiceBusClient] = None
        self._sender: Optional[ServiceBusSender] = None

    async def _get_sender(self) -> ServiceBusSender:
        if self._sender is None:
            self._client = ServiceBusClient.from_connection_string(
                self._conn_str,
                transport_type=TransportType.AmqpOverWebsocket,
            )
            self._sender = self._client.get_queue_sender(queue_name=self.queue_name)
        return self._sender

    async def publish(self, key: str, body: Dict[str, Any]) -> None:
        sender = await self._get_sender()
        message = ServiceBusMessage(
            json.dumps(body),
            message_id=key,
            content_type="application/json",
            application_properties={"dlqKey": key},
        )
        await sender.send_messages(message)

    async def close(self) -> None:
        if self._sender is not None:
            await self._sender.close()
        if self._client is not None:
            await self._client.close()
        self._sender = None
        self._client = None
