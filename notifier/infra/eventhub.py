# notifier/infra/eventhub.py
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from azure.eventhub import EventData
from azure.eventhub.aio import EventHubConsumerClient, EventHubProducerClient
from azure.eventhub.exceptions import EventHubError

from notifier.errors import PublishError
from notifier.models.events import BusMessage

logger = logging.getLogger(__name__)

MessageCallback = Callable[[BusMessage], Awaitable[None]]


def _body_bytes(event: EventData) -> bytes:
    body = event.body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    # DATA bodies may come as a list of sections
    return b"".join(part for part in body)


class EventHubProducer:
    """Publishes JSON events; one Event Hub per topic, partitioned by key."""

    def __init__(self, conn_str: str):
        self._conn_str = conn_str
        self._clients: Dict[str, EventHubProducerClient] = {}

    def _client(self, topic: str) -> EventHubProducerClient:
        if topic not in self._clients:
            self._clients[topic] = EventHubProducerClient.from_connection_string(
                self._conn_str, eventhub_name=topic
            )
        return self._clients[topic]

    async def send(self, topic: str, value: Union[Dict[str, Any], bytes], key: Optional[str] = None) -> None:
        payload = value if isinstance(value, bytes) else json.dumps(value).encode("utf-8")
        client = self._client(topic)
        try:
            batch = await client.create_batch(partition_key=key)
            batch.add(EventData(payload))
            await client.send_batch(batch)
        except EventHubError as e:
            raise PublishError(f"Failed to publish to {topic}: {e}") from e
        logger.debug("Published event to %s key=%s", topic, key)

    async def close(self) -> None:
        for topic, client in list(self._clients.items()):
            try:
                await client.close()
            except EventHubError as e:
                logger.error("Error closing producer for %s: %s", topic, e)
        self._clients.clear()


class EventHubLaneConsumer:
    """
    Receives from every hub of a lane under one consumer group.
    The SDK awaits on_event before handing over the next event of the same
    partition, so per-partition order holds while partitions run side by side.
    """

    def __init__(
        self,
        conn_str: str,
        consumer_group: str,
        topics: Sequence[str],
        starting_position: str = "@latest",
        reconnect_backoff: float = 5.0,
    ):
        self._conn_str = conn_str
        self._consumer_group = consumer_group
        self._topics = list(topics)
        self._starting_position = starting_position
        self._reconnect_backoff = reconnect_backoff
        self._clients: List[EventHubConsumerClient] = []
        self._closing = False

    async def run(self, on_message: MessageCallback) -> None:
        await asyncio.gather(*(self._receive(topic, on_message) for topic in self._topics))

    async def _receive(self, topic: str, on_message: MessageCallback) -> None:
        async def on_event(partition_context, event: Optional[EventData]) -> None:
            if event is None:
                return
            message = BusMessage(
                topic=topic,
                partition=int(partition_context.partition_id),
                offset=str(event.offset),
                key=event.partition_key,
                value=_body_bytes(event),
            )
            await on_message(message)
            await partition_context.update_checkpoint(event)

        while not self._closing:
            client = EventHubConsumerClient.from_connection_string(
                self._conn_str,
                consumer_group=self._consumer_group,
                eventhub_name=topic,
            )
            self._clients.append(client)
            try:
                logger.info("[consumer] Listening on %s (group %s)", topic, self._consumer_group)
                async with client:
                    await client.receive(on_event=on_event, starting_position=self._starting_position)
            except Exception as e:
                if self._closing:
                    break
                logger.error("[consumer] Connection error on %s, retrying in %ss: %s", topic, self._reconnect_backoff, e)
                await asyncio.sleep(self._reconnect_backoff)
            finally:
                if client in self._clients:
                    self._clients.remove(client)

    async def close(self) -> None:
        self._closing = True
        for client in list(self._clients):
            await client.close()
