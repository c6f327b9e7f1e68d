# notifier/services/dead_letter.py
import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Mapping, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class DeadLetterPublisher(Protocol):
    def publish(self, key: str, body: dict) -> Awaitable[None]:
        ...


def dead_letter_key(topic: str, partition: int, offset: Any) -> str:
    return f"{topic}-{partition}-{offset}"


def build_envelope(
    topic: str,
    raw_event: Union[bytes, Mapping[str, Any]],
    reason: str,
    partition: int,
    offset: Any,
) -> dict:
    if isinstance(raw_event, (bytes, bytearray)):
        raw = bytes(raw_event)
    else:
        raw = json.dumps(raw_event, default=str).encode("utf-8")

    return {
        "originalMessage": base64.b64encode(raw).decode("ascii"),
        "metadata": {
            "originalTopic": topic,
            "partition": partition,
            "offset": str(offset),
            "reason": reason,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class DeadLetterHandler:
    """
    Terminal sink for events that exhausted their retries.
    Never raises; a failed publish is logged and dropped.
    """

    def __init__(self, publisher: Optional[DeadLetterPublisher]):
        self._publisher = publisher

    async def handle_failed_message(
        self,
        topic: str,
        raw_event: Union[bytes, Mapping[str, Any]],
        error: Union[str, BaseException],
        partition: int,
        offset: Any,
    ) -> None:
        key = dead_letter_key(topic, partition, offset)
        reason = error if isinstance(error, str) else (str(error) or type(error).__name__)
        if self._publisher is None:
            logger.error("Dead letter channel not configured, dropping %s (%s)", key, reason)
            return
        try:
            envelope = build_envelope(topic, raw_event, reason, partition, offset)
            await self._publisher.publish(key, envelope)
        except Exception as e:
            logger.error("Failed to send message %s to dead letter queue: %s", key, e)
            return

        logger.warning(
            "Message sent to dead letter queue: key=%s topic=%s reason=%s",
            key, topic, reason,
        )
