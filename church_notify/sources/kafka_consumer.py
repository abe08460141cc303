"""
Kafka change source reading Debezium-style change envelopes.

Topic per stream: ``<prefix>.<stream>``. Values look like
    {"payload": {"op": "c", "after": {...}}}
or the same envelope without the outer "payload" wrapper.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from aiokafka import AIOKafkaConsumer

from ..core import KAFKA_BOOTSTRAP_SERVERS, KAFKA_GROUP_ID, KAFKA_TOPIC_PREFIX
from . import ChangeSource, Listener, RecordCallback

logger = logging.getLogger(__name__)

# create, and rows emitted by an initial snapshot
INSERT_OPS = ('c', 'r')


def decode_change_event(value: Any) -> Optional[Dict[str, Any]]:
    """Return the inserted row from a change envelope, None for tombstones and non-inserts"""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode('utf-8')
    try:
        envelope = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Dropping undecodable change event: {value!r}")
        return None
    if not isinstance(envelope, dict):
        return None
    if isinstance(envelope.get('payload'), dict):
        envelope = envelope['payload']
    if envelope.get('op') not in INSERT_OPS:
        return None
    after = envelope.get('after')
    return after if isinstance(after, dict) else None


class KafkaListener(Listener):

    def __init__(self, consumer, stream: str, topic: str, callback: RecordCallback):
        self.consumer = consumer
        self.stream = stream
        self.topic = topic
        self.callback = callback
        self._closed = False
        self._task = asyncio.create_task(self._pump())

    async def _pump(self):
        try:
            async for msg in self.consumer:
                record = decode_change_event(msg.value)
                if record is None:
                    continue
                try:
                    self.callback(record)
                except Exception:
                    logger.exception(f"Callback failed for {self.topic}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Kafka listener on {self.topic} stopped: {e}")

    async def unsubscribe(self):
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self.consumer.stop()
        logger.info(f"Stopped consumer for {self.topic}")


class KafkaChangeSource(ChangeSource):

    def __init__(self, bootstrap_servers: str = KAFKA_BOOTSTRAP_SERVERS,
                 prefix: str = KAFKA_TOPIC_PREFIX, group_id: Optional[str] = KAFKA_GROUP_ID):
        self.bootstrap_servers = bootstrap_servers
        self.prefix = prefix
        self.group_id = group_id

    def topic_for(self, stream: str) -> str:
        return f"{self.prefix}.{stream}"

    def consumer_group(self) -> Optional[str]:
        """Every listener consumes in a group of its own, so each feed sees every insert"""
        if not self.group_id:
            return None
        return f"{self.group_id}-{uuid4().hex}"

    def _consumer(self, topic: str):
        return AIOKafkaConsumer(
            topic,
            bootstrap_servers=self.bootstrap_servers,
            group_id=self.consumer_group(),
            auto_offset_reset='latest',
            enable_auto_commit=False,
        )

    async def listen(self, stream: str, callback: RecordCallback) -> Listener:
        topic = self.topic_for(stream)
        consumer = self._consumer(topic)
        try:
            await consumer.start()
        except Exception:
            await consumer.stop()
            raise
        logger.info(f"Consuming {topic} from {self.bootstrap_servers}")
        return KafkaListener(consumer, stream, topic, callback)
