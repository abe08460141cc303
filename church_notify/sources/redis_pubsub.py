"""
Redis pub/sub change source.

Each stream is published on ``<prefix>:<stream>`` as realtime-style JSON:
    {"type": "INSERT", "table": "donations", "record": {...}}
A bare record object is accepted as an insert too.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from .. import core
from ..core import REDIS_CHANNEL_PREFIX
from . import ChangeSource, Listener, RecordCallback

logger = logging.getLogger(__name__)

# envelope markers; a dict carrying one of these without a row is not an insert
ENVELOPE_TYPES = ('INSERT', 'UPDATE', 'DELETE')


def decode_realtime_message(data: Any) -> Optional[Dict[str, Any]]:
    """Return the inserted row, or None for anything that is not an insert"""
    if isinstance(data, (bytes, bytearray)):
        data = data.decode('utf-8')
    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Dropping undecodable realtime message: {data!r}")
        return None
    if not isinstance(payload, dict):
        return None
    if 'record' not in payload and 'new' not in payload:
        # bare row; rows may have their own "type" column, so only envelope markers drop it
        if any(key in payload for key in ('old_record', 'old', 'eventType')):
            return None
        if str(payload.get('type') or '').upper() in ENVELOPE_TYPES:
            return None
        return payload
    event_type = str(payload.get('type') or payload.get('eventType') or 'INSERT').upper()
    if event_type != 'INSERT':
        return None
    record = payload.get('record', payload.get('new'))
    return record if isinstance(record, dict) else None


class RedisListener(Listener):

    def __init__(self, source: 'RedisChangeSource', stream: str, channel: str, callback: RecordCallback):
        self.source = source
        self.stream = stream
        self.channel = channel
        self.callback = callback
        self.active = True

    async def unsubscribe(self):
        if not self.active:
            return
        self.active = False
        await self.source._remove(self)


class RedisChangeSource(ChangeSource):
    """
    All listeners share one pubsub connection. Each channel is subscribed once,
    on its first listener, and dropped when its last listener unsubscribes.
    """

    def __init__(self, client=None, prefix: str = REDIS_CHANNEL_PREFIX):
        self._client = client
        self.prefix = prefix
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: Dict[str, List[RedisListener]] = {}
        self._lock = asyncio.Lock()

    @property
    def client(self):
        return self._client or core.REDIS

    def channel_for(self, stream: str) -> str:
        return f"{self.prefix}:{stream}"

    def listener_count(self, stream: str = None) -> int:
        if stream is not None:
            return len(self._listeners.get(self.channel_for(stream), []))
        return sum(len(v) for v in self._listeners.values())

    async def listen(self, stream: str, callback: RecordCallback) -> Listener:
        channel = self.channel_for(stream)
        async with self._lock:
            if channel not in self._listeners:
                await self._subscribe(channel)
            listener = RedisListener(self, stream, channel, callback)
            self._listeners.setdefault(channel, []).append(listener)
        return listener

    async def _subscribe(self, channel: str):
        if self._pubsub is None:
            client = self.client
            if client is None:
                raise ConnectionError('Redis is not connected')
            self._pubsub = client.pubsub()
        try:
            await self._pubsub.subscribe(channel)
        except Exception:
            if not self._listeners:
                await self._close_pubsub()
            raise
        logger.info(f"Subscribed to {channel}")
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._pump(self._pubsub))

    async def _remove(self, listener: RedisListener):
        async with self._lock:
            listeners = self._listeners.get(listener.channel, [])
            if listener in listeners:
                listeners.remove(listener)
            if listeners or listener.channel not in self._listeners:
                return
            del self._listeners[listener.channel]
            try:
                await self._pubsub.unsubscribe(listener.channel)
            finally:
                if not self._listeners:
                    await self._close_pubsub()
            logger.info(f"Unsubscribed from {listener.channel}")

    async def _pump(self, pubsub):
        try:
            async for item in pubsub.listen():
                if not item or item.get('type') != 'message':
                    continue
                channel = item.get('channel')
                if isinstance(channel, (bytes, bytearray)):
                    channel = channel.decode('utf-8')
                record = decode_realtime_message(item.get('data'))
                if record is None:
                    continue
                self._dispatch(channel, record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Redis pubsub listener stopped: {e}")

    def _dispatch(self, channel: str, record: Dict[str, Any]):
        for listener in list(self._listeners.get(channel, [])):
            try:
                listener.callback(dict(record))
            except Exception:
                logger.exception(f"Callback failed for {channel}")

    async def _close_pubsub(self):
        task, pubsub = self._task, self._pubsub
        self._task = self._pubsub = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if pubsub is not None:
            await pubsub.aclose()

    async def stop(self):
        async with self._lock:
            self._listeners.clear()
            await self._close_pubsub()
