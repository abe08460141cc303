"""In-process change source, used for tests and local runs without Redis or Kafka"""
import logging
from typing import Dict, List

from . import ChangeSource, Listener, RecordCallback

logger = logging.getLogger(__name__)


class MemoryListener(Listener):

    def __init__(self, source: 'MemoryChangeSource', stream: str, callback: RecordCallback):
        self.source = source
        self.stream = stream
        self.callback = callback
        self.active = True

    async def unsubscribe(self):
        if not self.active:
            return
        self.active = False
        self.source._remove(self)


class MemoryChangeSource(ChangeSource):

    def __init__(self):
        self._listeners: Dict[str, List[MemoryListener]] = {}
        self._failures: Dict[str, int] = {}

    def fail_next(self, stream: str, times: int = 1):
        """Make the next ``times`` listen() calls for ``stream`` raise ConnectionError."""
        self._failures[stream] = self._failures.get(stream, 0) + times

    async def listen(self, stream: str, callback: RecordCallback) -> Listener:
        if self._failures.get(stream):
            self._failures[stream] -= 1
            raise ConnectionError(f"Could not subscribe to {stream}")
        listener = MemoryListener(self, stream, callback)
        self._listeners.setdefault(stream, []).append(listener)
        return listener

    def _remove(self, listener: MemoryListener):
        listeners = self._listeners.get(listener.stream, [])
        if listener in listeners:
            listeners.remove(listener)

    def publish(self, stream: str, record: dict) -> int:
        """Deliver an insert to every listener on ``stream``; returns how many got it."""
        delivered = 0
        for listener in list(self._listeners.get(stream, [])):
            try:
                listener.callback(dict(record))
                delivered += 1
            except Exception:
                logger.exception(f"Listener on {stream} failed")
        return delivered

    def listener_count(self, stream: str = None) -> int:
        if stream is not None:
            return len(self._listeners.get(stream, []))
        return sum(len(v) for v in self._listeners.values())

    async def stop(self):
        self._listeners.clear()
