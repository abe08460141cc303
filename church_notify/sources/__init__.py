"""
Change sources deliver "row inserted" events per record stream.
Each implementation hands the inserted row to a callback as a plain dict.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from ..core import CHANGE_SOURCE

RecordCallback = Callable[[Dict[str, Any]], Any]


class Listener(ABC):
    """A single stream subscription. unsubscribe() is idempotent."""

    stream: str

    @abstractmethod
    async def unsubscribe(self):
        ...


class ChangeSource(ABC):

    async def start(self):
        pass

    async def stop(self):
        pass

    @abstractmethod
    async def listen(self, stream: str, callback: RecordCallback) -> Listener:
        """Register interest in inserts on ``stream``. Raises if it cannot be established."""
        ...


def create_change_source(kind: str = CHANGE_SOURCE) -> ChangeSource:
    if kind == 'memory':
        from .memory import MemoryChangeSource

        return MemoryChangeSource()
    if kind == 'redis':
        from .redis_pubsub import RedisChangeSource

        return RedisChangeSource()
    if kind == 'kafka':
        from .kafka_consumer import KafkaChangeSource

        return KafkaChangeSource()
    raise ValueError(f"Unknown change source: {kind}")
