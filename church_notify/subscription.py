"""
Fan-in of the record streams into a NotificationFeed.

Every stream is subscribed independently; a stream that cannot be
established is retried with backoff and then skipped, the rest keep working.
"""
import asyncio
import functools
import logging
from typing import Dict, Iterable, List, Optional

from .categories import STREAMS
from .core import SUBSCRIBE_MAX_RETRIES, SUBSCRIBE_RETRY_DELAY, SUBSCRIPTION_FAILURES
from .feed import NotificationFeed
from .sources import ChangeSource, Listener

logger = logging.getLogger(__name__)


class FeedHandle:
    """Owns the listeners of one subscribe() call"""

    def __init__(self, listeners: Dict[str, Listener], failed_streams: List[str]):
        self.listeners = listeners
        self.failed_streams = failed_streams
        self.closed = False

    @property
    def streams(self) -> List[str]:
        return list(self.listeners)

    async def close(self):
        """Remove every established listener. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        for stream, listener in self.listeners.items():
            try:
                await listener.unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to unsubscribe from {stream}: {e}")


async def _establish(source: ChangeSource, stream: str, feed: NotificationFeed,
                     max_retries: int, retry_delay: float) -> Optional[Listener]:
    callback = functools.partial(feed.on_event, stream)
    for attempt in range(max_retries):
        try:
            listener = await source.listen(stream, callback)
            logger.debug(f"Listening to {stream}")
            return listener
        except Exception as e:
            SUBSCRIPTION_FAILURES.labels(stream=stream).inc()
            logger.warning(f"Subscribing to {stream} failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2 ** attempt))
    logger.error(f"Giving up on {stream} after {max_retries} attempts")
    return None


async def subscribe(
    feed: NotificationFeed,
    source: ChangeSource,
    streams: Iterable[str] = STREAMS,
    max_retries: int = SUBSCRIBE_MAX_RETRIES,
    retry_delay: float = SUBSCRIBE_RETRY_DELAY,
) -> FeedHandle:
    streams = list(streams)
    max_retries = max(1, max_retries)
    results = await asyncio.gather(
        *[_establish(source, stream, feed, max_retries, retry_delay) for stream in streams]
    )

    listeners = {}
    failed = []
    for stream, listener in zip(streams, results):
        if listener is None:
            failed.append(stream)
        else:
            listeners[stream] = listener

    if failed:
        logger.warning(f"Feed subscribed with {len(listeners)}/{len(streams)} streams; missing {failed}")
    else:
        logger.info(f"Feed subscribed to {len(listeners)} streams")
    return FeedHandle(listeners, failed)
