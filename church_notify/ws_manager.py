import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from starlette.requests import HTTPConnection

from .categories import Severity
from .core import FEED_CAPACITY, LIVE_SESSIONS
from .feed import Notification, NotificationFeed
from .sources import ChangeSource
from .subscription import FeedHandle, subscribe

logger = logging.getLogger(__name__)


class FeedSession:
    """
    One admin's feed for the lifetime of a connection. New notifications and
    toasts are queued on ``outbox`` for whoever is pushing to the client.
    Must be created inside the event loop that drains the outbox.
    """

    def __init__(self, user_id: str, capacity: int = FEED_CAPACITY):
        self.session_id = uuid4().hex
        self.user_id = user_id
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.handle: Optional[FeedHandle] = None
        self._loop = asyncio.get_running_loop()
        self.feed = NotificationFeed(capacity=capacity, toast=self._toast, listener=self._notify)

    def _put(self, message: Dict[str, Any]):
        # change sources may call back from another thread
        self._loop.call_soon_threadsafe(self.outbox.put_nowait, message)

    def _notify(self, notification: Notification):
        self._put({
            'event': 'notification',
            'notification': notification.to_dict(),
            'unread_count': self.feed.unread_count,
        })

    def _toast(self, severity: Severity, message: str):
        self._put({'event': 'toast', 'severity': severity.value, 'message': message})

    def snapshot(self) -> Dict[str, Any]:
        return {'event': 'snapshot', 'session_id': self.session_id, **self.feed.snapshot()}

    async def open(self, source: ChangeSource):
        self.handle = await subscribe(self.feed, source)

    async def close(self):
        if self.handle is not None:
            await self.handle.close()


class SessionRegistry:

    def __init__(self, source: ChangeSource, capacity: int = FEED_CAPACITY):
        self.source = source
        self.capacity = capacity
        self.sessions: Dict[str, FeedSession] = {}

    async def open(self, user_id: str) -> FeedSession:
        session = FeedSession(user_id, capacity=self.capacity)
        self.sessions[session.session_id] = session
        LIVE_SESSIONS.inc()
        try:
            await session.open(self.source)
        except BaseException:
            await self.close(session.session_id)
            raise
        logger.info({'msg': 'feed_session_opened', 'session_id': session.session_id, 'user_id': user_id})
        return session

    def get(self, session_id: str) -> Optional[FeedSession]:
        return self.sessions.get(session_id)

    async def close(self, session_id: str):
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        LIVE_SESSIONS.dec()
        await session.close()
        logger.info({'msg': 'feed_session_closed', 'session_id': session_id})

    async def close_all(self):
        for session_id in list(self.sessions):
            await self.close(session_id)


def get_registry(conn: HTTPConnection) -> SessionRegistry:
    return conn.app.state.registry
