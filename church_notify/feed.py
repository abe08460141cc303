"""
Bounded, read-state tracked notification feed.

Normalizes insert events from the record streams into Notification entries,
keeps the newest ``capacity`` of them (newest first) and maintains the unread
counter incrementally alongside the list.
"""
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from uuid import uuid4

from .categories import CATEGORIES, Category, Severity, category_for_stream, resolve_icon, resolve_route
from .core import DUPLICATES_DROPPED, FEED_CAPACITY, NOTIFICATIONS_RECEIVED
from .templates import render_message

logger = logging.getLogger(__name__)

ToastSink = Callable[[Severity, str], Any]
NotificationListener = Callable[['Notification'], Any]


@dataclass
class Notification:
    id: str
    category: Category
    title: str
    message: str
    occurred_at: datetime
    is_read: bool = False
    source_payload: Dict[str, Any] = field(default_factory=dict)
    # creation time reported by the source row, if it carried one
    source_created_at: Optional[str] = None

    @property
    def route(self) -> str:
        return resolve_route(self.category)

    @property
    def icon(self) -> str:
        return resolve_icon(self.category)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'category': self.category.value,
            'title': self.title,
            'message': self.message,
            'occurred_at': self.occurred_at.isoformat(),
            'is_read': self.is_read,
            'route': self.route,
            'icon': self.icon,
            'source_created_at': self.source_created_at,
            'data': self.source_payload,
        }


def notification_id(category: Category, record: Mapping[str, Any]) -> str:
    source_id = record.get('id')
    if source_id is None or source_id == '':
        # no stable id to dedupe on, so never collide with another entry
        return f"{category.value}-{uuid4().hex}"
    return f"{category.value}-{source_id}"


def build_notification(category: Category, record: Mapping[str, Any], now: Optional[datetime] = None) -> Notification:
    category = Category(category)
    created_at = record.get('created_at')
    return Notification(
        id=notification_id(category, record),
        category=category,
        title=CATEGORIES[category].title,
        message=render_message(category, record),
        occurred_at=now or datetime.now(timezone.utc),
        source_payload=dict(record),
        source_created_at=str(created_at) if created_at is not None else None,
    )


class NotificationFeed:
    """
    In-memory feed for one admin session. Public methods never raise; the
    list and the unread counter are always updated together under one lock.
    """

    def __init__(
        self,
        capacity: int = FEED_CAPACITY,
        toast: Optional[ToastSink] = None,
        listener: Optional[NotificationListener] = None,
    ):
        self.capacity = max(1, capacity)
        self.toast = toast
        self.listener = listener
        self._items: List[Notification] = []
        self._ids = set()
        self._unread = 0
        self._lock = threading.RLock()

    @property
    def notifications(self) -> List[Notification]:
        """Newest first. Entries are copies, mutate through the feed methods."""
        with self._lock:
            return [replace(n) for n in self._items]

    @property
    def unread_count(self) -> int:
        return self._unread

    def __len__(self):
        return len(self._items)

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            for n in self._items:
                if n.id == notification_id:
                    return replace(n)
        return None

    def on_event(self, stream: str, record: Mapping[str, Any]) -> Optional[Notification]:
        """Callback for a stream insert. Returns the new entry, or None if dropped."""
        try:
            category = category_for_stream(stream)
        except KeyError:
            logger.warning(f"Ignoring insert from unknown stream {stream!r}")
            return None
        if not isinstance(record, Mapping):
            logger.warning(f"Ignoring non-mapping {stream} record: {record!r}")
            return None
        notification = build_notification(category, record)
        if self.add(notification):
            return notification
        return None

    def add(self, notification: Notification) -> bool:
        with self._lock:
            if notification.id in self._ids:
                DUPLICATES_DROPPED.labels(category=notification.category.value).inc()
                logger.debug(f"Dropping re-delivered notification {notification.id}")
                return False
            self._items.insert(0, notification)
            self._ids.add(notification.id)
            if not notification.is_read:
                self._unread += 1
            while len(self._items) > self.capacity:
                evicted = self._items.pop()
                self._ids.discard(evicted.id)
                if not evicted.is_read:
                    self._unread -= 1

        NOTIFICATIONS_RECEIVED.labels(category=notification.category.value).inc()
        self._emit(notification)
        return True

    def _emit(self, notification: Notification):
        if self.listener is not None:
            try:
                self.listener(replace(notification))
            except Exception:
                logger.exception(f"Feed listener failed for {notification.id}")
        if self.toast is not None:
            try:
                self.toast(CATEGORIES[notification.category].severity, notification.message)
            except Exception:
                logger.exception(f"Toast failed for {notification.id}")

    def mark_as_read(self, notification_id: str) -> bool:
        """Returns True only when an unread entry was flipped."""
        with self._lock:
            for n in self._items:
                if n.id == notification_id:
                    if n.is_read:
                        return False
                    n.is_read = True
                    self._unread -= 1
                    return True
        return False

    def mark_all_as_read(self):
        with self._lock:
            for n in self._items:
                n.is_read = True
            self._unread = 0

    def clear(self):
        with self._lock:
            self._items = []
            self._ids = set()
            self._unread = 0

    def select(self, notification_id: str) -> Optional[str]:
        """Bell click: mark the entry read and return where to navigate."""
        with self._lock:
            n = self.get(notification_id)
            if n is None:
                return None
            self.mark_as_read(notification_id)
            return n.route

    @staticmethod
    def resolve_target_route(target: Union[Notification, Category, str]) -> str:
        if isinstance(target, Notification):
            return target.route
        return resolve_route(target)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'notifications': [n.to_dict() for n in self._items],
                'unread_count': self._unread,
            }
