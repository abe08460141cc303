from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, List, Optional


class NotificationOut(BaseModel):
    id: str
    category: str
    title: str
    message: str
    occurred_at: datetime
    is_read: bool
    route: str
    icon: str
    source_created_at: Optional[str] = None
    data: Dict[str, Any] = {}


class FeedOut(BaseModel):
    session_id: str
    notifications: List[NotificationOut]
    unread_count: int


class MarkReadOut(BaseModel):
    ok: bool = True
    changed: bool
    unread_count: int


class CategoryRouteOut(BaseModel):
    category: str
    stream: str
    title: str
    route: str
    icon: str
