from fastapi import APIRouter, Depends, HTTPException
from typing import List
from ..auth import get_current_admin
from ..categories import CATEGORIES
from ..schemas.notifications import CategoryRouteOut, FeedOut, MarkReadOut
from ..ws_manager import FeedSession, SessionRegistry, get_registry

router = APIRouter()


def _session(session_id: str, registry: SessionRegistry, admin: dict) -> FeedSession:
    session = registry.get(session_id)
    # sessions are private to the admin that opened them
    if session is None or session.user_id != admin['sub']:
        raise HTTPException(status_code=404, detail='Feed session not found')
    return session


@router.get('/routes', response_model=List[CategoryRouteOut])
async def category_routes(admin: dict = Depends(get_current_admin)):
    return [
        {'category': category.value, 'stream': info.stream, 'title': info.title,
         'route': info.route, 'icon': info.icon}
        for category, info in CATEGORIES.items()
    ]


@router.get('/sessions/{session_id}', response_model=FeedOut)
async def get_feed(
    session_id: str,
    admin: dict = Depends(get_current_admin),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session(session_id, registry, admin)
    return {'session_id': session.session_id, **session.feed.snapshot()}


@router.post('/sessions/{session_id}/read/{notification_id}', response_model=MarkReadOut)
async def mark_read(
    session_id: str,
    notification_id: str,
    admin: dict = Depends(get_current_admin),
    registry: SessionRegistry = Depends(get_registry),
):
    feed = _session(session_id, registry, admin).feed
    changed = feed.mark_as_read(notification_id)
    return {'changed': changed, 'unread_count': feed.unread_count}


@router.post('/sessions/{session_id}/read-all', response_model=FeedOut)
async def mark_all_read(
    session_id: str,
    admin: dict = Depends(get_current_admin),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session(session_id, registry, admin)
    session.feed.mark_all_as_read()
    return {'session_id': session.session_id, **session.feed.snapshot()}


@router.delete('/sessions/{session_id}', response_model=FeedOut)
async def clear_notifications(
    session_id: str,
    admin: dict = Depends(get_current_admin),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session(session_id, registry, admin)
    session.feed.clear()
    return {'session_id': session.session_id, **session.feed.snapshot()}
