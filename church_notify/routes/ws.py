import asyncio
import json
import logging
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from ..auth import decode_token, is_admin
from ..feed import NotificationFeed
from ..identity import IdentityClient, get_identity_client
from ..ws_manager import FeedSession, SessionRegistry, get_registry

logger = logging.getLogger(__name__)

router = APIRouter()


def handle_command(session: FeedSession, data) -> dict:
    """Apply one client command to the session feed and build the reply"""
    feed: NotificationFeed = session.feed
    action = data.get('action') if isinstance(data, dict) else None
    if action == 'mark_read':
        feed.mark_as_read(str(data.get('id')))
    elif action == 'mark_all_read':
        feed.mark_all_as_read()
    elif action == 'clear':
        feed.clear()
    elif action == 'select':
        route = feed.select(str(data.get('id')))
        if route is None:
            return {'event': 'error', 'detail': 'Unknown notification'}
        return {'event': 'navigate', 'route': route, 'unread_count': feed.unread_count}
    else:
        return {'event': 'error', 'detail': f'Unknown action: {action}'}
    return session.snapshot()


async def _forward(websocket: WebSocket, session: FeedSession):
    while True:
        message = await session.outbox.get()
        await websocket.send_json(message)


@router.websocket('/notifications')
async def notifications_ws(
    websocket: WebSocket,
    token: str = Query(None),
    registry: SessionRegistry = Depends(get_registry),
    identity: IdentityClient = Depends(get_identity_client),
):
    user = decode_token(token) if token else None
    if not user or not user.get('sub') or not await is_admin(user, identity):
        await websocket.close(code=1008)
        return

    await websocket.accept()
    session = await registry.open(user['sub'])
    forwarder = asyncio.create_task(_forward(websocket, session))
    try:
        await websocket.send_json(session.snapshot())
        while True:
            try:
                data = json.loads(await websocket.receive_text())
            except ValueError:
                await websocket.send_json({'event': 'error', 'detail': 'Invalid JSON'})
                continue
            await websocket.send_json(handle_command(session, data))
    except WebSocketDisconnect:
        logger.debug(f"Feed session {session.session_id} disconnected")
    finally:
        forwarder.cancel()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Forwarder for {session.session_id} ended with {e}")
        await registry.close(session.session_id)
