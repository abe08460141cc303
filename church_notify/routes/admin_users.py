"""
Admin user management, fronting the identity provider's admin API.
Only callers holding the admin role get past get_current_admin.
"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from ..auth import get_current_admin
from ..identity import IdentityClient, IdentityError, get_identity_client
from ..schemas.users import ManageUsersIn

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({'error': message}, status_code=status_code)


@router.post('/users')
async def manage_users(
    payload: ManageUsersIn,
    admin: dict = Depends(get_current_admin),
    identity: IdentityClient = Depends(get_identity_client),
):
    try:
        if payload.action == 'list':
            return {'users': await identity.list_users()}

        if payload.action == 'update':
            if not payload.user_id or not payload.user_data:
                return _error('Missing userId or userData', 400)
            user = await identity.update_user(payload.user_id, payload.user_data)
            return {'user': user}

        if payload.action == 'delete':
            if not payload.user_id:
                return _error('Missing userId', 400)
            await identity.delete_user(payload.user_id)
            logger.info({'msg': 'user_deleted', 'user_id': payload.user_id, 'by': admin['sub']})
            return {'success': True}

        if payload.action == 'create':
            data = payload.user_data or {}
            if not data.get('email') or not data.get('password'):
                return _error('Missing email or password', 400)
            user = await identity.create_user(
                data['email'],
                data['password'],
                first_name=data.get('first_name') or '',
                last_name=data.get('last_name') or '',
            )
            logger.info({'msg': 'user_created', 'email': data['email'], 'by': admin['sub']})
            return {'user': user}

        return _error('Invalid action', 400)
    except IdentityError as e:
        logger.error(f"User management action {payload.action} failed ({e.status_code}): {e}")
        # provider rejections surface as 500; an unreachable provider keeps its 502
        return _error(str(e), e.status_code if e.status_code >= 500 else 500)
