import os
import logging
from jose import jwt, JWTError
from datetime import datetime, timedelta
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from .identity import IdentityClient, IdentityError, get_identity_client

logger = logging.getLogger(__name__)

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
# identity provider access tokens carry aud=authenticated; empty disables the check
JWT_AUDIENCE = os.getenv('JWT_AUDIENCE', 'authenticated')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', '60'))

ADMIN_ROLE = 'admin'

bearer = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    if JWT_AUDIENCE:
        to_encode.setdefault('aud', JWT_AUDIENCE)
    return jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)


def decode_token(token: str):
    try:
        if JWT_AUDIENCE:
            return jwt.decode(token, SECRET, algorithms=[ALGORITHM], audience=JWT_AUDIENCE)
        return jwt.decode(token, SECRET, algorithms=[ALGORITHM], options={'verify_aud': False})
    except JWTError:
        return None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail='No authorization header')
    claims = decode_token(credentials.credentials)
    if not claims or not claims.get('sub'):
        raise HTTPException(status_code=401, detail='Unauthorized')
    return claims


async def is_admin(user: dict, identity: IdentityClient) -> bool:
    try:
        roles = await identity.get_roles(user['sub'])
    except IdentityError as e:
        logger.warning(f"Role lookup failed for {user.get('sub')}: {e}")
        return False
    return ADMIN_ROLE in roles


async def get_current_admin(
    user: dict = Depends(get_current_user),
    identity: IdentityClient = Depends(get_identity_client),
) -> dict:
    if not await is_admin(user, identity):
        raise HTTPException(status_code=403, detail='Forbidden: Admin access required')
    return user
