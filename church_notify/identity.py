"""
Client for the external identity provider's admin and REST APIs.
Calls are authorized with the service key; callers are gated in auth.py.
"""
import os
import logging
from typing import Any, Dict, List, Optional

import httpx
from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)

IDENTITY_URL = os.getenv('IDENTITY_URL', 'http://identity:54321').rstrip('/')
IDENTITY_SERVICE_KEY = os.getenv('IDENTITY_SERVICE_KEY', '')
IDENTITY_TIMEOUT = float(os.getenv('IDENTITY_TIMEOUT', '10'))


class IdentityError(Exception):

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class IdentityClient:

    def __init__(self, base_url: str = IDENTITY_URL, service_key: str = IDENTITY_SERVICE_KEY,
                 http: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip('/')
        self.service_key = service_key
        self._http = http or httpx.AsyncClient(timeout=IDENTITY_TIMEOUT)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            'apikey': self.service_key,
            'Authorization': f'Bearer {self.service_key}',
        }

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            res = await self._http.request(method, f'{self.base_url}{path}', headers=self.headers, **kwargs)
        except httpx.HTTPError as e:
            raise IdentityError(f'Identity provider unreachable: {e}', 502) from e
        if res.status_code >= 400:
            raise IdentityError(_error_message(res), res.status_code)
        if not res.content:
            return None
        return res.json()

    async def get_roles(self, user_id: str) -> List[str]:
        rows = await self._request(
            'GET', '/rest/v1/user_roles',
            params={'select': 'role', 'user_id': f'eq.{user_id}'},
        )
        return [row.get('role') for row in rows or [] if isinstance(row, dict)]

    async def list_users(self) -> List[Dict[str, Any]]:
        data = await self._request('GET', '/auth/v1/admin/users')
        if isinstance(data, dict):
            return data.get('users', [])
        return data or []

    async def create_user(self, email: str, password: str, first_name: str = '', last_name: str = '') -> Dict[str, Any]:
        return await self._request('POST', '/auth/v1/admin/users', json={
            'email': email,
            'password': password,
            'email_confirm': True,
            'user_metadata': {'first_name': first_name, 'last_name': last_name},
        })

    async def update_user(self, user_id: str, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request('PUT', f'/auth/v1/admin/users/{user_id}', json=user_data)

    async def delete_user(self, user_id: str):
        await self._request('DELETE', f'/auth/v1/admin/users/{user_id}')

    async def aclose(self):
        await self._http.aclose()


def _error_message(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        return res.text or f'Identity provider returned {res.status_code}'
    if isinstance(body, dict):
        for key in ('msg', 'message', 'error_description', 'error'):
            if body.get(key):
                return str(body[key])
    return f'Identity provider returned {res.status_code}'


def get_identity_client(conn: HTTPConnection) -> IdentityClient:
    return conn.app.state.identity
