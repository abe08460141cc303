import os

# Configure test environment before the app modules read it
os.environ.setdefault('CHANGE_SOURCE', 'memory')
os.environ.setdefault('METRICS_PORT', '0')
os.environ.setdefault('SUBSCRIBE_RETRY_DELAY', '0')
os.environ.setdefault('JWT_SECRET', 'test-secret')
os.environ.setdefault('IDENTITY_URL', 'http://identity.test')
os.environ.setdefault('IDENTITY_SERVICE_KEY', 'service-key')

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from church_notify.auth import create_access_token  # noqa: E402
from church_notify.identity import IdentityError, get_identity_client  # noqa: E402
from church_notify.main import app  # noqa: E402
from church_notify.sources.memory import MemoryChangeSource  # noqa: E402
from church_notify.ws_manager import SessionRegistry  # noqa: E402


class FakeIdentity:
    """Stands in for the identity provider; records admin API calls"""

    def __init__(self):
        self.roles = {'admin-1': ['admin'], 'admin-2': ['admin'], 'member-1': ['member']}
        self.users = [{'id': 'u1', 'email': 'amina@example.com'}]
        self.calls = []
        self.fail_with = None
        self.fail_status = 422

    def _maybe_fail(self):
        if self.fail_with:
            raise IdentityError(self.fail_with, self.fail_status)

    async def get_roles(self, user_id):
        return self.roles.get(user_id, [])

    async def list_users(self):
        self._maybe_fail()
        self.calls.append(('list',))
        return self.users

    async def create_user(self, email, password, first_name='', last_name=''):
        self._maybe_fail()
        self.calls.append(('create', email, password, first_name, last_name))
        return {'id': 'u2', 'email': email, 'user_metadata': {'first_name': first_name, 'last_name': last_name}}

    async def update_user(self, user_id, user_data):
        self._maybe_fail()
        self.calls.append(('update', user_id, user_data))
        return {'id': user_id, **user_data}

    async def delete_user(self, user_id):
        self._maybe_fail()
        self.calls.append(('delete', user_id))

    async def aclose(self):
        pass


def auth_header(sub):
    return {'Authorization': f"Bearer {create_access_token({'sub': sub})}"}


@pytest.fixture
def identity():
    fake = FakeIdentity()
    app.dependency_overrides[get_identity_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_identity_client, None)


@pytest.fixture
def admin_headers():
    return auth_header('admin-1')


@pytest.fixture
def member_headers():
    return auth_header('member-1')


@pytest_asyncio.fixture
async def registry():
    """Registry over an in-memory source, installed on the app for REST tests"""
    reg = SessionRegistry(MemoryChangeSource())
    app.state.registry = reg
    yield reg
    await reg.close_all()


@pytest_asyncio.fixture
async def api(identity):
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac


@pytest.fixture
def client(identity):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def headers_for():
    return auth_header
