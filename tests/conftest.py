import os
import time
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Test settings; must be set before app.core.config is first imported
os.environ.setdefault("MONGODB_DB_NAME", "imagestudio_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("POLAR_WEBHOOK_SECRET", "polar_whs_test_secret")
os.environ.setdefault("ASSET_BACKEND", "local")
os.environ.setdefault("ASSET_LOCAL_PATH", "/tmp/imagestudio-test-uploads")

WEBHOOK_SECRET = os.environ["POLAR_WEBHOOK_SECRET"]


class FakeAssetStore:
    """Records calls; delete/render can be told to fail."""

    def __init__(self) -> None:
        self.deleted: list[str] = []
        self.rendered: list[tuple[str, str]] = []
        self.fail_delete = False
        self.fail_render = False

    def upload_auth(self) -> dict[str, Any]:
        return {"token": "tok", "expire": 0, "signature": "sig", "public_key": "pk", "url_endpoint": "https://cdn.test"}

    def url_for(self, file_path: str, transformation: str = "") -> str:
        url = f"https://cdn.test/{file_path.lstrip('/')}"
        return f"{url}?tr={transformation}" if transformation else url

    async def render(self, file_path: str, transformation: str) -> str:
        if self.fail_render:
            raise RuntimeError("render backend down")
        self.rendered.append((file_path, transformation))
        return self.url_for(file_path, transformation)

    async def delete(self, asset_id: str) -> None:
        if self.fail_delete:
            raise RuntimeError("asset backend down")
        self.deleted.append(asset_id)

    async def aclose(self) -> None:
        return None


@pytest_asyncio.fixture
async def db():
    from mongomock_motor import AsyncMongoMockClient

    from app.core.config import get_settings
    from app.db.init import init_db

    client = AsyncMongoMockClient()
    await init_db(client=client)
    yield client
    await client.drop_database(get_settings().mongodb_db_name)


@pytest.fixture
def asset_store() -> FakeAssetStore:
    return FakeAssetStore()


@pytest_asyncio.fixture
async def make_user(db):
    from app.models.user import User

    counter = {"n": 0}

    async def _make(credits: int = 0, email: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            credits=credits,
        )
        await user.insert()
        return user

    return _make


@pytest_asyncio.fixture
async def make_project(db):
    from app.models.project import Project

    async def _make(user, **kwargs) -> Project:
        project = Project(
            user_id=user.id,
            image_url=kwargs.get("image_url", "https://cdn.test/uploads/cat.jpg"),
            image_kit_id=kwargs.get("image_kit_id", "file_123"),
            file_path=kwargs.get("file_path", "/uploads/cat.jpg"),
            name=kwargs.get("name", "cat.jpg"),
        )
        await project.insert()
        return project

    return _make


@pytest_asyncio.fixture
async def client(db, asset_store) -> AsyncGenerator[AsyncClient, None]:
    from app.deps import get_asset_store
    from app.main import app

    app.dependency_overrides[get_asset_store] = lambda: asset_store
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


def login_as(client: AsyncClient, user) -> None:
    from app.core.security import create_session_cookie
    from app.deps import SESSION_COOKIE_NAME
    from app.services.users import session_payload_for_user

    client.cookies.clear()
    client.cookies.set(SESSION_COOKIE_NAME, create_session_cookie(session_payload_for_user(user)))


def signed_webhook_headers(payload: bytes, msg_id: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> dict:
    from app.core.security import sign_webhook

    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": str(ts),
        "webhook-signature": f"v1,{sign_webhook(secret, msg_id, ts, payload)}",
        "content-type": "application/json",
    }
