import os

# 管理者トークンの署名鍵（main / config の import より前に設定する）
os.environ.setdefault("ADMIN_JWT_SECRET", "test-secret-key-for-admin-sessions-0123456789")

import pytest_asyncio
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import config
from catalog.auth import create_admin_token, hash_password
from catalog.models import AdminUser
from main import app, init_database, _configure_sqlite_connection

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _configure_sqlite_connection(engine)
    # Patch main.engine so init_database uses our test engine
    with patch("main.engine", engine):
        await init_database()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    # Patch get_db_session because endpoints call it directly
    with patch("main.get_db_session", side_effect=session_factory):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest_asyncio.fixture(scope="function")
async def admin_user(test_db):
    admin = AdminUser(
        name="Test Admin",
        email="admin@test.local",
        password_hash=hash_password("correct-horse", rounds=4),
        role="SUPER_ADMIN",
        status="ACTIVE",
    )
    test_db.add(admin)
    await test_db.commit()
    return admin


@pytest_asyncio.fixture(scope="function")
async def admin_client(client, admin_user):
    client.cookies.set(config.ADMIN_SESSION_COOKIE_NAME, create_admin_token(admin_user))
    return client


@pytest_asyncio.fixture(scope="function")
async def make_content(test_db):
    from catalog.models import Content

    counter = {"n": 0}

    async def _make(title=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        title = title or f"Title {n}"
        values = {
            "title": title,
            "slug": fields.pop("slug", None) or f"title-{n}",
            "type": "MANGA",
            "image_url": f"https://img.test/{n}.jpg",
            "external_url": f"https://external.test/{n}",
            "status": "PUBLISHED",
        }
        values.update(fields)
        content = Content(**values)
        test_db.add(content)
        await test_db.commit()
        return content

    return _make
