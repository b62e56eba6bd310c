import jwt
import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient
from sqlalchemy import func, select

import config
from catalog.auth import (
    JWT_ALGORITHM,
    create_admin_token,
    decode_admin_token,
    get_current_admin,
    hash_password,
    verify_password,
)
from catalog.models import AdminUser


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret", rounds=4)
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


@pytest.mark.asyncio
async def test_token_carries_admin_identity(admin_user):
    payload = decode_admin_token(create_admin_token(admin_user))
    assert payload["sub"] == str(admin_user.id)
    assert payload["role"] == "SUPER_ADMIN"
    assert payload["exp"] - payload["iat"] == config.ADMIN_SESSION_MAX_AGE


def test_invalid_tokens_decode_to_none():
    assert decode_admin_token(None) is None
    assert decode_admin_token("garbage") is None

    expired = jwt.encode(
        {"sub": "1", "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        config.ADMIN_JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
    assert decode_admin_token(expired) is None

    forged = jwt.encode({"sub": "1"}, "some-other-secret-that-is-long-enough", algorithm=JWT_ALGORITHM)
    assert decode_admin_token(forged) is None


@pytest.mark.asyncio
async def test_get_current_admin_requires_active_user(test_db, admin_user):
    token = create_admin_token(admin_user)
    found = await get_current_admin(test_db, token)
    assert found is not None and found.id == admin_user.id

    admin_user.status = "DISABLED"
    await test_db.commit()
    assert await get_current_admin(test_db, token) is None


@pytest.mark.asyncio
async def test_login_sets_session_cookie(client: AsyncClient, admin_user):
    response = await client.post(
        "/api/admin/login", json={"email": "Admin@Test.local", "password": "correct-horse"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "admin@test.local"
    assert data["role"] == "SUPER_ADMIN"
    assert decode_admin_token(data["token"])["sub"] == str(admin_user.id)

    cookie_header = response.headers["set-cookie"]
    assert cookie_header.startswith(f"{config.ADMIN_SESSION_COOKIE_NAME}=")
    assert "HttpOnly" in cookie_header
    assert "samesite=lax" in cookie_header.lower()
    assert "Path=/" in cookie_header
    assert f"Max-Age={config.ADMIN_SESSION_MAX_AGE}" in cookie_header


@pytest.mark.asyncio
async def test_login_failures(client: AsyncClient, admin_user):
    response = await client.post("/api/admin/login", json={"email": "admin@test.local", "password": "nope"})
    assert response.status_code == 401

    response = await client.post("/api/admin/login", json={"email": "ghost@test.local", "password": "correct-horse"})
    assert response.status_code == 401

    response = await client.post("/api/admin/login", json={"email": "admin@test.local"})
    assert response.status_code == 400

    response = await client.post("/api/admin/login", content=b"not json", headers={"content-type": "application/json"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_me_and_logout(client: AsyncClient, admin_user):
    response = await client.get("/api/admin/me")
    assert response.status_code == 401

    token = create_admin_token(admin_user)
    response = await client.get("/api/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["id"] == admin_user.id

    response = await client.post("/api/admin/logout")
    assert response.status_code == 200
    assert f"{config.ADMIN_SESSION_COOKIE_NAME}=" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_bootstrap_only_once(client: AsyncClient, test_db):
    response = await client.post("/api/admin/bootstrap", json={"name": "Owner"})
    assert response.status_code == 400

    response = await client.post(
        "/api/admin/bootstrap",
        json={"name": "Owner", "email": "Owner@Example.com", "password": "pw-123456"},
    )
    assert response.status_code == 201
    assert response.json()["role"] == "SUPER_ADMIN"

    admin = (await test_db.execute(select(AdminUser))).scalars().one()
    assert admin.email == "owner@example.com"
    assert admin.status == "ACTIVE"
    assert verify_password("pw-123456", admin.password_hash)

    response = await client.post(
        "/api/admin/bootstrap",
        json={"name": "Second", "email": "second@example.com", "password": "pw"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_bootstrap_rejects_password_over_bcrypt_limit(client: AsyncClient, test_db):
    for password in ("x" * 100, "あ" * 25):
        response = await client.post(
            "/api/admin/bootstrap",
            json={"name": "Owner", "email": "owner@example.com", "password": password},
        )
        assert response.status_code == 400
        assert "72 bytes" in response.json()["detail"]

    count = await test_db.execute(select(func.count(AdminUser.id)))
    assert count.scalar() == 0
