"""
管理者認証
- パスワード: bcrypt
- セッション: HS256 署名の JWT（Cookie または Authorization: Bearer）
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from sqlalchemy.ext.asyncio import AsyncSession

import config

from .models import AdminUser

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
BOOTSTRAP_BCRYPT_ROUNDS = 12
# bcrypt は 72 バイトを超えるパスワードを受け付けない
BCRYPT_MAX_PASSWORD_BYTES = 72


class AuthConfigError(RuntimeError):
    """Raised when ADMIN_JWT_SECRET is not configured."""


def _jwt_secret() -> str:
    secret = config.ADMIN_JWT_SECRET
    if not secret:
        raise AuthConfigError("ADMIN_JWT_SECRET is not set")
    return secret


def hash_password(raw: str, *, rounds: int = BOOTSTRAP_BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(raw: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(raw.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # 壊れたハッシュは不一致扱い
        logger.warning("不正なパスワードハッシュを検出しました")
        return False


def create_admin_token(admin: AdminUser) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(admin.id),
        "role": admin.role,
        "iat": now,
        "exp": now + timedelta(seconds=config.ADMIN_SESSION_MAX_AGE),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_admin_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


async def get_current_admin(db: AsyncSession, token: Optional[str]) -> Optional[AdminUser]:
    payload = decode_admin_token(token)
    if not payload:
        return None
    try:
        admin_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None

    admin = await db.get(AdminUser, admin_id)
    if admin is None or admin.status != "ACTIVE":
        return None
    return admin
