"""Utility helpers shared by the route handlers."""
from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# http(s)://… / www.… / 裸のドメイン (example.com/path)
_URL_RE = re.compile(
    r"(?:https?://|www\.)\S+"
    r"|(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}(?:/\S*)?",
    re.IGNORECASE,
)
_WHITESPACE_RE = re.compile(r"\s+")


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_date_key() -> date:
    return datetime.now(timezone.utc).date()


def slugify(value: str) -> str:
    normalised = unicodedata.normalize("NFKD", value or "")
    ascii_only = normalised.encode("ascii", "ignore").decode("ascii").lower()
    slug = _SLUG_STRIP_RE.sub("-", ascii_only).strip("-")
    return slug or "item"


async def unique_slug(
    db: AsyncSession,
    model: Any,
    base: str,
    *,
    exclude_id: Optional[int] = None,
) -> str:
    """
    base, base-2, base-3 ... の順に、他の行が使っていないスラッグを探す
    exclude_id: 自分自身（更新時）は衝突とみなさない
    """
    slug = base
    counter = 2
    while True:
        result = await db.execute(select(model.id).where(model.slug == slug))
        owner_id = result.scalar()
        if owner_id is None or owner_id == exclude_id:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def client_ip(headers: Mapping[str, str]) -> Optional[str]:
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    return real_ip.strip() if real_ip and real_ip.strip() else None


def remove_urls(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", _URL_RE.sub("", text or "")).strip()


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def parse_optional_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO8601 文字列 -> naive UTC datetime
    空文字 / None は None、解釈できない値は ValueError
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()
