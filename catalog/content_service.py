"""
公開側のコンテンツ検索・詳細・リンク選択
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import config

from .models import Category, Content, ContentCategory, ContentLink, Partner
from .serializers import (
    serialize_category,
    serialize_content,
    serialize_content_summary,
    serialize_link,
)

HOME_SECTION_SIZE = 8
HOME_CATEGORY_LIMIT = 10
SUGGESTION_LIMIT = 6

# 詳細ページのリンク表示順
_LINK_STATUS_ORDER = case(
    (ContentLink.status == "VERIFIED", 0),
    (ContentLink.status == "UNVERIFIED", 1),
    else_=2,
)


def _with_categories():
    return selectinload(Content.categories).selectinload(ContentCategory.category)


def _published(content_type: Optional[str] = None):
    stmt = select(Content).where(Content.status == "PUBLISHED")
    if content_type:
        stmt = stmt.where(Content.type == content_type)
    return stmt


async def list_public_content(
    db: AsyncSession,
    content_type: str,
    *,
    category_slug: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = "new",
    page: int = 1,
    page_size: int = config.PUBLIC_PAGE_SIZE,
) -> Dict[str, Any]:
    conditions = [Content.status == "PUBLISHED", Content.type == content_type]
    if search:
        # unicode_lower() は接続時に登録（main._configure_sqlite_connection）
        conditions.append(func.unicode_lower(Content.title).contains(search.lower(), autoescape=True))
    if category_slug:
        conditions.append(
            Content.id.in_(
                select(ContentCategory.content_id)
                .join(Category, Category.id == ContentCategory.category_id)
                .where(Category.slug == category_slug)
            )
        )

    if sort == "az":
        order_by = [Content.title.asc(), Content.id.asc()]
    elif sort == "views":
        order_by = [Content.views_total.desc(), Content.id.desc()]
    else:
        order_by = [Content.created_at.desc(), Content.id.desc()]

    total_result = await db.execute(select(func.count(Content.id)).where(*conditions))
    total = total_result.scalar() or 0

    result = await db.execute(
        select(Content)
        .where(*conditions)
        .options(_with_categories())
        .order_by(*order_by)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [serialize_content(content, categories=True) for content in result.scalars()]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


async def list_public_categories_for_type(db: AsyncSession, content_type: str) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Category)
        .where(Category.type_scope.in_((content_type, "UNIVERSAL")))
        .order_by(Category.sort_order.asc(), Category.id.asc())
    )
    return [serialize_category(category) for category in result.scalars()]


async def get_home_sections(db: AsyncSession) -> Dict[str, Any]:
    sections: Dict[str, Any] = {}
    for key, content_type in (("latest_manga", "MANGA"), ("latest_anime", "ANIME"), ("latest_movies", "MOVIE")):
        result = await db.execute(
            _published(content_type)
            .order_by(Content.created_at.desc(), Content.id.desc())
            .limit(HOME_SECTION_SIZE)
        )
        sections[key] = [serialize_content(content) for content in result.scalars()]

    trending = await db.execute(
        _published().order_by(Content.created_at.desc(), Content.id.desc()).limit(HOME_SECTION_SIZE)
    )
    sections["trending"] = [serialize_content(content) for content in trending.scalars()]

    categories = await db.execute(
        select(Category).order_by(Category.sort_order.asc(), Category.id.asc()).limit(HOME_CATEGORY_LIMIT)
    )
    sections["categories"] = [serialize_category(category) for category in categories.scalars()]
    return sections


async def get_published_content(db: AsyncSession, slug: str) -> Optional[Content]:
    result = await db.execute(select(Content).where(Content.slug == slug))
    content = result.scalars().first()
    if content is None or content.status != "PUBLISHED":
        return None
    return content


async def get_public_content_detail(db: AsyncSession, slug: str) -> Optional[Dict[str, Any]]:
    result = await db.execute(select(Content).where(Content.slug == slug).options(_with_categories()))
    content = result.scalars().first()
    if content is None or content.status != "PUBLISHED":
        return None

    links_result = await db.execute(
        select(ContentLink)
        .where(ContentLink.content_id == content.id)
        .options(selectinload(ContentLink.partner))
        .order_by(_LINK_STATUS_ORDER, ContentLink.priority.desc(), ContentLink.created_at.desc())
    )
    links = [serialize_link(link, partner=True, partner_logo=True) for link in links_result.scalars()]

    category_ids = [entry.category_id for entry in content.categories]
    related = [Content.type == content.type]
    if category_ids:
        related.append(
            Content.id.in_(
                select(ContentCategory.content_id).where(ContentCategory.category_id.in_(category_ids))
            )
        )
    suggestions_result = await db.execute(
        select(Content)
        .where(Content.id != content.id, Content.status == "PUBLISHED", or_(*related))
        .order_by(Content.views_total.desc(), Content.id.asc())
        .limit(SUGGESTION_LIMIT)
    )
    suggestions = []
    for item in suggestions_result.scalars():
        summary = serialize_content_summary(item, with_type=True)
        summary["image_url"] = item.image_url
        suggestions.append(summary)

    data = serialize_content(content, categories=True)
    data["links"] = links
    data["tag_list"] = [tag.strip() for tag in (content.tags or "").split(",") if tag.strip()]
    data["suggestions"] = suggestions
    return data


async def list_verified_links(db: AsyncSession, content_id: int) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(ContentLink)
        .outerjoin(Partner, Partner.id == ContentLink.partner_id)
        .where(ContentLink.content_id == content_id, ContentLink.status == "VERIFIED")
        .options(selectinload(ContentLink.partner))
        .order_by(
            ContentLink.priority.desc(),
            func.coalesce(Partner.priority_score, 0).desc(),
            ContentLink.created_at.desc(),
        )
    )
    return [serialize_link(link, partner=True, partner_logo=True) for link in result.scalars()]


async def select_redirect_link(db: AsyncSession, content_id: int) -> Optional[ContentLink]:
    result = await db.execute(
        select(ContentLink)
        .where(ContentLink.content_id == content_id, ContentLink.status == "VERIFIED")
        .options(selectinload(ContentLink.partner))
        .order_by(ContentLink.priority.desc(), ContentLink.created_at.desc(), ContentLink.id.desc())
        .limit(1)
    )
    return result.scalars().first()
