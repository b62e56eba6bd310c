"""
ORM オブジェクト -> JSON 化可能な dict

リレーションは呼び出し側で selectinload 済みのものだけを参照すること
（AsyncSession では遅延ロードできない）。
"""
from typing import Any, Dict, Iterable, Optional

from .models import (
    Ad,
    AdminUser,
    Bookmark,
    Category,
    Comment,
    Content,
    ContentLink,
    ContentReport,
    Partner,
    SiteSettings,
)
from .site_settings import SITE_SETTINGS_FIELDS
from .utility import isoformat


def serialize_category(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "type_scope": category.type_scope,
        "sort_order": category.sort_order,
        "created_at": isoformat(category.created_at),
    }


def serialize_content_summary(content: Content, *, with_type: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": content.id, "title": content.title, "slug": content.slug}
    if with_type:
        data["type"] = content.type
    return data


def serialize_partner_summary(partner: Optional[Partner], *, with_logo: bool = False) -> Optional[Dict[str, Any]]:
    if partner is None:
        return None
    data: Dict[str, Any] = {
        "id": partner.id,
        "name": partner.name,
        "is_verified": partner.is_verified,
    }
    if with_logo:
        data["logo_url"] = partner.logo_url
    return data


def serialize_link(
    link: ContentLink,
    *,
    partner: bool = False,
    partner_logo: bool = False,
    content: bool = False,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": link.id,
        "content_id": link.content_id,
        "partner_id": link.partner_id,
        "url": link.url,
        "source_name": link.source_name,
        "link_type": link.link_type,
        "status": link.status,
        "priority": link.priority,
        "click_count": link.click_count,
        "created_at": isoformat(link.created_at),
        "updated_at": isoformat(link.updated_at),
    }
    if partner:
        data["partner"] = serialize_partner_summary(link.partner, with_logo=partner_logo)
    if content:
        data["content"] = serialize_content_summary(link.content)
    return data


def serialize_content(
    content: Content,
    *,
    categories: bool = False,
    links: Optional[Iterable[ContentLink]] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": content.id,
        "title": content.title,
        "slug": content.slug,
        "type": content.type,
        "image_url": content.image_url,
        "description": content.description,
        "external_url": content.external_url,
        "status": content.status,
        "direct_redirect": content.direct_redirect,
        "tags": content.tags,
        "rating": content.rating,
        "views_total": content.views_total,
        "clicks_total": content.clicks_total,
        "created_at": isoformat(content.created_at),
        "updated_at": isoformat(content.updated_at),
    }
    if categories:
        data["categories"] = [
            {
                "content_id": entry.content_id,
                "category_id": entry.category_id,
                "category": serialize_category(entry.category),
            }
            for entry in content.categories
        ]
    if links is not None:
        data["links"] = [serialize_link(link) for link in links]
    return data


def serialize_partner(partner: Partner, *, link_count: Optional[int] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": partner.id,
        "name": partner.name,
        "slug": partner.slug,
        "website_url": partner.website_url,
        "logo_url": partner.logo_url,
        "is_verified": partner.is_verified,
        "priority_score": partner.priority_score,
        "description": partner.description,
        "created_at": isoformat(partner.created_at),
        "updated_at": isoformat(partner.updated_at),
    }
    if link_count is not None:
        data["link_count"] = link_count
    return data


def serialize_report(report: ContentReport) -> Dict[str, Any]:
    return {
        "id": report.id,
        "content_id": report.content_id,
        "reason": report.reason,
        "details": report.details,
        "reporter_ip": report.reporter_ip,
        "status": report.status,
        "created_at": isoformat(report.created_at),
        "content": serialize_content_summary(report.content, with_type=True) if report.content else None,
    }


def serialize_comment(comment: Comment, *, content: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": comment.id,
        "content_id": comment.content_id,
        "parent_id": comment.parent_id,
        "name": comment.name,
        "email": comment.email,
        "body": comment.body,
        "status": comment.status,
        "created_at": isoformat(comment.created_at),
    }
    if content:
        data["content"] = serialize_content_summary(comment.content) if comment.content else None
    return data


def serialize_bookmark(bookmark: Bookmark) -> Dict[str, Any]:
    target = bookmark.content
    return {
        "id": bookmark.id,
        "user_id": bookmark.user_id,
        "content_id": bookmark.content_id,
        "created_at": isoformat(bookmark.created_at),
        "content": {
            "id": target.id,
            "title": target.title,
            "slug": target.slug,
            "type": target.type,
            "image_url": target.image_url,
        } if target else None,
    }


def serialize_ad(ad: Ad) -> Dict[str, Any]:
    return {
        "id": ad.id,
        "position": ad.position,
        "type": ad.type,
        "image_url": ad.image_url,
        "script_code": ad.script_code,
        "target_url": ad.target_url,
        "is_active": ad.is_active,
        "start_date": isoformat(ad.start_date),
        "end_date": isoformat(ad.end_date),
        "sort_order": ad.sort_order,
        "created_at": isoformat(ad.created_at),
    }


def serialize_site_settings(settings: SiteSettings) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": settings.id, "site_name": settings.site_name}
    for field in SITE_SETTINGS_FIELDS:
        data[field] = getattr(settings, field)
    data["updated_at"] = isoformat(settings.updated_at)
    return data


def serialize_admin(admin: AdminUser) -> Dict[str, Any]:
    return {"id": admin.id, "name": admin.name, "email": admin.email, "role": admin.role}
