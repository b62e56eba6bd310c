"""
閲覧数・クリック数の集計

日次カウンタ（content_stats）と累計カウンタ（contents.views_total /
clicks_total）は必ず同じトランザクションで更新する。
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Content, ContentLink, ContentStats, LinkClick
from .utility import today_date_key

logger = logging.getLogger(__name__)

TOP_CONTENT_LIMIT = 20

_TOTAL_COLUMNS = {"views": "views_total", "clicks": "clicks_total"}


class ContentNotFoundError(LookupError):
    """Raised when a counter is bumped for a content id that does not exist."""

    def __init__(self, content_id: int) -> None:
        super().__init__(f"content {content_id} does not exist")
        self.content_id = content_id


async def _bump_counter(db: AsyncSession, content_id: int, counter: str, day: date) -> None:
    total_column = _TOTAL_COLUMNS[counter]
    total_attr = getattr(Content, total_column)
    result = await db.execute(
        update(Content)
        .where(Content.id == content_id)
        .values({total_column: total_attr + 1, "updated_at": Content.updated_at})
    )
    if result.rowcount == 0:
        raise ContentNotFoundError(content_id)

    initial = {"views": 0, "clicks": 0}
    initial[counter] = 1
    stmt = sqlite_insert(ContentStats).values(content_id=content_id, date=day, **initial)
    stmt = stmt.on_conflict_do_update(
        index_elements=["content_id", "date"],
        set_={counter: getattr(ContentStats, counter) + 1},
    )
    await db.execute(stmt)


async def increment_content_view(db: AsyncSession, content_id: int, *, day: Optional[date] = None) -> None:
    try:
        await _bump_counter(db, content_id, "views", day or today_date_key())
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def increment_content_click(db: AsyncSession, content_id: int, *, day: Optional[date] = None) -> None:
    try:
        await _bump_counter(db, content_id, "clicks", day or today_date_key())
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def record_link_click(
    db: AsyncSession,
    content_id: int,
    link_id: int,
    *,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
    referrer: Optional[str] = None,
    log_click: bool = False,
    day: Optional[date] = None,
) -> None:
    """
    リダイレクト時のクリック記録
    - 日次/累計クリック数
    - リンク個別の click_count
    - log_click=True のときはアクセス元（UA/IP/Referer）も保存
    """
    try:
        await _bump_counter(db, content_id, "clicks", day or today_date_key())
        await db.execute(
            update(ContentLink)
            .where(ContentLink.id == link_id)
            .values(click_count=ContentLink.click_count + 1, updated_at=ContentLink.updated_at)
        )
        if log_click:
            db.add(
                LinkClick(
                    link_id=link_id,
                    content_id=content_id,
                    user_agent=user_agent,
                    ip_address=ip_address,
                    referrer=referrer,
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise


def normalise_range_days(days: int) -> int:
    return days if days in (30, 90) else 7


async def get_analytics_overview(db: AsyncSession, days: int) -> Dict[str, Any]:
    range_days = normalise_range_days(days)
    # 今日を含めて range_days 日分（UTC の日付単位）
    start = today_date_key() - timedelta(days=range_days - 1)

    views_sum = func.coalesce(func.sum(ContentStats.views), 0)
    clicks_sum = func.coalesce(func.sum(ContentStats.clicks), 0)

    daily_result = await db.execute(
        select(ContentStats.date, views_sum.label("views"), clicks_sum.label("clicks"))
        .where(ContentStats.date >= start)
        .group_by(ContentStats.date)
        .order_by(ContentStats.date.asc())
    )
    daily = [
        {"date": row.date.isoformat(), "views": int(row.views), "clicks": int(row.clicks)}
        for row in daily_result
    ]

    total_views = views_sum.label("total_views")
    total_clicks = clicks_sum.label("total_clicks")
    grouped_result = await db.execute(
        select(ContentStats.content_id, total_views, total_clicks)
        .where(ContentStats.date >= start)
        .group_by(ContentStats.content_id)
        .order_by(total_clicks.desc(), total_views.desc(), ContentStats.content_id.asc())
        .limit(TOP_CONTENT_LIMIT)
    )
    grouped = grouped_result.all()

    content_by_id: Dict[int, Content] = {}
    content_ids = [row.content_id for row in grouped]
    if content_ids:
        contents = await db.execute(select(Content).where(Content.id.in_(content_ids)))
        content_by_id = {content.id: content for content in contents.scalars()}

    top_content: List[Dict[str, Any]] = []
    for row in grouped:
        content = content_by_id.get(row.content_id)
        if content is None:
            logger.warning("集計対象のコンテンツが存在しません: content_id=%s", row.content_id)
            continue
        views = int(row.total_views)
        clicks = int(row.total_clicks)
        top_content.append(
            {
                "id": content.id,
                "title": content.title,
                "slug": content.slug,
                "type": content.type,
                "total_views": views,
                "total_clicks": clicks,
                "ctr": clicks / views if views > 0 else 0,
            }
        )

    return {"range_days": range_days, "daily": daily, "top_content": top_content}
