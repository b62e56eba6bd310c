from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Ad
from .serializers import serialize_ad
from .utility import utcnow


async def list_active_ads(db: AsyncSession, position: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """掲載期間内の有効な広告（sort_order, id 順）"""
    now = now or utcnow()
    result = await db.execute(
        select(Ad)
        .where(
            Ad.position == position,
            Ad.is_active.is_(True),
            or_(Ad.start_date.is_(None), Ad.start_date <= now),
            or_(Ad.end_date.is_(None), Ad.end_date >= now),
        )
        .order_by(Ad.sort_order.asc(), Ad.id.asc())
    )
    return [serialize_ad(ad) for ad in result.scalars()]
