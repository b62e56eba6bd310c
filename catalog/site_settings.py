import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config

from .models import SiteSettings

logger = logging.getLogger(__name__)

# site_name 以外の、null でクリアできる項目
SITE_SETTINGS_FIELDS = (
    "logo_url",
    "google_analytics_id",
    "header_ad_html",
    "footer_ad_html",
    "banner_title",
    "banner_subtitle",
    "banner_description",
    "banner_bg_color",
    "banner_bg_image",
    "banner_text_color",
    "banner_btn1_text",
    "banner_btn1_link",
    "banner_btn1_color",
    "banner_btn2_text",
    "banner_btn2_link",
    "banner_btn2_color",
    "header_bg_color",
    "header_text_color",
    "footer_bg_color",
    "footer_text_color",
    "footer_description",
)


async def get_or_create_site_settings(db: AsyncSession) -> SiteSettings:
    result = await db.execute(select(SiteSettings).order_by(SiteSettings.id).limit(1))
    settings = result.scalars().first()
    if settings is not None:
        return settings

    settings = SiteSettings(site_name=config.DEFAULT_SITE_NAME)
    db.add(settings)
    await db.commit()
    logger.info("サイト設定を初期化しました: %s", settings.site_name)
    return settings


def apply_site_settings_update(
    settings: SiteSettings,
    values: Mapping[str, Any],
    provided: Iterable[str],
) -> SiteSettings:
    """
    provided: リクエストボディに実際に含まれていたキー
    - site_name は null 以外が来たときだけ更新
    - それ以外はキーがあれば null でも上書き（クリア）
    """
    provided_keys = set(provided)
    site_name = values.get("site_name")
    if site_name is not None:
        settings.site_name = site_name
    for field in SITE_SETTINGS_FIELDS:
        if field in provided_keys:
            setattr(settings, field, values.get(field))
    return settings
