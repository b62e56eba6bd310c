import pytest
from datetime import timedelta
from sqlalchemy import func, select

from catalog.analytics import (
    TOP_CONTENT_LIMIT,
    ContentNotFoundError,
    get_analytics_overview,
    increment_content_click,
    increment_content_view,
    normalise_range_days,
    record_link_click,
)
from catalog.models import Content, ContentLink, ContentStats, LinkClick
from catalog.utility import today_date_key


async def _stats_rows(db, content_id):
    result = await db.execute(
        select(ContentStats.date, ContentStats.views, ContentStats.clicks)
        .where(ContentStats.content_id == content_id)
        .order_by(ContentStats.date)
    )
    return [tuple(row) for row in result.all()]


async def _totals(db, content_id):
    result = await db.execute(
        select(Content.views_total, Content.clicks_total).where(Content.id == content_id)
    )
    return tuple(result.one())


@pytest.mark.asyncio
async def test_view_creates_then_increments_daily_row(test_db, make_content):
    content = await make_content()
    today = today_date_key()

    await increment_content_view(test_db, content.id)
    assert await _stats_rows(test_db, content.id) == [(today, 1, 0)]

    await increment_content_view(test_db, content.id)
    await increment_content_click(test_db, content.id)
    assert await _stats_rows(test_db, content.id) == [(today, 2, 1)]
    assert await _totals(test_db, content.id) == (2, 1)


@pytest.mark.asyncio
async def test_click_on_new_day_creates_separate_row(test_db, make_content):
    content = await make_content()
    yesterday = today_date_key() - timedelta(days=1)

    await increment_content_click(test_db, content.id, day=yesterday)
    await increment_content_click(test_db, content.id)

    rows = await _stats_rows(test_db, content.id)
    assert rows == [(yesterday, 0, 1), (today_date_key(), 0, 1)]
    assert await _totals(test_db, content.id) == (0, 2)


@pytest.mark.asyncio
async def test_unknown_content_raises_and_writes_nothing(test_db):
    with pytest.raises(ContentNotFoundError):
        await increment_content_view(test_db, 9999)

    count = await test_db.execute(select(func.count(ContentStats.id)))
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_record_link_click_counts_everything(test_db, make_content):
    content = await make_content()
    link = ContentLink(
        content_id=content.id, url="https://read.test/1", source_name="Reader",
        link_type="READ", status="VERIFIED",
    )
    test_db.add(link)
    await test_db.commit()

    await record_link_click(
        test_db, content.id, link.id,
        user_agent="pytest", ip_address="10.0.0.1", referrer="https://ref.test", log_click=True,
    )
    await record_link_click(test_db, content.id, link.id)

    click_count = await test_db.execute(select(ContentLink.click_count).where(ContentLink.id == link.id))
    assert click_count.scalar() == 2
    assert await _totals(test_db, content.id) == (0, 2)
    assert await _stats_rows(test_db, content.id) == [(today_date_key(), 0, 2)]

    clicks = (await test_db.execute(select(LinkClick))).scalars().all()
    assert len(clicks) == 1
    assert clicks[0].ip_address == "10.0.0.1"
    assert clicks[0].user_agent == "pytest"
    assert clicks[0].referrer == "https://ref.test"


def test_normalise_range_days():
    assert normalise_range_days(7) == 7
    assert normalise_range_days(30) == 30
    assert normalise_range_days(90) == 90
    assert normalise_range_days(14) == 7
    assert normalise_range_days(0) == 7


@pytest.mark.asyncio
async def test_overview_window_and_ranking(test_db, make_content):
    popular = await make_content("Popular", type="ANIME")
    quiet = await make_content("Quiet")
    today = today_date_key()

    # 7日窓の先頭（6日前）は含まれ、7日前は含まれない
    test_db.add_all([
        ContentStats(content_id=popular.id, date=today, views=10, clicks=4),
        ContentStats(content_id=popular.id, date=today - timedelta(days=6), views=10, clicks=1),
        ContentStats(content_id=popular.id, date=today - timedelta(days=7), views=100, clicks=100),
        ContentStats(content_id=quiet.id, date=today, views=0, clicks=0),
    ])
    await test_db.commit()

    overview = await get_analytics_overview(test_db, 7)
    assert overview["range_days"] == 7
    assert overview["daily"] == [
        {"date": (today - timedelta(days=6)).isoformat(), "views": 10, "clicks": 1},
        {"date": today.isoformat(), "views": 10, "clicks": 4},
    ]

    top = overview["top_content"]
    assert [item["id"] for item in top] == [popular.id, quiet.id]
    assert top[0]["total_views"] == 20
    assert top[0]["total_clicks"] == 5
    assert top[0]["ctr"] == pytest.approx(0.25)
    assert top[0]["type"] == "ANIME"
    assert top[1]["ctr"] == 0

    wide = await get_analytics_overview(test_db, 30)
    assert wide["range_days"] == 30
    assert wide["top_content"][0]["total_clicks"] == 105


@pytest.mark.asyncio
async def test_overview_falls_back_to_seven_days(test_db):
    overview = await get_analytics_overview(test_db, 365)
    assert overview == {"range_days": 7, "daily": [], "top_content": []}


@pytest.mark.asyncio
async def test_overview_top_content_is_capped_with_tie_breaks(test_db, make_content):
    contents = [await make_content() for _ in range(22)]
    today = today_date_key()

    stats = []
    for index, content in enumerate(contents):
        clicks, views = 1, 5
        if index == 21:
            clicks = 3
        elif index == 5:
            views = 9
        stats.append(ContentStats(content_id=content.id, date=today, views=views, clicks=clicks))
    test_db.add_all(stats)
    await test_db.commit()

    top = (await get_analytics_overview(test_db, 7))["top_content"]
    assert len(top) == TOP_CONTENT_LIMIT == 20

    # クリック数 -> 閲覧数 -> id 昇順
    expected = [contents[21].id, contents[5].id] + [c.id for i, c in enumerate(contents[:19]) if i != 5]
    assert [item["id"] for item in top] == expected
    assert contents[19].id not in {item["id"] for item in top}
    assert contents[20].id not in {item["id"] for item in top}
