import pytest
from datetime import timedelta
from httpx import AsyncClient
from sqlalchemy import select

from catalog.models import Ad, Content, ContentLink, ContentStats, LinkClick, Partner
from catalog.utility import utcnow


async def _add_link(db, content, **fields):
    values = {
        "content_id": content.id,
        "url": "https://read.test/default",
        "source_name": "Default Source",
        "link_type": "READ",
        "status": "VERIFIED",
    }
    values.update(fields)
    link = ContentLink(**values)
    db.add(link)
    await db.commit()
    return link


async def _click_state(db, content_id, link_id):
    total = await db.execute(select(Content.clicks_total).where(Content.id == content_id))
    daily = await db.execute(select(ContentStats.clicks).where(ContentStats.content_id == content_id))
    link_clicks = await db.execute(select(ContentLink.click_count).where(ContentLink.id == link_id))
    return total.scalar(), daily.scalar(), link_clicks.scalar()


@pytest.mark.asyncio
async def test_redirect_picks_best_verified_link(client: AsyncClient, test_db, make_content):
    content = await make_content("Great Series")
    now = utcnow()
    await _add_link(test_db, content, url="https://low.test", priority=1, created_at=now)
    await _add_link(test_db, content, url="https://blocked.test", priority=50, status="BLOCKED")
    await _add_link(test_db, content, url="https://pending.test", priority=40, status="UNVERIFIED")
    older = await _add_link(test_db, content, url="https://old.test", priority=5, created_at=now - timedelta(days=2))
    best = await _add_link(test_db, content, url="https://best.test/?a=1&b=2", priority=5, created_at=now, source_name="Best Source")

    response = await client.get(f"/redirect/{content.slug}")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    html = response.text
    assert 'data-target-url="https://best.test/?a=1&amp;b=2"' in html
    assert "Best Source" in html
    assert "Great Series" in html
    assert 'data-countdown="3"' in html
    assert "Go Now" in html and "Cancel" in html
    assert 'data-ad-position="redirect_page"' in html

    assert await _click_state(test_db, content.id, best.id) == (1, 1, 1)
    untouched = await test_db.execute(select(ContentLink.click_count).where(ContentLink.id == older.id))
    assert untouched.scalar() == 0
    # 汎用リダイレクトではアクセスログを残さない
    assert (await test_db.execute(select(LinkClick))).scalars().all() == []


@pytest.mark.asyncio
async def test_redirect_uses_partner_name_and_escapes(client: AsyncClient, test_db, make_content):
    content = await make_content("<script>alert(1)</script>")
    partner = Partner(name="Partner & Co", slug="partner-co", website_url="https://p.test")
    test_db.add(partner)
    await test_db.commit()
    await _add_link(test_db, content, partner_id=partner.id)

    html = (await client.get(f"/redirect/{content.slug}")).text
    assert "Partner &amp; Co" in html
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


@pytest.mark.asyncio
async def test_redirect_direct_mode(client: AsyncClient, test_db, make_content):
    content = await make_content(direct_redirect=True)
    link = await _add_link(test_db, content, url="https://direct.test/go")

    response = await client.get(f"/redirect/{content.slug}")
    assert response.status_code == 302
    assert response.headers["location"] == "https://direct.test/go"
    assert await _click_state(test_db, content.id, link.id) == (1, 1, 1)


@pytest.mark.asyncio
async def test_redirect_without_verified_link_goes_to_detail(client: AsyncClient, test_db, make_content):
    content = await make_content()
    await _add_link(test_db, content, status="UNVERIFIED")

    response = await client.get(f"/redirect/{content.slug}")
    assert response.status_code == 302
    assert response.headers["location"] == f"/content/{content.slug}"

    clicks = await test_db.execute(select(Content.clicks_total).where(Content.id == content.id))
    assert clicks.scalar() == 0


@pytest.mark.asyncio
async def test_redirect_unknown_or_unpublished_is_404(client: AsyncClient, make_content):
    draft = await make_content(status="DRAFT")
    assert (await client.get("/redirect/nothing-here")).status_code == 404
    assert (await client.get(f"/redirect/{draft.slug}")).status_code == 404
    assert (await client.get(f"/redirect/{draft.slug}/1")).status_code == 404


@pytest.mark.asyncio
async def test_specific_link_redirect_logs_click(client: AsyncClient, test_db, make_content):
    content = await make_content()
    link = await _add_link(test_db, content, url="https://chosen.test", priority=0)
    await _add_link(test_db, content, url="https://other.test", priority=10)

    response = await client.get(
        f"/redirect/{content.slug}/{link.id}",
        headers={"user-agent": "pytest-agent", "x-real-ip": "198.51.100.7", "referer": "https://from.test/page"},
    )
    assert response.status_code == 200
    assert 'data-target-url="https://chosen.test"' in response.text
    assert await _click_state(test_db, content.id, link.id) == (1, 1, 1)

    clicks = (await test_db.execute(select(LinkClick))).scalars().all()
    assert len(clicks) == 1
    assert clicks[0].link_id == link.id
    assert clicks[0].content_id == content.id
    assert clicks[0].user_agent == "pytest-agent"
    assert clicks[0].ip_address == "198.51.100.7"
    assert clicks[0].referrer == "https://from.test/page"


@pytest.mark.asyncio
async def test_specific_link_rejects_bad_links(client: AsyncClient, test_db, make_content):
    content = await make_content()
    other = await make_content()
    blocked = await _add_link(test_db, content, status="BLOCKED")
    foreign = await _add_link(test_db, other)

    for link_id in ("abc", "99999", str(blocked.id), str(foreign.id)):
        response = await client.get(f"/redirect/{content.slug}/{link_id}")
        assert response.status_code == 302
        assert response.headers["location"] == f"/content/{content.slug}"

    clicks = await test_db.execute(select(Content.clicks_total).where(Content.id == content.id))
    assert clicks.scalar() == 0
    assert (await test_db.execute(select(LinkClick))).scalars().all() == []


@pytest.mark.asyncio
async def test_redirect_page_ad_slot_has_ads(client: AsyncClient, test_db):
    test_db.add(Ad(position="redirect_page", type="IMAGE", image_url="https://ad.test/r.png"))
    await test_db.commit()

    ads = (await client.get("/api/public/ads", params={"position": "redirect_page"})).json()
    assert len(ads) == 1
