import pytest
from httpx import AsyncClient
from sqlalchemy import select

from catalog.auth import create_admin_token
from catalog.models import Content, ContentStats


@pytest.mark.asyncio
async def test_read_index(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/manga", "/anime", "/movies"])
async def test_listing_pages(client: AsyncClient, path):
    response = await client.get(path)
    assert response.status_code == 200
    assert "listing-items" in response.text


@pytest.mark.asyncio
async def test_static_assets_are_served(client: AsyncClient):
    response = await client.get("/static/site.js")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_content_page_records_view(client: AsyncClient, test_db, make_content):
    content = await make_content()

    response = await client.get(f"/content/{content.slug}")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]

    views = await test_db.execute(select(Content.views_total).where(Content.id == content.id))
    assert views.scalar() == 1
    daily = await test_db.execute(select(ContentStats.views).where(ContentStats.content_id == content.id))
    assert daily.scalar() == 1


@pytest.mark.asyncio
async def test_content_page_404_for_missing_or_unpublished(client: AsyncClient, test_db, make_content):
    hidden = await make_content(status="HIDDEN")

    assert (await client.get("/content/does-not-exist")).status_code == 404
    assert (await client.get(f"/content/{hidden.slug}")).status_code == 404

    views = await test_db.execute(select(Content.views_total).where(Content.id == hidden.id))
    assert views.scalar() == 0


@pytest.mark.asyncio
async def test_go_redirects_to_external_url(client: AsyncClient, test_db, make_content):
    content = await make_content(external_url="https://publisher.test/series")

    response = await client.get(f"/go/{content.slug}")
    assert response.status_code == 302
    assert response.headers["location"] == "https://publisher.test/series"

    clicks = await test_db.execute(select(Content.clicks_total).where(Content.id == content.id))
    assert clicks.scalar() == 1


@pytest.mark.asyncio
async def test_go_unknown_or_draft_goes_home(client: AsyncClient, make_content):
    draft = await make_content(status="DRAFT")

    response = await client.get("/go/unknown")
    assert response.status_code == 302
    assert response.headers["location"] == "/"

    response = await client.get(f"/go/{draft.slug}")
    assert response.headers["location"] == "/"


@pytest.mark.asyncio
async def test_admin_page_requires_session(client: AsyncClient, admin_user):
    response = await client.get("/admin")
    assert response.status_code == 302
    assert response.headers["location"] == "/admin/login"

    response = await client.get("/admin/login")
    assert response.status_code == 200

    client.cookies.set("admin_session", create_admin_token(admin_user))
    response = await client.get("/admin")
    assert response.status_code == 200
    assert "AdminConsole" in response.text


@pytest.mark.asyncio
async def test_validation_errors_are_bad_requests(client: AsyncClient):
    response = await client.post("/api/public/stats", content=b"[1, 2]", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid request"
