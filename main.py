from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from html import escape
from math import ceil
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy import delete, event, func, select, text, update
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import selectinload
import logging
import string

import config
from catalog.ads import list_active_ads
from catalog.analytics import (
    ContentNotFoundError,
    get_analytics_overview,
    increment_content_click,
    increment_content_view,
    record_link_click,
)
from catalog.auth import (
    BCRYPT_MAX_PASSWORD_BYTES,
    AuthConfigError,
    create_admin_token,
    get_current_admin,
    hash_password,
    verify_password,
)
from catalog.comments import fetch_comment_tree, serialize_public_comment
from catalog.content_service import (
    get_home_sections,
    get_public_content_detail,
    get_published_content,
    list_public_categories_for_type,
    list_public_content,
    list_verified_links,
    select_redirect_link,
)
from catalog.models import (
    AD_TYPES,
    CATEGORY_SCOPES,
    COMMENT_STATUSES,
    CONTENT_STATUSES,
    CONTENT_TYPES,
    LINK_STATUSES,
    LINK_TYPES,
    REPORT_STATUSES,
    Ad,
    AdminUser,
    Base,
    Bookmark,
    Category,
    Comment,
    Content,
    ContentCategory,
    ContentLink,
    ContentReport,
    Partner,
)
from catalog.serializers import (
    serialize_ad,
    serialize_admin,
    serialize_bookmark,
    serialize_category,
    serialize_comment,
    serialize_content,
    serialize_link,
    serialize_partner,
    serialize_report,
    serialize_site_settings,
)
from catalog.site_settings import apply_site_settings_update, get_or_create_site_settings
from catalog.utility import (
    client_ip,
    is_valid_email,
    parse_optional_datetime,
    remove_urls,
    slugify,
    unique_slug,
)

# =========================
# ログ設定
# =========================
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATE_DIR = BASE_DIR / "template"
STATIC_DIR = BASE_DIR / "static"

# =========================
# データベース設定
# =========================
engine: AsyncEngine = create_async_engine(
    config.DATABASE_URL,
    echo=False,
    connect_args={"timeout": 20},
    pool_pre_ping=True,
    pool_recycle=3600,
)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _configure_sqlite_connection(target: AsyncEngine) -> None:
    """
    接続ごとの設定
    - 外部キー制約（CASCADE / SET NULL）を有効化
    - unicode_lower(): SQLite 組み込みの lower() は ASCII しか変換しないため
    """

    @event.listens_for(target.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_connection.create_function("unicode_lower", 1, _unicode_lower, deterministic=True)


_configure_sqlite_connection(engine)

SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


def get_db_session() -> AsyncSession:
    return SessionLocal()


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


# =========================
# DB 初期化
# =========================
async def init_database() -> None:
    """
    - テーブル作成
    - SQLite PRAGMA 最適化
    - 一覧・集計用のインデックス
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with engine.begin() as conn:
        # PRAGMA
        await conn.execute(text("PRAGMA journal_mode=WAL"))
        await conn.execute(text("PRAGMA synchronous=NORMAL"))
        await conn.execute(text("PRAGMA temp_store=MEMORY"))

        # 公開一覧（種別 + 新着 / 閲覧数）
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_contents_status_type_created ON contents(status, type, created_at DESC, id DESC)"))
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_contents_status_views ON contents(status, views_total DESC)"))
        # リンク選択
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_content_links_content_status ON content_links(content_id, status, priority DESC, created_at DESC)"))
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_content_links_partner ON content_links(partner_id)"))
        # 集計
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_content_stats_date ON content_stats(date)"))
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_link_clicks_link ON link_clicks(link_id)"))
        # コメント・通報
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_comments_content_status ON comments(content_id, status, created_at)"))
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_content_reports_status ON content_reports(status, created_at DESC)"))
        await conn.execute(text("CREATE INDEX IF NOT EXISTS idx_ads_position ON ads(position, is_active, sort_order)"))

        # 統計最適化
        await conn.execute(text("ANALYZE"))
        await conn.execute(text("PRAGMA optimize"))


# =========================
# FastAPI
# =========================
app = FastAPI()
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("リクエスト検証エラー: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


async def _auth_config_exception_handler(request: Request, exc: AuthConfigError) -> JSONResponse:
    logger.error("管理者認証の設定エラー: %s", exc)
    return JSONResponse(status_code=500, content={"detail": "Admin authentication is not configured"})


app.add_exception_handler(RequestValidationError, _validation_exception_handler)
app.add_exception_handler(AuthConfigError, _auth_config_exception_handler)


@app.on_event("startup")
async def on_startup() -> None:
    _ensure_sqlite_directory(config.DATABASE_URL)
    await init_database()
    async with get_db_session() as db:
        await get_or_create_site_settings(db)
    if not config.ADMIN_JWT_SECRET:
        logger.warning("ADMIN_JWT_SECRET が未設定のため管理画面にログインできません")
    logger.info("起動完了 (env=%s)", config.APP_ENV)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await engine.dispose()
    logger.info("データベース接続を閉じました")


# =========================
# HTML テンプレート
# =========================
_STATIC_FILE_CACHE: Dict[str, Tuple[float, str]] = {}


def _load_static_file(path: Path) -> str:
    """テンプレートをキャッシュして返す（更新時刻が変われば読み直す）"""
    key = str(path)
    stat = path.stat()
    cached = _STATIC_FILE_CACHE.get(key)
    if cached and cached[0] == stat.st_mtime:
        return cached[1]

    content = path.read_text(encoding="utf-8")
    _STATIC_FILE_CACHE[key] = (stat.st_mtime, content)
    return content


def _serve_cached_html(name: str) -> HTMLResponse:
    try:
        content = _load_static_file(TEMPLATE_DIR / name)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=500, detail=f"{name} not found") from exc
    return HTMLResponse(content=content)


def _render_redirect_page(title: str, target_url: str, source_name: str, site_name: str) -> HTMLResponse:
    try:
        page = string.Template(_load_static_file(TEMPLATE_DIR / "redirect.html"))
    except FileNotFoundError as exc:
        raise HTTPException(status_code=500, detail="redirect.html not found") from exc
    html = page.safe_substitute(
        title=escape(title),
        target_url=escape(target_url, quote=True),
        source_name=escape(source_name),
        site_name=escape(site_name),
        countdown=config.REDIRECT_COUNTDOWN_SECONDS,
    )
    return HTMLResponse(content=html)


# =========================
# 管理者セッション
# =========================
def _extract_admin_token(request: Request) -> Optional[str]:
    token = request.cookies.get(config.ADMIN_SESSION_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def require_admin(request: Request) -> AdminUser:
    token = _extract_admin_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    async with get_db_session() as db:
        admin = await get_current_admin(db, token)
    if admin is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return admin


# =========================
# 入力値ヘルパー
# =========================
CONTENT_TYPE_BY_PATH = {"manga": "MANGA", "anime": "ANIME", "movies": "MOVIE"}
PUBLIC_SORTS = ("az", "new", "views")
ADMIN_COMMENT_PAGE_SIZE = 20


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _parse_datetime_field(name: str, value: Optional[str]):
    try:
        return parse_optional_datetime(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


async def _get_or_404(db: AsyncSession, model, object_id: int, label: str):
    obj = await db.get(model, object_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


async def _ensure_categories_exist(db: AsyncSession, category_ids: List[int]) -> List[int]:
    wanted = list(dict.fromkeys(category_ids))
    if not wanted:
        return []
    result = await db.execute(select(Category.id).where(Category.id.in_(wanted)))
    found = set(result.scalars().all())
    missing = [category_id for category_id in wanted if category_id not in found]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown category_ids: {missing}")
    return wanted


async def _load_admin_content(db: AsyncSession, content_id: int) -> Optional[Content]:
    result = await db.execute(
        select(Content)
        .where(Content.id == content_id)
        .options(
            selectinload(Content.categories).selectinload(ContentCategory.category),
            selectinload(Content.links),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


def _serialize_admin_content(content: Content) -> Dict[str, Any]:
    links = sorted(content.links, key=lambda link: (link.priority, link.created_at), reverse=True)
    return serialize_content(content, categories=True, links=links)


async def _load_link(db: AsyncSession, link_id: int) -> Optional[ContentLink]:
    result = await db.execute(
        select(ContentLink)
        .where(ContentLink.id == link_id)
        .options(selectinload(ContentLink.partner), selectinload(ContentLink.content))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _partner_link_count(db: AsyncSession, partner_id: int) -> int:
    result = await db.execute(select(func.count(ContentLink.id)).where(ContentLink.partner_id == partner_id))
    return result.scalar() or 0


# =========================
# リクエストモデル
# =========================
ContentType = Literal[CONTENT_TYPES]
CategoryScope = Literal[CATEGORY_SCOPES]
ContentStatus = Literal[CONTENT_STATUSES]
LinkType = Literal[LINK_TYPES]
LinkStatus = Literal[LINK_STATUSES]
ReportStatus = Literal[REPORT_STATUSES]
AdType = Literal[AD_TYPES]


class StatsEventRequest(BaseModel):
    content_id: Optional[int] = None
    event: Optional[Literal["view", "click"]] = None


class ReportCreateRequest(BaseModel):
    content_id: Optional[int] = None
    reason: Optional[str] = None
    details: Optional[str] = None


class CommentCreateRequest(BaseModel):
    content_slug: Optional[str] = None
    parent_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    body: Optional[str] = None


class BookmarkToggleRequest(BaseModel):
    user_id: Optional[int] = None
    content_id: Optional[int] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class BootstrapRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class ContentLinkInput(BaseModel):
    url: str
    source_name: str
    link_type: LinkType
    status: LinkStatus = "UNVERIFIED"
    priority: int = 0


class ContentCreateRequest(BaseModel):
    title: Optional[str] = None
    type: Optional[ContentType] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    external_url: Optional[str] = None
    status: Optional[ContentStatus] = None
    direct_redirect: Optional[bool] = None
    tags: Optional[str] = None
    rating: Optional[float] = None
    category_ids: Optional[List[int]] = None
    links: Optional[List[ContentLinkInput]] = None


class ContentUpdateRequest(BaseModel):
    title: Optional[str] = None
    type: Optional[ContentType] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    external_url: Optional[str] = None
    status: Optional[ContentStatus] = None
    direct_redirect: Optional[bool] = None
    tags: Optional[str] = None
    rating: Optional[float] = None
    category_ids: Optional[List[int]] = None


class CategoryRequest(BaseModel):
    name: Optional[str] = None
    type_scope: Optional[CategoryScope] = None
    sort_order: Optional[int] = None


class LinkCreateRequest(BaseModel):
    content_id: Optional[int] = None
    url: Optional[str] = None
    source_name: Optional[str] = None
    link_type: Optional[LinkType] = None
    status: Optional[LinkStatus] = None
    priority: Optional[int] = None
    partner_id: Optional[int] = None


class LinkUpdateRequest(BaseModel):
    url: Optional[str] = None
    source_name: Optional[str] = None
    link_type: Optional[LinkType] = None
    status: Optional[LinkStatus] = None
    priority: Optional[int] = None
    partner_id: Optional[int] = None


class PartnerRequest(BaseModel):
    name: Optional[str] = None
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    is_verified: Optional[bool] = None
    priority_score: Optional[int] = None
    description: Optional[str] = None


class ReportStatusRequest(BaseModel):
    status: ReportStatus


class CommentModerationRequest(BaseModel):
    ids: List[int]
    status: Optional[str] = None
    body: Optional[str] = None


class CommentDeleteRequest(BaseModel):
    ids: List[int]


class AdRequest(BaseModel):
    position: Optional[str] = None
    type: Optional[AdType] = None
    image_url: Optional[str] = None
    script_code: Optional[str] = None
    target_url: Optional[str] = None
    is_active: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    sort_order: Optional[int] = None


class SiteSettingsRequest(BaseModel):
    site_name: Optional[str] = None
    logo_url: Optional[str] = None
    google_analytics_id: Optional[str] = None
    header_ad_html: Optional[str] = None
    footer_ad_html: Optional[str] = None
    banner_title: Optional[str] = None
    banner_subtitle: Optional[str] = None
    banner_description: Optional[str] = None
    banner_bg_color: Optional[str] = None
    banner_bg_image: Optional[str] = None
    banner_text_color: Optional[str] = None
    banner_btn1_text: Optional[str] = None
    banner_btn1_link: Optional[str] = None
    banner_btn1_color: Optional[str] = None
    banner_btn2_text: Optional[str] = None
    banner_btn2_link: Optional[str] = None
    banner_btn2_color: Optional[str] = None
    header_bg_color: Optional[str] = None
    header_text_color: Optional[str] = None
    footer_bg_color: Optional[str] = None
    footer_text_color: Optional[str] = None
    footer_description: Optional[str] = None


# =========================
# ページ
# =========================
@app.get("/", response_class=HTMLResponse)
async def read_index():
    return _serve_cached_html("index.html")


@app.get("/manga", response_class=HTMLResponse)
@app.get("/anime", response_class=HTMLResponse)
@app.get("/movies", response_class=HTMLResponse)
async def read_listing():
    # 種別はフロント側で URL パスから判定
    return _serve_cached_html("listing.html")


@app.get("/content/{slug}", response_class=HTMLResponse)
async def read_content(slug: str):
    try:
        async with get_db_session() as db:
            content = await get_published_content(db, slug)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")
            await increment_content_view(db, content.id)
    except HTTPException:
        raise
    except ContentNotFoundError:
        raise HTTPException(status_code=404, detail="Content not found")
    except Exception:
        logger.exception("閲覧数の記録エラー: slug=%s", slug)
        raise HTTPException(status_code=500, detail="Failed to load content")
    return _serve_cached_html("content.html")


@app.get("/go/{slug}")
async def go_external(slug: str):
    try:
        async with get_db_session() as db:
            content = await get_published_content(db, slug)
            if content is None:
                return RedirectResponse(url="/", status_code=302)
            await increment_content_click(db, content.id)
            return RedirectResponse(url=content.external_url, status_code=302)
    except ContentNotFoundError:
        return RedirectResponse(url="/", status_code=302)
    except Exception:
        logger.exception("外部リンクのクリック記録エラー: slug=%s", slug)
        raise HTTPException(status_code=500, detail="Failed to redirect")


@app.get("/redirect/{slug}")
async def redirect_best_link(slug: str):
    try:
        async with get_db_session() as db:
            content = await get_published_content(db, slug)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")
            link = await select_redirect_link(db, content.id)
            if link is None:
                return RedirectResponse(url=f"/content/{slug}", status_code=302)

            title = content.title
            direct = content.direct_redirect
            target_url = link.url
            source_name = link.partner.name if link.partner else link.source_name
            await record_link_click(db, content.id, link.id)

            if direct:
                return RedirectResponse(url=target_url, status_code=302)
            settings = await get_or_create_site_settings(db)
            return _render_redirect_page(title, target_url, source_name, settings.site_name)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リダイレクト処理エラー: slug=%s", slug)
        raise HTTPException(status_code=500, detail="Failed to redirect")


@app.get("/redirect/{slug}/{link_id}")
async def redirect_specific_link(slug: str, link_id: str, request: Request):
    try:
        async with get_db_session() as db:
            content = await get_published_content(db, slug)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")

            fallback = RedirectResponse(url=f"/content/{slug}", status_code=302)
            parsed_link_id = _parse_int(link_id)
            if parsed_link_id is None:
                return fallback
            link = await _load_link(db, parsed_link_id)
            if link is None or link.content_id != content.id or link.status != "VERIFIED":
                return fallback

            title = content.title
            direct = content.direct_redirect
            target_url = link.url
            source_name = link.partner.name if link.partner else link.source_name
            await record_link_click(
                db,
                content.id,
                link.id,
                user_agent=request.headers.get("user-agent"),
                ip_address=client_ip(request.headers),
                referrer=request.headers.get("referer"),
                log_click=True,
            )

            if direct:
                return RedirectResponse(url=target_url, status_code=302)
            settings = await get_or_create_site_settings(db)
            return _render_redirect_page(title, target_url, source_name, settings.site_name)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リダイレクト処理エラー: slug=%s link_id=%s", slug, link_id)
        raise HTTPException(status_code=500, detail="Failed to redirect")


@app.get("/admin/login", response_class=HTMLResponse)
async def read_admin_login():
    return _serve_cached_html("admin-login.html")


@app.get("/admin", response_class=HTMLResponse)
async def read_admin(request: Request):
    token = _extract_admin_token(request)
    admin = None
    if token:
        async with get_db_session() as db:
            admin = await get_current_admin(db, token)
    if admin is None:
        return RedirectResponse(url="/admin/login", status_code=302)
    return _serve_cached_html("admin.html")


# =========================
# 公開 API
# =========================
@app.get("/api/public/content")
async def api_public_content(
    content_type: Optional[str] = Query(None, alias="type"),
    category: Optional[str] = None,
    q: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    page_size: Optional[str] = None,
):
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid type")

    safe_page = _parse_int(page)
    if safe_page is None or safe_page < 1:
        safe_page = 1
    safe_page_size = _parse_int(page_size)
    if safe_page_size is None or not 1 <= safe_page_size <= config.MAX_PAGE_SIZE:
        safe_page_size = config.PUBLIC_PAGE_SIZE

    try:
        async with get_db_session() as db:
            return await list_public_content(
                db,
                content_type,
                category_slug=category or None,
                search=q or None,
                sort=sort if sort in PUBLIC_SORTS else "new",
                page=safe_page,
                page_size=safe_page_size,
            )
    except Exception:
        logger.exception("コンテンツ一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list content")


@app.get("/api/public/content/{slug}")
async def api_public_content_detail(slug: str):
    try:
        async with get_db_session() as db:
            detail = await get_public_content_detail(db, slug)
            if detail is None:
                raise HTTPException(status_code=404, detail="Content not found")
            return detail
    except HTTPException:
        raise
    except Exception:
        logger.exception("コンテンツ詳細の取得エラー: slug=%s", slug)
        raise HTTPException(status_code=500, detail="Failed to load content")


@app.get("/api/public/home")
async def api_public_home():
    try:
        async with get_db_session() as db:
            return await get_home_sections(db)
    except Exception:
        logger.exception("トップページ情報の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to load home sections")


@app.get("/api/public/categories")
async def api_public_categories(content_type: Optional[str] = Query(None, alias="type")):
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid type")
    try:
        async with get_db_session() as db:
            return await list_public_categories_for_type(db, content_type)
    except Exception:
        logger.exception("カテゴリ一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list categories")


@app.get("/api/public/links")
async def api_public_links(content_id: Optional[str] = None, slug: Optional[str] = None):
    if not content_id and not slug:
        raise HTTPException(status_code=400, detail="Content ID or slug is required")
    try:
        async with get_db_session() as db:
            if content_id:
                target_id = _parse_int(content_id)
                if target_id is None:
                    raise HTTPException(status_code=400, detail="Invalid content_id")
            else:
                result = await db.execute(select(Content.id).where(Content.slug == slug))
                target_id = result.scalar()
                if target_id is None:
                    raise HTTPException(status_code=404, detail="Content not found")
            return await list_verified_links(db, target_id)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リンク一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list links")


@app.post("/api/public/stats")
async def api_public_stats(request: StatsEventRequest):
    if not request.content_id or request.event is None:
        raise HTTPException(status_code=400, detail="content_id and event (view|click) are required")
    try:
        async with get_db_session() as db:
            content = await db.get(Content, request.content_id)
            if content is None or content.status != "PUBLISHED":
                raise HTTPException(status_code=404, detail="Not found")
            if request.event == "view":
                await increment_content_view(db, content.id)
            else:
                await increment_content_click(db, content.id)
            return {"ok": True}
    except HTTPException:
        raise
    except ContentNotFoundError:
        raise HTTPException(status_code=404, detail="Not found")
    except Exception:
        logger.exception("統計の記録エラー: content_id=%s", request.content_id)
        raise HTTPException(status_code=500, detail="Failed to record event")


@app.post("/api/public/report", status_code=201)
async def api_public_report(payload: ReportCreateRequest, request: Request):
    if not payload.content_id or not payload.reason:
        raise HTTPException(status_code=400, detail="content_id and reason are required")
    try:
        async with get_db_session() as db:
            await _get_or_404(db, Content, payload.content_id, "Content")
            report = ContentReport(
                content_id=payload.content_id,
                reason=payload.reason,
                details=payload.details or None,
                reporter_ip=client_ip(request.headers),
            )
            db.add(report)
            await db.commit()
            logger.info("通報を受け付けました: content_id=%s reason=%s", report.content_id, report.reason)
            return {"success": True, "report_id": report.id}
    except HTTPException:
        raise
    except Exception:
        logger.exception("通報の保存エラー")
        raise HTTPException(status_code=500, detail="Failed to submit report")


@app.get("/api/public/comments")
async def api_public_comments(slug: Optional[str] = None):
    if not slug:
        raise HTTPException(status_code=400, detail="Content slug is required")
    try:
        async with get_db_session() as db:
            content = await get_published_content(db, slug)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")
            return {"comments": await fetch_comment_tree(db, content.id)}
    except HTTPException:
        raise
    except Exception:
        logger.exception("コメントの取得エラー: slug=%s", slug)
        raise HTTPException(status_code=500, detail="Failed to load comments")


@app.post("/api/public/comments", status_code=201)
async def api_public_create_comment(request: CommentCreateRequest):
    if not request.content_slug or not request.name or not request.email or not request.body:
        raise HTTPException(status_code=400, detail="Missing required fields")
    email = request.email.strip().lower()
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if not 2 <= len(request.body) <= 2000:
        raise HTTPException(status_code=400, detail="Comment must be between 2 and 2000 characters")
    body = remove_urls(request.body)
    if len(body) < 2:
        raise HTTPException(status_code=400, detail="Comment must contain text other than links")
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        async with get_db_session() as db:
            content = await get_published_content(db, request.content_slug)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")
            if request.parent_id is not None:
                parent = await _get_or_404(db, Comment, request.parent_id, "Parent comment")
                if parent.content_id != content.id:
                    raise HTTPException(status_code=400, detail="Parent comment belongs to other content")

            comment = Comment(
                content_id=content.id,
                parent_id=request.parent_id,
                name=name,
                email=email,
                body=body,
                status="APPROVED",
            )
            db.add(comment)
            await db.commit()
            return {"comment": serialize_public_comment(comment)}
    except HTTPException:
        raise
    except Exception:
        logger.exception("コメントの保存エラー")
        raise HTTPException(status_code=500, detail="Failed to post comment")


@app.get("/api/public/bookmarks")
async def api_public_bookmarks(user_id: Optional[str] = None):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    parsed_user_id = _parse_int(user_id)
    if parsed_user_id is None:
        raise HTTPException(status_code=400, detail="Invalid user_id")
    try:
        async with get_db_session() as db:
            result = await db.execute(
                select(Bookmark)
                .where(Bookmark.user_id == parsed_user_id)
                .options(selectinload(Bookmark.content))
                .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
            )
            return [serialize_bookmark(bookmark) for bookmark in result.scalars()]
    except Exception:
        logger.exception("ブックマークの取得エラー: user_id=%s", user_id)
        raise HTTPException(status_code=500, detail="Failed to load bookmarks")


@app.post("/api/public/bookmarks")
async def api_public_toggle_bookmark(request: BookmarkToggleRequest):
    if not request.user_id or not request.content_id:
        raise HTTPException(status_code=400, detail="User ID and Content ID are required")
    try:
        async with get_db_session() as db:
            result = await db.execute(
                select(Bookmark).where(
                    Bookmark.user_id == request.user_id,
                    Bookmark.content_id == request.content_id,
                )
            )
            existing = result.scalars().first()
            if existing is not None:
                await db.delete(existing)
                await db.commit()
                return JSONResponse(status_code=200, content={"bookmarked": False})

            await _get_or_404(db, Content, request.content_id, "Content")
            db.add(Bookmark(user_id=request.user_id, content_id=request.content_id))
            await db.commit()
            return JSONResponse(status_code=201, content={"bookmarked": True})
    except HTTPException:
        raise
    except Exception:
        logger.exception("ブックマークの更新エラー")
        raise HTTPException(status_code=500, detail="Failed to toggle bookmark")


@app.get("/api/public/ads")
async def api_public_ads(position: Optional[str] = None):
    if not position:
        raise HTTPException(status_code=400, detail="position is required")
    try:
        async with get_db_session() as db:
            return await list_active_ads(db, position)
    except Exception:
        logger.exception("広告の取得エラー: position=%s", position)
        raise HTTPException(status_code=500, detail="Failed to load ads")


@app.get("/api/public/settings")
async def api_public_settings():
    try:
        async with get_db_session() as db:
            return serialize_site_settings(await get_or_create_site_settings(db))
    except Exception:
        logger.exception("サイト設定の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to load settings")


# =========================
# 管理 API: 認証
# =========================
@app.post("/api/admin/login")
async def api_admin_login(request: LoginRequest):
    if not request.email or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    email = request.email.strip().lower()
    try:
        async with get_db_session() as db:
            result = await db.execute(select(AdminUser).where(AdminUser.email == email))
            admin = result.scalars().first()
            if admin is None or admin.status != "ACTIVE" or not verify_password(request.password, admin.password_hash):
                logger.warning("管理者ログイン失敗: %s", email)
                raise HTTPException(status_code=401, detail="Invalid credentials")
            token = create_admin_token(admin)
    except HTTPException:
        raise
    except AuthConfigError:
        raise
    except Exception:
        logger.exception("管理者ログインエラー")
        raise HTTPException(status_code=500, detail="Login failed")

    logger.info("管理者ログイン: id=%s", admin.id)
    response = JSONResponse(content={**serialize_admin(admin), "token": token})
    response.set_cookie(
        key=config.ADMIN_SESSION_COOKIE_NAME,
        value=token,
        max_age=config.ADMIN_SESSION_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
    )
    return response


@app.post("/api/admin/logout")
async def api_admin_logout():
    response = JSONResponse(content={"success": True})
    response.delete_cookie(key=config.ADMIN_SESSION_COOKIE_NAME, path="/")
    return response


@app.get("/api/admin/me")
async def api_admin_me(admin: AdminUser = Depends(require_admin)):
    return serialize_admin(admin)


@app.post("/api/admin/bootstrap", status_code=201)
async def api_admin_bootstrap(request: BootstrapRequest):
    try:
        async with get_db_session() as db:
            existing = await db.execute(select(func.count(AdminUser.id)))
            if existing.scalar():
                raise HTTPException(status_code=403, detail="Admin already exists")
            if not request.name or not request.email or not request.password:
                raise HTTPException(status_code=400, detail="name, email and password are required")
            if len(request.password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes",
                )

            admin = AdminUser(
                name=request.name.strip(),
                email=request.email.strip().lower(),
                password_hash=hash_password(request.password),
                role="SUPER_ADMIN",
                status="ACTIVE",
            )
            db.add(admin)
            await db.commit()
            logger.info("初期管理者を作成しました: %s", admin.email)
            return serialize_admin(admin)
    except HTTPException:
        raise
    except Exception:
        logger.exception("初期管理者の作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create admin")


# =========================
# 管理 API: 集計
# =========================
@app.get("/api/admin/analytics")
async def api_admin_analytics(days: Optional[str] = None, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            return await get_analytics_overview(db, _parse_int(days) or 7)
    except Exception:
        logger.exception("集計の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to load analytics")


# =========================
# 管理 API: コンテンツ
# =========================
@app.get("/api/admin/content")
async def api_admin_list_content(admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            result = await db.execute(
                select(Content)
                .options(
                    selectinload(Content.categories).selectinload(ContentCategory.category),
                    selectinload(Content.links),
                )
                .order_by(Content.created_at.desc(), Content.id.desc())
            )
            return [_serialize_admin_content(content) for content in result.scalars()]
    except Exception:
        logger.exception("コンテンツ一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list content")


@app.post("/api/admin/content", status_code=201)
async def api_admin_create_content(request: ContentCreateRequest, admin: AdminUser = Depends(require_admin)):
    if not request.title or not request.type or not request.image_url or not request.external_url:
        raise HTTPException(status_code=400, detail="title, type, image_url and external_url are required")
    try:
        async with get_db_session() as db:
            category_ids = await _ensure_categories_exist(db, request.category_ids or [])
            content = Content(
                title=request.title,
                slug=await unique_slug(db, Content, slugify(request.title)),
                type=request.type,
                image_url=request.image_url,
                description=request.description,
                external_url=request.external_url,
                status=request.status or "PUBLISHED",
                direct_redirect=bool(request.direct_redirect),
                tags=request.tags,
                rating=request.rating,
            )
            db.add(content)
            await db.flush()
            for category_id in category_ids:
                db.add(ContentCategory(content_id=content.id, category_id=category_id))
            for link in request.links or []:
                db.add(
                    ContentLink(
                        content_id=content.id,
                        url=link.url,
                        source_name=link.source_name,
                        link_type=link.link_type,
                        status=link.status,
                        priority=link.priority,
                    )
                )
            await db.commit()
            logger.info("コンテンツを作成しました: id=%s slug=%s", content.id, content.slug)
            return _serialize_admin_content(await _load_admin_content(db, content.id))
    except HTTPException:
        raise
    except Exception:
        logger.exception("コンテンツの作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create content")


@app.get("/api/admin/content/{content_id}")
async def api_admin_get_content(content_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            content = await _load_admin_content(db, content_id)
            if content is None:
                raise HTTPException(status_code=404, detail="Content not found")
            return _serialize_admin_content(content)
    except HTTPException:
        raise
    except Exception:
        logger.exception("コンテンツの取得エラー: id=%s", content_id)
        raise HTTPException(status_code=500, detail="Failed to load content")


@app.put("/api/admin/content/{content_id}")
async def api_admin_update_content(
    content_id: int,
    request: ContentUpdateRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        async with get_db_session() as db:
            content = await _get_or_404(db, Content, content_id, "Content")
            if request.title and request.title != content.title:
                content.slug = await unique_slug(db, Content, slugify(request.title), exclude_id=content.id)
                content.title = request.title
            for field in ("type", "image_url", "description", "external_url", "status", "direct_redirect", "tags", "rating"):
                value = getattr(request, field)
                if value is not None:
                    setattr(content, field, value)

            if request.category_ids is not None:
                category_ids = await _ensure_categories_exist(db, request.category_ids)
                await db.execute(delete(ContentCategory).where(ContentCategory.content_id == content.id))
                for category_id in category_ids:
                    db.add(ContentCategory(content_id=content.id, category_id=category_id))
            await db.commit()
            return _serialize_admin_content(await _load_admin_content(db, content.id))
    except HTTPException:
        raise
    except Exception:
        logger.exception("コンテンツの更新エラー: id=%s", content_id)
        raise HTTPException(status_code=500, detail="Failed to update content")


@app.delete("/api/admin/content/{content_id}")
async def api_admin_delete_content(content_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            content = await _get_or_404(db, Content, content_id, "Content")
            await db.delete(content)
            await db.commit()
            logger.info("コンテンツを削除しました: id=%s", content_id)
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("コンテンツの削除エラー: id=%s", content_id)
        raise HTTPException(status_code=500, detail="Failed to delete content")


# =========================
# 管理 API: カテゴリ
# =========================
@app.get("/api/admin/categories")
async def api_admin_list_categories(admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            result = await db.execute(select(Category).order_by(Category.sort_order.asc(), Category.id.asc()))
            return [serialize_category(category) for category in result.scalars()]
    except Exception:
        logger.exception("カテゴリ一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list categories")


@app.post("/api/admin/categories", status_code=201)
async def api_admin_create_category(request: CategoryRequest, admin: AdminUser = Depends(require_admin)):
    if not request.name or not request.type_scope:
        raise HTTPException(status_code=400, detail="name and type_scope are required")
    try:
        async with get_db_session() as db:
            category = Category(
                name=request.name,
                slug=await unique_slug(db, Category, slugify(request.name)),
                type_scope=request.type_scope,
                sort_order=request.sort_order or 0,
            )
            db.add(category)
            await db.commit()
            return serialize_category(category)
    except HTTPException:
        raise
    except Exception:
        logger.exception("カテゴリの作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create category")


@app.get("/api/admin/categories/{category_id}")
async def api_admin_get_category(category_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            return serialize_category(await _get_or_404(db, Category, category_id, "Category"))
    except HTTPException:
        raise
    except Exception:
        logger.exception("カテゴリの取得エラー: id=%s", category_id)
        raise HTTPException(status_code=500, detail="Failed to load category")


@app.put("/api/admin/categories/{category_id}")
async def api_admin_update_category(
    category_id: int,
    request: CategoryRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        async with get_db_session() as db:
            category = await _get_or_404(db, Category, category_id, "Category")
            if request.name and request.name != category.name:
                category.slug = await unique_slug(db, Category, slugify(request.name), exclude_id=category.id)
                category.name = request.name
            if request.type_scope is not None:
                category.type_scope = request.type_scope
            if request.sort_order is not None:
                category.sort_order = request.sort_order
            await db.commit()
            return serialize_category(category)
    except HTTPException:
        raise
    except Exception:
        logger.exception("カテゴリの更新エラー: id=%s", category_id)
        raise HTTPException(status_code=500, detail="Failed to update category")


@app.delete("/api/admin/categories/{category_id}")
async def api_admin_delete_category(category_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            category = await _get_or_404(db, Category, category_id, "Category")
            await db.delete(category)
            await db.commit()
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("カテゴリの削除エラー: id=%s", category_id)
        raise HTTPException(status_code=500, detail="Failed to delete category")


# =========================
# 管理 API: リンク
# =========================
@app.get("/api/admin/links")
async def api_admin_list_links(content_id: Optional[str] = None, admin: AdminUser = Depends(require_admin)):
    stmt = (
        select(ContentLink)
        .options(selectinload(ContentLink.partner), selectinload(ContentLink.content))
        .order_by(ContentLink.priority.desc(), ContentLink.created_at.desc())
    )
    if content_id:
        parsed_content_id = _parse_int(content_id)
        if parsed_content_id is None:
            raise HTTPException(status_code=400, detail="Invalid content_id")
        stmt = stmt.where(ContentLink.content_id == parsed_content_id)
    try:
        async with get_db_session() as db:
            result = await db.execute(stmt)
            return [serialize_link(link, partner=True, content=True) for link in result.scalars()]
    except Exception:
        logger.exception("リンク一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list links")


@app.post("/api/admin/links", status_code=201)
async def api_admin_create_link(request: LinkCreateRequest, admin: AdminUser = Depends(require_admin)):
    if not request.content_id or not request.url or not request.source_name or not request.link_type:
        raise HTTPException(status_code=400, detail="Missing required fields")
    try:
        async with get_db_session() as db:
            await _get_or_404(db, Content, request.content_id, "Content")
            if request.partner_id:
                await _get_or_404(db, Partner, request.partner_id, "Partner")
            link = ContentLink(
                content_id=request.content_id,
                url=request.url,
                source_name=request.source_name,
                link_type=request.link_type,
                status=request.status or "UNVERIFIED",
                priority=request.priority or 0,
                partner_id=request.partner_id or None,
            )
            db.add(link)
            await db.commit()
            return serialize_link(await _load_link(db, link.id), partner=True)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リンクの作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create link")


@app.get("/api/admin/links/{link_id}")
async def api_admin_get_link(link_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            link = await _load_link(db, link_id)
            if link is None:
                raise HTTPException(status_code=404, detail="Link not found")
            return serialize_link(link, partner=True, content=True)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リンクの取得エラー: id=%s", link_id)
        raise HTTPException(status_code=500, detail="Failed to load link")


@app.put("/api/admin/links/{link_id}")
async def api_admin_update_link(
    link_id: int,
    request: LinkUpdateRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        async with get_db_session() as db:
            link = await _get_or_404(db, ContentLink, link_id, "Link")
            for field in ("url", "source_name", "link_type", "status", "priority"):
                value = getattr(request, field)
                if value is not None:
                    setattr(link, field, value)
            if "partner_id" in request.model_fields_set:
                if request.partner_id:
                    await _get_or_404(db, Partner, request.partner_id, "Partner")
                    link.partner_id = request.partner_id
                else:
                    link.partner_id = None
            await db.commit()
            return serialize_link(await _load_link(db, link.id), partner=True)
    except HTTPException:
        raise
    except Exception:
        logger.exception("リンクの更新エラー: id=%s", link_id)
        raise HTTPException(status_code=500, detail="Failed to update link")


@app.delete("/api/admin/links/{link_id}")
async def api_admin_delete_link(link_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            link = await _get_or_404(db, ContentLink, link_id, "Link")
            await db.delete(link)
            await db.commit()
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("リンクの削除エラー: id=%s", link_id)
        raise HTTPException(status_code=500, detail="Failed to delete link")


# =========================
# 管理 API: パートナー
# =========================
@app.get("/api/admin/partners")
async def api_admin_list_partners(admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            link_count = func.count(ContentLink.id).label("link_count")
            result = await db.execute(
                select(Partner, link_count)
                .outerjoin(ContentLink, ContentLink.partner_id == Partner.id)
                .group_by(Partner.id)
                .order_by(Partner.priority_score.desc(), Partner.name.asc())
            )
            return [serialize_partner(partner, link_count=count) for partner, count in result.all()]
    except Exception:
        logger.exception("パートナー一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list partners")


@app.post("/api/admin/partners", status_code=201)
async def api_admin_create_partner(request: PartnerRequest, admin: AdminUser = Depends(require_admin)):
    if not request.name or not request.website_url:
        raise HTTPException(status_code=400, detail="name and website_url are required")
    try:
        async with get_db_session() as db:
            slug = slugify(request.name)
            taken = await db.execute(select(Partner.id).where(Partner.slug == slug))
            if taken.scalar() is not None:
                raise HTTPException(status_code=400, detail="A partner with this name already exists")
            partner = Partner(
                name=request.name,
                slug=slug,
                website_url=request.website_url,
                logo_url=request.logo_url or None,
                is_verified=bool(request.is_verified),
                priority_score=request.priority_score or 0,
                description=request.description or None,
            )
            db.add(partner)
            await db.commit()
            return serialize_partner(partner, link_count=0)
    except HTTPException:
        raise
    except Exception:
        logger.exception("パートナーの作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create partner")


@app.get("/api/admin/partners/{partner_id}")
async def api_admin_get_partner(partner_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            partner = await _get_or_404(db, Partner, partner_id, "Partner")
            return serialize_partner(partner, link_count=await _partner_link_count(db, partner.id))
    except HTTPException:
        raise
    except Exception:
        logger.exception("パートナーの取得エラー: id=%s", partner_id)
        raise HTTPException(status_code=500, detail="Failed to load partner")


@app.put("/api/admin/partners/{partner_id}")
async def api_admin_update_partner(
    partner_id: int,
    request: PartnerRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        async with get_db_session() as db:
            partner = await _get_or_404(db, Partner, partner_id, "Partner")
            if request.name and request.name != partner.name:
                slug = slugify(request.name)
                taken = await db.execute(select(Partner.id).where(Partner.slug == slug, Partner.id != partner.id))
                if taken.scalar() is not None:
                    raise HTTPException(status_code=400, detail="A partner with this name already exists")
                partner.name = request.name
                partner.slug = slug
            for field in ("website_url", "is_verified", "priority_score"):
                value = getattr(request, field)
                if value is not None:
                    setattr(partner, field, value)
            for field in ("logo_url", "description"):
                if field in request.model_fields_set:
                    setattr(partner, field, getattr(request, field) or None)
            await db.commit()
            return serialize_partner(partner, link_count=await _partner_link_count(db, partner.id))
    except HTTPException:
        raise
    except Exception:
        logger.exception("パートナーの更新エラー: id=%s", partner_id)
        raise HTTPException(status_code=500, detail="Failed to update partner")


@app.delete("/api/admin/partners/{partner_id}")
async def api_admin_delete_partner(partner_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            partner = await _get_or_404(db, Partner, partner_id, "Partner")
            await db.delete(partner)
            await db.commit()
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("パートナーの削除エラー: id=%s", partner_id)
        raise HTTPException(status_code=500, detail="Failed to delete partner")


# =========================
# 管理 API: 通報
# =========================
@app.get("/api/admin/reports")
async def api_admin_list_reports(status: Optional[str] = None, admin: AdminUser = Depends(require_admin)):
    stmt = (
        select(ContentReport)
        .options(selectinload(ContentReport.content))
        .order_by(ContentReport.created_at.desc(), ContentReport.id.desc())
    )
    if status:
        stmt = stmt.where(ContentReport.status == status)
    try:
        async with get_db_session() as db:
            result = await db.execute(stmt)
            return [serialize_report(report) for report in result.scalars()]
    except Exception:
        logger.exception("通報一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list reports")


@app.put("/api/admin/reports/{report_id}")
async def api_admin_update_report(
    report_id: int,
    request: ReportStatusRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        async with get_db_session() as db:
            report = await _get_or_404(db, ContentReport, report_id, "Report")
            report.status = request.status
            await db.commit()
            result = await db.execute(
                select(ContentReport)
                .where(ContentReport.id == report_id)
                .options(selectinload(ContentReport.content))
                .execution_options(populate_existing=True)
            )
            return serialize_report(result.scalars().one())
    except HTTPException:
        raise
    except Exception:
        logger.exception("通報の更新エラー: id=%s", report_id)
        raise HTTPException(status_code=500, detail="Failed to update report")


@app.delete("/api/admin/reports/{report_id}")
async def api_admin_delete_report(report_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            report = await _get_or_404(db, ContentReport, report_id, "Report")
            await db.delete(report)
            await db.commit()
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("通報の削除エラー: id=%s", report_id)
        raise HTTPException(status_code=500, detail="Failed to delete report")


# =========================
# 管理 API: コメント
# =========================
@app.get("/api/admin/comments")
async def api_admin_list_comments(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    status: Optional[str] = None,
    admin: AdminUser = Depends(require_admin),
):
    safe_page = _parse_int(page)
    if safe_page is None or safe_page < 1:
        safe_page = 1
    safe_limit = _parse_int(limit)
    if safe_limit is None or not 1 <= safe_limit <= config.MAX_PAGE_SIZE:
        safe_limit = ADMIN_COMMENT_PAGE_SIZE

    conditions = []
    if status in COMMENT_STATUSES:
        conditions.append(Comment.status == status)

    try:
        async with get_db_session() as db:
            total_result = await db.execute(select(func.count(Comment.id)).where(*conditions))
            total = total_result.scalar() or 0
            result = await db.execute(
                select(Comment)
                .where(*conditions)
                .options(selectinload(Comment.content))
                .order_by(Comment.created_at.desc(), Comment.id.desc())
                .offset((safe_page - 1) * safe_limit)
                .limit(safe_limit)
            )
            return {
                "comments": [serialize_comment(comment, content=True) for comment in result.scalars()],
                "total": total,
                "page": safe_page,
                "total_pages": ceil(total / safe_limit),
            }
    except Exception:
        logger.exception("コメント一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list comments")


@app.patch("/api/admin/comments")
async def api_admin_moderate_comments(request: CommentModerationRequest, admin: AdminUser = Depends(require_admin)):
    if not request.ids:
        raise HTTPException(status_code=400, detail="ids are required")
    if request.status is not None and request.status not in COMMENT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    try:
        async with get_db_session() as db:
            # 1件 + 本文あり: 本文の編集
            if len(request.ids) == 1 and request.body is not None:
                body = request.body.strip()
                if not body:
                    raise HTTPException(status_code=400, detail="Comment body cannot be empty")
                comment = await _get_or_404(db, Comment, request.ids[0], "Comment")
                comment.body = body
                if request.status is not None:
                    comment.status = request.status
                await db.commit()
                return {"updated": 1, "comment": serialize_comment(comment)}

            if request.status is None:
                raise HTTPException(status_code=400, detail="Invalid status")
            result = await db.execute(
                update(Comment).where(Comment.id.in_(request.ids)).values(status=request.status)
            )
            await db.commit()
            logger.info("コメントの状態を一括変更しました: %s件 -> %s", result.rowcount, request.status)
            return {"updated": result.rowcount}
    except HTTPException:
        raise
    except Exception:
        logger.exception("コメントの更新エラー")
        raise HTTPException(status_code=500, detail="Failed to update comments")


@app.delete("/api/admin/comments")
async def api_admin_delete_comments(request: CommentDeleteRequest, admin: AdminUser = Depends(require_admin)):
    if not request.ids:
        raise HTTPException(status_code=400, detail="ids are required")
    try:
        async with get_db_session() as db:
            result = await db.execute(delete(Comment).where(Comment.id.in_(request.ids)))
            await db.commit()
            return {"deleted": result.rowcount}
    except HTTPException:
        raise
    except Exception:
        logger.exception("コメントの削除エラー")
        raise HTTPException(status_code=500, detail="Failed to delete comments")


# =========================
# 管理 API: 広告
# =========================
@app.get("/api/admin/ads")
async def api_admin_list_ads(admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            result = await db.execute(select(Ad).order_by(Ad.position.asc(), Ad.sort_order.asc(), Ad.id.asc()))
            return [serialize_ad(ad) for ad in result.scalars()]
    except Exception:
        logger.exception("広告一覧の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to list ads")


@app.post("/api/admin/ads", status_code=201)
async def api_admin_create_ad(request: AdRequest, admin: AdminUser = Depends(require_admin)):
    if not request.position or not request.type:
        raise HTTPException(status_code=400, detail="position and type are required")
    start_date = _parse_datetime_field("start_date", request.start_date)
    end_date = _parse_datetime_field("end_date", request.end_date)
    try:
        async with get_db_session() as db:
            ad = Ad(
                position=request.position,
                type=request.type,
                image_url=request.image_url or None,
                script_code=request.script_code or None,
                target_url=request.target_url or None,
                is_active=True if request.is_active is None else request.is_active,
                start_date=start_date,
                end_date=end_date,
                sort_order=request.sort_order or 0,
            )
            db.add(ad)
            await db.commit()
            return serialize_ad(ad)
    except HTTPException:
        raise
    except Exception:
        logger.exception("広告の作成エラー")
        raise HTTPException(status_code=500, detail="Failed to create ad")


@app.get("/api/admin/ads/{ad_id}")
async def api_admin_get_ad(ad_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            return serialize_ad(await _get_or_404(db, Ad, ad_id, "Ad"))
    except HTTPException:
        raise
    except Exception:
        logger.exception("広告の取得エラー: id=%s", ad_id)
        raise HTTPException(status_code=500, detail="Failed to load ad")


@app.put("/api/admin/ads/{ad_id}")
async def api_admin_update_ad(ad_id: int, request: AdRequest, admin: AdminUser = Depends(require_admin)):
    provided = request.model_fields_set
    try:
        async with get_db_session() as db:
            ad = await _get_or_404(db, Ad, ad_id, "Ad")
            # 必須項目: null は無視
            for field in ("position", "type", "is_active", "sort_order"):
                value = getattr(request, field)
                if field in provided and value is not None:
                    setattr(ad, field, value)
            # 任意項目: キーがあれば null でクリア
            for field in ("image_url", "script_code", "target_url"):
                if field in provided:
                    setattr(ad, field, getattr(request, field))
            for field in ("start_date", "end_date"):
                if field in provided:
                    setattr(ad, field, _parse_datetime_field(field, getattr(request, field)))
            await db.commit()
            return serialize_ad(ad)
    except HTTPException:
        raise
    except Exception:
        logger.exception("広告の更新エラー: id=%s", ad_id)
        raise HTTPException(status_code=500, detail="Failed to update ad")


@app.delete("/api/admin/ads/{ad_id}")
async def api_admin_delete_ad(ad_id: int, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            ad = await _get_or_404(db, Ad, ad_id, "Ad")
            await db.delete(ad)
            await db.commit()
            return {"success": True}
    except HTTPException:
        raise
    except Exception:
        logger.exception("広告の削除エラー: id=%s", ad_id)
        raise HTTPException(status_code=500, detail="Failed to delete ad")


# =========================
# 管理 API: サイト設定
# =========================
@app.get("/api/admin/settings")
async def api_admin_get_settings(admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            return serialize_site_settings(await get_or_create_site_settings(db))
    except Exception:
        logger.exception("サイト設定の取得エラー")
        raise HTTPException(status_code=500, detail="Failed to load settings")


@app.put("/api/admin/settings")
async def api_admin_update_settings(request: SiteSettingsRequest, admin: AdminUser = Depends(require_admin)):
    try:
        async with get_db_session() as db:
            settings = await get_or_create_site_settings(db)
            apply_site_settings_update(settings, request.model_dump(), request.model_fields_set)
            await db.commit()
            logger.info("サイト設定を更新しました: admin_id=%s", admin.id)
            return serialize_site_settings(settings)
    except Exception:
        logger.exception("サイト設定の更新エラー")
        raise HTTPException(status_code=500, detail="Failed to update settings")


# =========================
# エントリポイント
# =========================
if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Run FastAPI server")
    parser.add_argument("--host", type=str, default="localhost", help="Server host (default: localhost)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--log", type=str, choices=["critical", "error", "warning", "info", "debug", "trace"],
                        default="info", help="Logging level (default: info)")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log)
