from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utility import utcnow

Base = declarative_base()

# =========================
# 列挙値（文字列で保存）
# =========================
CONTENT_TYPES = ("MANGA", "ANIME", "MOVIE")
CATEGORY_SCOPES = CONTENT_TYPES + ("UNIVERSAL",)
CONTENT_STATUSES = ("PUBLISHED", "DRAFT", "HIDDEN")
LINK_TYPES = ("READ", "WATCH", "DOWNLOAD", "VISIT", "MIRROR", "EXTERNAL")
LINK_STATUSES = ("VERIFIED", "UNVERIFIED", "BLOCKED")
REPORT_STATUSES = ("PENDING", "REVIEWED", "RESOLVED", "DISMISSED")
COMMENT_STATUSES = ("PENDING", "APPROVED", "REJECTED")
AD_TYPES = ("IMAGE", "SCRIPT")


class Content(Base):
    __tablename__ = "contents"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    type = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    description = Column(Text)
    external_url = Column(String, nullable=False)
    status = Column(String, nullable=False, default="PUBLISHED")
    direct_redirect = Column(Boolean, nullable=False, default=False)
    tags = Column(Text)  # カンマ区切り
    rating = Column(Float)
    views_total = Column(Integer, nullable=False, default=0)
    clicks_total = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    categories = relationship(
        "ContentCategory",
        back_populates="content",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    links = relationship(
        "ContentLink",
        back_populates="content",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Content(id={self.id}, slug='{self.slug}')>"


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    type_scope = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ContentCategory(Base):
    __tablename__ = "content_categories"
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True)

    content = relationship("Content", back_populates="categories")
    category = relationship("Category")


class Partner(Base):
    __tablename__ = "partners"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    website_url = Column(String, nullable=False)
    logo_url = Column(String)
    is_verified = Column(Boolean, nullable=False, default=False)
    priority_score = Column(Integer, nullable=False, default=0)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ContentLink(Base):
    __tablename__ = "content_links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    partner_id = Column(Integer, ForeignKey("partners.id", ondelete="SET NULL"))
    url = Column(String, nullable=False)
    source_name = Column(String, nullable=False)
    link_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="UNVERIFIED")
    priority = Column(Integer, nullable=False, default=0)
    click_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    content = relationship("Content", back_populates="links")
    partner = relationship("Partner")


class LinkClick(Base):
    __tablename__ = "link_clicks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(Integer, ForeignKey("content_links.id", ondelete="CASCADE"), nullable=False)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    user_agent = Column(Text)
    ip_address = Column(String)
    referrer = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ---- 集計 ----
class ContentStats(Base):
    __tablename__ = "content_stats"
    __table_args__ = (UniqueConstraint("content_id", "date", name="uq_content_stats_content_date"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)  # UTC の日付
    views = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)


class ContentReport(Base):
    __tablename__ = "content_reports"
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String, nullable=False)
    details = Column(Text)
    reporter_ip = Column(String)
    status = Column(String, nullable=False, default="PENDING")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    content = relationship("Content")


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="PENDING")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    content = relationship("Content")


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (UniqueConstraint("user_id", "content_id", name="uq_bookmarks_user_content"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    content = relationship("Content")


class Ad(Base):
    __tablename__ = "ads"
    id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(String, nullable=False)
    type = Column(String, nullable=False)
    image_url = Column(String)
    script_code = Column(Text)
    target_url = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime)
    end_date = Column(DateTime)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class SiteSettings(Base):
    __tablename__ = "site_settings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    site_name = Column(String, nullable=False)
    logo_url = Column(String)
    google_analytics_id = Column(String)
    header_ad_html = Column(Text)
    footer_ad_html = Column(Text)
    banner_title = Column(String)
    banner_subtitle = Column(String)
    banner_description = Column(Text)
    banner_bg_color = Column(String)
    banner_bg_image = Column(String)
    banner_text_color = Column(String)
    banner_btn1_text = Column(String)
    banner_btn1_link = Column(String)
    banner_btn1_color = Column(String)
    banner_btn2_text = Column(String)
    banner_btn2_link = Column(String)
    banner_btn2_color = Column(String)
    header_bg_color = Column(String)
    header_text_color = Column(String)
    footer_bg_color = Column(String)
    footer_text_color = Column(String)
    footer_description = Column(Text)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class AdminUser(Base):
    __tablename__ = "admin_users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="EDITOR")
    status = Column(String, nullable=False, default="ACTIVE")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AdminUser(id={self.id}, email='{self.email}')>"
