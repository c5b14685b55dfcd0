import uuid

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, DateTime, Boolean, JSON, ForeignKey, Index, func,
)
from app.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class PostStatus:
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ACTIVE = (SCHEDULED, PUBLISHING)
    TERMINAL = (PUBLISHED, FAILED, CANCELLED)


CONTENT_SUBTYPES = ("photo", "video", "reel", "story")


class Account(Base):
    __tablename__ = "accounts"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    organization_id = Column(String(64), nullable=True, index=True)  # set => shared with the org
    platform_user_id = Column(String(255), nullable=False)
    platform_username = Column(String(255), nullable=True)
    access_token_encrypted = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    connected_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ScheduledPost(Base):
    __tablename__ = "scheduled_posts"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    organization_id = Column(String(64), nullable=True, index=True)

    content_type = Column(String(64), nullable=True)   # flyer, campaign_post, ... (display only)
    image_url = Column(Text, nullable=False)            # http(s) URL or data: URL
    caption = Column(Text, nullable=False, default="")
    hashtags = Column(JSON, nullable=False, default=list)
    content_subtype = Column(String(16), nullable=False, default="photo")

    # epoch millis, authoritative for dispatch
    scheduled_timestamp = Column(BigInteger, nullable=False)
    scheduled_date = Column(String(16), nullable=True)
    scheduled_time = Column(String(16), nullable=True)
    timezone = Column(String(64), nullable=True)

    status = Column(String(16), nullable=False, default=PostStatus.SCHEDULED)
    publish_attempts = Column(Integer, nullable=False, default=0)
    last_publish_attempt = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    platform_media_id = Column(String(255), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)

    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_scheduled_posts_due", "status", "scheduled_timestamp"),
    )


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(Integer, primary_key=True, index=True)
    category = Column(String(32), nullable=False)
    action = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=True)
    organization_id = Column(String(64), nullable=True)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
