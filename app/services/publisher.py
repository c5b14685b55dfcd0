# app/services/publisher.py
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.db import crud_posts
from app.db.base import SessionLocal
from app.db.models import PostStatus
from app.services import activity
from app.services.accounts import AccountResolver
from app.services.assets import AssetResolver
from app.services.instagram_api import InstagramClient, build_caption

logger = logging.getLogger(__name__)


@dataclass
class PublishOutcome:
    post_id: str
    status: str
    attempts: int
    trigger: str
    media_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def within_publishing_hours(now: Optional[datetime] = None) -> bool:
    start, end = settings.publish_window_start_hour, settings.publish_window_end_hour
    if start <= 0 and end >= 24:
        return True
    tz = ZoneInfo(settings.publish_timezone)
    local = now.astimezone(tz) if now else datetime.now(tz)
    return start <= local.hour < end


class PublishOrchestrator:
    """Claim a due post, publish it, record the outcome."""

    def __init__(
        self,
        client: Optional[InstagramClient] = None,
        assets: Optional[AssetResolver] = None,
        accounts: Optional[AccountResolver] = None,
        session_factory: Callable = SessionLocal,
        max_attempts: Optional[int] = None,
    ):
        self._client = client
        self.assets = assets or AssetResolver()
        self.accounts = accounts or AccountResolver()
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.max_publish_attempts

    @property
    def client(self) -> InstagramClient:
        if self._client is None:
            self._client = InstagramClient()
        return self._client

    def process(self, post_id: str, trigger: str = "manual") -> Optional[PublishOutcome]:
        if not within_publishing_hours():
            logger.info("Post %s outside publishing hours, leaving it for a later sweep", post_id)
            return None

        db = self.session_factory()
        try:
            # timed triggers never publish ahead of the post's time
            due_by = crud_posts.now_ms() if trigger in ("job", "scan") else None
            post = crud_posts.claim_post(db, post_id, due_by=due_by)
            if post is None:
                # the other trigger got there first, it is no longer scheduled, or not yet due
                logger.debug("Post %s not claimable by %s, skipping", post_id, trigger)
                return None

            attempts = post.publish_attempts
            owner = {"user_id": post.user_id, "organization_id": post.organization_id}
            logger.info("Publishing post %s (attempt %d/%d, trigger=%s)", post_id, attempts, self.max_attempts, trigger)
            try:
                asset_url = self.assets.resolve(post.image_url)
                credential = self.accounts.resolve(db, post)
                caption = build_caption(post.caption, post.hashtags)
                media_id = self.client.publish(asset_url, caption, post.content_subtype, credential)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                logger.warning("Publish attempt %d for post %s failed: %s: %s",
                               attempts, post_id, e.__class__.__name__, error)
                db.rollback()
                status = crud_posts.mark_attempt_failed(db, post_id, error, self.max_attempts)
                outcome = PublishOutcome(post_id, status or PostStatus.PUBLISHING, attempts, trigger, error=error)
                if status == PostStatus.FAILED:
                    logger.error("Post %s failed permanently after %d attempts: %s", post_id, attempts, error)
                activity.log_activity(
                    "publishing", activity.POST_PUBLISH_FAILED,
                    entity_type="scheduled_post", entity_id=post_id, **owner,
                    details={"attempts": attempts, "status": outcome.status, "trigger": trigger},
                    success=False, error_message=error,
                )
                return outcome

            crud_posts.mark_published(db, post_id, media_id)
            logger.info("Post %s published, media id %s", post_id, media_id)
            activity.log_activity(
                "publishing", activity.POST_PUBLISH,
                entity_type="scheduled_post", entity_id=post_id, **owner,
                details={"media_id": media_id, "attempts": attempts, "trigger": trigger},
            )
            return PublishOutcome(post_id, PostStatus.PUBLISHED, attempts, trigger, media_id=media_id)
        finally:
            db.close()


_default: Optional[PublishOrchestrator] = None


def get_orchestrator() -> PublishOrchestrator:
    global _default
    if _default is None:
        _default = PublishOrchestrator()
    return _default


def publish_post(post_id: str, trigger: str = "manual") -> Optional[PublishOutcome]:
    return get_orchestrator().process(post_id, trigger=trigger)
