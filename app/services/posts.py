"""Operations other subsystems call: schedule, reschedule, cancel, delete, status."""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.db import crud_posts
from app.db.models import ScheduledPost, PostStatus, CONTENT_SUBTYPES
from app.services import activity
from app.services.jobs import job_scheduler

logger = logging.getLogger(__name__)


class PostNotFound(LookupError):
    pass


class PostStateConflict(RuntimeError):
    """The post is in a state that does not allow the requested change."""


def _validate(data: Dict[str, Any]) -> None:
    subtype = data.get("content_subtype") or "photo"
    if subtype not in CONTENT_SUBTYPES:
        raise ValueError(f"content_subtype must be one of {', '.join(CONTENT_SUBTYPES)}")
    ts = data.get("scheduled_timestamp")
    if not isinstance(ts, int) or isinstance(ts, bool) or ts <= 0:
        raise ValueError("scheduled_timestamp must be a positive integer (epoch milliseconds)")
    if not data.get("image_url"):
        raise ValueError("image_url is required")


def schedule_post(db: Session, data: Dict[str, Any]) -> Tuple[ScheduledPost, Optional[str]]:
    """Create the post, then enqueue its job. Enqueue problems never fail the call."""
    _validate(data)
    data = {**data, "content_subtype": data.get("content_subtype") or "photo"}
    post = crud_posts.create_post(db, data)
    job_id = job_scheduler.schedule_post(post.id, post.scheduled_timestamp)
    logger.info("Post %s scheduled for %d (job=%s)", post.id, post.scheduled_timestamp, job_id)
    activity.log_activity(
        "crud", activity.POST_SCHEDULE,
        user_id=post.user_id, organization_id=post.organization_id,
        entity_type="scheduled_post", entity_id=post.id,
        details={"scheduled_timestamp": post.scheduled_timestamp, "job_id": job_id},
    )
    return post, job_id


def reschedule_post(db: Session, post_id: str, scheduled_timestamp: int, **display: Any) -> Optional[str]:
    post = crud_posts.get_post(db, post_id)
    if not post:
        raise PostNotFound(post_id)
    _validate({"scheduled_timestamp": scheduled_timestamp, "image_url": post.image_url,
               "content_subtype": post.content_subtype})
    if not crud_posts.reschedule_post(db, post_id, scheduled_timestamp, **display):
        raise PostStateConflict(f"Post {post_id} is no longer scheduled")
    return job_scheduler.schedule_post(post_id, scheduled_timestamp)


def cancel_post(db: Session, post_id: str) -> bool:
    """Idempotent. True if this call cancelled it, False if it was already terminal."""
    post = crud_posts.get_post(db, post_id)
    if not post:
        raise PostNotFound(post_id)
    changed = crud_posts.cancel_post(db, post_id)
    if not changed:
        db.refresh(post)
        if post.status == PostStatus.PUBLISHING:
            raise PostStateConflict(f"Post {post_id} is being published and cannot be cancelled")
        return False
    job_scheduler.cancel_post(post_id)
    activity.log_activity(
        "crud", activity.POST_CANCEL,
        user_id=post.user_id, organization_id=post.organization_id,
        entity_type="scheduled_post", entity_id=post_id,
    )
    return True


def delete_post(db: Session, post_id: str) -> None:
    post = crud_posts.get_post(db, post_id)
    if not post:
        raise PostNotFound(post_id)
    owner = {"user_id": post.user_id, "organization_id": post.organization_id}
    if not crud_posts.delete_post(db, post_id):
        raise PostStateConflict(f"Post {post_id} is being published and cannot be deleted")
    job_scheduler.cancel_post(post_id)
    activity.log_activity(
        "crud", activity.POST_DELETE,
        entity_type="scheduled_post", entity_id=post_id, **owner,
    )


def get_status(db: Session, post_id: str) -> Dict[str, Any]:
    post = crud_posts.get_post(db, post_id)
    if not post:
        raise PostNotFound(post_id)
    return {
        "id": post.id,
        "state": post.status,
        "attempts": post.publish_attempts,
        "error": post.error_message,
        "media_id": post.platform_media_id,
        "published_at": post.published_at.isoformat() if post.published_at else None,
    }
