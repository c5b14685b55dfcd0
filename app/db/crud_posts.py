# app/db/crud_posts.py
import time
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import update, delete, case
from sqlalchemy.orm import Session

from app.db.models import ScheduledPost, PostStatus


def now_ms() -> int:
    # integer clock; never derive this from a float timestamp
    return time.time_ns() // 1_000_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_post(db: Session, data: Dict[str, Any]) -> ScheduledPost:
    obj = ScheduledPost(**data)
    obj.status = PostStatus.SCHEDULED
    obj.publish_attempts = 0
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def get_post(db: Session, post_id: str) -> Optional[ScheduledPost]:
    return db.query(ScheduledPost).filter(ScheduledPost.id == post_id).first()


def list_posts(
    db: Session,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[ScheduledPost]:
    q = db.query(ScheduledPost)
    if organization_id:
        q = q.filter(ScheduledPost.organization_id == organization_id)
    elif user_id:
        q = q.filter(ScheduledPost.user_id == user_id, ScheduledPost.organization_id.is_(None))
    if status:
        q = q.filter(ScheduledPost.status == status)
    return q.order_by(ScheduledPost.scheduled_timestamp.asc()).limit(limit).all()


def list_due_posts(db: Session, now: int, limit: int = 5) -> List[ScheduledPost]:
    return (
        db.query(ScheduledPost)
        .filter(ScheduledPost.status == PostStatus.SCHEDULED)
        .filter(ScheduledPost.scheduled_timestamp <= now)
        .order_by(ScheduledPost.scheduled_timestamp.asc())
        .limit(limit)
        .all()
    )


def _conditional_update(db: Session, post_id: str, expected_status: str, values: Dict[str, Any], *extra) -> bool:
    stmt = (
        update(ScheduledPost)
        .where(ScheduledPost.id == post_id, ScheduledPost.status == expected_status, *extra)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    db.commit()
    return res.rowcount == 1


def claim_post(db: Session, post_id: str, due_by: Optional[int] = None) -> Optional[ScheduledPost]:
    """Atomically move a post from scheduled to publishing and count the attempt.

    Single conditional write; returns None when another trigger already
    claimed the post or it is no longer scheduled. With `due_by` (epoch ms)
    a post whose time has not come yet is not claimed either.
    """
    extra = [] if due_by is None else [ScheduledPost.scheduled_timestamp <= due_by]
    claimed = _conditional_update(db, post_id, PostStatus.SCHEDULED, {
        "status": PostStatus.PUBLISHING,
        "publish_attempts": ScheduledPost.publish_attempts + 1,
        "last_publish_attempt": _utcnow(),
    }, *extra)
    if not claimed:
        return None
    return get_post(db, post_id)


def mark_published(db: Session, post_id: str, media_id: str) -> bool:
    return _conditional_update(db, post_id, PostStatus.PUBLISHING, {
        "status": PostStatus.PUBLISHED,
        "published_at": _utcnow(),
        "platform_media_id": media_id,
        "error_message": None,
    })


def mark_attempt_failed(db: Session, post_id: str, error: str, max_attempts: int) -> Optional[str]:
    """Back to scheduled for another try, or failed once the attempts are used up.

    Returns the new status, or None if the post was not in publishing.
    """
    next_status = case(
        (ScheduledPost.publish_attempts >= max_attempts, PostStatus.FAILED),
        else_=PostStatus.SCHEDULED,
    )
    ok = _conditional_update(db, post_id, PostStatus.PUBLISHING, {
        "status": next_status,
        "error_message": error,
    })
    if not ok:
        return None
    post = get_post(db, post_id)
    return post.status if post else None


def cancel_post(db: Session, post_id: str) -> bool:
    return _conditional_update(db, post_id, PostStatus.SCHEDULED, {"status": PostStatus.CANCELLED})


def reschedule_post(db: Session, post_id: str, scheduled_timestamp: int, **display: Any) -> bool:
    values: Dict[str, Any] = {"scheduled_timestamp": scheduled_timestamp}
    values.update({k: v for k, v in display.items() if v is not None})
    return _conditional_update(db, post_id, PostStatus.SCHEDULED, values)


def delete_post(db: Session, post_id: str) -> bool:
    stmt = (
        delete(ScheduledPost)
        .where(ScheduledPost.id == post_id, ScheduledPost.status != PostStatus.PUBLISHING)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    db.commit()
    return res.rowcount == 1
