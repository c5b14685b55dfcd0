import logging
import time
from typing import Any, Callable, Dict, List, Optional

from app.config import settings
from app.db import crud_posts
from app.db.base import SessionLocal
from app.db.models import PostStatus
from app.services import publisher

logger = logging.getLogger(__name__)


def scan_due_posts(
    batch_size: Optional[int] = None,
    now: Optional[int] = None,
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """One sweep: publish up to a small batch of due posts, one after another.

    Posts go one at a time with a pause between them. Whatever is left over
    is picked up next tick.
    """
    batch_size = batch_size or settings.scan_batch_size
    delay_seconds = settings.scan_inter_post_delay_seconds if delay_seconds is None else delay_seconds
    now = crud_posts.now_ms() if now is None else now

    if not publisher.within_publishing_hours():
        logger.info("Outside publishing hours, sweep skipped")
        return {"status": "outside-hours", "processed": 0}

    # each sweep gets its own session
    db = SessionLocal()
    try:
        due_ids = [p.id for p in crud_posts.list_due_posts(db, now, limit=batch_size)]
    finally:
        db.close()

    if not due_ids:
        return {"status": "no-due-posts", "processed": 0}

    logger.info("Found %d due posts", len(due_ids))
    results: List[Dict[str, Any]] = []
    counts = {"published": 0, "failed": 0, "retrying": 0, "skipped": 0}
    for i, post_id in enumerate(due_ids):
        try:
            outcome = publisher.publish_post(post_id, trigger="scan")
        except Exception as e:
            logger.exception("Unexpected error processing post %s", post_id)
            results.append({"post_id": post_id, "status": "error", "error": str(e)})
            counts["retrying"] += 1
        else:
            if outcome is None:
                counts["skipped"] += 1
                results.append({"post_id": post_id, "status": "skipped"})
            else:
                results.append(outcome.to_dict())
                if outcome.status == PostStatus.PUBLISHED:
                    counts["published"] += 1
                elif outcome.status == PostStatus.FAILED:
                    counts["failed"] += 1
                else:
                    counts["retrying"] += 1

        if i < len(due_ids) - 1 and delay_seconds > 0:
            sleep(delay_seconds)

    logger.info("Sweep done: %d published, %d failed, %d retrying, %d skipped",
                counts["published"], counts["failed"], counts["retrying"], counts["skipped"])
    return {"status": "ok", "processed": len(due_ids), **counts, "results": results}
