"""Audit trail written off the request/attempt path.

Each entry is persisted from its own short-lived thread with its own session,
after the caller's transaction is committed. Failures here are logged and
dropped; they never reach the caller.
"""
import logging
import threading
from typing import Any, Callable, Dict, Optional

from app.db.base import SessionLocal
from app.db.models import ActivityLog

logger = logging.getLogger(__name__)

POST_SCHEDULE = "post.schedule"
POST_CANCEL = "post.cancel"
POST_DELETE = "post.delete"
POST_PUBLISH = "instagram.post_publish"
POST_PUBLISH_FAILED = "instagram.post_failed"
ACCOUNT_CONNECT = "instagram.account_connect"
ACCOUNT_DISCONNECT = "instagram.account_disconnect"


def write_activity(entry: Dict[str, Any], session_factory: Callable = SessionLocal) -> None:
    db = session_factory()
    try:
        db.add(ActivityLog(**entry))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.debug("Activity log write dropped (%s): %s", entry.get("action"), e)
    finally:
        db.close()


def log_activity(
    category: str,
    action: str,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
    error_message: Optional[str] = None,
) -> threading.Thread:
    entry = {
        "category": category,
        "action": action,
        "user_id": user_id,
        "organization_id": organization_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": details,
        "success": success,
        "error_message": error_message,
    }
    t = threading.Thread(target=write_activity, args=(entry,), name=f"activity-{action}", daemon=True)
    t.start()
    return t
