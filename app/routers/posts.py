# app/routers/posts.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session

from app.deps import get_db
from app.db import crud_posts
from app.db.models import ScheduledPost
from app.services import posts as post_service

router = APIRouter(prefix="/posts", tags=["posts"])


class ScheduleIn(BaseModel):
    user_id: str
    organization_id: Optional[str] = None
    image_url: str
    caption: str = ""
    hashtags: List[str] = []
    content_subtype: str = "photo"
    content_type: Optional[str] = None
    scheduled_timestamp: int
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    timezone: Optional[str] = None
    account_id: Optional[str] = None


class RescheduleIn(BaseModel):
    scheduled_timestamp: int
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    timezone: Optional[str] = None


def _row(p: ScheduledPost) -> Dict[str, Any]:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "organization_id": p.organization_id,
        "content_subtype": p.content_subtype,
        "caption": p.caption,
        "hashtags": p.hashtags or [],
        "scheduled_timestamp": p.scheduled_timestamp,
        "scheduled_date": p.scheduled_date,
        "scheduled_time": p.scheduled_time,
        "timezone": p.timezone,
        "status": p.status,
        "publish_attempts": p.publish_attempts,
        "error_message": p.error_message,
        "platform_media_id": p.platform_media_id,
        "published_at": str(p.published_at) if p.published_at else None,
    }


@router.post("", status_code=201)
def schedule(body: ScheduleIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        post, job_id = post_service.schedule_post(db, body.model_dump())
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"status": "scheduled", "id": post.id, "job_id": job_id}


@router.get("")
def list_posts(
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    if not user_id and not organization_id:
        raise HTTPException(400, "user_id or organization_id is required")
    rows = crud_posts.list_posts(db, user_id=user_id, organization_id=organization_id, status=status, limit=limit)
    return [_row(r) for r in rows]


@router.get("/{post_id}/status")
def get_status(post_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return post_service.get_status(db, post_id)
    except post_service.PostNotFound:
        raise HTTPException(404, "Post not found")


@router.put("/{post_id}/schedule")
def reschedule(post_id: str, body: RescheduleIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        job_id = post_service.reschedule_post(
            db, post_id, body.scheduled_timestamp,
            scheduled_date=body.scheduled_date, scheduled_time=body.scheduled_time, timezone=body.timezone,
        )
    except post_service.PostNotFound:
        raise HTTPException(404, "Post not found")
    except post_service.PostStateConflict as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"status": "rescheduled", "id": post_id, "job_id": job_id}


@router.post("/{post_id}/cancel")
def cancel(post_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        changed = post_service.cancel_post(db, post_id)
    except post_service.PostNotFound:
        raise HTTPException(404, "Post not found")
    except post_service.PostStateConflict as e:
        raise HTTPException(409, str(e))
    return {"status": "cancelled" if changed else "unchanged", "changed": changed}


@router.delete("/{post_id}")
def delete(post_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        post_service.delete_post(db, post_id)
    except post_service.PostNotFound:
        raise HTTPException(404, "Post not found")
    except post_service.PostStateConflict as e:
        raise HTTPException(409, str(e))
    return {"status": "deleted", "id": post_id}
