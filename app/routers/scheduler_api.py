from fastapi import APIRouter, Depends
from typing import Dict, Any
from app.deps import require_cron_secret
from app.services.scheduler import scan_due_posts
from app.services.jobs import job_scheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.post("/run", dependencies=[Depends(require_cron_secret)])
def run_now() -> Dict[str, Any]:
    # called by the host's timer every few minutes; the safety net for missed jobs
    return scan_due_posts()


@router.get("/status")
def status() -> Dict[str, Any]:
    return {
        "job_store": "up" if job_scheduler.available else "down",
        "pending_jobs": job_scheduler.pending_jobs(),
    }
