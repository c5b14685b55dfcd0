# app/services/jobs.py
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.date import DateTrigger

from app.config import settings
from app.services import publisher

logger = logging.getLogger(__name__)

JOB_PREFIX = "publish-"


def job_id_for(post_id: str) -> str:
    return f"{JOB_PREFIX}{post_id}"


def fire_time(scheduled_timestamp: int) -> datetime:
    seconds, millis = divmod(int(scheduled_timestamp), 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)


def run_publish_job(post_id: str) -> Optional[Dict[str, Any]]:
    """Job callable: fired at the post's due instant."""
    try:
        outcome = publisher.publish_post(post_id, trigger="job")
    except Exception:
        # the sweep retries it; never let one post kill a worker slot
        logger.exception("Publish job for post %s crashed", post_id)
        return None
    return outcome.to_dict() if outcome else None


def build_scheduler(
    blocking: bool = False,
    jobstore_url: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> BaseScheduler:
    """Scheduler over the durable job store.

    'default' executor runs publish jobs, one post per thread; 'scanner' and
    'internal' keep the sweep and housekeeping off those slots.
    """
    jobstores = {
        "default": SQLAlchemyJobStore(url=jobstore_url or settings.jobstore_url),
        "local": MemoryJobStore(),
    }
    executors = {
        "default": ThreadPoolExecutor(concurrency or settings.worker_concurrency),
        "scanner": ThreadPoolExecutor(1),
        "internal": ThreadPoolExecutor(1),
    }
    job_defaults = {"coalesce": True, "max_instances": 1, "misfire_grace_time": None}
    cls = BlockingScheduler if blocking else BackgroundScheduler
    return cls(jobstores=jobstores, executors=executors, job_defaults=job_defaults, timezone="UTC")


class JobScheduler:
    """One delayed job per scheduled post, keyed by post id."""

    def __init__(self, scheduler: Optional[BaseScheduler] = None):
        self.scheduler = scheduler

    @property
    def available(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self, paused: bool = True) -> bool:
        # paused: this process only writes jobs, the worker runs them
        if self.available:
            return True
        try:
            if self.scheduler is None:
                self.scheduler = build_scheduler()
            self.scheduler.start(paused=paused)
        except Exception as e:
            logger.warning("Job store unavailable, relying on the periodic sweep: %s", e)
            return False
        return True

    def shutdown(self) -> None:
        if self.available:
            self.scheduler.shutdown(wait=False)

    def schedule_post(self, post_id: str, scheduled_timestamp: int) -> Optional[str]:
        """Enqueue (or replace) the job. Never raises; None means not enqueued."""
        if not self.available:
            logger.warning("Job scheduler not running, post %s left to the periodic sweep", post_id)
            return None
        run_date = fire_time(scheduled_timestamp)
        try:
            job = self.scheduler.add_job(
                run_publish_job,
                trigger=DateTrigger(run_date=run_date, timezone=timezone.utc),
                args=[post_id],
                id=job_id_for(post_id),
                name=f"publish post {post_id}",
                replace_existing=True,
                misfire_grace_time=None,
                coalesce=True,
            )
        except Exception as e:
            logger.warning("Could not enqueue job for post %s, left to the periodic sweep: %s", post_id, e)
            return None
        logger.info("Post %s job scheduled for %s", post_id, run_date.isoformat())
        return job.id

    def cancel_post(self, post_id: str) -> bool:
        if not self.available:
            return False
        try:
            self.scheduler.remove_job(job_id_for(post_id))
        except JobLookupError:
            return False
        except Exception as e:
            logger.warning("Could not remove job for post %s: %s", post_id, e)
            return False
        logger.info("Post %s job removed", post_id)
        return True

    def get_job(self, post_id: str):
        if not self.available:
            return None
        return self.scheduler.get_job(job_id_for(post_id))

    def pending_jobs(self) -> int:
        if not self.available:
            return 0
        try:
            return sum(1 for j in self.scheduler.get_jobs() if j.id.startswith(JOB_PREFIX))
        except Exception as e:
            logger.warning("Could not list jobs: %s", e)
            return 0


job_scheduler = JobScheduler()
