"""Worker process: runs the delayed publish jobs and the periodic sweep.

    python -m app.worker
"""
import logging

from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings, validate_settings
from app.deps import init_db
from app.logging_config import configure_logging
from app.services.jobs import build_scheduler
from app.services.scheduler import scan_due_posts

logger = logging.getLogger(__name__)


def _heartbeat() -> None:
    # waking the scheduler makes it re-read the shared job store,
    # which is how it sees jobs the API process added
    logger.debug("worker heartbeat")


def create_worker_scheduler(run_scanner=None):
    scheduler = build_scheduler(blocking=True)
    run_scanner = settings.worker_run_scanner if run_scanner is None else run_scanner
    if run_scanner:
        scheduler.add_job(
            scan_due_posts,
            trigger=IntervalTrigger(minutes=settings.scan_interval_minutes),
            id="scan-due-posts",
            name="periodic sweep of due posts",
            jobstore="local",
            executor="scanner",
            replace_existing=True,
        )
    scheduler.add_job(
        _heartbeat,
        trigger=IntervalTrigger(seconds=settings.worker_poll_seconds),
        id="worker-heartbeat",
        jobstore="local",
        executor="internal",
        replace_existing=True,
    )
    return scheduler


def main() -> None:
    configure_logging(settings.log_level)
    validate_settings()
    init_db()
    scheduler = create_worker_scheduler()
    logger.info(
        "Worker started (concurrency=%d, sweep=%s every %d min)",
        settings.worker_concurrency, "on" if settings.worker_run_scanner else "off",
        settings.scan_interval_minutes,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
