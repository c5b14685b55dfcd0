from types import SimpleNamespace

import pytest
from apscheduler.schedulers.blocking import BlockingScheduler

from app.config import validate_settings
from app.errors import ConfigError
from app.services.scheduler import scan_due_posts
from app.worker import create_worker_scheduler


def test_worker_scheduler_jobs():
    sched = create_worker_scheduler(run_scanner=True)
    assert isinstance(sched, BlockingScheduler)

    jobs = {j.id: j for j in sched.get_jobs(jobstore="local")}
    assert set(jobs) == {"scan-due-posts", "worker-heartbeat"}
    assert jobs["scan-due-posts"].func is scan_due_posts
    assert jobs["scan-due-posts"].executor == "scanner"
    assert jobs["scan-due-posts"].trigger.interval.total_seconds() == 300
    assert jobs["worker-heartbeat"].executor == "internal"


def test_worker_without_sweep():
    sched = create_worker_scheduler(run_scanner=False)
    assert [j.id for j in sched.get_jobs(jobstore="local")] == ["worker-heartbeat"]


def _settings(**overrides):
    values = dict(
        fernet_key="k", database_url="sqlite://", max_publish_attempts=3,
        publish_window_start_hour=0, publish_window_end_hour=24,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_validate_settings():
    validate_settings(_settings())
    with pytest.raises(ConfigError):
        validate_settings(_settings(fernet_key=""))
    with pytest.raises(ConfigError):
        validate_settings(_settings(publish_window_start_hour=22, publish_window_end_hour=8))
    with pytest.raises(ConfigError):
        validate_settings(_settings(max_publish_attempts=0))
