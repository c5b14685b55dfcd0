import os
import tempfile

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment has to be in place first.
_tmpdir = tempfile.mkdtemp(prefix="publisher-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["JOBSTORE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'jobs.db')}"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["BLOB_READ_WRITE_TOKEN"] = "blob-token"
os.environ["POLL_INTERVAL_SECONDS"] = "0"
os.environ["SCAN_INTER_POST_DELAY_SECONDS"] = "0"
os.environ["PUBLISH_WINDOW_START_HOUR"] = "0"
os.environ["PUBLISH_WINDOW_END_HOUR"] = "24"

import pytest  # noqa: E402
from apscheduler.jobstores.memory import MemoryJobStore  # noqa: E402
from apscheduler.schedulers.background import BackgroundScheduler  # noqa: E402

from app.db.base import Base, engine, SessionLocal  # noqa: E402
from app.db import models  # noqa: E402,F401
from app.db import crud_accounts, crud_posts  # noqa: E402
from app.services import activity  # noqa: E402
from app.services.jobs import job_scheduler  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture(autouse=True)
def activity_calls(monkeypatch):
    """Record audit entries synchronously instead of spawning threads."""
    calls = []

    def fake_log_activity(category, action, **kw):
        calls.append({"category": category, "action": action, **kw})

    monkeypatch.setattr(activity, "log_activity", fake_log_activity)
    return calls


@pytest.fixture
def memory_scheduler():
    """A paused in-memory scheduler: jobs are stored but never fire."""
    sched = BackgroundScheduler(jobstores={"default": MemoryJobStore()}, timezone="UTC")
    sched.start(paused=True)
    previous = job_scheduler.scheduler
    job_scheduler.scheduler = sched
    yield job_scheduler
    sched.shutdown(wait=False)
    job_scheduler.scheduler = previous


class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_post(db):
    def _make(**overrides):
        data = {
            "user_id": "u1",
            "organization_id": None,
            "image_url": "https://cdn.example.com/a.png",
            "caption": "hello",
            "hashtags": ["sun", "beach"],
            "content_subtype": "photo",
            "scheduled_timestamp": crud_posts.now_ms() - 1000,
        }
        data.update(overrides)
        return crud_posts.create_post(db, data)
    return _make


@pytest.fixture
def make_account(db):
    def _make(user_id="u1", organization_id=None, platform_user_id="17841000", username="brand", token="ig-token"):
        acct, _ = crud_accounts.upsert_account(
            db,
            user_id=user_id,
            organization_id=organization_id,
            platform_user_id=platform_user_id,
            platform_username=username,
            access_token=token,
        )
        return acct
    return _make
