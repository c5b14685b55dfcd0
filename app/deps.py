import hmac
from typing import Generator, Optional

from fastapi import Header, HTTPException
from app.config import settings
from app.db.base import SessionLocal, engine, Base
from app.db import models  # noqa: F401  (registers tables)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Shared-secret bearer check for the sweep trigger."""
    if not settings.cron_secret:
        raise HTTPException(503, "CRON_SECRET is not configured")
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(401, "Unauthorized")
