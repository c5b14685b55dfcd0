import os
from dotenv import load_dotenv

from app.errors import ConfigError

load_dotenv()


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./app.db")
    # APScheduler job store; shares the main database unless told otherwise
    jobstore_url: str = os.getenv("JOBSTORE_URL", "") or os.getenv("DATABASE_URL", "sqlite:///./app.db")
    fernet_key: str = os.getenv("FERNET_KEY", "")
    cron_secret: str = os.getenv("CRON_SECRET", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    graph_api_url: str = os.getenv("GRAPH_API_URL", "https://graph.facebook.com/v20.0")
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    blob_store_url: str = os.getenv("BLOB_STORE_URL", "https://blob.vercel-storage.com")
    blob_read_write_token: str = os.getenv("BLOB_READ_WRITE_TOKEN", "")

    max_publish_attempts: int = int(os.getenv("MAX_PUBLISH_ATTEMPTS", "3"))
    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "1"))
    poll_max_attempts: int = int(os.getenv("POLL_MAX_ATTEMPTS", "60"))

    scan_interval_minutes: int = int(os.getenv("SCAN_INTERVAL_MINUTES", "5"))
    scan_batch_size: int = int(os.getenv("SCAN_BATCH_SIZE", "5"))
    scan_inter_post_delay_seconds: float = float(os.getenv("SCAN_INTER_POST_DELAY_SECONDS", "2"))

    worker_concurrency: int = int(os.getenv("WORKER_CONCURRENCY", "2"))
    worker_poll_seconds: int = int(os.getenv("WORKER_POLL_SECONDS", "15"))
    worker_run_scanner: bool = _bool("WORKER_RUN_SCANNER", "true")

    # Publishing window, local hours [start, end). 0-24 means always open.
    # 7-24 with America/Sao_Paulo keeps posts out of the local night.
    publish_timezone: str = os.getenv("PUBLISH_TIMEZONE", "America/Sao_Paulo")
    publish_window_start_hour: int = int(os.getenv("PUBLISH_WINDOW_START_HOUR", "0"))
    publish_window_end_hour: int = int(os.getenv("PUBLISH_WINDOW_END_HOUR", "24"))

settings = Settings()


def validate_settings(s: Settings = settings) -> None:
    """Fail fast on configuration the pipeline cannot run without."""
    if not s.fernet_key:
        raise ConfigError("FERNET_KEY is not set. Put it in .env or set it in the environment.")
    if not s.database_url:
        raise ConfigError("DATABASE_URL is not set.")
    if not (0 <= s.publish_window_start_hour < s.publish_window_end_hour <= 24):
        raise ConfigError(
            f"Invalid publishing window {s.publish_window_start_hour}-{s.publish_window_end_hour}"
        )
    if s.max_publish_attempts < 1:
        raise ConfigError("MAX_PUBLISH_ATTEMPTS must be at least 1")
