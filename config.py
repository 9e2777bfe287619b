import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        cors_origins: list[str],
        log_level: str,
        port: int,
        api_url: str,
        api_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.cors_origins = cors_origins
        self.log_level = log_level
        self.port = port
        self.api_url = api_url
        self.api_timeout_secs = api_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    csrf_secret = os.getenv(
        "FINANCE_CSRF_SECRET",
        "5f0c3be1d9a24e6f8b7a1c2d3e4f5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d1e2f",
    )
    cors_raw = os.getenv("FINANCE_CORS_ORIGINS", "*")
    cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()]
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    port = int(os.getenv("FINANCE_PORT", "3333"))
    api_url = os.getenv("FINANCE_API_URL", f"http://localhost:{port}/api")
    api_timeout_secs = float(os.getenv("FINANCE_API_TIMEOUT_SECS", "10"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        cors_origins=cors_origins,
        log_level=log_level,
        port=port,
        api_url=api_url,
        api_timeout_secs=api_timeout_secs,
    )
