import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_days: int,
        frontend_url: str,
        google_client_id: str,
        identity_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_days = session_max_age_days
        self.frontend_url = frontend_url
        self.google_client_id = google_client_id
        self.identity_timeout_secs = identity_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Asia/Kolkata")
    session_secret = os.getenv(
        "LEDGER_SESSION_SECRET",
        "3f9d0c2b7a41e86d5c1f0a9b8e7d6c5b4a3f2e1d0c9b8a7f6e5d4c3b2a1f0e9d",
    )
    session_max_age_days = int(os.getenv("LEDGER_SESSION_MAX_AGE_DAYS", "7"))
    frontend_url = os.getenv("LEDGER_FRONTEND_URL", "http://localhost:5500")
    google_client_id = os.getenv("LEDGER_GOOGLE_CLIENT_ID", "")
    identity_timeout_secs = float(os.getenv("LEDGER_IDENTITY_TIMEOUT_SECS", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_days=session_max_age_days,
        frontend_url=frontend_url,
        google_client_id=google_client_id,
        identity_timeout_secs=identity_timeout_secs,
    )
