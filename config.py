import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        token_secret: str,
        token_ttl_hours: int,
        log_level: str,
        bootstrap_username: str,
        bootstrap_password: str,
    ) -> None:
        self.database_url = database_url
        self.token_secret = token_secret
        self.token_ttl_hours = token_ttl_hours
        self.log_level = log_level
        self.bootstrap_username = bootstrap_username
        self.bootstrap_password = bootstrap_password


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("TEAMBOOKS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "teambooks.db"
    database_url = os.getenv("TEAMBOOKS_DATABASE_URL", f"sqlite:///{default_db}")
    token_secret = os.getenv(
        "TEAMBOOKS_TOKEN_SECRET",
        "5c1f0d7e9a4b2c38e6f1a0b9d8c7e6f5a4b3c2d1e0f9a8b7c6d5e4f3a2b1c0d9",
    )
    token_ttl_hours = int(os.getenv("TEAMBOOKS_TOKEN_TTL_HOURS", "24"))
    log_level = os.getenv("TEAMBOOKS_LOG_LEVEL", "INFO").upper()
    bootstrap_username = os.getenv("TEAMBOOKS_BOOTSTRAP_USERNAME", "admin")
    # Empty password disables bootstrapping of the first superadmin.
    bootstrap_password = os.getenv("TEAMBOOKS_BOOTSTRAP_PASSWORD", "")
    return Settings(
        database_url=database_url,
        token_secret=token_secret,
        token_ttl_hours=token_ttl_hours,
        log_level=log_level,
        bootstrap_username=bootstrap_username,
        bootstrap_password=bootstrap_password,
    )
