import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        environment: str,
        token_secret: str,
        token_max_age_secs: int,
        bcrypt_rounds: int,
        db_pool_size: int,
        db_max_overflow: int,
        db_pool_timeout_secs: float,
        cors_origins: list[str],
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.environment = environment
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.bcrypt_rounds = bcrypt_rounds
        self.db_pool_size = db_pool_size
        self.db_max_overflow = db_max_overflow
        self.db_pool_timeout_secs = db_pool_timeout_secs
        self.cors_origins = cors_origins
        self.log_level = log_level

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


class ClientSettings:
    def __init__(self, api_url: str, timeout_secs: float, token_path: Path) -> None:
        self.api_url = api_url
        self.timeout_secs = timeout_secs
        self.token_path = token_path


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    environment = os.getenv("FINANCE_ENV", "production").lower()
    token_secret = os.getenv(
        "FINANCE_TOKEN_SECRET",
        "5d0c3f0b8e6a4f7fa0e3a2cb61c45e9d2b7f81a4c3e95d60f2a7b8c9d1e0f3a4",
    )
    token_max_age_secs = int(
        os.getenv("FINANCE_TOKEN_MAX_AGE_SECS", str(7 * 24 * 3600))
    )
    bcrypt_rounds = int(os.getenv("FINANCE_BCRYPT_ROUNDS", "10"))
    db_pool_size = int(os.getenv("FINANCE_DB_POOL_SIZE", "10"))
    db_max_overflow = int(os.getenv("FINANCE_DB_MAX_OVERFLOW", "0"))
    db_pool_timeout_secs = float(os.getenv("FINANCE_DB_POOL_TIMEOUT_SECS", "30"))
    cors_origins = _split_csv(os.getenv("FINANCE_CORS_ORIGINS", "*"))
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        environment=environment,
        token_secret=token_secret,
        token_max_age_secs=token_max_age_secs,
        bcrypt_rounds=bcrypt_rounds,
        db_pool_size=db_pool_size,
        db_max_overflow=db_max_overflow,
        db_pool_timeout_secs=db_pool_timeout_secs,
        cors_origins=cors_origins,
        log_level=log_level,
    )


@lru_cache(maxsize=1)
def get_client_settings() -> ClientSettings:
    api_url = os.getenv("FINANCE_API_URL", "http://localhost:8000/api")
    timeout_secs = float(os.getenv("FINANCE_CLIENT_TIMEOUT_SECS", "10"))
    token_path = Path(
        os.getenv(
            "FINANCE_CLIENT_TOKEN_PATH",
            str(Path.home() / ".finance-tracker" / "token"),
        )
    )
    return ClientSettings(
        api_url=api_url, timeout_secs=timeout_secs, token_path=token_path
    )
