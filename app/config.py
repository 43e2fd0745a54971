# app/config.py

import os
from typing import Optional

from pydantic import BaseModel, field_validator

BACKENDS = ("memory", "sql", "harperdb")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    store_backend: str = "memory"
    database_url: Optional[str] = None
    harperdb_url: Optional[str] = None
    harperdb_username: Optional[str] = None
    harperdb_password: Optional[str] = None
    harperdb_schema: str = "trading"
    store_timeout: float = 5.0
    db_connect_retries: int = 5
    db_retry_interval: float = 5.0
    seed_sample_data: bool = False
    port: int = 8000

    @field_validator("store_backend")
    @classmethod
    def check_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in BACKENDS:
            raise ValueError(f"STORE_BACKEND must be one of {', '.join(BACKENDS)}")
        return value

    @field_validator("database_url")
    @classmethod
    def fix_postgres_scheme(cls, value: Optional[str]) -> Optional[str]:
        # Hosted Postgres providers still hand out postgres:// URLs
        if value and value.startswith("postgres://"):
            value = value.replace("postgres://", "postgresql://", 1)
        return value or None

    @field_validator("store_timeout")
    @classmethod
    def check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("STORE_TIMEOUT must be positive")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Builds settings from environment variables.

        Returns:
            Settings: Validated settings.
        """
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "memory"),
            database_url=os.getenv("DATABASE_URL"),
            harperdb_url=os.getenv("HARPERDB_URL"),
            harperdb_username=os.getenv("HARPERDB_USERNAME"),
            harperdb_password=os.getenv("HARPERDB_PASSWORD"),
            harperdb_schema=os.getenv("HARPERDB_SCHEMA", "trading"),
            store_timeout=float(os.getenv("STORE_TIMEOUT", 5.0)),
            db_connect_retries=int(os.getenv("DB_CONNECT_RETRIES", 5)),
            db_retry_interval=float(os.getenv("DB_RETRY_INTERVAL", 5.0)),
            seed_sample_data=_env_flag("SEED_SAMPLE_DATA"),
            port=int(os.getenv("PORT", 8000)),
        )
