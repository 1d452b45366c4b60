"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.

Only the process entry point (``social_feed.main``) reads the module-level
``settings`` object; services receive a ``Settings`` instance at
construction time so tests can pass their own.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "social_feed"

    # Full SQLAlchemy URL; wins over the tidb_* parts when set
    # (e.g. sqlite+aiosqlite:///./social_feed.db for local runs).
    database_url: Optional[str] = None

    # 'sql' | 'memory'
    store_backend: str = "sql"

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    @property
    def sqlalchemy_url(self) -> str:
        return self.database_url or self.tidb_url

    # ── Feed ───────────────────────────────────────────────────────────────
    feed_page_size: int = 20
    feed_max_page_size: int = 50
    following_fanout_ceiling: int = 1000   # followed ids resolved per request

    # ── Notifications ──────────────────────────────────────────────────────
    notification_dedup_window_seconds: int = 300
    notification_preview_length: int = 100
    notification_mark_all_batch: int = 100

    # ── Content limits ─────────────────────────────────────────────────────
    thread_max_length: int = 500
    username_min_length: int = 3
    username_max_length: int = 30
    display_name_max_length: int = 50
    bio_max_length: int = 160

    # ── User search ────────────────────────────────────────────────────────
    search_page_size: int = 10
    search_max_page_size: int = 20
    search_query_max_length: int = 50

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "social-feed-api"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
