"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

# Platform ceiling on documents per atomic batch write.
MAX_BATCH = 500


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "recipe_feed"
    # Full SQLAlchemy URL; takes precedence over the tidb_* parts when set
    database_url: Optional[str] = None

    @property
    def tidb_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis (feed partitions) ────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    # ── Fan-out ────────────────────────────────────────────────────────────
    fanout_max_batch: int = Field(MAX_BATCH, ge=1, le=MAX_BATCH)
    fanout_parallelism: int = Field(4, ge=1)   # concurrent batch commits

    # ── Feed reads ─────────────────────────────────────────────────────────
    feed_page_size: int = Field(50, ge=1)
    feed_max_page_size: int = Field(200, ge=1)

    # ── Connection pool (TiDB) ─────────────────────────────────────────────
    db_pool_size: int = Field(20, ge=1)
    db_max_overflow: int = Field(10, ge=0)

    # Shared secret for the internal /activities endpoint; empty disables the check
    internal_api_token: str = ""

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "recipe-feed-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
