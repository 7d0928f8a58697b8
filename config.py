"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)


class Config(BaseModel):
    """Centralised app configuration backed by env vars."""

    # Catalog store
    database_path: str = str(_PROJECT_ROOT / "data" / "catalog.db")

    # Shared cache (empty URL means the in-process cache)
    redis_url: str = ""
    redis_socket_timeout: float = 1.0

    # SKU engine
    sku_sequence_ttl: int = 86400  # 24 hours
    sku_lock_ttl: int = 300  # 5 minutes
    sku_max_attempts: int = 10
    sku_analytics_ttl: int = 86400 * 30

    # Flask
    flask_host: str = "127.0.0.1"
    flask_port: int = 5000
    flask_debug: bool = True
    flask_secret_key: str = "change-me-in-production"  # noqa: S105
    cors_origins: list[str] = ["http://localhost:5173"]

    @model_validator(mode="after")
    def _warn_empty_critical_fields(self) -> Config:
        """Log warnings when critical integration fields are empty."""
        if not self.redis_url:
            logger.warning(
                "REDIS_URL is not set, using the in-process cache; "
                "sequences and reservations are not shared between processes"
            )
        if self.sku_max_attempts < 1:
            msg = "SKU_MAX_ATTEMPTS must be at least 1"
            raise ValueError(msg)
        return self

    @classmethod
    def from_env(cls) -> Config:
        """Build config from environment variables."""
        cors_raw = os.getenv("CORS_ORIGINS", "http://localhost:5173")
        cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()]

        return cls(
            database_path=os.getenv(
                "DATABASE_PATH", str(_PROJECT_ROOT / "data" / "catalog.db")
            ),
            redis_url=os.getenv("REDIS_URL", ""),
            redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "1.0")),
            sku_sequence_ttl=int(os.getenv("SKU_SEQUENCE_TTL", "86400")),
            sku_lock_ttl=int(os.getenv("SKU_LOCK_TTL", "300")),
            sku_max_attempts=int(os.getenv("SKU_MAX_ATTEMPTS", "10")),
            sku_analytics_ttl=int(os.getenv("SKU_ANALYTICS_TTL", str(86400 * 30))),
            flask_host=os.getenv("FLASK_HOST", "127.0.0.1"),
            flask_port=int(os.getenv("FLASK_PORT", "5000")),
            flask_debug=os.getenv("FLASK_DEBUG", "true").lower() in ("1", "true", "yes"),
            flask_secret_key=os.getenv("FLASK_SECRET_KEY", "change-me-in-production"),
            cors_origins=cors_origins,
        )


settings = Config.from_env()
