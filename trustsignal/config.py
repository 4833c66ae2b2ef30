"""
TrustSignal — Configuration

All settings load from environment variables with safe defaults for development.
In production, set TRUST_ENV=production to enforce required values.
"""
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("TRUST_ENV", "development")

        # === Database ===
        self.NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
        self.NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "trust_dev_password")
        self.STORE_BACKEND = os.getenv("TRUST_STORE", "memory")  # memory | neo4j

        # === Cache ===
        # Empty REDIS_URL selects the in-process cache backend.
        self.REDIS_URL = os.getenv("REDIS_URL", "")
        self.CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

        # === Scoring ===
        self.TRUST_CONFIG_PATH: Optional[str] = os.getenv("TRUST_CONFIG_PATH") or None
        self.TRUST_INCLUDE_DIAGNOSTICS = _flag("TRUST_INCLUDE_DIAGNOSTICS")

        # === Scheduler ===
        self.RECOMPUTE_LOOKBACK_HOURS = int(os.getenv("RECOMPUTE_LOOKBACK_HOURS", "24"))
        self.DRIFT_THRESHOLD = float(os.getenv("DRIFT_THRESHOLD", "10"))
        self.RECOMPUTE_PAUSE_SECONDS = float(os.getenv("RECOMPUTE_PAUSE_SECONDS", "0"))

        # === Connectors ===
        self.RAW_ARCHIVE_DIR: Optional[str] = os.getenv("RAW_ARCHIVE_DIR", "storage/raw") or None
        self.COURTLISTENER_API_KEY = os.getenv("COURTLISTENER_API_KEY", "")
        self.OPENFDA_API_KEY = os.getenv("OPENFDA_API_KEY", "")
        self.DATAGOV_API_KEY = os.getenv("DATAGOV_API_KEY", "")
        self.HTTP_USER_AGENT = os.getenv(
            "HTTP_USER_AGENT", "TrustSignal/1.0 (+https://trustsignal.dev/bot)"
        )
        self.CONNECTOR_MAX_ATTEMPTS = int(os.getenv("CONNECTOR_MAX_ATTEMPTS", "3"))
        self.CONNECTOR_BASE_DELAY = float(os.getenv("CONNECTOR_BASE_DELAY", "1.0"))
        self.RATE_LIMIT_MAX_WAIT = float(os.getenv("RATE_LIMIT_MAX_WAIT", "60"))

        # === Application ===
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.TRUST_HOST = os.getenv("TRUST_HOST", "0.0.0.0")
        self.TRUST_PORT = int(os.getenv("TRUST_PORT", "8000"))

        # === Admin ===
        self.TRUST_ADMIN_KEY = os.getenv("TRUST_ADMIN_KEY", "")
        if not self.TRUST_ADMIN_KEY:
            if self.is_production:
                raise RuntimeError("TRUST_ADMIN_KEY must be set in production. Add it to .env")
            self.TRUST_ADMIN_KEY = "admin_dev_key"

        if self.is_production and self.STORE_BACKEND == "neo4j" and not os.getenv("NEO4J_PASSWORD"):
            raise RuntimeError("NEO4J_PASSWORD must be set in production. Add it to .env")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def redis_enabled(self) -> bool:
        return bool(self.REDIS_URL)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
