# backend/possync/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/possync.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///possync.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cart pricing
    POS_TAX_RATE = os.environ.get("POS_TAX_RATE", "0.10")

    # Upstream commerce platform. Stored PosSettings take precedence.
    UPSTREAM_URL = os.environ.get("UPSTREAM_URL", "")
    UPSTREAM_CONSUMER_KEY = os.environ.get("UPSTREAM_CONSUMER_KEY", "")
    UPSTREAM_CONSUMER_SECRET = os.environ.get("UPSTREAM_CONSUMER_SECRET", "")
    UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "10"))
    UPSTREAM_VERIFY_TLS = _env_bool("UPSTREAM_VERIFY_TLS", True)
    UPSTREAM_ALLOW_INSECURE = _env_bool("UPSTREAM_ALLOW_INSECURE", False)
    # Optional httpx transport object (mock transports, proxies)
    UPSTREAM_TRANSPORT = None

    # "single": fetch only the missing product; "bulk": full catalog re-sync
    CATALOG_MISS_POLICY = os.environ.get("CATALOG_MISS_POLICY", "single")

    # Order reconciliation
    SYNC_ON_CHECKOUT = _env_bool("SYNC_ON_CHECKOUT", True)
    SYNC_CHECK_EXISTING = _env_bool("SYNC_CHECK_EXISTING", True)
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "60"))
    # A push lease older than this is presumed abandoned (crashed process)
    SYNC_CLAIM_LEASE_SECONDS = float(os.environ.get("SYNC_CLAIM_LEASE_SECONDS", "300"))
    # How far before a local sale the upstream is scanned for an existing copy
    SYNC_LOOKBACK_HOURS = float(os.environ.get("SYNC_LOOKBACK_HOURS", "24"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
