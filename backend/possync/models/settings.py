from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class PosSettings(db.Model):
    """
    Per-store connection settings for the upstream commerce platform.

    One row per deployment. Values here take precedence over the
    UPSTREAM_* environment configuration.
    """
    __tablename__ = "pos_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_url = db.Column(db.String(512), nullable=False)
    consumer_key = db.Column(db.String(255), nullable=False)
    consumer_secret = db.Column(db.String(255), nullable=False)

    cache_duration_minutes = db.Column(db.Integer, nullable=False, default=5)
    auto_refresh = db.Column(db.Boolean, nullable=False, default=True)
    # NULL -> use CATALOG_MISS_POLICY from app config
    catalog_miss_policy = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_public_dict(self) -> dict:
        """Serialize without exposing credentials."""
        key = self.consumer_key or ""
        return {
            "id": self.id,
            "store_url": self.store_url,
            "consumer_key": ("••••••••••••" + key[-4:]) if key else "",
            "consumer_secret": "••••••••••••" if self.consumer_secret else "",
            "cache_duration_minutes": self.cache_duration_minutes,
            "auto_refresh": self.auto_refresh,
            "catalog_miss_policy": self.catalog_miss_policy,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
