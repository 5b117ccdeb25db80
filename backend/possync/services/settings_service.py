# Overview: Service-layer operations for upstream connection settings.

"""
Upstream settings resolution

1. A stored PosSettings row (written by save_settings) wins.
2. Otherwise the UPSTREAM_* keys from app config are used.
3. Otherwise UpstreamNotConfigured is raised.

Clients are built per call from the resolved configuration, so a
save_settings takes effect on the next upstream operation without a
restart.
"""

from __future__ import annotations

from flask import current_app

from ..errors import UpstreamNotConfigured
from ..extensions import db
from ..models import PosSettings
from ..validation import ValidationError
from .concurrency import run_with_retry
from .upstream_client import UpstreamClient, UpstreamConfig

MISS_POLICY_SINGLE = "single"
MISS_POLICY_BULK = "bulk"
VALID_MISS_POLICIES = (MISS_POLICY_SINGLE, MISS_POLICY_BULK)

MASK_PREFIX = "••••"


def get_settings() -> PosSettings | None:
    return db.session.query(PosSettings).order_by(PosSettings.id.asc()).first()


def _is_masked(value) -> bool:
    return isinstance(value, str) and value.startswith(MASK_PREFIX)


def _app_upstream_config(store_url: str, consumer_key: str, consumer_secret: str) -> UpstreamConfig:
    config = current_app.config
    return UpstreamConfig(
        store_url=(store_url or "").strip(),
        consumer_key=(consumer_key or "").strip(),
        consumer_secret=(consumer_secret or "").strip(),
        timeout=float(config.get("UPSTREAM_TIMEOUT_SECONDS", 10.0)),
        verify_tls=bool(config.get("UPSTREAM_VERIFY_TLS", True)),
        allow_insecure=bool(config.get("UPSTREAM_ALLOW_INSECURE", False)),
    )


def save_settings(patch: dict) -> PosSettings:
    """
    Create or update the settings row.

    Masked or blank credentials in the patch keep the stored values, so a
    client can round-trip the masked GET response.

    Raises:
        ValidationError: missing credentials on first save or an invalid URL
    """
    patch = dict(patch)
    for key in ("consumer_key", "consumer_secret"):
        if key in patch and (_is_masked(patch[key]) or not patch[key]):
            patch.pop(key)

    def _op():
        settings = get_settings()
        if settings is None:
            missing = sorted(k for k in ("store_url", "consumer_key", "consumer_secret") if not patch.get(k))
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
            settings = PosSettings()
            db.session.add(settings)

        for key, value in patch.items():
            setattr(settings, key, value)

        candidate = _app_upstream_config(settings.store_url, settings.consumer_key, settings.consumer_secret)
        try:
            candidate.validate()
        except UpstreamNotConfigured as exc:
            db.session.rollback()
            raise ValidationError(str(exc))

        db.session.commit()
        return settings

    settings = run_with_retry(_op)
    current_app.logger.info("Upstream settings saved for %s", settings.store_url)
    return settings


def get_upstream_config() -> UpstreamConfig:
    """
    Resolve the current upstream configuration.

    Raises:
        UpstreamNotConfigured: no stored settings and no UPSTREAM_* config
    """
    settings = get_settings()
    if settings is not None:
        config = _app_upstream_config(settings.store_url, settings.consumer_key, settings.consumer_secret)
    else:
        app_config = current_app.config
        config = _app_upstream_config(
            app_config.get("UPSTREAM_URL", ""),
            app_config.get("UPSTREAM_CONSUMER_KEY", ""),
            app_config.get("UPSTREAM_CONSUMER_SECRET", ""),
        )
    config.validate()
    return config


def build_upstream_client(config: UpstreamConfig | None = None) -> UpstreamClient:
    if config is None:
        config = get_upstream_config()
    return UpstreamClient(config, transport=current_app.config.get("UPSTREAM_TRANSPORT"))


def _stored_config_or_none() -> UpstreamConfig | None:
    try:
        return get_upstream_config()
    except UpstreamNotConfigured:
        return None


def is_upstream_configured() -> bool:
    return _stored_config_or_none() is not None


def get_catalog_miss_policy() -> str:
    settings = get_settings()
    policy = settings.catalog_miss_policy if settings is not None else None
    policy = policy or current_app.config.get("CATALOG_MISS_POLICY", MISS_POLICY_SINGLE)
    if policy not in VALID_MISS_POLICIES:
        current_app.logger.warning("Unknown catalog miss policy %r, using %r", policy, MISS_POLICY_SINGLE)
        return MISS_POLICY_SINGLE
    return policy


def check_connection(
    store_url: str | None = None,
    consumer_key: str | None = None,
    consumer_secret: str | None = None,
) -> dict:
    """
    Call GET /system_status with the given (or stored) credentials.

    Raises:
        UpstreamError subclasses on failure
    """
    if store_url or consumer_key or consumer_secret:
        base = _stored_config_or_none()
        key = consumer_key if consumer_key and not _is_masked(consumer_key) else (base.consumer_key if base else "")
        secret = (
            consumer_secret if consumer_secret and not _is_masked(consumer_secret)
            else (base.consumer_secret if base else "")
        )
        config = _app_upstream_config(store_url or (base.store_url if base else ""), key, secret)
    else:
        config = get_upstream_config()

    with build_upstream_client(config) as client:
        status = client.system_status()
    return {
        "connected": True,
        "message": "Connection successful",
        "version": status.get("version", "Unknown"),
    }
