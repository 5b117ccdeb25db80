# Overview: Flask API routes for upstream connection settings; parses input and returns JSON responses.

# backend/possync/routes/settings.py
"""
Settings routes.

Credentials are never returned in clear: GET masks them, and a PUT that
echoes the masked values back keeps the stored ones.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import UpstreamError, UpstreamNotConfigured
from ..models import PosSettings
from ..services import settings_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_settings,
    validate_payload,
)
from ..decorators import require_actor

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "store_url", "consumer_key", "consumer_secret",
        "cache_duration_minutes", "auto_refresh", "catalog_miss_policy",
    },
)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    settings = settings_service.get_settings()
    return jsonify({
        "settings": settings.to_public_dict() if settings else None,
        "configured": settings_service.is_upstream_configured(),
        "catalog_miss_policy": settings_service.get_catalog_miss_policy(),
    })


@settings_bp.put("")
@require_actor
def save_settings_route():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    # Blank credentials mean "keep the stored ones"
    payload = {
        k: v for k, v in payload.items()
        if not (k in ("consumer_key", "consumer_secret") and v in (None, ""))
    }

    try:
        patch = validate_payload(model=PosSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
        enforce_rules_settings(patch)
        settings = settings_service.save_settings(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save settings")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"settings": settings.to_public_dict()})


@settings_bp.post("/test-connection")
@require_actor
def test_connection_route():
    """
    Check credentials against GET /system_status.

    Body (optional): store_url, consumer_key, consumer_secret. Omitted or
    masked values fall back to the stored settings.
    """
    data = request.get_json(silent=True) or {}

    try:
        result = settings_service.check_connection(
            store_url=(data.get("store_url") or "").strip() or None,
            consumer_key=data.get("consumer_key") or None,
            consumer_secret=data.get("consumer_secret") or None,
        )
    except UpstreamNotConfigured as e:
        return jsonify({"connected": False, "message": "Not configured", "error": str(e)}), 400
    except UpstreamError as e:
        current_app.logger.warning("Connection test failed: %s", e)
        return jsonify({"connected": False, "message": "Connection failed", "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Connection test crashed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result)
