# Overview: Flask API routes for dashboard reporting.

from flask import Blueprint, jsonify, current_app

from ..services.reporting_service import dashboard_stats

reports_bp = Blueprint("reports", __name__, url_prefix="/api/dashboard")


@reports_bp.get("/stats")
def dashboard_stats_route():
    try:
        return jsonify(dashboard_stats())
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return jsonify({"error": "Internal server error"}), 500
