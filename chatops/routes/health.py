"""Health check route.

Provides simple health check endpoint for monitoring.
"""

from flask import Blueprint, jsonify

bp = Blueprint("health", __name__)


@bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint.

    Returns:
        JSON with status 'healthy'
    """
    return jsonify({"status": "healthy"})
