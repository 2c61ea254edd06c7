"""Metrics route exposing command execution counters."""

from flask import Blueprint, current_app, jsonify, request

bp = Blueprint("metrics", __name__)


@bp.route("/metrics", methods=["GET"])
def list_metrics():
    """List counters with their current values.

    Query params:
        name: Only return counters with this full name

    Returns:
        JSON with counters and their count
    """
    counters = current_app.meter.snapshot()

    name = request.args.get("name")
    if name:
        counters = [c for c in counters if c["name"] == name]

    return jsonify({"counters": counters, "count": len(counters)})
