"""Command listing route."""

from flask import Blueprint, current_app, jsonify

bp = Blueprint("commands", __name__)


@bp.route("/commands", methods=["GET"])
def list_commands():
    """List registered commands of every registry.

    Returns:
        JSON with commands and their count
    """
    items = []
    for registry in current_app.registries:
        for command in registry.commands():
            items.append(
                {
                    "group": registry.name,
                    "name": command.name,
                    "description": command.description,
                    "aliases": command.aliases,
                    "params": command.params,
                }
            )
    return jsonify({"commands": items, "count": len(items)})
