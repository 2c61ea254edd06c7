"""HTTP routes for the chatops bot.

Provides Flask blueprint organization for health, metrics and command
listing endpoints. All routes are registered through create_app().

Example:
    from chatops.routes import create_app

    app = create_app([registry], meter)
    app.run(host="0.0.0.0", port=9090)
"""

from typing import Sequence

from flask import Flask

from ..interfaces import IMeter
from ..registry import CommandRegistry
from . import commands, health, metrics


def create_app(registries: Sequence[CommandRegistry], meter: IMeter) -> Flask:
    """Create and configure Flask application.

    Args:
        registries: Command registries to list
        meter: Metrics backend to expose

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    app.registries = list(registries)
    app.meter = meter

    app.register_blueprint(health.bp)
    app.register_blueprint(metrics.bp)
    app.register_blueprint(commands.bp)

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 not found errors.

        Args:
            error: The error that triggered this handler

        Returns:
            JSON response with error message and 404 status
        """
        return {"error": "Not found"}, 404

    return app
