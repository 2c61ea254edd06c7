#!/usr/bin/env python3
"""Main entry point for the chatops bot.

This module wires the command registry, the Zulip transport and the
metrics HTTP server together and starts the event loop.

Initialization Order:
    1. Meter - Shared metrics backend
    2. Command Registry - Scans and compiles command templates
    3. HTTP server (optional) - Health, metrics and command listing
    4. Zulip Bot - Main message processing loop

Environment Variables:
    CHATOPS_GROUP: Group name commands are invoked under (default: '', ungrouped)
    CHATOPS_*: Processor options, see chatops.config
    ZULIPRC: Path to zuliprc file (default: '/app/zuliprc')
    CHATOPS_METRICS_PORT: Port of the HTTP server, empty disables it
    CHATOPS_METRICS_HOST: Host of the HTTP server (default: '0.0.0.0')
    LOG_LEVEL: Logging level (default: 'INFO')

Example:
    Run the bot locally for development:

    $ export CHATOPS_COMMANDS_DIR=./commands
    $ export CHATOPS_METRICS_PORT=9090
    $ export LOG_LEVEL=DEBUG
    $ python -m chatops.main
"""

import logging
import os
import sys
import threading

from .config import ProcessorOptions
from .metrics import Meter
from .registry import CommandRegistry
from .routes import create_app
from .zulip_bot import ZulipBot

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def start_http_server(registries, meter, host: str, port: int) -> threading.Thread:
    """Serve health, metrics and command listing on a daemon thread.

    Args:
        registries: Command registries to list
        meter: Metrics backend to expose
        host: Interface to bind
        port: Port to bind

    Returns:
        The server thread
    """
    app = create_app(registries, meter)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "debug": False, "use_reloader": False},
        name="http",
        daemon=True,
    )
    thread.start()
    logger.info(f"HTTP server starting on {host}:{port}")
    return thread


def main():
    """Initialize bot and start event loop.

    Raises:
        SystemExit: On fatal initialization errors (exit code 1)
    """
    bot = None
    try:
        meter = Meter()
        options = ProcessorOptions.from_env()
        registry = CommandRegistry(os.getenv("CHATOPS_GROUP", ""), options, meter)

        count = registry.load()
        if count == 0:
            logger.warning(f"No commands found in {options.commands_dir}")

        registries = [registry]

        port = os.getenv("CHATOPS_METRICS_PORT", "")
        if port:
            host = os.getenv("CHATOPS_METRICS_HOST", "0.0.0.0")  # nosec B104
            start_http_server(registries, meter, host, int(port))

        bot = ZulipBot.from_zuliprc(os.getenv("ZULIPRC", "/app/zuliprc"), registries)
        logger.info("Bot initialized successfully")
        logger.info("Waiting for messages...")

        bot.start()

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if bot is not None:
            bot.stop()


if __name__ == "__main__":
    main()
