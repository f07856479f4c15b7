"""Daemon and web UI entrypoint for tempo2redmine."""

import logging
import signal
import sys

from tempo2redmine.config import Config
from tempo2redmine.daemon import ReconcileDaemon
from tempo2redmine.utils.logging import StructuredLogger
from tempo2redmine.web.app import create_app

logger = logging.getLogger(__name__)


def serve(config_path: str = "config.json", port: int | None = None) -> None:
    """Start the scheduled reconciliation daemon and the web API."""
    logger.info("Starting tempo2redmine...")

    try:
        config = Config(config_path, require_file=False)
        is_valid, errors = config.validate()
        if not is_valid:
            StructuredLogger(config.sync["log_dir"]).log_validation_error(errors)
            logger.error("Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            sys.exit(1)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    daemon = ReconcileDaemon(config)
    daemon.start()

    app = create_app(config, daemon)
    port = port or int(config.web.get("port", 8080))

    logger.info(f"Starting web UI on port {port}...")

    def signal_handler(signum, frame) -> None:  # type: ignore
        logger.info("Shutdown signal received, stopping daemon...")
        daemon.stop()
        logger.info("Goodbye!")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run(
            host="0.0.0.0",  # nosec S104 - intended for Docker container
            port=port,
            debug=False,
            use_reloader=False,
            threaded=True,
        )
    except Exception as e:
        logger.error(f"Failed to start web service: {e}")
        daemon.stop()
        sys.exit(1)
