"""Root logger configuration, applied once from the application lifespan."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Send all log records to stdout with a single line formatter."""
    normalized_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(normalized_level)
    root_logger.addHandler(handler)

    # APScheduler logs every job execution at INFO; the cleanup job logs its own summary
    logging.getLogger("apscheduler").setLevel(max(normalized_level, logging.WARNING))
