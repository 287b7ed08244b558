# =======================================================================================
# keytrack/logging_config.py - Logging Setup
# =======================================================================================
import logging

from .config import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(debug: bool = None) -> None:
    """Configure root logging once; DEBUG when API_DEBUG is on."""
    if debug is None:
        debug = config.API_DEBUG
    level = logging.DEBUG if debug else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
