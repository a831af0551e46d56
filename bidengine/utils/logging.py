# =============================================
# File: bidengine/utils/logging.py
# Purpose: Logging configuration
# =============================================
import os

from loguru import logger

_configured = False


def configure_logging() -> None:
    """Add the rotating file sink once per process."""
    global _configured
    if _configured:
        return
    path = os.getenv("LOG_FILE", "logs/bidengine.log")
    if path:
        logger.add(path, rotation="10 MB", level=os.getenv("LOG_LEVEL", "INFO").upper())
    _configured = True
