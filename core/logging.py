import logging
import sys
from logging.handlers import RotatingFileHandler
import os
from datetime import datetime

from core.config import settings

def setup_logging():
    """Setup structured logging"""

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Avoid stacking handlers when the app is imported more than once
    if getattr(logger, "_mess_buddy_configured", False):
        return logger

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        # Create logs directory if it doesn't exist
        if not os.path.exists(settings.LOG_DIR):
            os.makedirs(settings.LOG_DIR)

        # File handler (rotating)
        file_handler = RotatingFileHandler(
            os.path.join(settings.LOG_DIR, f'app_{datetime.now().strftime("%Y%m")}.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_format = logging.Formatter(
            '{"timestamp": "%(asctime)s", "name": "%(name)s", "level": "%(levelname)s", '
            '"message": "%(message)s", "pathname": "%(pathname)s", "lineno": %(lineno)d}'
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    logger._mess_buddy_configured = True
    return logger
