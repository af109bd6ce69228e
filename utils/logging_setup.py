"""
Logging Setup
Console and rotating file logging for the bot process
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "mc-session-bot"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

MAX_LOG_BYTES = 5 * 1024 * 1024


def configure_logging(level: str = "info", log_dir: str = "logs") -> logging.Logger:
    """
    Configure console logging plus ``bot.log`` and ``error.log`` in log_dir.

    Pass an empty log_dir to log to the console only.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT)

        all_logs = RotatingFileHandler(path / "bot.log", maxBytes=MAX_LOG_BYTES, backupCount=5)
        all_logs.setFormatter(formatter)
        logger.addHandler(all_logs)

        errors = RotatingFileHandler(path / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=3)
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        logger.addHandler(errors)

    return logger
