import logging
from logging.handlers import RotatingFileHandler
import os

# Relative to the working directory unless overridden.  An empty value keeps
# logging on the console only.
DEFAULT_LOG_FILE = os.path.join("logs", "coin_analyzer.log")


def _log_file() -> str:
    return os.getenv("ANALYZER_LOG_FILE", DEFAULT_LOG_FILE).strip()


def _log_level() -> int:
    name = (os.getenv("ANALYZER_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str) -> logging.Logger:
    """Configure and return a module-level logger.

    Logs are written to both console and a rotating file to persist
    information for debugging. Subsequent calls with the same name
    return the already configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(_log_level())
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    log_file = _log_file()
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Rotating file handler keeps last 5 logs of ~1MB each
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return logger
