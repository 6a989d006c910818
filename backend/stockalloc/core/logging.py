"""
Stock Allocation Logging Configuration
Centralized logging setup for the allocation service
"""
import logging
import logging.handlers
import sys
from typing import Optional
from .config import settings


class JobContextFilter(logging.Filter):
    """
    Give every record a `job_id` attribute

    Allocation and reversal steps pass `extra={"job_id": ...}`; records
    logged without one show "-".
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "job_id"):
            record.job_id = "-"
        return True


def job_context(job_id: str) -> dict:
    """`extra` mapping tagging a log call with an allocation job id"""
    return {"job_id": job_id}


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure logging for the allocation service

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files (defaults to settings.LOG_TO_FILE)
        log_to_console: Whether to log to console

    Returns:
        Configured logger instance
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    if log_to_file is None:
        log_to_file = settings.LOG_TO_FILE

    logger = logging.getLogger("stockalloc")
    logger.setLevel(level)
    logger.handlers.clear()
    job_filter = JobContextFilter()

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - [job %(job_id)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - [job %(job_id)s] %(filename)s:%(lineno)d - %(funcName)s() - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Console handler
    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(job_filter)
        logger.addHandler(console_handler)

    # File handlers
    if log_to_file:
        log_dir = settings.LOG_DIR
        log_dir.mkdir(exist_ok=True, parents=True)

        # Main application log (with rotation)
        app_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(detailed_formatter)
        app_handler.addFilter(job_filter)
        logger.addHandler(app_handler)

        # Error log (only errors and above)
        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.ERROR_LOG_FILE,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        error_handler.addFilter(job_filter)
        logger.addHandler(error_handler)

    return logger

def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(f"stockalloc.{name}")

# Initialize logging
main_logger = setup_logging()

__all__ = [
    'setup_logging',
    'get_logger',
    'job_context',
    'JobContextFilter',
    'main_logger'
]
