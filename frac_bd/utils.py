"""
Utility functions for the breakdown detection pipeline.

Includes logging setup, timing, and formatting helpers.
"""

import logging
import time
from functools import wraps
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import LOGGING_CONFIG


# Global console for rich output
console = Console()


def setup_logging(
    level: int = LOGGING_CONFIG["level"],
    log_file: Optional[str] = None
) -> logging.Logger:
    """Setup logging with rich formatting"""

    logger = logging.getLogger("frac_bd")
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    rich_handler = RichHandler(console=console, show_time=True, show_path=False)
    rich_handler.setFormatter(
        logging.Formatter(
            fmt="%(message)s",
            datefmt="[%Y-%m-%d %H:%M:%S]"
        )
    )
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                fmt=LOGGING_CONFIG["format"],
                datefmt=LOGGING_CONFIG["datefmt"]
            )
        )
        logger.addHandler(file_handler)

    return logger


def timing_decorator(func):
    """Decorator to time function execution"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        duration = time.time() - start_time

        logger = logging.getLogger("frac_bd")
        logger.info(f"{func.__name__} completed in {format_duration(duration)}")
        return result
    return wrapper


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        return f"{seconds/3600:.1f}h"
