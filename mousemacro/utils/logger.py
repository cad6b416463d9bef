import logging
import os
from datetime import datetime
from typing import Optional

LOGGER_NAME = "MOUSE_MACRO"
LOG_DIR = "logs"
CONFIG_FILE = os.path.join("data", "app_config.json")

# Default settings
ENABLE_FILE_LOGGING = False  # Log to file
ENABLE_CONSOLE_LOGGING = True  # Log to console
DEBUG_MODE = False  # Per-event tracing

_current_log_file: Optional[str] = None


def configure(debug_mode: Optional[bool] = None,
              enable_file_logging: Optional[bool] = None,
              enable_console_logging: Optional[bool] = None) -> logging.Logger:
    """Override logging switches and rebuild handlers"""
    global ENABLE_FILE_LOGGING, ENABLE_CONSOLE_LOGGING, DEBUG_MODE
    if debug_mode is not None:
        DEBUG_MODE = debug_mode
    if enable_file_logging is not None:
        ENABLE_FILE_LOGGING = enable_file_logging
    if enable_console_logging is not None:
        ENABLE_CONSOLE_LOGGING = enable_console_logging
    return setup_logger()


def set_debug_mode(enabled: bool):
    """Enable/disable debug mode"""
    global DEBUG_MODE
    DEBUG_MODE = enabled
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG if enabled else logging.INFO)


def is_debug_mode() -> bool:
    """Check if debug mode is enabled"""
    return DEBUG_MODE


def current_log_file() -> Optional[str]:
    return _current_log_file


def setup_logger(name: str = LOGGER_NAME) -> logging.Logger:
    global _current_log_file

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s"
    )

    if ENABLE_FILE_LOGGING:
        os.makedirs(LOG_DIR, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(LOG_DIR, f"run_{timestamp}.log")
        _current_log_file = log_file

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)
    else:
        _current_log_file = None

    if ENABLE_CONSOLE_LOGGING:
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def log(message: str):
    """Convenience function for quick logging"""
    get_logger().info(message)


def warn(message: str):
    get_logger().warning(message)


def debug(message: str):
    """Only emitted in debug mode"""
    if not DEBUG_MODE:
        return
    get_logger().debug(message)
