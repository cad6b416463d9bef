"""Shared pytest setup for the macro tests"""

import sys
import os

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mousemacro.core.macro import PynputHook
from mousemacro.utils import logger


@pytest.fixture(autouse=True)
def reset_global_state():
    """Logging switches and the active-hook slot are process-wide"""
    yield
    logger.DEBUG_MODE = False
    logger.ENABLE_FILE_LOGGING = False
    logger.ENABLE_CONSOLE_LOGGING = True
    for handler in list(logger.get_logger().handlers):
        logger.get_logger().removeHandler(handler)
        handler.close()
    PynputHook._active = None
