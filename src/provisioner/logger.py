import logging
import sys
import traceback

from colorlog import ColoredFormatter

LOGGER_NAME = "provisioner"

DEBUG_MODE = False


def setup_logger(debug_mode=False):
    """
    Configure the package logger with a colored console handler.

    Module loggers (logging.getLogger(__name__)) live below "provisioner"
    and propagate here.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if debug_mode else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter(
            "%(log_color)s[%(levelname)s] %(message)s",
            log_colors={
                "DEBUG":    "cyan",
                "INFO":     "green",
                "WARNING":  "yellow",
                "ERROR":    "red",
                "CRITICAL": "red,bg_white",
            }
        ))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger


def set_debug_mode(debug_mode):
    global logger, DEBUG_MODE
    DEBUG_MODE = bool(debug_mode)
    logger = setup_logger(debug_mode=DEBUG_MODE)
    if DEBUG_MODE:
        logger.debug("Debug mode is active.")


def get_debug_mode():
    return DEBUG_MODE


def print_stack_trace():
    """Log the current exception's stack trace if debug mode is enabled."""
    if get_debug_mode():
        logger.error(traceback.format_exc())


# Logger defaults to INFO unless reconfigured later.
logger = setup_logger(debug_mode=DEBUG_MODE)
