# src/outboundiq/logger/__init__.py
# This file makes the logger folder a Python package
# Note: We named it 'logger' instead of 'logging' to avoid conflict with Python's built-in logging module

from .logging import setup_logging, get_logger, UserContextFilter, ROOT_LOGGER_NAME

__all__ = [
    "setup_logging",
    "get_logger",
    "UserContextFilter",
    "ROOT_LOGGER_NAME",
]
