"""
==================================================
Core infrastructure package for test databases.
==================================================

This package provides centralized configuration management and logging
infrastructure used throughout the test database toolkit.

Modules:
    config: Configuration management from environment variables
    logger: Centralized logging configuration and utilities

Example:
    >>> from core.config import config
    >>> from core.logger import get_logger
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info(f"Building {config.db_name} on {config.db_host}")
"""

__version__ = "0.1.0"
__all__ = ['get_logger', 'setup_logging', 'get_module_logger', 'config', 'Config', 'generation_name']

from core.config import Config, config, generation_name
from core.logger import get_logger, get_module_logger, setup_logging
