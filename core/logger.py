"""
===================================================
Centralized logging configuration for test runs.
===================================================

Provides consistent logging setup across the toolkit with:
- Console output with colours and emoji per level
- Optional file output next to the test reports
- Module-specific loggers
- Quiet driver loggers (SQLAlchemy engine echo stays off)

Build steps, shell commands and prune drops are logged at DEBUG, so running
a suite with ``log_level='DEBUG'`` shows exactly how a test database was made.

Example:
    >>> from core.logger import get_logger, setup_logging
    >>>
    >>> setup_logging(log_level='DEBUG', log_file='test-db.log')
    >>> logger = get_logger(__name__)
    >>> logger.debug("shell# psql -v ON_ERROR_STOP=1 ...")
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are noisy at DEBUG
QUIET_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool')


class ColoredFormatter(logging.Formatter):
    """Formatter adding ANSI colours and an emoji to console records.

    Attributes:
        COLORS: Dict mapping log levels to ANSI color codes
        EMOJI: Dict mapping log levels to emoji indicators
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    EMOJI = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️ ',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🔥'
    }

    def format(self, record):
        """Format record with colour codes around the level name.

        The record is copied first so that file handlers sharing it keep
        the plain level name.
        """
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        record.emoji = self.EMOJI.get(levelname, '')
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        return super().format(record)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger instance for the specified module.

    Args:
        name: Logger name (typically __name__ of calling module)
        level: Optional logging level override (DEBUG/INFO/WARNING/ERROR/CRITICAL)

    Returns:
        Logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Test database ready")
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper()))

    return logger


def setup_logging(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    console_output: bool = True,
    use_colors: bool = True
) -> None:
    """Configure the root logger for a test run.

    Existing root handlers are replaced, so calling this from a
    ``conftest.py`` wins over the defaults installed on import.

    Args:
        log_level: Logging level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
        log_file: Optional log file name (e.g., 'test-db.log')
        log_dir: Optional log directory path (defaults to 'test-logs/')
        console_output: If True, output to console (stdout)
        use_colors: If True, use colored output for console

    Example:
        >>> setup_logging(log_level='DEBUG', log_file='test-db.log', log_dir='build')
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        if use_colors:
            console_formatter = ColoredFormatter(
                '%(emoji)s ' + DEFAULT_FORMAT,
                datefmt=DEFAULT_DATEFMT
            )
        else:
            console_formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT)

        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir) if log_dir else Path('test-logs')
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_module_logger(module_name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        module_name: Name of the module (typically use __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(module_name)


def _init_default_logging():
    """Install console logging if nothing configured the root logger yet."""
    if not logging.getLogger().handlers:
        setup_logging(
            log_level='INFO',
            console_output=True,
            use_colors=True
        )


# Auto-initialize on import
_init_default_logging()
