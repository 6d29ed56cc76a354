"""
==============================================
Configuration management for test databases.
==============================================

Loads all configuration from environment variables (.env file) and provides
a centralized Config singleton for test-suite-wide access.

The configuration system ensures:
- Single source of truth for connection settings
- Type conversion and validation
- One database identity per test process (generation name)
- Passwords kept out of connection keys and logs

Example:
    >>> from core.config import config
    >>>
    >>> # Connection parameters for the test database
    >>> params = config.get_connection_parameters()
    >>>
    >>> # Access individual settings
    >>> print(f"Host: {config.db_host}, Database: {config.db_name}")
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from db.errors import ConfigurationError
from db.parameters import ConnectionParameters

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


def generation_name(prefix: str, generation: Optional[int] = None) -> str:
    """Build a database name of the form ``<prefix>_<integer>``.

    Args:
        prefix: Common prefix shared by all generations
        generation: Generation number (defaults to the current unix time)

    Returns:
        Database name that old-generation pruning can recognise

    Example:
        >>> generation_name('app', 7)
        'app_7'
    """
    if generation is None:
        generation = int(time.time())
    return f"{prefix}_{generation}"


@dataclass
class DatabaseConfig:
    """Test database connection settings.

    Attributes:
        driver: Driver kind ('postgresql', 'mysql' or 'sqlite')
        host: Database server hostname or IP address
        port: Database server port number
        user: Database username owning the test database
        password: Database password
        database: Name of the test database for this process
        prefix: Generation prefix used when no explicit name is configured
        max_db_to_keep: Number of generations kept when pruning
        query_log_path: Optional path of the append-only query log
        application_name: Session label set on PostgreSQL connections
    """

    driver: str
    host: str
    port: int
    user: str
    password: str
    database: str
    prefix: str
    max_db_to_keep: int
    query_log_path: Optional[str]
    application_name: str

    def get_connection_parameters(
        self,
        user: Optional[str] = None,
        database: Optional[str] = None
    ) -> ConnectionParameters:
        """Get connection parameters for the test database.

        Args:
            user: Optional username override
            database: Optional database name override

        Returns:
            Immutable ConnectionParameters instance
        """
        return ConnectionParameters(
            driver=self.driver,
            hostname=self.host,
            port=self.port,
            database_name=database or self.database,
            username=user or self.user,
            password=self.password,
            driver_options={'application_name': self.application_name}
        )


@dataclass
class BuildConfig:
    """Directive interpreter settings.

    Attributes:
        bulk_load_threshold: File size (bytes) from which SQL files are
            loaded by the external client instead of in-process
        psql_binary: Command-line SQL client used for bulk loads
        temp_prefix: Prefix of temporary files holding decompressed dumps
    """

    bulk_load_threshold: int
    psql_binary: str
    temp_prefix: str


@dataclass
class FixtureConfig:
    """CSV fixture settings.

    Attributes:
        null_token: Token standing for NULL in CSV fixtures
        delimiter: Field delimiter
        enclosure: Field enclosure
    """

    null_token: str
    delimiter: str
    enclosure: str


def _int_from_env(name: str, default: str) -> int:
    raw_value = os.getenv(name, default)
    try:
        return int(raw_value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw_value}'")


class Config:
    """Centralized configuration manager.

    Provides access to all configuration settings loaded from environment
    variables (.env file).

    Attributes:
        db: DatabaseConfig instance with test database settings
        build: BuildConfig instance with directive interpreter settings
        fixtures: FixtureConfig instance with CSV fixture settings

    Example:
        >>> config = Config()
        >>> params = config.get_connection_parameters()
        >>> print(f"Building {config.db_name} on {config.db_host}:{config.db_port}")
    """

    def __init__(self):
        """Initialize configuration from environment variables.

        When TEST_DB_NAME is not set, a fresh generation name is computed
        once, so every test case of the process targets the same database.

        Raises:
            ConfigurationError: If a numeric setting is not an integer
        """
        prefix = os.getenv('TEST_DB_PREFIX', 'test_db')

        self.db = DatabaseConfig(
            driver=os.getenv('TEST_DB_DRIVER', 'postgresql'),
            host=os.getenv('TEST_DB_HOST', 'localhost'),
            port=_int_from_env('TEST_DB_PORT', '5432'),
            user=os.getenv('TEST_DB_USER', 'postgres'),
            password=os.getenv('TEST_DB_PASSWORD', ''),
            database=os.getenv('TEST_DB_NAME') or generation_name(prefix),
            prefix=prefix,
            max_db_to_keep=_int_from_env('TEST_DB_MAX_TO_KEEP', '3'),
            query_log_path=os.getenv('TEST_DB_QUERY_LOG') or None,
            application_name=os.getenv('TEST_DB_APPLICATION_NAME', 'Test Database')
        )

        self.build = BuildConfig(
            bulk_load_threshold=_int_from_env('TEST_DB_BULK_LOAD_THRESHOLD', str(1024 * 1024)),
            psql_binary=os.getenv('TEST_DB_PSQL', 'psql'),
            temp_prefix='db-builder_'
        )

        self.fixtures = FixtureConfig(
            null_token=os.getenv('TEST_DB_NULL_TOKEN', '∅'),
            delimiter=',',
            enclosure='"'
        )

    @property
    def db_driver(self) -> str:
        """Get driver kind."""
        return self.db.driver

    @property
    def db_host(self) -> str:
        """Get database server hostname."""
        return self.db.host

    @property
    def db_port(self) -> int:
        """Get database server port number."""
        return self.db.port

    @property
    def db_user(self) -> str:
        """Get database username."""
        return self.db.user

    @property
    def db_name(self) -> str:
        """Get test database name."""
        return self.db.database

    @property
    def max_db_to_keep(self) -> int:
        """Get number of database generations kept when pruning."""
        return self.db.max_db_to_keep

    @property
    def query_log_path(self) -> Optional[str]:
        """Get query log path, if any."""
        return self.db.query_log_path

    def get_connection_parameters(
        self,
        user: Optional[str] = None,
        database: Optional[str] = None
    ) -> ConnectionParameters:
        """Get connection parameters for the test database.

        Args:
            user: Optional username override
            database: Optional database name override

        Returns:
            Immutable ConnectionParameters instance

        Example:
            >>> config = Config()
            >>> admin = config.get_connection_parameters(database='template1')
        """
        return self.db.get_connection_parameters(user=user, database=database)


# Global configuration instance
config = Config()
