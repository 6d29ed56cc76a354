"""Connection parameters and their SQLAlchemy URL mapping."""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy.engine import URL

from db.errors import UnsupportedDriverError

# Driver kind -> SQLAlchemy drivername
DRIVERNAMES = {
    'postgresql': 'postgresql+psycopg2',
    'mysql': 'mysql',
    'sqlite': 'sqlite',
}


@dataclass(frozen=True)
class ConnectionParameters:
    """Immutable description of one database connection.

    The password takes part in neither ``key`` nor ``repr``, so parameters
    can be logged and used as cache keys safely.

    Attributes:
        driver: Driver kind ('postgresql', 'mysql' or 'sqlite')
        hostname: Server hostname (unused for sqlite)
        port: Server port (unused for sqlite)
        database_name: Database name, or file path for sqlite
        username: Login role
        password: Login password
        driver_options: Extra options, e.g. ``application_name``
    """

    driver: str
    hostname: str
    port: int
    database_name: str
    username: str
    password: str = field(default='', repr=False, compare=False)
    driver_options: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'driver_options', MappingProxyType(dict(self.driver_options)))

    @property
    def key(self) -> str:
        """Canonical identity of these parameters, password excluded."""
        options = ','.join(f"{name}={value}" for name, value in sorted(self.driver_options.items()))
        return '|'.join([
            self.driver,
            self.hostname,
            str(self.port),
            self.database_name,
            self.username,
            options,
        ])

    def __hash__(self):
        return hash(self.key)

    def __eq__(self, other):
        if not isinstance(other, ConnectionParameters):
            return NotImplemented
        return self.key == other.key

    def with_target(self, username: str, database_name: str) -> 'ConnectionParameters':
        """Return a copy targeting another user and database.

        The password is inherited from these parameters.
        """
        return replace(
            self,
            username=username,
            database_name=database_name,
            driver_options=dict(self.driver_options)
        )

    def to_url(self) -> URL:
        """Build the SQLAlchemy URL for these parameters.

        Raises:
            UnsupportedDriverError: If the driver kind is unknown
        """
        if self.driver not in DRIVERNAMES:
            raise UnsupportedDriverError(self.driver, 'connection')

        if self.driver == 'sqlite':
            return URL.create(drivername='sqlite', database=self.database_name)

        return URL.create(
            drivername=DRIVERNAMES[self.driver],
            username=self.username,
            password=self.password or None,
            host=self.hostname,
            port=self.port,
            database=self.database_name
        )

    def describe(self) -> str:
        """Human-readable target, safe for logs."""
        if self.driver == 'sqlite':
            return f"sqlite:{self.database_name}"
        return f"{self.driver}://{self.username}@{self.hostname}:{self.port}/{self.database_name}"
