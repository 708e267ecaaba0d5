"""CLI context management for the database connection and gateway."""

from dataclasses import dataclass, field

from shopassist.core.config import Settings, get_settings
from shopassist.core.connection import DatabaseConnection
from shopassist.gateway.service import CommandGateway, build_gateway


def get_database_url(url: str | None, settings: Settings | None = None) -> str:
    """Resolve the database URL.

    Priority:
    1. Explicit URL argument
    2. SHOPASSIST_DATABASE_URL (through settings)
    3. Settings default: sqlite:///./shopassist.db
    """
    if url:
        return url
    return (settings or get_settings()).database_url


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    The connection and gateway are created on first use so that commands
    like ``classify`` and ``validate`` never touch the database.
    """

    database_url: str
    json_output: bool
    settings: Settings = field(default_factory=get_settings)
    _connection: DatabaseConnection | None = field(default=None, init=False, repr=False)
    _gateway: CommandGateway | None = field(default=None, init=False, repr=False)

    def get_gateway(self) -> CommandGateway:
        if self._gateway is None:
            self._connection = DatabaseConnection(
                self.database_url,
                echo=self.settings.echo_sql,
                pool_size=self.settings.pool_size,
            )
            self._gateway = build_gateway(self.settings, self._connection)
        return self._gateway

    def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._gateway = None
