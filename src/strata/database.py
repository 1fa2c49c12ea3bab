"""Database engines and named connections for Strata.

Uses SQLAlchemy Core (not ORM) for explicit SQL control. A migration may
name the connection it targets; the resolver maps that name to an engine
configured under ``database.connections``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

from strata.config import Config
from strata.connection import LiveConnection
from strata.logging import get_logger

log = get_logger("database")

DEFAULT_CONNECTION = "default"


def get_engine(config: Config, url: str | None = None) -> Engine:
    """Create SQLAlchemy engine from config.

    Args:
        config: Application configuration.
        url: Connection URL; defaults to the configured default connection.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = url or config.database_url
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        # Ensure data directory exists
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=config.log_level == "DEBUG")

    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine, wal=config.database.wal)

    return engine


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    """Make pysqlite honour transactions around DDL.

    The driver otherwise commits DDL implicitly, which would defeat
    per-migration transactions. SQLAlchemy emits BEGIN itself instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class ConnectionResolver:
    """Lazily creates one engine per connection name.

    ``""`` and ``"default"`` resolve to the default connection; any other
    name must appear in ``database.connections``.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self._engines: dict[str, Engine] = {}

    def url(self, name: str = "") -> str:
        """Get the URL for a connection name.

        Raises:
            KeyError: If the name is not configured.
        """
        if name in ("", DEFAULT_CONNECTION):
            return self.config.database_url
        try:
            return self.config.database.connections[name]
        except KeyError:
            raise KeyError(f"Unknown database connection: {name}") from None

    def engine(self, name: str = "") -> Engine:
        key = name or DEFAULT_CONNECTION
        if key not in self._engines:
            self._engines[key] = get_engine(self.config, self.url(name))
            log.debug("engine_created", connection=key)
        return self._engines[key]

    def dialect(self, name: str = "") -> str:
        return self.engine(name).dialect.name

    @contextmanager
    def connect(self, name: str = "") -> Iterator[LiveConnection]:
        """Open a live connection for the duration of the block."""
        with self.engine(name).connect() as conn:
            yield LiveConnection(conn, name)

    def dispose(self) -> None:
        """Close every pooled connection."""
        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()
