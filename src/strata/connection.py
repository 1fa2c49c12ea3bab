"""Connections handed to migration bodies.

A migration's ``up``/``down`` receives one of two interchangeable objects:

- LiveConnection: wraps a SQLAlchemy connection and really executes SQL
- PretendConnection: records every statement and executes nothing

Both expose ``schema`` (a SchemaBuilder for the connection's dialect), raw
``execute``/``select``, a ``transaction()`` scope and read-only introspection.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import MetaData, inspect, text

from strata.logging import get_logger
from strata.schema.builder import SchemaBuilder
from strata.schema.grammars import get_grammar

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection as SAConnection
    from sqlalchemy.engine import Engine

log = get_logger("connection")


class Connection(Protocol):
    """What a migration body can do with its connection."""

    name: str
    pretending: bool

    @property
    def dialect(self) -> str: ...

    @property
    def schema(self) -> SchemaBuilder: ...

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int: ...

    def select(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    def transaction(self) -> Any: ...

    def table_names(self) -> list[str]: ...

    def column_names(self, table: str) -> list[str]: ...

    def sorted_table_names(self) -> list[str]: ...


# =============================================================================
# Live Connection
# =============================================================================


class LiveConnection:
    """Executes statements against a SQLAlchemy connection.

    Outside ``transaction()`` every statement commits on its own. Inside it,
    statements commit or roll back together; nested scopes use savepoints.
    """

    pretending = False

    def __init__(self, connection: SAConnection, name: str = "") -> None:
        self._connection = connection
        self.name = name
        self._depth = 0

    @property
    def dialect(self) -> str:
        return self._connection.dialect.name

    @property
    def schema(self) -> SchemaBuilder:
        return SchemaBuilder(get_grammar(self.dialect), self)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Execute one statement and return the affected row count."""
        log.debug("executing_statement", connection=self.name or "default", sql=sql)
        try:
            if params is None:
                # Raw SQL goes to the driver untouched so a literal % is not a placeholder.
                result = self._connection.exec_driver_sql(
                    sql, execution_options={"no_parameters": True}
                )
            else:
                result = self._connection.execute(text(sql), params)
            rowcount = result.rowcount
        except Exception:
            self._finish(commit=False)
            raise
        self._finish(commit=True)
        return rowcount

    def select(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a query and return its rows as dicts."""
        log.debug("executing_query", connection=self.name or "default", sql=sql)
        try:
            result = self._connection.execute(text(sql), params or {})
            rows = [dict(row._mapping) for row in result]
        except Exception:
            self._finish(commit=False)
            raise
        self._finish(commit=True)
        return rows

    @contextmanager
    def transaction(self) -> Iterator[LiveConnection]:
        """Run the enclosed statements atomically."""
        if self._depth == 0 and self._connection.in_transaction():
            self._connection.commit()
        scope = self._connection.begin_nested() if self._depth else self._connection.begin()
        with scope:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1

    def table_names(self) -> list[str]:
        names = inspect(self._connection).get_table_names()
        self._finish(commit=True)
        return names

    def column_names(self, table: str) -> list[str]:
        inspector = inspect(self._connection)
        if not inspector.has_table(table):
            names: list[str] = []
        else:
            names = [column["name"] for column in inspector.get_columns(table)]
        self._finish(commit=True)
        return names

    def sorted_table_names(self) -> list[str]:
        """Table names ordered so that referenced tables come first."""
        metadata = MetaData()
        metadata.reflect(bind=self._connection)
        self._finish(commit=True)
        return [table.name for table in metadata.sorted_tables]

    def _finish(self, commit: bool) -> None:
        if self._depth or not self._connection.in_transaction():
            return
        if commit:
            self._connection.commit()
        else:
            self._connection.rollback()


# =============================================================================
# Pretend Connection
# =============================================================================


class PretendConnection:
    """Captures SQL instead of executing it.

    Introspection is answered from ``source`` (read-only) when one is given,
    so pretend runs see the real schema; otherwise the database looks empty.

    Attributes:
        queries: Every captured statement, in order.
    """

    pretending = True

    def __init__(self, dialect: str, name: str = "", source: Engine | None = None) -> None:
        self._dialect = dialect
        self.name = name
        self._source = source
        self.queries: list[str] = []

    @property
    def dialect(self) -> str:
        return self._dialect

    @property
    def schema(self) -> SchemaBuilder:
        return SchemaBuilder(get_grammar(self._dialect), self)

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        self._record(sql, params)
        return 0

    def select(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self._record(sql, params)
        return []

    @contextmanager
    def transaction(self) -> Iterator[PretendConnection]:
        yield self

    def table_names(self) -> list[str]:
        if self._source is None:
            return []
        return inspect(self._source).get_table_names()

    def column_names(self, table: str) -> list[str]:
        if self._source is None:
            return []
        inspector = inspect(self._source)
        if not inspector.has_table(table):
            return []
        return [column["name"] for column in inspector.get_columns(table)]

    def sorted_table_names(self) -> list[str]:
        if self._source is None:
            return []
        metadata = MetaData()
        metadata.reflect(bind=self._source)
        return [table.name for table in metadata.sorted_tables]

    def _record(self, sql: str, params: dict[str, Any] | None) -> None:
        if params:
            sql = f"{sql} -- {json.dumps(params, default=str, sort_keys=True)}"
        self.queries.append(sql)
