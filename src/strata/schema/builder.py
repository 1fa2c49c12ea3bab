"""Schema builder: the façade migration bodies use to change tables.

Each call opens a fresh Blueprint, lets the caller populate it, compiles it
with the active grammar and runs the statements on the connection. Every
operation returns the statements it produced. Without a connection the
builder only compiles.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from strata.errors import SchemaError
from strata.schema.blueprint import Blueprint

if TYPE_CHECKING:
    from strata.connection import Connection
    from strata.schema.grammars import Grammar

Populate = Callable[[Blueprint], None]


class SchemaBuilder:
    """Creates, alters and drops tables through a grammar.

    Attributes:
        grammar: Compiler for the connection's dialect.
        connection: Where statements run (live or pretend), or None.
    """

    def __init__(self, grammar: Grammar, connection: Connection | None = None) -> None:
        self.grammar = grammar
        self.connection = connection

    def create_table(self, table: str, populate: Populate) -> list[str]:
        """Create a table described by ``populate``."""
        blueprint = Blueprint(table, creating=True)
        populate(blueprint)
        return self._build(blueprint)

    def alter_table(self, table: str, populate: Populate) -> list[str]:
        """Add, drop or rename columns and indexes on an existing table."""
        blueprint = Blueprint(table)
        populate(blueprint)
        return self._build(blueprint)

    def drop_table(self, table: str) -> list[str]:
        return self._run([self.grammar.compile_drop_table(table)])

    def drop_table_if_exists(self, table: str) -> list[str]:
        return self._run([self.grammar.compile_drop_table_if_exists(table)])

    def rename_table(self, source: str, target: str) -> list[str]:
        return self._run([self.grammar.compile_rename_table(source, target)])

    def table_exists(self, table: str) -> bool:
        return table in self._require_connection().table_names()

    def column_exists(self, table: str, column: str) -> bool:
        return column in self._require_connection().column_names(table)

    def get_column_listing(self, table: str) -> list[str]:
        return self._require_connection().column_names(table)

    def drop_all_tables(self) -> list[str]:
        """Drop every table, dependents before the tables they reference."""
        tables = self._require_connection().sorted_table_names()
        return self._run([self.grammar.compile_drop_table(t) for t in reversed(tables)])

    # Aliases
    has_table = table_exists
    has_column = column_exists

    def _build(self, blueprint: Blueprint) -> list[str]:
        return self._run(blueprint.to_sql(self.grammar))

    def _run(self, statements: list[str]) -> list[str]:
        if self.connection is not None:
            for statement in statements:
                self.connection.execute(statement)
        return statements

    def _require_connection(self) -> Connection:
        if self.connection is None:
            raise SchemaError("Schema introspection needs a connection")
        return self.connection
