"""SQL grammars: compile a Blueprint into dialect-specific statements.

Each grammar is a pure compiler with no state and no I/O. They share the
``Grammar`` protocol and are selected by ``get_grammar(dialect)``.

Supported dialects:
- mysql / mariadb: backtick quoting, inline AUTO_INCREMENT, ALTER-based indexes
- postgresql: double quotes, SERIAL types, COMMENT ON statements
- sqlite: double quotes, keys inlined into CREATE TABLE, no ALTER for keys
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Protocol

from strata.errors import DialectUnsupported, SchemaError
from strata.schema.blueprint import (
    AddColumnsCommand,
    Blueprint,
    ColumnDefinition,
    ColumnType,
    Command,
    CreateCommand,
    DropColumnCommand,
    DropIndexCommand,
    Expression,
    ForeignKeyCommand,
    ForeignKeyDefinition,
    IndexCommand,
    IndexKind,
    RenameColumnCommand,
)

INTEGER_TYPES = {ColumnType.INTEGER, ColumnType.BIG_INTEGER}

SQLITE_KEYWORDS = {"CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME", "NULL"}


class Grammar(Protocol):
    """Compiler from blueprints and table operations to SQL."""

    dialect: str

    def compile(self, blueprint: Blueprint) -> list[str]:
        """Compile a blueprint to statements, preserving declaration order."""
        ...

    def compile_drop_table(self, table: str) -> str:
        ...

    def compile_drop_table_if_exists(self, table: str) -> str:
        ...

    def compile_rename_table(self, source: str, target: str) -> str:
        ...


# =============================================================================
# Shared Helpers
# =============================================================================


def wrap(name: str, quote: str) -> str:
    """Quote an identifier, handling ``schema.table`` segments."""
    return ".".join(f"{quote}{part.replace(quote, quote * 2)}{quote}" for part in name.split("."))


def columnize(columns: tuple[str, ...] | list[str], quote: str) -> str:
    return ", ".join(wrap(column, quote) for column in columns)


def quote_string(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def format_default(value: Any, true_literal: str, false_literal: str) -> str:
    """Render a default value as a SQL literal."""
    if isinstance(value, Expression):
        return value.sql
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return true_literal if value else false_literal
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list)):
        return quote_string(json.dumps(value))
    return quote_string(str(value))


def foreign_key_clause(definition: ForeignKeyDefinition, quote: str) -> str:
    """``FOREIGN KEY (...) REFERENCES ... (...)`` plus referential actions."""
    sql = (
        f"FOREIGN KEY ({wrap(definition.column, quote)}) "
        f"REFERENCES {wrap(definition.references_table or '', quote)} "
        f"({wrap(definition.references_column or '', quote)})"
    )
    if definition.on_delete_action:
        sql += f" ON DELETE {definition.on_delete_action.upper()}"
    if definition.on_update_action:
        sql += f" ON UPDATE {definition.on_update_action.upper()}"
    return sql


# =============================================================================
# MySQL
# =============================================================================


class MySqlGrammar:
    """Grammar for MySQL and MariaDB."""

    dialect = "mysql"
    quote = "`"

    TYPES = {
        ColumnType.TEXT: "TEXT",
        ColumnType.INTEGER: "INT",
        ColumnType.BIG_INTEGER: "BIGINT",
        ColumnType.BOOLEAN: "TINYINT(1)",
        ColumnType.TIMESTAMP: "TIMESTAMP",
        ColumnType.JSON: "JSON",
    }

    def compile(self, blueprint: Blueprint) -> list[str]:
        statements: list[str] = []
        for command in blueprint.to_commands():
            statements.extend(self._compile_command(blueprint, command))
        return statements

    def compile_drop_table(self, table: str) -> str:
        return f"DROP TABLE {self._wrap(table)}"

    def compile_drop_table_if_exists(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self._wrap(table)}"

    def compile_rename_table(self, source: str, target: str) -> str:
        return f"RENAME TABLE {self._wrap(source)} TO {self._wrap(target)}"

    def _compile_command(self, blueprint: Blueprint, command: Command) -> list[str]:
        table = self._wrap(blueprint.table)

        if isinstance(command, CreateCommand):
            columns = ", ".join(self._column(c) for c in blueprint.columns)
            return [f"CREATE TABLE {table} ({columns})"]

        if isinstance(command, AddColumnsCommand):
            additions = ", ".join(f"ADD {self._column(c)}" for c in command.columns)
            return [f"ALTER TABLE {table} {additions}"]

        if isinstance(command, IndexCommand):
            columns = columnize(command.columns, self.quote)
            if command.kind is IndexKind.PRIMARY:
                return [f"ALTER TABLE {table} ADD PRIMARY KEY ({columns})"]
            keyword = "UNIQUE" if command.kind is IndexKind.UNIQUE else "INDEX"
            return [f"ALTER TABLE {table} ADD {keyword} {self._wrap(command.index_name)} ({columns})"]

        if isinstance(command, ForeignKeyCommand):
            definition = command.definition
            return [
                f"ALTER TABLE {table} ADD CONSTRAINT {self._wrap(definition.constraint_name)} "
                f"{foreign_key_clause(definition, self.quote)}"
            ]

        if isinstance(command, DropColumnCommand):
            drops = ", ".join(f"DROP {self._wrap(c)}" for c in command.columns)
            return [f"ALTER TABLE {table} {drops}"]

        if isinstance(command, RenameColumnCommand):
            return [
                f"ALTER TABLE {table} RENAME COLUMN {self._wrap(command.source)} "
                f"TO {self._wrap(command.target)}"
            ]

        if isinstance(command, DropIndexCommand):
            if command.kind is IndexKind.PRIMARY:
                return [f"ALTER TABLE {table} DROP PRIMARY KEY"]
            if command.kind is IndexKind.FOREIGN:
                return [f"ALTER TABLE {table} DROP FOREIGN KEY {self._wrap(command.index_name)}"]
            return [f"ALTER TABLE {table} DROP INDEX {self._wrap(command.index_name)}"]

        raise SchemaError(f"Unsupported command for mysql: {command!r}")

    def _column(self, column: ColumnDefinition) -> str:
        sql = f"{self._wrap(column.name)} {self._type(column)}"
        if column.is_unsigned and column.type in INTEGER_TYPES:
            sql += " UNSIGNED"
        sql += " NULL" if column.is_nullable else " NOT NULL"
        if column.has_default:
            sql += f" DEFAULT {format_default(column.default_value, '1', '0')}"
        if column.is_auto_increment:
            sql += " AUTO_INCREMENT PRIMARY KEY"
        if column.column_comment:
            sql += f" COMMENT {quote_string(column.column_comment)}"
        return sql

    def _type(self, column: ColumnDefinition) -> str:
        if column.type is ColumnType.STRING:
            return f"VARCHAR({column.length or 255})"
        return self.TYPES[column.type]

    def _wrap(self, name: str) -> str:
        return wrap(name, self.quote)


# =============================================================================
# PostgreSQL
# =============================================================================


class PostgresGrammar:
    """Grammar for PostgreSQL."""

    dialect = "postgresql"
    quote = '"'

    TYPES = {
        ColumnType.TEXT: "TEXT",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.BIG_INTEGER: "BIGINT",
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.TIMESTAMP: "TIMESTAMP(0) WITHOUT TIME ZONE",
        ColumnType.JSON: "JSON",
    }

    def compile(self, blueprint: Blueprint) -> list[str]:
        statements: list[str] = []
        for command in blueprint.to_commands():
            statements.extend(self._compile_command(blueprint, command))
        return statements

    def compile_drop_table(self, table: str) -> str:
        return f"DROP TABLE {self._wrap(table)}"

    def compile_drop_table_if_exists(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self._wrap(table)}"

    def compile_rename_table(self, source: str, target: str) -> str:
        return f"ALTER TABLE {self._wrap(source)} RENAME TO {self._wrap(target)}"

    def _compile_command(self, blueprint: Blueprint, command: Command) -> list[str]:
        table = self._wrap(blueprint.table)

        if isinstance(command, CreateCommand):
            columns = ", ".join(self._column(c) for c in blueprint.columns)
            return [f"CREATE TABLE {table} ({columns})", *self._comments(blueprint, blueprint.columns)]

        if isinstance(command, AddColumnsCommand):
            additions = ", ".join(f"ADD COLUMN {self._column(c)}" for c in command.columns)
            return [f"ALTER TABLE {table} {additions}", *self._comments(blueprint, command.columns)]

        if isinstance(command, IndexCommand):
            columns = columnize(command.columns, self.quote)
            if command.kind is IndexKind.PRIMARY:
                return [f"ALTER TABLE {table} ADD PRIMARY KEY ({columns})"]
            if command.kind is IndexKind.UNIQUE:
                return [
                    f"ALTER TABLE {table} ADD CONSTRAINT {self._wrap(command.index_name)} "
                    f"UNIQUE ({columns})"
                ]
            return [f"CREATE INDEX {self._wrap(command.index_name)} ON {table} ({columns})"]

        if isinstance(command, ForeignKeyCommand):
            definition = command.definition
            return [
                f"ALTER TABLE {table} ADD CONSTRAINT {self._wrap(definition.constraint_name)} "
                f"{foreign_key_clause(definition, self.quote)}"
            ]

        if isinstance(command, DropColumnCommand):
            drops = ", ".join(f"DROP COLUMN {self._wrap(c)}" for c in command.columns)
            return [f"ALTER TABLE {table} {drops}"]

        if isinstance(command, RenameColumnCommand):
            return [
                f"ALTER TABLE {table} RENAME COLUMN {self._wrap(command.source)} "
                f"TO {self._wrap(command.target)}"
            ]

        if isinstance(command, DropIndexCommand):
            if command.kind is IndexKind.INDEX:
                return [f"DROP INDEX {self._wrap(command.index_name)}"]
            return [f"ALTER TABLE {table} DROP CONSTRAINT {self._wrap(command.index_name)}"]

        raise SchemaError(f"Unsupported command for postgresql: {command!r}")

    def _column(self, column: ColumnDefinition) -> str:
        sql = f"{self._wrap(column.name)} {self._type(column)}"
        sql += " NULL" if column.is_nullable else " NOT NULL"
        if column.has_default:
            sql += f" DEFAULT {format_default(column.default_value, 'TRUE', 'FALSE')}"
        if column.is_auto_increment:
            sql += " PRIMARY KEY"
        return sql

    def _type(self, column: ColumnDefinition) -> str:
        if column.type is ColumnType.STRING:
            return f"VARCHAR({column.length or 255})"
        if column.is_auto_increment:
            return "BIGSERIAL" if column.type is ColumnType.BIG_INTEGER else "SERIAL"
        return self.TYPES[column.type]

    def _comments(self, blueprint: Blueprint, columns: Any) -> list[str]:
        return [
            f"COMMENT ON COLUMN {self._wrap(blueprint.table)}.{self._wrap(c.name)} "
            f"IS {quote_string(c.column_comment)}"
            for c in columns
            if c.column_comment
        ]

    def _wrap(self, name: str) -> str:
        return wrap(name, self.quote)


# =============================================================================
# SQLite
# =============================================================================


class SqliteGrammar:
    """Grammar for SQLite.

    SQLite cannot add primary or foreign keys to an existing table, so both
    are folded into CREATE TABLE and rejected on alter.
    """

    dialect = "sqlite"
    quote = '"'

    TYPES = {
        ColumnType.STRING: "VARCHAR",
        ColumnType.TEXT: "TEXT",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.BIG_INTEGER: "INTEGER",
        ColumnType.BOOLEAN: "TINYINT(1)",
        ColumnType.TIMESTAMP: "DATETIME",
        ColumnType.JSON: "TEXT",
    }

    def compile(self, blueprint: Blueprint) -> list[str]:
        commands = blueprint.to_commands()
        statements: list[str] = []
        inlined: list[Command] = []

        if blueprint.creating:
            inlined = [
                c
                for c in commands
                if isinstance(c, ForeignKeyCommand)
                or (isinstance(c, IndexCommand) and c.kind is IndexKind.PRIMARY)
            ]

        for command in commands:
            if any(command is c for c in inlined):
                continue
            statements.extend(self._compile_command(blueprint, command, inlined))
        return statements

    def compile_drop_table(self, table: str) -> str:
        return f"DROP TABLE {self._wrap(table)}"

    def compile_drop_table_if_exists(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self._wrap(table)}"

    def compile_rename_table(self, source: str, target: str) -> str:
        return f"ALTER TABLE {self._wrap(source)} RENAME TO {self._wrap(target)}"

    def _compile_command(
        self, blueprint: Blueprint, command: Command, inlined: list[Command]
    ) -> list[str]:
        table = self._wrap(blueprint.table)

        if isinstance(command, CreateCommand):
            parts = [self._column(c) for c in blueprint.columns]
            for key in inlined:
                if isinstance(key, IndexCommand):
                    parts.append(f"PRIMARY KEY ({columnize(key.columns, self.quote)})")
                elif isinstance(key, ForeignKeyCommand):
                    parts.append(foreign_key_clause(key.definition, self.quote))
            return [f"CREATE TABLE {table} ({', '.join(parts)})"]

        if isinstance(command, AddColumnsCommand):
            statements = []
            for column in command.columns:
                if column.is_auto_increment or column.is_primary:
                    raise SchemaError(
                        f"SQLite cannot add primary key column '{column.name}' to '{blueprint.table}'"
                    )
                if not column.is_nullable and not column.has_default:
                    raise SchemaError(
                        f"SQLite cannot add NOT NULL column '{column.name}' without a default"
                    )
                statements.append(f"ALTER TABLE {table} ADD COLUMN {self._column(column)}")
            return statements

        if isinstance(command, IndexCommand):
            columns = columnize(command.columns, self.quote)
            if command.kind is IndexKind.PRIMARY:
                raise SchemaError(
                    f"SQLite cannot add a primary key to existing table '{blueprint.table}'"
                )
            keyword = "CREATE UNIQUE INDEX" if command.kind is IndexKind.UNIQUE else "CREATE INDEX"
            return [f"{keyword} {self._wrap(command.index_name)} ON {table} ({columns})"]

        if isinstance(command, ForeignKeyCommand):
            raise SchemaError(
                f"SQLite cannot add foreign key '{command.definition.constraint_name}' "
                f"to existing table '{blueprint.table}'"
            )

        if isinstance(command, DropColumnCommand):
            return [f"ALTER TABLE {table} DROP COLUMN {self._wrap(c)}" for c in command.columns]

        if isinstance(command, RenameColumnCommand):
            return [
                f"ALTER TABLE {table} RENAME COLUMN {self._wrap(command.source)} "
                f"TO {self._wrap(command.target)}"
            ]

        if isinstance(command, DropIndexCommand):
            if command.kind in (IndexKind.PRIMARY, IndexKind.FOREIGN):
                raise SchemaError(
                    f"SQLite cannot drop {command.kind.value} key '{command.index_name}'"
                )
            return [f"DROP INDEX {self._wrap(command.index_name)}"]

        raise SchemaError(f"Unsupported command for sqlite: {command!r}")

    def _column(self, column: ColumnDefinition) -> str:
        sql = f"{self._wrap(column.name)} {self.TYPES[column.type]}"
        if column.is_auto_increment:
            sql += " PRIMARY KEY AUTOINCREMENT"
        if not column.is_nullable:
            sql += " NOT NULL"
        if column.has_default:
            sql += f" DEFAULT {self._default(column.default_value)}"
        return sql

    def _default(self, value: Any) -> str:
        literal = format_default(value, "1", "0")
        # SQLite only accepts bare keywords; any other expression needs parentheses.
        if isinstance(value, Expression) and value.sql.strip().upper() not in SQLITE_KEYWORDS:
            return f"({literal})"
        return literal

    def _wrap(self, name: str) -> str:
        return wrap(name, self.quote)


# =============================================================================
# Factory
# =============================================================================


GRAMMARS: dict[str, Callable[[], Grammar]] = {
    "mysql": MySqlGrammar,
    "mariadb": MySqlGrammar,
    "postgresql": PostgresGrammar,
    "postgres": PostgresGrammar,
    "pgsql": PostgresGrammar,
    "sqlite": SqliteGrammar,
}


def get_grammar(dialect: str) -> Grammar:
    """Get the grammar for a dialect name.

    Args:
        dialect: Dialect key, e.g. 'sqlite' or SQLAlchemy's dialect name.

    Returns:
        A grammar instance.

    Raises:
        DialectUnsupported: If no grammar handles the dialect.
    """
    try:
        factory = GRAMMARS[dialect.lower()]
    except KeyError:
        raise DialectUnsupported(dialect) from None
    return factory()
