"""Blueprint: an in-memory description of one table operation.

A blueprint is opened by the schema builder for a single create or alter,
populated by a caller-supplied callback through the fluent helpers below,
compiled once by a grammar and then discarded.

Key concepts:
- ColumnDefinition: one column plus its fluent modifiers
- ForeignKeyDefinition: one foreign key constraint
- Command: closed union of table-level operations
- Blueprint: ordered columns and commands for one table
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from strata.errors import SchemaError

if TYPE_CHECKING:
    from strata.schema.grammars import Grammar


# =============================================================================
# Enums & Sentinels
# =============================================================================


class ColumnType(str, Enum):
    """Logical column types understood by every grammar."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    BIG_INTEGER = "big_integer"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    JSON = "json"


class IndexKind(str, Enum):
    """Kinds of index or constraint a command can add or drop."""

    PRIMARY = "primary"
    UNIQUE = "unique"
    INDEX = "index"
    FOREIGN = "foreign"


class _NoDefault:
    """Marker for columns without a DEFAULT clause (None means NULL)."""

    def __repr__(self) -> str:
        return "<NO_DEFAULT>"

    def __bool__(self) -> bool:
        return False


NO_DEFAULT: Any = _NoDefault()

REFERENTIAL_ACTIONS = {"cascade", "restrict", "set null", "set default", "no action"}


@dataclass(frozen=True)
class Expression:
    """Raw SQL used verbatim as a default value, e.g. CURRENT_TIMESTAMP."""

    sql: str


# =============================================================================
# Column & Foreign Key Definitions
# =============================================================================


@dataclass
class ColumnDefinition:
    """A column to create or add, with fluent modifiers.

    Modifiers return the definition so calls chain:
    ``table.string("email").nullable().unique()``. Once the owning
    blueprint is compiled the definition is sealed.
    """

    name: str
    type: ColumnType
    length: int | None = None
    is_nullable: bool = False
    default_value: Any = NO_DEFAULT
    is_unsigned: bool = False
    is_auto_increment: bool = False
    is_primary: bool = False
    is_unique: bool = False
    is_index: bool = False
    column_comment: str | None = None
    _sealed: bool = field(default=False, repr=False, compare=False)

    @property
    def has_default(self) -> bool:
        """Whether a DEFAULT clause should be emitted."""
        return self.default_value is not NO_DEFAULT

    def nullable(self, value: bool = True) -> ColumnDefinition:
        """Allow NULL values."""
        return self._set(is_nullable=value)

    def default(self, value: Any) -> ColumnDefinition:
        """Set a literal default (or an Expression)."""
        return self._set(default_value=value)

    def use_current(self) -> ColumnDefinition:
        """Default to the current timestamp."""
        return self._set(default_value=Expression("CURRENT_TIMESTAMP"))

    def unsigned(self) -> ColumnDefinition:
        """Mark an integer column unsigned (MySQL only)."""
        return self._set(is_unsigned=True)

    def auto_increment(self) -> ColumnDefinition:
        """Make this the auto-incrementing primary key."""
        return self._set(is_auto_increment=True)

    def primary(self) -> ColumnDefinition:
        """Make this column the primary key."""
        return self._set(is_primary=True)

    def unique(self) -> ColumnDefinition:
        """Add a unique index on this column."""
        return self._set(is_unique=True)

    def index(self) -> ColumnDefinition:
        """Add a plain index on this column."""
        return self._set(is_index=True)

    def comment(self, text: str) -> ColumnDefinition:
        """Attach a column comment."""
        return self._set(column_comment=text)

    def seal(self) -> None:
        """Forbid further modification."""
        self._sealed = True

    def _set(self, **changes: Any) -> ColumnDefinition:
        if self._sealed:
            raise SchemaError(f"Column '{self.name}' cannot be modified after compilation")
        for key, value in changes.items():
            setattr(self, key, value)
        return self


@dataclass
class ForeignKeyDefinition:
    """A foreign key constraint, built fluently.

    ``table.foreign("user_id").references("id").on("users").on_delete("cascade")``
    """

    column: str
    constraint_name: str
    references_column: str | None = None
    references_table: str | None = None
    on_delete_action: str | None = None
    on_update_action: str | None = None

    def references(self, column: str) -> ForeignKeyDefinition:
        """Set the referenced column."""
        self.references_column = column
        return self

    def on(self, table: str) -> ForeignKeyDefinition:
        """Set the referenced table."""
        self.references_table = table
        return self

    def on_delete(self, action: str) -> ForeignKeyDefinition:
        """Set the ON DELETE action."""
        self.on_delete_action = _referential_action(action)
        return self

    def on_update(self, action: str) -> ForeignKeyDefinition:
        """Set the ON UPDATE action."""
        self.on_update_action = _referential_action(action)
        return self

    def cascade_on_delete(self) -> ForeignKeyDefinition:
        return self.on_delete("cascade")

    def null_on_delete(self) -> ForeignKeyDefinition:
        return self.on_delete("set null")


def _referential_action(action: str) -> str:
    normalized = action.lower().strip()
    if normalized not in REFERENTIAL_ACTIONS:
        raise SchemaError(f"Unknown referential action: {action}")
    return normalized


class ForeignIdColumnDefinition(ColumnDefinition):
    """An unsigned big integer column that can constrain itself."""

    blueprint: Blueprint | None = None

    def constrained(self, table: str | None = None, column: str = "id") -> ForeignKeyDefinition:
        """Add a foreign key to ``table.column``.

        Without a table, the name minus ``_id`` is pluralized: ``author_id``
        references ``authors``, ``category_id`` references ``categories``.
        """
        if self.blueprint is None:
            raise SchemaError(f"Column '{self.name}' is not attached to a blueprint")
        if table is None:
            if not self.name.endswith("_id"):
                raise SchemaError(f"Cannot guess referenced table for column '{self.name}'")
            table = _pluralize(self.name[:-3])
        return self.blueprint.foreign(self.name).references(column).on(table)


def _pluralize(word: str) -> str:
    if word.endswith("y") and word[-2:-1] not in ("", "a", "e", "i", "o", "u"):
        return f"{word[:-1]}ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return f"{word}es"
    return f"{word}s"


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class CreateCommand:
    """Create the table with the blueprint's columns."""


@dataclass(frozen=True)
class AddColumnsCommand:
    """Add columns to an existing table."""

    columns: tuple[ColumnDefinition, ...]


@dataclass(frozen=True)
class IndexCommand:
    """Add a primary key, unique index or plain index."""

    kind: IndexKind
    columns: tuple[str, ...]
    index_name: str


@dataclass(frozen=True)
class ForeignKeyCommand:
    """Add a foreign key constraint."""

    definition: ForeignKeyDefinition


@dataclass(frozen=True)
class DropColumnCommand:
    """Drop one or more columns."""

    columns: tuple[str, ...]


@dataclass(frozen=True)
class RenameColumnCommand:
    """Rename a column."""

    source: str
    target: str


@dataclass(frozen=True)
class DropIndexCommand:
    """Drop a primary key, unique index, plain index or foreign key."""

    kind: IndexKind
    index_name: str


Command = Union[
    CreateCommand,
    AddColumnsCommand,
    IndexCommand,
    ForeignKeyCommand,
    DropColumnCommand,
    RenameColumnCommand,
    DropIndexCommand,
]


# =============================================================================
# Blueprint
# =============================================================================


class Blueprint:
    """Columns and commands for one create or alter operation.

    Attributes:
        table: Table being created or altered.
        creating: Whether this blueprint creates the table.
        columns: Columns in declaration order.
        commands: Explicit commands in declaration order.
    """

    def __init__(self, table: str, creating: bool = False) -> None:
        if not table:
            raise SchemaError("Blueprint requires a table name")
        self.table = table
        self.creating = creating
        self.columns: list[ColumnDefinition] = []
        self.commands: list[Command] = []
        self._declared: list[ColumnDefinition | Command] = []
        self._compiled = False

    # -------------------------------------------------------------------------
    # Columns
    # -------------------------------------------------------------------------

    def add_column(self, type: ColumnType | str, name: str, **attributes: Any) -> ColumnDefinition:
        """Declare a column of any logical type.

        Raises:
            SchemaError: If the type is unknown.
        """
        try:
            column_type = ColumnType(type)
        except ValueError:
            raise SchemaError(f"Unknown column type '{type}' for column '{name}'") from None
        return self._add(ColumnDefinition(name=name, type=column_type, **attributes))

    def id(self, name: str = "id") -> ColumnDefinition:
        """Auto-incrementing unsigned big integer primary key."""
        return self.big_increments(name)

    def increments(self, name: str) -> ColumnDefinition:
        return self.add_column(
            ColumnType.INTEGER, name, is_unsigned=True, is_auto_increment=True
        )

    def big_increments(self, name: str) -> ColumnDefinition:
        return self.add_column(
            ColumnType.BIG_INTEGER, name, is_unsigned=True, is_auto_increment=True
        )

    def string(self, name: str, length: int = 255) -> ColumnDefinition:
        return self.add_column(ColumnType.STRING, name, length=length)

    def text(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.TEXT, name)

    def integer(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.INTEGER, name)

    def big_integer(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.BIG_INTEGER, name)

    def unsigned_integer(self, name: str) -> ColumnDefinition:
        return self.integer(name).unsigned()

    def unsigned_big_integer(self, name: str) -> ColumnDefinition:
        return self.big_integer(name).unsigned()

    def boolean(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.BOOLEAN, name)

    def timestamp(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.TIMESTAMP, name)

    def timestamps(self) -> None:
        """Nullable created_at and updated_at columns."""
        self.timestamp("created_at").nullable()
        self.timestamp("updated_at").nullable()

    def json(self, name: str) -> ColumnDefinition:
        return self.add_column(ColumnType.JSON, name)

    def foreign_id(self, name: str) -> ForeignIdColumnDefinition:
        """Unsigned big integer column meant to reference another table."""
        column = ForeignIdColumnDefinition(
            name=name, type=ColumnType.BIG_INTEGER, is_unsigned=True
        )
        column.blueprint = self
        self._add(column)
        return column

    # -------------------------------------------------------------------------
    # Indexes & Constraints
    # -------------------------------------------------------------------------

    def primary(self, columns: str | list[str], name: str | None = None) -> IndexCommand:
        return self._add_index(IndexKind.PRIMARY, columns, name)

    def unique(self, columns: str | list[str], name: str | None = None) -> IndexCommand:
        return self._add_index(IndexKind.UNIQUE, columns, name)

    def index(self, columns: str | list[str], name: str | None = None) -> IndexCommand:
        return self._add_index(IndexKind.INDEX, columns, name)

    def foreign(self, column: str, name: str | None = None) -> ForeignKeyDefinition:
        """Declare a foreign key; finish it with references()/on()."""
        definition = ForeignKeyDefinition(
            column=column,
            constraint_name=name or self.index_name(IndexKind.FOREIGN, [column]),
        )
        self._push(ForeignKeyCommand(definition))
        return definition

    def drop_column(self, *names: str) -> None:
        if not names:
            raise SchemaError("drop_column requires at least one column name")
        self._push(DropColumnCommand(tuple(names)))

    def rename_column(self, source: str, target: str) -> None:
        self._push(RenameColumnCommand(source, target))

    def drop_primary(self, name: str | None = None) -> None:
        self._push(
            DropIndexCommand(IndexKind.PRIMARY, name or f"{self.table}_pkey")
        )

    def drop_unique(self, name: str) -> None:
        self._push(DropIndexCommand(IndexKind.UNIQUE, name))

    def drop_index(self, name: str) -> None:
        self._push(DropIndexCommand(IndexKind.INDEX, name))

    def drop_foreign(self, name: str) -> None:
        self._push(DropIndexCommand(IndexKind.FOREIGN, name))

    def index_name(self, kind: IndexKind, columns: list[str] | tuple[str, ...]) -> str:
        """Default name for an index: ``<table>_<columns>_<kind>``."""
        name = "_".join([self.table, *columns, kind.value]).lower()
        return name.replace("-", "_").replace(".", "_")

    def _add_index(
        self, kind: IndexKind, columns: str | list[str], name: str | None
    ) -> IndexCommand:
        cols = (columns,) if isinstance(columns, str) else tuple(columns)
        if not cols:
            raise SchemaError(f"{kind.value} index requires at least one column")
        command = IndexCommand(kind, cols, name or self.index_name(kind, cols))
        self._push(command)
        return command

    def _add(self, column: ColumnDefinition) -> ColumnDefinition:
        self.columns.append(column)
        self._declared.append(column)
        return column

    def _push(self, command: Command) -> None:
        self.commands.append(command)
        self._declared.append(command)

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def to_commands(self) -> list[Command]:
        """Validate and return every command in execution order.

        A create blueprint starts with the create command, then the indexes
        implied by column modifiers, then explicit commands in declaration
        order. An alter blueprint keeps columns and commands in the order they
        were declared: each run of consecutive columns becomes one add-columns
        command followed by the indexes its modifiers imply.

        Raises:
            SchemaError: If the blueprint is inconsistent.
        """
        self._validate()

        if self.creating:
            commands: list[Command] = [CreateCommand()]
            for column in self.columns:
                commands.extend(self._implied_indexes(column))
            commands.extend(self.commands)
            return commands

        commands = []
        run: list[ColumnDefinition] = []
        for item in self._declared:
            if isinstance(item, ColumnDefinition):
                run.append(item)
                continue
            commands.extend(self._add_columns(run))
            run = []
            commands.append(item)
        commands.extend(self._add_columns(run))
        return commands

    def _add_columns(self, columns: list[ColumnDefinition]) -> list[Command]:
        if not columns:
            return []
        commands: list[Command] = [AddColumnsCommand(tuple(columns))]
        for column in columns:
            commands.extend(self._implied_indexes(column))
        return commands

    def _implied_indexes(self, column: ColumnDefinition) -> list[Command]:
        indexes: list[Command] = []
        if column.is_primary and not column.is_auto_increment:
            indexes.append(
                IndexCommand(
                    IndexKind.PRIMARY,
                    (column.name,),
                    self.index_name(IndexKind.PRIMARY, [column.name]),
                )
            )
        for flag, kind in ((column.is_unique, IndexKind.UNIQUE), (column.is_index, IndexKind.INDEX)):
            if flag:
                indexes.append(
                    IndexCommand(kind, (column.name,), self.index_name(kind, [column.name]))
                )
        return indexes

    def to_sql(self, grammar: Grammar) -> list[str]:
        """Compile this blueprint once with a grammar.

        Raises:
            SchemaError: If compiled twice or inconsistent.
        """
        if self._compiled:
            raise SchemaError(f"Blueprint for '{self.table}' was already compiled")
        statements = grammar.compile(self)
        self._compiled = True
        for column in self.columns:
            column.seal()
        return statements

    def _validate(self) -> None:
        seen: set[str] = set()
        for column in self.columns:
            if column.name in seen:
                raise SchemaError(f"Column '{column.name}' declared twice on '{self.table}'")
            seen.add(column.name)

        auto = [c.name for c in self.columns if c.is_auto_increment]
        if len(auto) > 1:
            raise SchemaError(
                f"Table '{self.table}' has more than one auto-increment column: {auto}"
            )

        primaries = len(auto) + sum(
            1 for c in self.columns if c.is_primary and not c.is_auto_increment
        ) + sum(
            1
            for c in self.commands
            if isinstance(c, IndexCommand) and c.kind is IndexKind.PRIMARY
        )
        if primaries > 1:
            raise SchemaError(f"Table '{self.table}' declares more than one primary key")

        for command in self.commands:
            if isinstance(command, ForeignKeyCommand):
                definition = command.definition
                if not definition.references_table or not definition.references_column:
                    raise SchemaError(
                        f"Foreign key '{definition.constraint_name}' needs references() and on()"
                    )

        if not self.creating:
            return

        if not self.columns:
            raise SchemaError(f"Cannot create table '{self.table}' without columns")

        for command in self.commands:
            if isinstance(command, IndexCommand):
                missing = [c for c in command.columns if c not in seen]
                if missing:
                    raise SchemaError(
                        f"Index '{command.index_name}' references undeclared column(s) {missing}"
                    )
            elif isinstance(command, ForeignKeyCommand):
                if command.definition.column not in seen:
                    raise SchemaError(
                        f"Foreign key '{command.definition.constraint_name}' references "
                        f"undeclared column '{command.definition.column}'"
                    )
            elif isinstance(command, (DropColumnCommand, RenameColumnCommand, DropIndexCommand)):
                raise SchemaError(
                    f"Cannot drop or rename while creating table '{self.table}'"
                )
