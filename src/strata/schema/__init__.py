"""Schema description and compilation: blueprints, grammars and the builder."""

from strata.schema.blueprint import (
    Blueprint,
    ColumnDefinition,
    ColumnType,
    Expression,
    ForeignKeyDefinition,
    IndexKind,
)
from strata.schema.builder import SchemaBuilder
from strata.schema.grammars import (
    Grammar,
    MySqlGrammar,
    PostgresGrammar,
    SqliteGrammar,
    get_grammar,
)

__all__ = [
    "Blueprint",
    "ColumnDefinition",
    "ColumnType",
    "Expression",
    "ForeignKeyDefinition",
    "Grammar",
    "IndexKind",
    "MySqlGrammar",
    "PostgresGrammar",
    "SchemaBuilder",
    "SqliteGrammar",
    "get_grammar",
]
