"""Error types raised by the migration engine.

Every error derives from MigrationError so callers can catch the whole
family at the command boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strata.models import Direction, MigrationResult


class MigrationError(Exception):
    """Base class for all migration engine errors."""


# =============================================================================
# Ledger
# =============================================================================


class StoreNotInitialized(MigrationError):
    """The ledger table does not exist yet."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(
            f"Migration ledger table '{table}' does not exist; run install first"
        )


class RecordNotFound(MigrationError):
    """A ledger record was expected but is absent."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No ledger record for migration: {name}")


class DuplicateRecord(MigrationError):
    """A migration name already has a ledger record."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Migration already recorded in ledger: {name}")


# =============================================================================
# Registration
# =============================================================================


class MigrationNotRegistered(MigrationError):
    """A ledger or rollback target has no registered migration."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Migration not registered: {name}")


class InvalidMigrationName(MigrationError, ValueError):
    """A migration name does not follow YYYY_MM_DD_HHMMSS_description."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Invalid migration name '{name}': expected YYYY_MM_DD_HHMMSS_description"
        )


class DuplicateMigration(MigrationError):
    """Two migrations were registered under the same name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Migration registered twice: {name}")


class RegistryFrozen(MigrationError):
    """Registration was attempted after the registry was handed to a migrator."""


# =============================================================================
# Execution
# =============================================================================


class ExecutionFailed(MigrationError):
    """A migration's up or down body raised.

    Attributes:
        name: Name of the failing migration.
        direction: Which body was running.
        cause: The original exception.
        result: Migrations completed before the failure.
    """

    def __init__(
        self,
        name: str,
        direction: Direction,
        cause: BaseException,
        result: MigrationResult,
    ) -> None:
        self.name = name
        self.direction = direction
        self.cause = cause
        self.result = result
        super().__init__(
            f"Migration {name} failed while running {direction.value}: {cause}"
        )


class ConfirmationRequired(MigrationError):
    """A destructive operation was attempted in a protected environment."""

    def __init__(self, environment: str) -> None:
        self.environment = environment
        super().__init__(
            f"Refusing to run migrations in '{environment}' without force"
        )


# =============================================================================
# Schema
# =============================================================================


class DialectUnsupported(MigrationError):
    """No grammar exists for the requested dialect."""

    def __init__(self, dialect: str) -> None:
        self.dialect = dialect
        super().__init__(f"Unsupported SQL dialect: {dialect}")


class SchemaError(MigrationError):
    """A blueprint cannot be compiled for the active dialect."""
