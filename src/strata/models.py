"""Pydantic models for Strata entities.

These models bridge between the ledger table (SQLAlchemy Core) and
application code, providing validation and serialization.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Direction(str, Enum):
    """Direction of a migration operation (also the method being run)."""

    UP = "up"
    DOWN = "down"


# =============================================================================
# Ledger
# =============================================================================


class MigrationRecord(BaseModel):
    """One applied migration in the ledger."""

    model_config = ConfigDict(frozen=True)

    migration: str
    batch: int = Field(ge=1)


class MigrationStatus(BaseModel):
    """Status row for one migration.

    Ledger entries with no registered migration are listed with
    ``registered=False``.
    """

    name: str
    batch: int | None = None
    applied: bool = False
    registered: bool = True


# =============================================================================
# Results
# =============================================================================


class MigrationResult(BaseModel):
    """Outcome of a run, rollback or reset.

    Attributes:
        direction: Whether migrations were applied or reverted.
        migrations: Names processed, in execution order.
        batches: Batch number each applied migration was logged under.
        queries: SQL captured per migration in pretend mode.
        pretend: Whether this was a dry run.
        cancelled: Whether the caller stopped the operation early.
    """

    direction: Direction
    migrations: list[str] = Field(default_factory=list)
    batches: dict[str, int] = Field(default_factory=dict)
    queries: dict[str, list[str]] = Field(default_factory=dict)
    pretend: bool = False
    cancelled: bool = False

    @property
    def count(self) -> int:
        """Number of migrations processed."""
        return len(self.migrations)


def row_to_record(row: Any) -> MigrationRecord:
    """Convert a ledger row to a MigrationRecord."""
    return MigrationRecord(migration=row.migration, batch=row.batch)
