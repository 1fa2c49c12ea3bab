"""Migration ledger: which migrations have run, and in which batch.

The ledger is a single table (default ``migrations``)::

    id         integer  primary key, auto-increment
    migration  string   not null, unique
    batch      integer  not null

It is the single source of truth for the database's migration state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Column, Integer, MetaData, String, Table, delete, func, insert, inspect, select
from sqlalchemy.exc import IntegrityError

from strata.connection import LiveConnection
from strata.errors import DuplicateRecord, RecordNotFound, StoreNotInitialized
from strata.logging import get_logger
from strata.models import MigrationRecord, row_to_record

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from strata.schema.blueprint import Blueprint

log = get_logger("repository")


class MigrationRepository:
    """Reads and writes the migration ledger.

    Every method except the store lifecycle ones raises StoreNotInitialized
    when the ledger table is missing.

    Attributes:
        engine: Engine of the default connection.
        table_name: Ledger table name.
    """

    def __init__(self, engine: Engine, table: str = "migrations") -> None:
        self.engine = engine
        self.table_name = table
        self.table = Table(
            table,
            MetaData(),
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("migration", String(255), nullable=False, unique=True),
            Column("batch", Integer, nullable=False),
        )

    # -------------------------------------------------------------------------
    # Store lifecycle
    # -------------------------------------------------------------------------

    def store_exists(self) -> bool:
        """Check whether the ledger table exists."""
        return inspect(self.engine).has_table(self.table_name)

    def ensure_store_exists(self) -> bool:
        """Create the ledger table if needed.

        Returns:
            True if the table was created by this call.
        """
        if self.store_exists():
            return False

        def columns(table: Blueprint) -> None:
            table.increments("id")
            table.string("migration").unique()
            table.integer("batch")

        with self.engine.connect() as conn:
            with LiveConnection(conn).transaction() as connection:
                connection.schema.create_table(self.table_name, columns)
        log.info("ledger_created", table=self.table_name)
        return True

    def drop_store(self) -> None:
        """Drop the ledger table if it exists."""
        with self.engine.connect() as conn:
            LiveConnection(conn).schema.drop_table_if_exists(self.table_name)
        log.info("ledger_dropped", table=self.table_name)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_applied(self) -> list[str]:
        """All applied migration names, ordered by batch then name."""
        query = select(self.table.c.migration).order_by(
            self.table.c.batch.asc(), self.table.c.migration.asc()
        )
        with self._connect() as conn:
            return [row.migration for row in conn.execute(query)]

    def get_records(self) -> list[MigrationRecord]:
        """All ledger records in apply order."""
        query = select(self.table.c.migration, self.table.c.batch).order_by(
            self.table.c.batch.asc(), self.table.c.migration.asc()
        )
        with self._connect() as conn:
            return [row_to_record(row) for row in conn.execute(query)]

    def get_recent(self, steps: int) -> list[MigrationRecord]:
        """The last ``steps`` applied records, most recent first."""
        query = (
            select(self.table.c.migration, self.table.c.batch)
            .order_by(self.table.c.batch.desc(), self.table.c.migration.desc())
            .limit(steps)
        )
        with self._connect() as conn:
            return [row_to_record(row) for row in conn.execute(query)]

    def get_by_batch(self, batch: int) -> list[MigrationRecord]:
        """Records of one batch, in reverse apply order."""
        query = (
            select(self.table.c.migration, self.table.c.batch)
            .where(self.table.c.batch == batch)
            .order_by(self.table.c.migration.desc())
        )
        with self._connect() as conn:
            return [row_to_record(row) for row in conn.execute(query)]

    def get_last_batch(self) -> list[MigrationRecord]:
        """Records of the highest batch; empty for an empty ledger."""
        last = self.get_last_batch_number()
        if last == 0:
            return []
        return self.get_by_batch(last)

    def get_last_batch_number(self) -> int:
        """Highest batch in the ledger, or 0 when empty."""
        with self._connect() as conn:
            return conn.execute(select(func.max(self.table.c.batch))).scalar() or 0

    def next_batch_number(self) -> int:
        return self.get_last_batch_number() + 1

    def get_migration_batches(self) -> dict[str, int]:
        """Map of applied migration name to its batch."""
        return {record.migration: record.batch for record in self.get_records()}

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def log(self, name: str, batch: int) -> None:
        """Record that a migration ran.

        Raises:
            ValueError: If the batch is not a positive number.
            DuplicateRecord: If the name is already recorded.
        """
        if batch < 1:
            raise ValueError(f"Batch must be at least 1, got {batch}")
        self._require_store()
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(
                    select(self.table.c.id).where(self.table.c.migration == name)
                ).first()
                if exists is not None:
                    raise DuplicateRecord(name)
                conn.execute(insert(self.table).values(migration=name, batch=batch))
        except IntegrityError as e:
            raise DuplicateRecord(name) from e

    def delete(self, name: str) -> None:
        """Remove a migration's record.

        Raises:
            RecordNotFound: If the name is not recorded.
        """
        self._require_store()
        with self.engine.begin() as conn:
            result = conn.execute(delete(self.table).where(self.table.c.migration == name))
            if result.rowcount == 0:
                raise RecordNotFound(name)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_store(self) -> None:
        if not self.store_exists():
            raise StoreNotInitialized(self.table_name)

    def _connect(self):
        self._require_store()
        return self.engine.connect()
