"""Schema migrations: units, registry, ledger and the migrator.

A migration file is named ``YYYY_MM_DD_HHMMSS_description.py`` and assigns
its migration to a module-level ``migration``:

    from strata.migrations import SimpleMigration

    def up(connection):
        connection.schema.create_table("users", lambda table: table.id())

    def down(connection):
        connection.schema.drop_table("users")

    migration = SimpleMigration(up, down, within_transaction=True)
"""

from strata.migrations.base import BaseMigration, Migration, SimpleMigration
from strata.migrations.migrator import CancelSignal, Migrator
from strata.migrations.registry import MigrationRegistry
from strata.migrations.repository import MigrationRepository

__all__ = [
    "BaseMigration",
    "CancelSignal",
    "Migration",
    "MigrationRegistry",
    "MigrationRepository",
    "Migrator",
    "SimpleMigration",
]
