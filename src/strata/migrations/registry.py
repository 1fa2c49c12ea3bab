"""Migration registry: the explicit name -> migration table.

Migrations are registered by an explicit bootstrap step, either one by one
or by discovering a directory of migration files, and the finished registry
is handed to the Migrator, which freezes it.
"""

from __future__ import annotations

import importlib.util
import re
import sys
from pathlib import Path

from strata.errors import DuplicateMigration, InvalidMigrationName, RegistryFrozen
from strata.logging import get_logger
from strata.migrations.base import Migration

log = get_logger("migrations")

NAME_PATTERN = re.compile(r"^\d{4}_\d{2}_\d{2}_\d{6}_[A-Za-z0-9_]+$")
FILE_GLOB = "[0-9][0-9][0-9][0-9]_[0-9][0-9]_[0-9][0-9]_[0-9][0-9][0-9][0-9][0-9][0-9]_*.py"


class MigrationRegistry:
    """Named migrations, iterated in name order."""

    def __init__(self) -> None:
        self._migrations: dict[str, Migration] = {}
        self._frozen = False

    def register(self, name: str, migration: Migration) -> None:
        """Register a migration under its ledger name.

        Raises:
            RegistryFrozen: If a migrator already owns this registry.
            InvalidMigrationName: If the name is not timestamp-prefixed.
            DuplicateMigration: If the name is taken.
        """
        if self._frozen:
            raise RegistryFrozen(f"Cannot register {name}: registry is frozen")
        if not NAME_PATTERN.match(name):
            raise InvalidMigrationName(name)
        if name in self._migrations:
            raise DuplicateMigration(name)
        if not isinstance(migration, Migration):
            raise TypeError(f"{name} does not provide up/down/connection_name/uses_transaction")
        self._migrations[name] = migration

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Migration | None:
        return self._migrations.get(name)

    def names(self) -> list[str]:
        """Registered names in ascending (chronological) order."""
        return sorted(self._migrations)

    def __contains__(self, name: object) -> bool:
        return name in self._migrations

    def __len__(self) -> int:
        return len(self._migrations)

    def discover(self, directory: Path | str) -> list[str]:
        """Register every migration file found in a directory.

        Each ``YYYY_MM_DD_HHMMSS_description.py`` file must define a
        module-level ``migration``; files without one are skipped.

        Args:
            directory: Directory holding migration files.

        Returns:
            Names registered, sorted.
        """
        directory = Path(directory)
        if not directory.is_dir():
            log.warning("migrations_directory_missing", path=str(directory))
            return []

        registered: list[str] = []
        for path in sorted(directory.glob(FILE_GLOB)):
            module = _load_module(path)
            migration = getattr(module, "migration", None)
            if migration is None:
                log.warning("migration_missing_definition", file=path.name)
                continue
            self.register(path.stem, migration)
            registered.append(path.stem)

        log.debug("migrations_discovered", path=str(directory), count=len(registered))
        return registered

    @classmethod
    def from_directory(cls, directory: Path | str) -> MigrationRegistry:
        registry = cls()
        registry.discover(directory)
        return registry


def _load_module(path: Path):
    """Import a migration file without requiring it to live in a package."""
    module_name = f"strata_migrations.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load migration file: {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise
    return module
