"""Migrator: the orchestration engine.

Decides which migrations are pending, runs them in name order under a batch
number, and reverts them by batch, by step count or all at once. Every
operation can run in pretend mode, where bodies run against a SQL-capturing
connection and neither the schema nor the ledger is touched.

The migrator keeps no state between calls beyond its frozen registry; the
ledger is the source of truth. Migrations run strictly one at a time, and
concurrent migrators against one database must be serialized by the caller.
"""

from __future__ import annotations

import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Protocol

from strata.connection import PretendConnection
from strata.database import DEFAULT_CONNECTION, ConnectionResolver
from strata.errors import ConfirmationRequired, ExecutionFailed, MigrationNotRegistered
from strata.events import (
    Event,
    EventPublisher,
    MigrationEnded,
    MigrationsEnded,
    MigrationSkipped,
    MigrationsStarted,
    MigrationStarted,
    NoPendingMigrations,
)
from strata.logging import get_logger
from strata.migrations.repository import MigrationRepository
from strata.models import Direction, MigrationResult, MigrationStatus

if TYPE_CHECKING:
    from strata.config import Config
    from strata.connection import Connection
    from strata.migrations.base import Migration
    from strata.migrations.registry import MigrationRegistry

log = get_logger("migrator")


class CancelSignal(Protocol):
    """Anything with ``is_set()``, e.g. threading.Event."""

    def is_set(self) -> bool:
        ...


class Migrator:
    """Runs and reverts registered migrations against the ledger.

    Attributes:
        repository: The migration ledger.
        resolver: Source of live connections per connection name.
        registry: Frozen name -> migration table.
        events: Optional publisher for lifecycle events.
        environment: Current environment name.
        protected_environments: Environments where destructive calls need force.
    """

    def __init__(
        self,
        repository: MigrationRepository,
        resolver: ConnectionResolver,
        registry: MigrationRegistry,
        events: EventPublisher | None = None,
        environment: str = "local",
        protected_environments: tuple[str, ...] | list[str] = ("production",),
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.registry = registry
        self.events = events
        self.environment = environment
        self.protected_environments = tuple(protected_environments)
        registry.freeze()

    @classmethod
    def from_config(
        cls,
        config: Config,
        registry: MigrationRegistry,
        events: EventPublisher | None = None,
    ) -> Migrator:
        """Wire a migrator from configuration."""
        resolver = ConnectionResolver(config)
        repository = MigrationRepository(resolver.engine(), config.migrations.table)
        return cls(
            repository,
            resolver,
            registry,
            events=events,
            environment=config.environment,
            protected_environments=config.migrations.protected_environments,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def install(self) -> bool:
        """Create the ledger table. Returns True if it was created."""
        return self.repository.ensure_store_exists()

    def run(
        self,
        pretend: bool = False,
        step: bool = False,
        force: bool = False,
        cancel: CancelSignal | None = None,
    ) -> MigrationResult:
        """Apply every pending migration in name order.

        Args:
            pretend: Capture SQL instead of executing it; leave the ledger alone.
            step: Give each migration its own batch number.
            force: Allow running in a protected environment.
            cancel: Checked before each migration.

        Returns:
            The migrations applied, in order.

        Raises:
            ExecutionFailed: A migration body raised. Earlier migrations stay
                applied; later ones are not attempted.
            ConfirmationRequired: Protected environment without force.
        """
        if not pretend:
            self._confirm(force)
            self.repository.ensure_store_exists()

        result = MigrationResult(direction=Direction.UP, pretend=pretend)
        pending = self.pending()

        if not pending:
            log.info("no_pending_migrations", direction=Direction.UP.value)
            self._fire(NoPendingMigrations(Direction.UP))
            return result

        batch = 0 if pretend else self.repository.next_batch_number()
        log.info("migrations_starting", count=len(pending), batch=batch, pretend=pretend)
        self._fire(MigrationsStarted(Direction.UP))

        with ExitStack() as stack:
            connections: dict[str, Connection] = {}
            for name in pending:
                if _cancelled(cancel):
                    result.cancelled = True
                    log.warning("migrations_cancelled", next_migration=name)
                    break

                migration = self._resolve(name)
                if not _should_run(migration):
                    log.info("migration_skipped", migration=name)
                    self._fire(MigrationSkipped(name))
                    continue

                self._execute(name, migration, Direction.UP, result, stack, connections)

                if not pretend:
                    self.repository.log(name, batch)
                    result.batches[name] = batch
                result.migrations.append(name)
                self._fire(MigrationEnded(name, Direction.UP))

                if step and not pretend:
                    batch += 1

        self._fire(MigrationsEnded(Direction.UP))
        log.info("migrations_complete", count=result.count, pretend=pretend)
        return result

    def rollback(
        self,
        steps: int = 0,
        batch: int = 0,
        pretend: bool = False,
        force: bool = False,
        cancel: CancelSignal | None = None,
    ) -> MigrationResult:
        """Revert migrations.

        Target selection, by priority: the last ``steps`` migrations across
        batches; else every migration of ``batch``; else the latest batch.

        Raises:
            ExecutionFailed: A migration body raised.
            MigrationNotRegistered: A target has no registered migration.
            StoreNotInitialized: The ledger table is missing.
        """
        if steps < 0 or batch < 0:
            raise ValueError("steps and batch must not be negative")
        if not pretend:
            self._confirm(force)

        if steps > 0:
            records = self.repository.get_recent(steps)
        elif batch > 0:
            records = self.repository.get_by_batch(batch)
        else:
            records = self.repository.get_last_batch()

        return self._revert([r.migration for r in records], pretend, cancel)

    def reset(
        self,
        pretend: bool = False,
        force: bool = False,
        cancel: CancelSignal | None = None,
    ) -> MigrationResult:
        """Revert every applied migration, last applied first."""
        if not pretend:
            self._confirm(force)
        names = list(reversed(self.repository.get_applied()))
        return self._revert(names, pretend, cancel)

    def refresh(
        self,
        force: bool = False,
        cancel: CancelSignal | None = None,
    ) -> tuple[MigrationResult, MigrationResult]:
        """Reset, then run everything again.

        Returns:
            (reset result, run result).
        """
        self._confirm(force)
        self.repository.ensure_store_exists()
        reverted = self.reset(force=True, cancel=cancel)
        if reverted.cancelled:
            return reverted, MigrationResult(direction=Direction.UP, cancelled=True)
        return reverted, self.run(force=True, cancel=cancel)

    def fresh(
        self,
        force: bool = False,
        cancel: CancelSignal | None = None,
    ) -> MigrationResult:
        """Drop every table on the default connection, then run everything."""
        self._confirm(force)
        with self.resolver.connect() as connection:
            dropped = connection.schema.drop_all_tables()
        log.warning("tables_dropped", count=len(dropped))
        return self.run(force=True, cancel=cancel)

    def status(self) -> list[MigrationStatus]:
        """Applied state of every registered migration, in name order.

        Ledger entries without a registered migration are included and
        flagged ``registered=False``.
        """
        batches = self.repository.get_migration_batches()
        names = sorted(set(self.registry.names()) | set(batches))
        statuses = [
            MigrationStatus(
                name=name,
                batch=batches.get(name),
                applied=name in batches,
                registered=name in self.registry,
            )
            for name in names
        ]
        missing = [s.name for s in statuses if not s.registered]
        if missing:
            log.warning("unregistered_migrations_in_ledger", migrations=missing)
        return statuses

    def pending(self) -> list[str]:
        """Registered migrations absent from the ledger, in execution order."""
        if not self.repository.store_exists():
            return self.registry.names()
        applied = set(self.repository.get_applied())
        return [name for name in self.registry.names() if name not in applied]

    # =========================================================================
    # Internals
    # =========================================================================

    def _revert(
        self,
        names: list[str],
        pretend: bool,
        cancel: CancelSignal | None,
    ) -> MigrationResult:
        result = MigrationResult(direction=Direction.DOWN, pretend=pretend)

        if not names:
            log.info("no_pending_migrations", direction=Direction.DOWN.value)
            self._fire(NoPendingMigrations(Direction.DOWN))
            return result

        for name in names:
            if name not in self.registry:
                raise MigrationNotRegistered(name)

        log.info("rollback_starting", count=len(names), pretend=pretend)
        self._fire(MigrationsStarted(Direction.DOWN))

        with ExitStack() as stack:
            connections: dict[str, Connection] = {}
            for name in names:
                if _cancelled(cancel):
                    result.cancelled = True
                    log.warning("rollback_cancelled", next_migration=name)
                    break

                migration = self._resolve(name)
                self._execute(name, migration, Direction.DOWN, result, stack, connections)

                if not pretend:
                    self.repository.delete(name)
                result.migrations.append(name)
                self._fire(MigrationEnded(name, Direction.DOWN))

        self._fire(MigrationsEnded(Direction.DOWN))
        log.info("rollback_complete", count=result.count, pretend=pretend)
        return result

    def _execute(
        self,
        name: str,
        migration: Migration,
        method: Direction,
        result: MigrationResult,
        stack: ExitStack,
        connections: dict[str, Connection],
    ) -> None:
        """Run one migration body, wrapping failures with its name."""
        self._fire(MigrationStarted(name, method))
        log.info(
            "migrating" if method is Direction.UP else "rolling_back",
            migration=name,
            pretend=result.pretend,
        )
        started = time.monotonic()
        body = migration.up if method is Direction.UP else migration.down

        try:
            if result.pretend:
                connection: Connection = self._pretend_connection(migration.connection_name())
            else:
                connection = self._live_connection(migration.connection_name(), stack, connections)

            if migration.uses_transaction():
                with connection.transaction():
                    body(connection)
            else:
                body(connection)
        except Exception as e:
            log.error(
                "migration_failed",
                migration=name,
                direction=method.value,
                error=str(e),
            )
            raise ExecutionFailed(name, method, e, result) from e

        if isinstance(connection, PretendConnection):
            result.queries[name] = list(connection.queries)
            for sql in connection.queries:
                log.info("pretended_query", migration=name, sql=sql)

        log.info(
            "migrated" if method is Direction.UP else "rolled_back",
            migration=name,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

    def _live_connection(
        self,
        name: str,
        stack: ExitStack,
        connections: dict[str, Connection],
    ) -> Connection:
        key = name or DEFAULT_CONNECTION
        if key not in connections:
            connections[key] = stack.enter_context(self.resolver.connect(name))
        return connections[key]

    def _pretend_connection(self, name: str) -> PretendConnection:
        return PretendConnection(
            self.resolver.dialect(name),
            name,
            source=self.resolver.engine(name),
        )

    def _resolve(self, name: str) -> Migration:
        migration = self.registry.get(name)
        if migration is None:
            raise MigrationNotRegistered(name)
        return migration

    def _confirm(self, force: bool) -> None:
        if self.environment in self.protected_environments and not force:
            raise ConfirmationRequired(self.environment)

    def _fire(self, event: Event) -> None:
        if self.events is None:
            return
        try:
            self.events.publish(event)
        except Exception as e:
            log.warning("event_listener_failed", event_name=event.name, error=str(e))


def _cancelled(cancel: CancelSignal | None) -> bool:
    return cancel is not None and cancel.is_set()


def _should_run(migration: Migration) -> bool:
    should_run = getattr(migration, "should_run", None)
    return should_run() if callable(should_run) else True
