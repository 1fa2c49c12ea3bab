"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from strata.config import Config
from strata.database import ConnectionResolver
from strata.migrations import MigrationRegistry, MigrationRepository, Migrator, SimpleMigration

FIXTURE_MIGRATIONS = Path(__file__).parent / "fixtures" / "migrations"


class RecordingPublisher:
    """Event publisher that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list = []

    def publish(self, event) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [event.name for event in self.events]


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary data directory for tests."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def fixture_migrations() -> Path:
    """Directory of sample migration files."""
    return FIXTURE_MIGRATIONS


@pytest.fixture
def test_config(temp_data_dir: Path) -> Config:
    """Create a test configuration with a temp SQLite database."""
    return Config(data_dir=temp_data_dir, log_json=False)


@pytest.fixture
def resolver(test_config: Config):
    """Connection resolver for the test database."""
    resolver = ConnectionResolver(test_config)
    yield resolver
    resolver.dispose()


@pytest.fixture
def engine(resolver: ConnectionResolver):
    """Engine of the default test connection."""
    return resolver.engine()


@pytest.fixture
def bare_repository(engine, test_config: Config) -> MigrationRepository:
    """Repository whose ledger table has not been created."""
    return MigrationRepository(engine, test_config.migrations.table)


@pytest.fixture
def repository(bare_repository: MigrationRepository) -> MigrationRepository:
    """Repository with an installed, empty ledger."""
    bare_repository.ensure_store_exists()
    return bare_repository


@pytest.fixture
def publisher() -> RecordingPublisher:
    """Event publisher that records events."""
    return RecordingPublisher()


@pytest.fixture
def calls() -> list[tuple[str, str]]:
    """Shared (migration, method) call log for table migrations."""
    return []


@pytest.fixture
def table_migration(calls: list[tuple[str, str]]) -> Callable[..., SimpleMigration]:
    """Factory for migrations that create and drop one table.

    Each body records ``(table, "up"|"down")`` in ``calls``. With ``fail``
    set, the up body creates its table and then raises.
    """

    def factory(
        table: str,
        fail: bool = False,
        within_transaction: bool = False,
        connection: str = "",
    ) -> SimpleMigration:
        def up(conn) -> None:
            calls.append((table, "up"))
            conn.schema.create_table(table, lambda t: (t.id(), t.string("name")))
            if fail:
                raise RuntimeError(f"boom in {table}")

        def down(conn) -> None:
            calls.append((table, "down"))
            conn.schema.drop_table(table)

        return SimpleMigration(
            up, down, connection=connection, within_transaction=within_transaction
        )

    return factory


@pytest.fixture
def make_migrator(
    repository: MigrationRepository,
    resolver: ConnectionResolver,
    publisher: RecordingPublisher,
) -> Callable[..., Migrator]:
    """Factory building a migrator over a dict of name -> migration."""

    def factory(migrations: dict, **kwargs) -> Migrator:
        registry = MigrationRegistry()
        for name, migration in migrations.items():
            registry.register(name, migration)
        kwargs.setdefault("events", publisher)
        return Migrator(repository, resolver, registry, **kwargs)

    return factory
