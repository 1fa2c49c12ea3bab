"""Command-line interface for Strata."""

from pathlib import Path

import click

from strata import __version__
from strata.config import Config
from strata.errors import MigrationError
from strata.logging import get_logger, setup_logging
from strata.models import MigrationResult

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """Strata - versioned schema migrations.

    Applies, reverts and inspects timestamp-ordered migrations against a
    ledger table.
    """
    ctx.ensure_object(dict)

    config = Config.load_or_default(config_file)
    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # CLI overrides config
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"strata {__version__}")


# =============================================================================
# Database Commands
# =============================================================================

path_option = click.option(
    "--path",
    "migrations_path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Migrations directory (default: migrations.path from config).",
)
pretend_option = click.option(
    "--pretend",
    is_flag=True,
    default=False,
    help="Print the SQL that would run without executing it.",
)
force_option = click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Allow running in a protected environment.",
)


def _build_migrator(config: Config, migrations_path: Path | None):
    from strata.migrations import MigrationRegistry, Migrator

    registry = MigrationRegistry.from_directory(migrations_path or config.migrations.path)
    return Migrator.from_config(config, registry)


def _echo_result(result: MigrationResult, verb: str) -> None:
    if result.pretend:
        for name in result.migrations:
            click.echo(f"{name}:")
            for sql in result.queries.get(name, []):
                click.echo(f"  {sql}")
    elif not result.migrations:
        click.echo("Nothing to do")
    else:
        for name in result.migrations:
            batch = result.batches.get(name)
            suffix = f" (batch {batch})" if batch is not None else ""
            click.echo(f"{verb}: {name}{suffix}")

    if result.cancelled:
        click.echo("Cancelled before completion")


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    raise SystemExit(1)


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command(name="install")
@click.pass_context
def db_install(ctx: click.Context) -> None:
    """Create the migration ledger table."""
    from strata.database import get_engine
    from strata.migrations import MigrationRepository

    config = ctx.obj["config"]
    repository = MigrationRepository(get_engine(config), config.migrations.table)

    if repository.ensure_store_exists():
        click.echo(f"Created ledger table: {config.migrations.table}")
    else:
        click.echo(f"Ledger table already exists: {config.migrations.table}")


@db.command(name="migrate")
@path_option
@pretend_option
@click.option(
    "--step",
    is_flag=True,
    default=False,
    help="Record each migration in its own batch.",
)
@force_option
@click.pass_context
def db_migrate(
    ctx: click.Context,
    migrations_path: Path | None,
    pretend: bool,
    step: bool,
    force: bool,
) -> None:
    """Apply pending migrations."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        result = migrator.run(pretend=pretend, step=step, force=force)
    except MigrationError as e:
        _fail(e)
    _echo_result(result, "Migrated")


@db.command(name="rollback")
@path_option
@click.option(
    "--step",
    "steps",
    type=click.IntRange(min=0),
    default=0,
    help="Number of migrations to revert, across batches.",
)
@click.option(
    "--batch",
    type=click.IntRange(min=0),
    default=0,
    help="Revert one specific batch.",
)
@pretend_option
@force_option
@click.pass_context
def db_rollback(
    ctx: click.Context,
    migrations_path: Path | None,
    steps: int,
    batch: int,
    pretend: bool,
    force: bool,
) -> None:
    """Revert the latest batch of migrations."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        result = migrator.rollback(steps=steps, batch=batch, pretend=pretend, force=force)
    except MigrationError as e:
        _fail(e)
    _echo_result(result, "Rolled back")


@db.command(name="reset")
@path_option
@pretend_option
@force_option
@click.pass_context
def db_reset(
    ctx: click.Context,
    migrations_path: Path | None,
    pretend: bool,
    force: bool,
) -> None:
    """Revert every applied migration."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        result = migrator.reset(pretend=pretend, force=force)
    except MigrationError as e:
        _fail(e)
    _echo_result(result, "Rolled back")


@db.command(name="refresh")
@path_option
@force_option
@click.pass_context
def db_refresh(ctx: click.Context, migrations_path: Path | None, force: bool) -> None:
    """Revert every migration, then apply them all again."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        reverted, applied = migrator.refresh(force=force)
    except MigrationError as e:
        _fail(e)
    _echo_result(reverted, "Rolled back")
    _echo_result(applied, "Migrated")


@db.command(name="fresh")
@path_option
@force_option
@click.pass_context
def db_fresh(ctx: click.Context, migrations_path: Path | None, force: bool) -> None:
    """Drop every table, then apply all migrations."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        result = migrator.fresh(force=force)
    except MigrationError as e:
        _fail(e)
    _echo_result(result, "Migrated")


@db.command(name="status")
@path_option
@click.pass_context
def db_status(ctx: click.Context, migrations_path: Path | None) -> None:
    """Show which migrations have run."""
    config = ctx.obj["config"]
    try:
        migrator = _build_migrator(config, migrations_path)
        if not migrator.repository.store_exists():
            click.echo(f"Database: {config.database_url}")
            click.echo("Ledger table not found; run 'strata db install'")
            return
        statuses = migrator.status()
    except MigrationError as e:
        _fail(e)

    click.echo(f"Database: {config.database_url}")
    if not statuses:
        click.echo("No migrations found")
        return

    width = max(len(s.name) for s in statuses)
    click.echo(f"{'Migration':<{width}}  Batch  Ran?")
    for s in statuses:
        batch = str(s.batch) if s.batch is not None else "-"
        ran = "Yes" if s.applied else "No"
        if not s.registered:
            ran += " (migration file missing)"
        click.echo(f"{s.name:<{width}}  {batch:>5}  {ran}")

    pending = sum(1 for s in statuses if not s.applied)
    if pending:
        click.echo(f"Pending migrations: {pending}")
    else:
        click.echo("No pending migrations")


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="strata.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Environment: {cfg.environment}")
        click.echo(f"  Database: {cfg.database_url}")
        click.echo(f"  Ledger table: {cfg.migrations.table}")
        click.echo(f"  Migrations path: {cfg.migrations.path}")
        click.echo(f"  Log level: {cfg.log_level}")

        if cfg.database.connections:
            click.echo(f"  Named connections: {', '.join(sorted(cfg.database.connections))}")
        if cfg.is_protected:
            click.echo("  Protected environment: destructive commands need --force")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
