"""CLI entrypoint for running strata as a module."""

from strata.cli import cli
from strata.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
