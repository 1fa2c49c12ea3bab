"""Configuration loading and validation for Strata."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DatabaseConfig(BaseModel):
    """Database configuration.

    ``url`` takes precedence; without it the default connection is a SQLite
    file at ``data_dir / path``.
    """

    url: str | None = None
    path: str = "strata.db"
    wal: bool = False
    connections: dict[str, str] = Field(default_factory=dict)


class MigrationsConfig(BaseModel):
    """Migration engine configuration."""

    table: str = "migrations"
    path: Path = Path("migrations")
    protected_environments: list[str] = Field(default_factory=lambda: ["production"])

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Validate the ledger table name is a plain SQL identifier."""
        if not IDENTIFIER_RE.match(v):
            raise ValueError(f"migrations.table must be a SQL identifier, got: {v!r}")
        return v


class Config(BaseModel):
    """Root configuration for Strata."""

    data_dir: Path = Path("./data")
    log_level: str = "INFO"
    log_json: bool = True
    environment: str = "local"

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @property
    def database_path(self) -> Path:
        """Get full path to the default SQLite database file."""
        return self.data_dir / self.database.path

    @property
    def database_url(self) -> str:
        """Get the SQLAlchemy URL of the default connection."""
        if self.database.url:
            return self.database.url
        return f"sqlite:///{self.database_path}"

    @property
    def is_protected(self) -> bool:
        """Whether destructive operations need force in this environment."""
        return self.environment in self.migrations.protected_environments

    @classmethod
    def load(cls, config_path: Path | str = Path("strata.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls.model_validate(_apply_env(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            # Try default locations
            for path in [Path("strata.yaml"), Path("strata.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(_apply_env({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(_apply_env({}))


def _apply_env(yaml_config: dict) -> dict:
    """Overlay STRATA_* environment variables onto raw config values."""
    if "STRATA_DATA_DIR" in os.environ:
        yaml_config["data_dir"] = os.environ["STRATA_DATA_DIR"]
    if "STRATA_LOG_LEVEL" in os.environ:
        yaml_config["log_level"] = os.environ["STRATA_LOG_LEVEL"]
    if "STRATA_LOG_JSON" in os.environ:
        yaml_config["log_json"] = os.environ["STRATA_LOG_JSON"].lower() == "true"
    if "STRATA_ENV" in os.environ:
        yaml_config["environment"] = os.environ["STRATA_ENV"]
    if "STRATA_DATABASE_URL" in os.environ:
        database = dict(yaml_config.get("database") or {})
        database["url"] = os.environ["STRATA_DATABASE_URL"]
        yaml_config["database"] = database
    return yaml_config
