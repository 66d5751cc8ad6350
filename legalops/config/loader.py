from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import jsonschema
import yaml

"""Config loader.

Responsibilities:
- Load YAML ``config/legalops.yml``
- Validate against the packaged ``config_schema.json``
- Apply defaults (timezone, batch size, report directory, reminder delay)
- Resolve secrets from the environment (``.env`` is loaded by the CLI first)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/legalops.yml")

DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_BATCH_SIZE = 100
DEFAULT_REPORT_DIRECTORY = "./reports"
DEFAULT_DELAY_SECONDS = 1.0
DEFAULT_TIMEOUT_SECONDS = 15.0


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None
    port: int | None
    user: str | None
    password: str | None
    database: str | None
    dsn: str | None

    def resolve_dsn(self) -> str:
        """Build the connection string; environment variables take precedence.

        Order: DATABASE_URL / PGDSN, then PG* variables, then this section.
        """
        dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or self.dsn
        if dsn:
            return dsn
        host = os.getenv("PGHOST", self.host or "localhost")
        port = os.getenv("PGPORT", str(self.port) if self.port else "5432")
        user = os.getenv("PGUSER", self.user or "postgres")
        password = os.getenv("PGPASSWORD", self.password or "")
        database = os.getenv("PGDATABASE", self.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"
        return dsn


@dataclass(frozen=True)
class ImportSettings:
    batch_size: int
    report_directory: str


@dataclass(frozen=True)
class ReminderSettings:
    delay_seconds: float
    gateway_url: str | None
    gateway_token: str | None  # 環境変数からのみ取得
    timeout_seconds: float


@dataclass(frozen=True)
class AppConfig:
    timezone: str
    imports: ImportSettings
    reminders: ReminderSettings
    database: DatabaseConfig


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Check ``data`` against the packaged JSON schema.

    Every violation is reported, each prefixed with its key path
    (``import.batch_size: 0 is less than the minimum of 1``).

    Raises:
        ConfigError: schema file missing or unreadable, or config invalid
    """
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e

    validator = jsonschema.Draft7Validator(schema)
    problems = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        where = ".".join(str(p) for p in err.absolute_path) or "<root>"
        problems.append(f"{where}: {err.message}")
    if problems:
        raise ConfigError("config validation failed: " + "; ".join(problems))


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    return data.get(name) or {}


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    imp = _section(data, "import")
    rem = _section(data, "reminders")
    db_raw = _section(data, "database")
    return AppConfig(
        timezone=data.get("timezone", DEFAULT_TIMEZONE),
        imports=ImportSettings(
            batch_size=imp.get("batch_size", DEFAULT_BATCH_SIZE),
            report_directory=imp.get("report_directory", DEFAULT_REPORT_DIRECTORY),
        ),
        reminders=ReminderSettings(
            delay_seconds=float(rem.get("delay_seconds", DEFAULT_DELAY_SECONDS)),
            # URL は環境変数が優先
            gateway_url=os.getenv("MESSAGING_API_URL") or rem.get("gateway_url"),
            gateway_token=os.getenv("MESSAGING_API_TOKEN"),
            timeout_seconds=float(rem.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        ),
        database=DatabaseConfig(**{f.name: db_raw.get(f.name) for f in fields(DatabaseConfig)}),
    )
