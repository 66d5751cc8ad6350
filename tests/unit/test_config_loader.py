from __future__ import annotations

from pathlib import Path

import pytest

from legalops.config.loader import ConfigError, DatabaseConfig, load_config


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for name in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE",
                 "MESSAGING_API_URL", "MESSAGING_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.timezone == "America/Sao_Paulo"
    assert cfg.imports.batch_size == 50
    assert cfg.imports.report_directory == "./reports"
    assert cfg.reminders.delay_seconds == 2.0
    assert cfg.reminders.gateway_url == "https://messaging.example/send"
    assert cfg.reminders.gateway_token is None
    assert cfg.database.user == "appuser"


def test_defaults_for_empty_file(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "legalops.yml"
    cfg_path.write_text("", encoding="utf-8")
    cfg = load_config(cfg_path)
    assert cfg.timezone == "America/Sao_Paulo"
    assert cfg.imports.batch_size == 100
    assert cfg.reminders.delay_seconds == 1.0
    assert cfg.reminders.timeout_seconds == 15.0
    assert cfg.reminders.gateway_url is None


def test_load_config_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "config" / "not_exists.yml")


def test_invalid_yaml(write_config: Path):
    write_config.write_text("import: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(write_config)


def test_root_must_be_mapping(write_config: Path):
    write_config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(write_config)


@pytest.mark.parametrize(
    "old,new",
    [
        ("batch_size: 50", "batch_size: 0"),
        ("batch_size: 50", "batch_size: 5000"),
        ("delay_seconds: 2", "delay_seconds: -1"),
    ],
)
def test_out_of_range_values_are_rejected(write_config: Path, old: str, new: str):
    write_config.write_text(write_config.read_text(encoding="utf-8").replace(old, new), encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(write_config)


def test_extra_field_is_rejected(write_config: Path):
    write_config.write_text(write_config.read_text(encoding="utf-8") + "\nextra_field: 1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(write_config)


def test_env_overrides_gateway(write_config: Path, monkeypatch):
    monkeypatch.setenv("MESSAGING_API_URL", "https://other.example/send")
    monkeypatch.setenv("MESSAGING_API_TOKEN", "tok")
    cfg = load_config(write_config)
    assert cfg.reminders.gateway_url == "https://other.example/send"
    assert cfg.reminders.gateway_token == "tok"


def test_resolve_dsn_precedence(monkeypatch):
    db = DatabaseConfig(host="db", port=5433, user="u", password="p", database="d", dsn=None)
    assert db.resolve_dsn() == "host=db port=5433 user=u dbname=d password=p"
    monkeypatch.setenv("PGHOST", "envhost")
    assert db.resolve_dsn().startswith("host=envhost ")
    monkeypatch.setenv("DATABASE_URL", "postgresql://x/y")
    assert db.resolve_dsn() == "postgresql://x/y"


def test_validation_message_names_the_key(write_config: Path):
    text = write_config.read_text(encoding="utf-8").replace("batch_size: 50", "batch_size: 0")
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "import.batch_size:" in str(e.value)


def test_null_sections_are_rejected(write_config: Path):
    write_config.write_text("import:\nreminders:\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        # null セクションはスキーマ上 object ではない
        load_config(write_config)
