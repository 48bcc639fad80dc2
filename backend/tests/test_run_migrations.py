from __future__ import annotations

import types
from pathlib import Path

import pytest
from alembic.config import Config

from scripts import run_migrations as runner

HEAD = "20241108_01_gameplan_day_orders"


def _config(monkeypatch, url: str = "sqlite://") -> Config:
    monkeypatch.setenv("GAMEPLAN_DATABASE_URL", url)
    config = Config()
    config.set_main_option("sqlalchemy.url", runner.URL_PLACEHOLDER.replace("%", "%%"))
    config.set_main_option("script_location", str(runner.BACKEND_ROOT / "alembic"))
    return config


def test_resolve_database_url_prefers_env(monkeypatch) -> None:
    config = _config(monkeypatch)
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_env(monkeypatch) -> None:
    config = _config(monkeypatch)
    monkeypatch.delenv("GAMEPLAN_DATABASE_URL")
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(config)


def test_wait_for_database_succeeds_with_sqlite(tmp_path: Path) -> None:
    runner.wait_for_database(f"sqlite:///{tmp_path / 'test.sqlite'}", timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    config = _config(monkeypatch)
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> None:
        recorded["wait"] = (url, timeout, poll_interval)

    def fake_upgrade(cfg: Config, revision: str) -> None:
        recorded["revision"] = revision
        recorded["script_location"] = cfg.get_main_option("script_location")

    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config)

    assert recorded["revision"] == "head"
    assert recorded["wait"] == ("sqlite://", 5, 0.1)
    assert str(recorded["script_location"]).endswith("alembic")


def test_pending_revisions_on_empty_database(monkeypatch, tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.sqlite'}"
    config = _config(monkeypatch, url)

    assert runner.pending_revisions(config, url) == ["20241101_01_gameplan_scheduling", HEAD]


def test_main_reports_failures(monkeypatch) -> None:
    def broken(*_args, **_kwargs) -> None:
        raise RuntimeError("no database")

    monkeypatch.setenv("GAMEPLAN_DATABASE_URL", "sqlite://")
    monkeypatch.setattr(runner, "run_migrations", broken)
    assert runner.main(["--timeout", "1"]) == 1
