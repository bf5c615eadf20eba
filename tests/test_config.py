"""Tests for environment-driven settings."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scriptapproval.config import Settings

_ENV_VARS = (
    "SCRIPT_APPROVAL_HOST",
    "SCRIPT_APPROVAL_PORT",
    "SCRIPT_APPROVAL_API_KEY",
    "SCRIPT_APPROVAL_URL",
    "SCRIPT_APPROVAL_LOG_LEVEL",
    "SCRIPT_APPROVAL_DB_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path: Path) -> None:
    settings = Settings.from_env(base_dir=tmp_path)
    assert settings.host == "127.0.0.1"
    assert settings.port == 8421
    assert settings.api_key is None
    assert settings.server_url == "http://127.0.0.1:8421"
    assert settings.log_level == "INFO"
    assert settings.db_path == (tmp_path / "data" / "approvals.sqlite").resolve()


def test_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SCRIPT_APPROVAL_HOST", "0.0.0.0")
    monkeypatch.setenv("SCRIPT_APPROVAL_PORT", "9000")
    monkeypatch.setenv("SCRIPT_APPROVAL_API_KEY", "secret")
    monkeypatch.setenv("SCRIPT_APPROVAL_LOG_LEVEL", "debug")
    monkeypatch.setenv("SCRIPT_APPROVAL_DB_PATH", "custom/db.sqlite")
    settings = Settings.from_env(base_dir=tmp_path)
    assert settings.host == "0.0.0.0"
    assert settings.port == 9000
    assert settings.api_key == "secret"
    assert settings.server_url == "http://0.0.0.0:9000"
    assert settings.log_level == "DEBUG"
    assert settings.db_path == (tmp_path / "custom" / "db.sqlite").resolve()


def test_absolute_db_path_is_kept(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "elsewhere" / "a.sqlite"
    monkeypatch.setenv("SCRIPT_APPROVAL_DB_PATH", str(target))
    assert Settings.from_env(base_dir=tmp_path / "base").db_path == target.resolve()


def test_empty_api_key_means_none(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SCRIPT_APPROVAL_API_KEY", "")
    assert Settings.from_env(base_dir=tmp_path).api_key is None


@pytest.mark.parametrize("raw", ["eighty", "0", "70000"])
def test_bad_port_exits(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, raw: str) -> None:
    monkeypatch.setenv("SCRIPT_APPROVAL_PORT", raw)
    with pytest.raises(SystemExit, match="SCRIPT_APPROVAL_PORT"):
        Settings.from_env(base_dir=tmp_path)


def test_dotenv_file_in_base_dir_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("SCRIPT_APPROVAL_PORT=8500\n")
    try:
        assert Settings.from_env(base_dir=tmp_path).port == 8500
    finally:
        os.environ.pop("SCRIPT_APPROVAL_PORT", None)


def test_environment_wins_over_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("SCRIPT_APPROVAL_PORT=8500\n")
    monkeypatch.setenv("SCRIPT_APPROVAL_PORT", "8600")
    assert Settings.from_env(base_dir=tmp_path).port == 8600
