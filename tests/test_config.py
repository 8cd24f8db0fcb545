"""Tests for the configuration system."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import pytest

from adoreviewbuddy.config import (
    CONFIG_FILENAME,
    Config,
    _collect_unknown_keys,
    get_config,
    get_config_path,
    load_config,
    set_config,
)

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(root: Path, text: str) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(text, encoding="utf-8")
    return path


def _bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.api.api_version == "7.1"
        assert config.api.timeout_seconds == 30.0
        assert config.auth.token_env_vars == ["AZURE_DEVOPS_TOKEN", "SYSTEM_ACCESSTOKEN"]
        assert config.auth.use_azure_cli is True

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):  # noqa: PT011
            Config.model_validate({"api": {"timeout_seconds": 0}})


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        config, path = load_config(cwd=tmp_path)
        assert path is None
        assert config == Config()

    def test_load_valid_toml(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        config_file = _write_config(
            tmp_path,
            """\
[api]
api_version = "7.2-preview"

[auth]
token_env_vars = ["MY_ADO_TOKEN"]
use_azure_cli = false
""",
        )
        config, path = load_config(cwd=tmp_path)
        assert path == config_file
        assert config.api.api_version == "7.2-preview"
        assert config.api.timeout_seconds == 30.0
        assert config.auth.token_env_vars == ["MY_ADO_TOKEN"]
        assert config.auth.use_azure_cli is False

    def test_load_walks_up_to_git_root(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        subdir = tmp_path / "src" / "deep"
        subdir.mkdir(parents=True)
        config, _ = load_config(cwd=subdir)
        assert config.api.timeout_seconds == 5

    def test_stops_at_git_root(self, tmp_path: Path):
        _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        project = tmp_path / "project"
        project.mkdir()
        (project / ".git").mkdir()
        config, path = load_config(cwd=project)
        assert path is None
        assert config.api.timeout_seconds == 30.0

    def test_invalid_toml_raises(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, "{{invalid toml")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(cwd=tmp_path)

    def test_invalid_config_values_raises(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, '[api]\ntimeout_seconds = "soon"\n')
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(cwd=tmp_path)

    def test_env_override(self, tmp_path: Path, monkeypatch):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        elsewhere = tmp_path / "shared.toml"
        elsewhere.write_text("[api]\ntimeout_seconds = 7\n", encoding="utf-8")
        monkeypatch.setenv("ADOREVIEWBUDDY_CONFIG", str(elsewhere))

        config, path = load_config(cwd=tmp_path)
        assert path == elsewhere
        assert config.api.timeout_seconds == 7

    def test_env_override_missing_file_raises(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("ADOREVIEWBUDDY_CONFIG", str(tmp_path / "nope.toml"))
        with pytest.raises(ValueError, match="ADOREVIEWBUDDY_CONFIG"):
            load_config(cwd=tmp_path)

    def test_empty_config_file_returns_defaults(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, "")
        config, _ = load_config(cwd=tmp_path)
        assert config == Config()


class TestCollectUnknownKeys:
    def test_top_level_unknown(self):
        assert _collect_unknown_keys({"api": {}, "bogus_key": True}, Config) == ["bogus_key"]

    def test_nested_unknown(self):
        assert _collect_unknown_keys({"api": {"retries": 3}}, Config) == ["api.retries"]

    def test_no_unknowns(self):
        assert _collect_unknown_keys({"auth": {"use_azure_cli": False}}, Config) == []

    def test_warns_on_unknown_keys(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        (tmp_path / ".git").mkdir()
        _write_config(tmp_path, "[api]\nretries = 3\n")
        with caplog.at_level(logging.WARNING, logger="adoreviewbuddy.config"):
            load_config(cwd=tmp_path)
        assert any("api.retries" in r.message for r in caplog.records)


class TestHotReload:
    def test_reloads_when_file_changes(self, tmp_path: Path):
        path = _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        config, _ = load_config(cwd=tmp_path)
        set_config(config, config_path=path)
        assert get_config().api.timeout_seconds == 5

        path.write_text("[api]\ntimeout_seconds = 9\n", encoding="utf-8")
        _bump_mtime(path)
        assert get_config().api.timeout_seconds == 9
        assert get_config_path() == path

    def test_invalid_edit_keeps_last_good(self, tmp_path: Path):
        path = _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        config, _ = load_config(cwd=tmp_path)
        set_config(config, config_path=path)

        path.write_text("{{broken", encoding="utf-8")
        _bump_mtime(path)
        assert get_config().api.timeout_seconds == 5

    def test_deleted_file_falls_back_to_defaults(self, tmp_path: Path):
        path = _write_config(tmp_path, "[api]\ntimeout_seconds = 5\n")
        config, _ = load_config(cwd=tmp_path)
        set_config(config, config_path=path)

        path.unlink()
        assert get_config() == Config()

    def test_set_config_without_path_is_static(self):
        set_config(Config.model_validate({"api": {"api_version": "6.0"}}))
        assert get_config().api.api_version == "6.0"
        assert get_config_path() is None
