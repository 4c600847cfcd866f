"""Unit tests for config and CLI parsing in the cli module."""

import argparse
import json
from pathlib import Path
from typing import Any, Dict
from unittest.mock import patch

import pytest

from schemadiff.cli import (
    EXIT_DIFFERENT,
    EXIT_ERROR,
    EXIT_IDENTICAL,
    build_parser,
    build_target,
    deep_get,
    get_env_var,
    load_config,
    main,
    read_log_level,
    read_object_filter,
    read_options,
)
from schemadiff.compare import compare_snapshots
from schemadiff.errors import ConfigError
from schemadiff.models import Snapshot, Table

CONFIG_YML = """
out_dir: out
options:
  functions: false
object_filter:
  include: ["dbo.%"]
source:
  server: "dev-sql,1433"
  database: Sales
  auth: sql
  username: reader
  password: secret
target:
  server: prod-sql
  database: Sales
"""


class TestDeepGet:
    """Tests for deep_get helper function."""

    def test_nested_keys(self) -> None:
        """Test nested key access."""
        assert deep_get({"a": {"b": {"c": 3}}}, ["a", "b", "c"]) == 3

    def test_missing_key_returns_default(self) -> None:
        """Test missing key returns default value."""
        assert deep_get({"a": 1}, ["b"]) is None
        assert deep_get({"a": {"b": 1}}, ["a", "b", "c"], "default") == "default"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        """Test loading a valid YAML config."""
        config_file = tmp_path / "config.yml"
        config_file.write_text(CONFIG_YML)
        cfg = load_config(config_file)
        assert cfg["source"]["database"] == "Sales"
        assert cfg["options"]["functions"] is False

    def test_load_missing_config_raises(self, tmp_path: Path) -> None:
        """Test loading missing config raises SystemExit."""
        with pytest.raises(SystemExit, match="config not found"):
            load_config(tmp_path / "nonexistent.yml")

    def test_load_empty_config_returns_empty_dict(self, tmp_path: Path) -> None:
        """Test empty config returns empty dict."""
        config_file = tmp_path / "empty.yml"
        config_file.write_text("")
        assert load_config(config_file) == {}


class TestGetEnvVar:
    """Tests for get_env_var function."""

    def test_returns_env_var_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test side and field are upper-cased into the variable name."""
        monkeypatch.setenv("SCHEMADIFF_TARGET_PASSWORD", "s3cret")
        assert get_env_var("target", "password") == "s3cret"

    def test_returns_none_when_not_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test returns None when env var is not set."""
        monkeypatch.delenv("SCHEMADIFF_SOURCE_DRIVER", raising=False)
        assert get_env_var("source", "driver") is None


class TestBuildTarget:
    """Tests for build_target function."""

    @pytest.fixture
    def valid_config(self) -> Dict[str, Any]:
        """Return a valid configuration dictionary."""
        return {
            "source": {
                "server": "dev-sql,1433",
                "database": "Sales",
                "auth": "sql",
                "username": "reader",
                "password": "secret",
                "encrypt": "yes",
            },
            "target": {"server": "prod-sql", "database": "Sales"},
        }

    def test_build_target_from_config(self, valid_config: Dict[str, Any]) -> None:
        """Test building target from config only."""
        target = build_target(valid_config, "source", {})
        assert target.server == "dev-sql,1433"
        assert target.database == "Sales"
        assert target.auth == "sql"
        assert target.username == "reader"
        assert target.encrypt is True
        assert target.trust_server_certificate is True
        assert target.label == "source"

    def test_auth_defaults_to_windows_without_username(self, valid_config: Dict[str, Any]) -> None:
        """Test a side without credentials uses a trusted connection."""
        assert build_target(valid_config, "target", {}).auth == "windows"

    def test_build_target_with_overrides(self, valid_config: Dict[str, Any]) -> None:
        """Test CLI overrides replace config values."""
        target = build_target(valid_config, "source", {"source_database": "Sales_QA", "source_server": None})
        assert target.database == "Sales_QA"
        assert target.server == "dev-sql,1433"

    def test_build_target_with_env_vars(
        self, valid_config: Dict[str, Any], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test environment variables take highest priority."""
        monkeypatch.setenv("SCHEMADIFF_SOURCE_DATABASE", "Sales_Env")
        target = build_target(valid_config, "source", {"source_database": "Sales_Cli"})
        assert target.database == "Sales_Env"

    def test_missing_required_field_raises(self) -> None:
        """Test missing required field raises SystemExit with helpful message."""
        with pytest.raises(SystemExit) as exc_info:
            build_target({"source": {"server": "dev-sql"}}, "source", {})
        error_msg = str(exc_info.value)
        assert "missing source.database" in error_msg
        assert "SCHEMADIFF_SOURCE_DATABASE" in error_msg
        assert "--source-database" in error_msg

    def test_invalid_boolean_raises_config_error(self, valid_config: Dict[str, Any]) -> None:
        """Test unparseable flags are reported."""
        valid_config["source"]["encrypt"] = "maybe"
        with pytest.raises(ConfigError, match="source.encrypt"):
            build_target(valid_config, "source", {})


class TestReadOptions:
    """Tests for read_options function."""

    @pytest.fixture
    def mock_args(self) -> argparse.Namespace:
        """Return argparse namespace with defaults."""
        return build_parser().parse_args([])

    def test_default_options_all_true(self, mock_args: argparse.Namespace) -> None:
        """Test default options are all True."""
        opt = read_options({}, mock_args)
        assert (opt.tables, opt.views, opt.procedures, opt.functions) == (True, True, True, True)

    def test_options_from_config(self, mock_args: argparse.Namespace) -> None:
        """Test options loaded from config."""
        opt = read_options({"options": {"views": False}}, mock_args)
        assert opt.views is False
        assert opt.tables is True

    def test_cli_flags_override_config(self, mock_args: argparse.Namespace) -> None:
        """Test --no-* flags win over config values."""
        mock_args.no_procedures = True
        opt = read_options({"options": {"procedures": True}}, mock_args)
        assert opt.procedures is False


class TestReadObjectFilter:
    """Tests for read_object_filter function."""

    def test_cli_patterns_append_to_config(self) -> None:
        """Test CLI patterns are appended to config patterns."""
        args = build_parser().parse_args(["--include", "sales.%", "--exclude", "%.tmp%"])
        cfg = {"object_filter": {"include": ["dbo.%"], "case_sensitive": True}}
        f = read_object_filter(cfg, args)
        assert f.include == ["dbo.%", "sales.%"]
        assert f.exclude == ["%.tmp%"]
        assert f.case_sensitive is True

    def test_empty_filters(self) -> None:
        """Test no patterns anywhere gives an empty filter."""
        f = read_object_filter({}, build_parser().parse_args([]))
        assert f.is_empty()
        assert f.case_sensitive is False


class TestReadLogLevel:
    """Tests for read_log_level function."""

    def test_cli_wins_over_config(self) -> None:
        """Test --log-level overrides log_level and is upper-cased."""
        args = build_parser().parse_args(["--log-level", "debug"])
        assert read_log_level({"log_level": "WARNING"}, args) == "DEBUG"

    def test_defaults_to_info(self) -> None:
        """Test INFO is used when nothing is set."""
        assert read_log_level({}, build_parser().parse_args([])) == "INFO"

    def test_unknown_level_raises_config_error(self) -> None:
        """Test an unknown level name is reported."""
        with pytest.raises(ConfigError, match="VERBOSE"):
            read_log_level({"log_level": "verbose"}, build_parser().parse_args([]))


class TestMain:
    """Tests for the CLI entry point with the database layer patched out."""

    @pytest.fixture
    def config_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "config.yml"
        path.write_text(CONFIG_YML)
        return path

    def test_identical_databases_exit_zero(
        self, config_file: Path, tmp_path: Path, sample_snapshot: Snapshot
    ) -> None:
        """Test an identical comparison writes reports and exits 0."""
        seen = {}

        async def fake_run(source, target, options, object_filter):
            seen.update(source=source, target=target, options=options, object_filter=object_filter)
            return compare_snapshots(sample_snapshot, sample_snapshot)

        out_dir = tmp_path / "reports"
        with patch("schemadiff.cli.run_comparison", fake_run):
            code = main(["--config", str(config_file), "--out", str(out_dir), "--no-views"])

        assert code == EXIT_IDENTICAL
        assert seen["source"].username == "reader"
        assert seen["target"].auth == "windows"
        assert seen["options"].views is False
        assert seen["options"].functions is False
        assert seen["object_filter"].include == ["dbo.%"]
        assert json.loads((out_dir / "comparison.json").read_text(encoding="utf-8"))["summary"]["overall_status"] == "identical"
        assert (out_dir / "SUMMARY.md").exists()

    def test_differences_exit_one(self, config_file: Path, tmp_path: Path, sample_snapshot: Snapshot) -> None:
        """Test a comparison with differences exits 1."""
        target = Snapshot("Sales", "prod-sql", tables=sample_snapshot.tables + (Table("dbo", "Invoices"),))

        async def fake_run(*args):
            return compare_snapshots(sample_snapshot, target)

        with patch("schemadiff.cli.run_comparison", fake_run):
            code = main(["--config", str(config_file), "--out", str(tmp_path / "out")])
        assert code == EXIT_DIFFERENT
        assert "dbo.Invoices" in (tmp_path / "out" / "SUMMARY.md").read_text(encoding="utf-8")

    def test_connection_failure_exits_two(
        self, config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        """Test a fatal connection error exits 2 without writing reports."""

        async def fake_run(*args):
            raise ConnectionError("source: cannot connect to dev-sql,1433/Sales")

        with patch("schemadiff.cli.run_comparison", fake_run):
            code = main(["--config", str(config_file), "--out", str(tmp_path / "out")])
        assert code == EXIT_ERROR
        assert "cannot connect" in capsys.readouterr().err
        assert not (tmp_path / "out" / "comparison.json").exists()

    def test_unknown_log_level_exits_two(
        self, config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        """Test a bad --log-level is a one-line error with exit status 2."""
        code = main(["--config", str(config_file), "--out", str(tmp_path / "out"), "--log-level", "VERBOSE"])
        assert code == EXIT_ERROR
        assert "unknown logging level 'VERBOSE'" in capsys.readouterr().err
