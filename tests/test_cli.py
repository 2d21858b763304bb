"""Tests for the homestack command line."""
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from homestack import __version__
from homestack.cli import app
from homestack.cli_support import find_config

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, single_host_raw):
    path = tmp_path / "homelab.yaml"
    path.write_text(yaml.safe_dump(single_host_raw, sort_keys=False))
    return path


@pytest.fixture
def log_args(tmp_path):
    return ["--log-file", str(tmp_path / "homestack.log")]


class TestHelp:
    """Top-level help output."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        output = result.stdout
        assert "Unified configuration for homelab deployments" in output
        for command in ("validate", "plan", "generate", "version"):
            assert command in output

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestValidate:
    """homestack validate."""

    def test_valid(self, config_file, log_args):
        result = runner.invoke(app, ["validate", "--config", str(config_file)] + log_args)

        assert result.exit_code == 0
        assert "is valid" in result.stdout

    def test_reports_every_issue(self, tmp_path, single_host_raw, log_args):
        single_host_raw["backend"] = "nomad"
        single_host_raw["services"]["db"]["deploy"] = "specific:ghost"
        path = tmp_path / "broken.yaml"
        path.write_text(yaml.safe_dump(single_host_raw))

        result = runner.invoke(app, ["validate", "-c", str(path)] + log_args)

        assert result.exit_code == 1
        assert "2 issue(s)" in result.stdout
        assert "services.db.deploy" in result.stdout
        assert "nomad" in result.stdout

    def test_missing_file(self, tmp_path, log_args):
        result = runner.invoke(app, ["validate", "-c", str(tmp_path / "missing.yaml")] + log_args)

        assert result.exit_code == 1
        assert "Error" in result.stdout


class TestPlan:
    """homestack plan."""

    def test_plan_table(self, config_file, log_args):
        result = runner.invoke(app, ["plan", "-c", str(config_file)] + log_args)

        assert result.exit_code == 0
        assert "single_host" in result.stdout
        assert "monitor" in result.stdout
        assert "node-01" in result.stdout

    def test_plan_invalid(self, tmp_path, log_args):
        path = tmp_path / "homelab.yaml"
        path.write_text("version: '1.0'\n")

        result = runner.invoke(app, ["plan", "-c", str(path)] + log_args)

        assert result.exit_code == 1


class TestGenerate:
    """homestack generate."""

    def test_generate(self, tmp_path, config_file, log_args):
        output = tmp_path / "out"

        result = runner.invoke(app, ["generate", "-c", str(config_file), "-o", str(output)] + log_args)

        assert result.exit_code == 0, result.stdout
        assert "Generated 3 bundle(s)" in result.stdout
        assert (output / "driver" / "docker-compose.yaml").exists()
        assert (output / "deploy-all.sh").exists()

    def test_partial_failure_exit_code(self, tmp_path, single_host_raw, log_args):
        single_host_raw["secrets"]["vault_token"] = {"external": True}
        single_host_raw["services"]["vault"] = {
            "image": "hashicorp/vault",
            "port": 8200,
            "deploy": "node-02",
            "secrets": ["vault_token"],
        }
        path = tmp_path / "homelab.yaml"
        path.write_text(yaml.safe_dump(single_host_raw))
        output = tmp_path / "out"

        result = runner.invoke(app, ["generate", "-c", str(path), "-o", str(output), "-w", "1"] + log_args)

        assert result.exit_code == 1
        assert "failed" in result.stdout
        assert (output / "driver").is_dir()
        assert not (output / "node-02").exists()

    def test_invalid_config_writes_nothing(self, tmp_path, single_host_raw, log_args):
        single_host_raw["services"]["legacy"]["deploy"] = "specific:ghost"
        path = tmp_path / "homelab.yaml"
        path.write_text(yaml.safe_dump(single_host_raw))
        output = tmp_path / "out"

        result = runner.invoke(app, ["generate", "-c", str(path), "-o", str(output)] + log_args)

        assert result.exit_code == 1
        assert not output.exists()

    def test_config_from_environment(self, tmp_path, config_file, log_args, monkeypatch):
        monkeypatch.setenv("HOMESTACK_CONFIG", str(config_file))
        monkeypatch.setenv("HOMESTACK_OUTPUT_DIR", str(tmp_path / "env-out"))

        result = runner.invoke(app, ["generate"] + log_args)

        assert result.exit_code == 0, result.stdout
        assert (tmp_path / "env-out" / "node-01" / "docker-compose.yaml").exists()

    def test_bad_integer_setting(self, tmp_path, config_file, log_args, monkeypatch):
        monkeypatch.setenv("HOMESTACK_WORKERS", "many")
        output = tmp_path / "out"

        result = runner.invoke(app, ["generate", "-c", str(config_file), "-o", str(output)] + log_args)

        assert result.exit_code == 1
        assert "HOMESTACK_WORKERS must be an integer" in result.stdout
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert not output.exists()

    def test_reports_removed_units(self, tmp_path, single_host_raw, log_args):
        path = tmp_path / "homelab.yaml"
        path.write_text(yaml.safe_dump(single_host_raw))
        output = tmp_path / "out"
        runner.invoke(app, ["generate", "-c", str(path), "-o", str(output)] + log_args)

        del single_host_raw["machines"]["node-02"]
        del single_host_raw["services"]["legacy"]
        path.write_text(yaml.safe_dump(single_host_raw))
        result = runner.invoke(app, ["generate", "-c", str(path), "-o", str(output)] + log_args)

        assert result.exit_code == 0, result.stdout
        assert "Removed bundle of undeclared unit node-02" in result.stdout
        assert not (output / "node-02").exists()


class TestFindConfig:
    """Config file discovery."""

    def test_explicit_path(self):
        assert find_config("/custom/homelab.yaml") == "/custom/homelab.yaml"

    def test_env_variable(self, monkeypatch):
        monkeypatch.setenv("HOMESTACK_CONFIG", "/env/homelab.yaml")
        assert find_config() == "/env/homelab.yaml"

    def test_search_paths(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HOMESTACK_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "homelab.yaml").write_text("version: '1.0'\n")

        assert find_config() == "./homelab.yaml"

    def test_fallback(self, monkeypatch):
        monkeypatch.delenv("HOMESTACK_CONFIG", raising=False)
        with patch("homestack.cli_support.Path.exists", return_value=False):
            assert find_config() == "homelab.yaml"
