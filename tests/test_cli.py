"""Tests for the command line interface."""

import textwrap

import pytest
from click.testing import CliRunner
from fakes import FakeLoadMaster

from loadmaster_sync.cli import main as cli_main
from loadmaster_sync.cli.main import cli

CONFIG = """
project:
  name: edge
provider:
  host: lm.example.com
  api_key: secret
retry:
  max_attempts: 2
  base_delay: 0
  max_delay: 0
  jitter: false
resources:
  - name: web
    kind: virtual_service
    attributes:
      address: 10.0.0.10
      port: 80
      nickname: web
  - name: backend
    kind: real_server
    attributes:
      virtual_service_id: ${web.id}
      address: 10.0.1.5
      port: 8080
"""


@pytest.fixture
def appliance(tmp_path, monkeypatch):
    """Run commands in a scratch directory against an in-memory appliance."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "loadmaster.yaml").write_text(textwrap.dedent(CONFIG))
    fake = FakeLoadMaster()
    monkeypatch.setattr(cli_main, "create_client", lambda config: fake)
    monkeypatch.setattr(cli_main, "setup_logging", lambda *args, **kwargs: None)
    return fake


@pytest.fixture
def runner():
    return CliRunner()


class TestCli:
    """Tests for lmsync commands."""

    def test_kinds(self, runner, appliance):
        result = runner.invoke(cli, ["kinds"], obj={})

        assert result.exit_code == 0
        assert "real_server" in result.output
        assert "replace only" in result.output

    def test_apply_and_state(self, runner, appliance, tmp_path):
        result = runner.invoke(cli, ["apply"], obj={})

        assert result.exit_code == 0, result.output
        assert "Apply complete" in result.output
        assert (tmp_path / ".lmsync" / "state.json").exists()
        assert appliance.services[1]["Rs"][0]["Addr"] == "10.0.1.5"

        result = runner.invoke(cli, ["state"], obj={})

        assert result.exit_code == 0
        assert "backend" in result.output
        assert "Total resources: 2" in result.output

    def test_refresh(self, runner, appliance):
        runner.invoke(cli, ["apply"], obj={})
        appliance.delete_real_server("1", "!1")

        result = runner.invoke(cli, ["refresh"], obj={})

        assert result.exit_code == 0, result.output
        assert "drifted" in result.output

    def test_destroy(self, runner, appliance):
        runner.invoke(cli, ["apply"], obj={})

        result = runner.invoke(cli, ["destroy", "--yes"], obj={})

        assert result.exit_code == 0, result.output
        assert appliance.services == {}

    def test_destroy_cancelled(self, runner, appliance):
        runner.invoke(cli, ["apply"], obj={})

        result = runner.invoke(cli, ["destroy"], input="n\n", obj={})

        assert "Destroy cancelled" in result.output
        assert 1 in appliance.services

    def test_import_and_show(self, runner, appliance):
        appliance.add_virtual_service("10.0.0.20", "443", "tcp", {"NickName": "legacy"})

        result = runner.invoke(cli, ["show", "virtual_service", "1"], obj={})
        assert result.exit_code == 0, result.output
        assert "legacy" in result.output

        result = runner.invoke(cli, ["import", "virtual_service", "old", "1"], obj={})
        assert result.exit_code == 0, result.output
        assert "Imported" in result.output

        result = runner.invoke(cli, ["import", "virtual_service", "old", "1"], obj={})
        assert result.exit_code == 1
        assert "already recorded" in result.output

    def test_import_malformed_id(self, runner, appliance):
        result = runner.invoke(cli, ["import", "real_server", "backend", "7"], obj={})

        assert result.exit_code == 1
        assert "Unable to parse ID" in result.output

    def test_restart(self, runner, appliance):
        appliance.add_virtual_service("10.0.0.20", "443", "tcp", {})

        result = runner.invoke(cli, ["restart", "1"], obj={})

        assert result.exit_code == 0, result.output
        assert "Restarted virtual service 1" in result.output

    def test_apply_failure_exit_code(self, runner, appliance):
        appliance.fail_next("add_virtual_service", RuntimeError("boom"))

        result = runner.invoke(cli, ["apply"], obj={})

        assert result.exit_code == 1
        assert "Apply failed" in result.output

    def test_invalid_config(self, runner, appliance, tmp_path):
        (tmp_path / "loadmaster.yaml").write_text("project:\n  name: edge\nresources:\n"
                                                  "  - name: x\n    kind: pool\n")

        result = runner.invoke(cli, ["apply"], obj={})

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output

    def test_missing_config(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(cli_main, "setup_logging", lambda *args, **kwargs: None)

        result = runner.invoke(cli, ["--config", "absent.yaml", "apply"], obj={})

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output
