"""Tests for the read-only CLI."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from meshgarden.cli import main
from meshgarden.config import open_store
from meshgarden.ifacelog import append_log_tx
from meshgarden.models import Operation, State


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def joined_home(tmp_agent_home, new_interface):
    """Agent home with one interface whose last entry is a clean apply."""
    iface = new_interface("laptop", "office", peers=2)
    with open_store(tmp_agent_home) as store:
        store.ensure_interface(iface)
        store.with_log(
            iface, lambda tx, last: append_log_tx(tx, iface, Operation.APPLY, State.APPLIED, False, "ok"),
        )
    return tmp_agent_home


class TestStatus:
    def test_no_agent(self, runner, tmp_path):
        result = runner.invoke(main, ["status", "--home", str(tmp_path / "missing")])
        assert result.exit_code == 1
        assert "No agent found" in result.output

    def test_lists_interfaces(self, runner, joined_home):
        result = runner.invoke(main, ["status", "--home", str(joined_home)])
        assert result.exit_code == 0, result.output
        assert "office" in result.output
        assert "laptop" in result.output
        assert "APPLIED" in result.output

    def test_empty_store(self, runner, tmp_agent_home):
        with open_store(tmp_agent_home):
            pass
        result = runner.invoke(main, ["status", "--home", str(tmp_agent_home)])
        assert result.exit_code == 0
        assert "No interfaces" in result.output


class TestShow:
    def test_show_interface(self, runner, joined_home):
        result = runner.invoke(main, ["show", "laptop", "office", "--home", str(joined_home)])
        assert result.exit_code == 0, result.output
        assert "peer0" in result.output
        assert "peer1" in result.output
        assert "device-token" not in result.output

    def test_show_unknown(self, runner, joined_home):
        result = runner.invoke(main, ["show", "nobody", "office", "--home", str(joined_home)])
        assert result.exit_code == 1
        assert "Error" in result.output


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "meshgarden" in result.output
