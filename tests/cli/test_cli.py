# tests/cli/test_cli.py

import pytest
from click.testing import CliRunner

from sq_core import __version__
from sq_core.async_client import LedgerAsyncClient
from sq_core.cli.main import sqcore
from tests.core.mock_client import FakeNodeClient, make_block

ENDPOINTS = "http://a;http://b;http://c"
HASH = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_client(mocker):
    """Patch the client factory so the CLI talks to an in-memory node set."""
    block = make_block(HASH)
    client = FakeNodeClient(
        slots={"http://a": 100, "http://b": 100, "http://c": 99},
        blocks={"http://a": block, "http://b": block, "http://c": block},
        heights={"http://a": 90, "http://b": 90, "http://c": 90},
    )
    mocker.patch.object(LedgerAsyncClient, "from_config", return_value=client)
    return client


def test_missing_endpoints_exit_code(runner):
    result = runner.invoke(sqcore, ["run"])
    assert result.exit_code == 2
    assert "PRIVATE_ENDPOINTS must be set" in result.output


def test_invalid_setting_exit_code(runner):
    result = runner.invoke(sqcore, ["run"], env={"PRIVATE_ENDPOINTS": ENDPOINTS, "RPC_COMMITMENT": "soon"})
    assert result.exit_code == 2


def test_run(runner, fake_client):
    result = runner.invoke(sqcore, ["run", "--log-level", "warning"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})

    assert result.exit_code == 0, result.output
    assert "Chosen slot: 100" in result.output
    assert "source: quorum" in result.output
    assert {c[2] for c in fake_client.calls_for("getBlock")} == {100}


def test_run_with_slot_flag(runner, fake_client):
    result = runner.invoke(
        sqcore, ["run", "--slot", "50", "-e", "http://a", "-e", "http://b"]
    )

    assert result.exit_code == 0, result.output
    assert "source: override" in result.output
    assert [c[1:] for c in fake_client.calls_for("getBlock")] == [("http://a", 50), ("http://b", 50)]


def test_run_no_quorum_still_exits_zero(runner, mocker):
    client = FakeNodeClient(failing=["http://a", "http://b", "http://c"])
    mocker.patch.object(LedgerAsyncClient, "from_config", return_value=client)

    result = runner.invoke(sqcore, ["run"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})

    assert result.exit_code == 0, result.output
    assert "No quorum" in result.output
    assert client.calls_for("getBlock") == []


def test_slot_command(runner, fake_client):
    result = runner.invoke(sqcore, ["slot"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})
    assert result.exit_code == 0, result.output
    assert fake_client.calls_for("getBlock") == []
    assert len(fake_client.calls_for("getSlot")) == 3


def test_block_command_needs_slot(runner, fake_client):
    result = runner.invoke(sqcore, ["block"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})
    assert result.exit_code == 2
    assert fake_client.calls == []


def test_block_command(runner, fake_client):
    result = runner.invoke(sqcore, ["block", "--slot", "77"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})
    assert result.exit_code == 0, result.output
    assert fake_client.calls_for("getSlot") == []
    assert {c[2] for c in fake_client.calls_for("getBlock")} == {77}


def test_height_command(runner, fake_client):
    result = runner.invoke(sqcore, ["height"], env={"PRIVATE_ENDPOINTS": ENDPOINTS})
    assert result.exit_code == 0, result.output
    assert len(fake_client.calls_for("getBlockHeight")) == 3


def test_metrics_file_written(runner, fake_client, tmp_path):
    path = tmp_path / "metrics.prom"
    result = runner.invoke(
        sqcore, ["run"], env={"PRIVATE_ENDPOINTS": ENDPOINTS, "METRICS_FILE": str(path)}
    )
    assert result.exit_code == 0, result.output
    assert "slotquorum_chosen_slot 100.0" in path.read_text()


def test_unwritable_metrics_file_does_not_fail_run(runner, fake_client, tmp_path):
    path = tmp_path / "missing-dir" / "metrics.prom"
    result = runner.invoke(
        sqcore, ["run"], env={"PRIVATE_ENDPOINTS": ENDPOINTS, "METRICS_FILE": str(path)}
    )
    assert result.exit_code == 0, result.output
    assert "Chosen slot: 100" in result.output
    assert not path.exists()


def test_version(runner):
    result = runner.invoke(sqcore, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
