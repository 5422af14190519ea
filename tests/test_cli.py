"""
Test suite for the keeper and solver command lines
"""

import asyncio

import pytest
from click.testing import CliRunner

from fuelstack.bridge.ledger import OrderLedger
from fuelstack.bridge.sqlite_store import SQLiteOrderStore
from fuelstack.bridge.types import OrderKey
from fuelstack.cli.keeper import cli as keeper_cli
from fuelstack.cli.solver import cli as solver_cli

from conftest import ORIGIN_CHAIN_ID, STACKS_RECIPIENT, make_order
from test_config import ENV_VARS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sqlite_config(tmp_path):
    db_path = tmp_path / "orders.db"
    config_path = tmp_path / "keeper.toml"
    config_path.write_text(f'[ledger]\nbackend = "sqlite"\npath = "{db_path.as_posix()}"\n')
    return str(config_path), str(db_path)


async def _seed(db_path: str) -> None:
    ledger = OrderLedger(SQLiteOrderStore(db_path))
    await ledger.open()
    try:
        await ledger.insert(make_order(order_id=1))
        await ledger.insert(make_order(order_id=2, amount_out=7))
        await ledger.mark_filled(OrderKey(ORIGIN_CHAIN_ID, 2), fill_tx_hash="0xfeed", solver_recipient="0xabc")
    finally:
        await ledger.close()


# ============================================================================
# KEEPER
# ============================================================================

class TestKeeperCli:

    def test_version(self, runner):
        result = runner.invoke(keeper_cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_run_rejects_invalid_config(self, runner):
        # no oracle key in the environment
        result = runner.invoke(keeper_cli, ["run"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_orders_needs_sqlite(self, runner):
        result = runner.invoke(keeper_cli, ["orders"])
        assert result.exit_code == 1
        assert "not persisted" in result.output

    def test_orders_filtered_by_status(self, runner, sqlite_config):
        config_path, db_path = sqlite_config
        asyncio.run(_seed(db_path))

        result = runner.invoke(keeper_cli, ["orders", "-c", config_path, "--status", "filled"])
        assert result.exit_code == 0, result.output
        listed = [line for line in result.output.splitlines() if " -> " in line and "0x" in line]
        assert len(listed) == 1
        assert f"7 -> {STACKS_RECIPIENT}" in listed[0]
        assert listed[0].rstrip().endswith("0xfeed")

    def test_orders_empty_status(self, runner, sqlite_config):
        config_path, db_path = sqlite_config
        asyncio.run(_seed(db_path))

        result = runner.invoke(keeper_cli, ["orders", "-c", config_path, "-s", "settled"])
        assert result.exit_code == 0
        assert f"-> {STACKS_RECIPIENT}" not in result.output

    def test_orders_rejects_unknown_status(self, runner, sqlite_config):
        config_path, _ = sqlite_config
        result = runner.invoke(keeper_cli, ["orders", "-c", config_path, "-s", "pending"])
        assert result.exit_code == 2


# ============================================================================
# SOLVER
# ============================================================================

class TestSolverCli:

    def test_version(self, runner):
        result = runner.invoke(solver_cli, ["--version"])
        assert result.exit_code == 0
        assert "fuelstack-solver" in result.output

    def test_fill_requires_order_id(self, runner):
        result = runner.invoke(solver_cli, ["fill"])
        assert result.exit_code == 2

    def test_fill_rejects_negative_order_id(self, runner):
        result = runner.invoke(solver_cli, ["fill", "--order-id", "-1"])
        assert result.exit_code == 2

    def test_fill_rejects_invalid_config(self, runner):
        result = runner.invoke(solver_cli, ["fill", "--order-id", "1"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
