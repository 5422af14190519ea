"""
Test suite for configuration loading: TOML sections, environment
overrides and fail-fast validation
"""

import pytest

from fuelstack.config.loader import (
    KeeperConfig,
    SolverConfig,
    StacksConfig,
    load_keeper_config,
    load_solver_config,
)
from fuelstack.exceptions import ConfigurationError
from fuelstack.stacks.c32 import MAINNET_P2PKH, TESTNET_P2PKH, c32_address

from conftest import SOLVER_ORIGIN, STACKS_RECIPIENT

ENV_VARS = (
    "ORACLE_PRIVATE_KEY",
    "SOLVER_PRIVATE_KEY",
    "SOLVER_STACKS_PRIVATE_KEY",
    "SOLVER_EVM_ADDRESS",
    "STACKS_RECIPIENT_ADDRESS",
    "DESTINATION_TYPE",
    "OPENGATE_RPC_URL",
    "OPENGATE_ADDRESS",
    "FILLGATE_RPC_URL",
    "FILLGATE_ADDRESS",
    "STACKS_API_URL",
    "STACKS_NETWORK",
    "STACKS_FILLGATE_ADDRESS",
    "STACKS_FILLGATE_NAME",
    "STACKS_SBTC_ADDRESS",
    "STACKS_SBTC_NAME",
    "FUELSTACK_LEDGER_PATH",
    "FUELSTACK_CONFIG",
)

ORACLE_KEY = "0x" + "11" * 32
GATE = c32_address(TESTNET_P2PKH, bytes(range(20)))
MAINNET_GATE = c32_address(MAINNET_P2PKH, bytes(range(20)))
OPEN_GATE = "0x" + "0a" * 20
FILL_GATE = "0x" + "0c" * 20

CONFIG_TOML = f"""
destination_type = "stacks"

[[origin_chains]]
chain_id = 421614
name = "arbitrum-sepolia"
rpc_url = "https://arb.example"
gate_address = "{OPEN_GATE}"
start_block = 1000
confirmations = 2

[[origin_chains]]
chain_id = 84532
name = "base-sepolia"
rpc_url = "https://base.example"
gate_address = "0x{'0b' * 20}"

[stacks]
api_url = "https://stacks.example"
fill_gate_address = "{GATE}"
sbtc_address = "{GATE}"
sbtc_asset_name = "sbtc-token"
poll_interval = 2.5
initial_cursor = "latest"

[settlement]
max_attempts = 3
retry_delay = 1.5

[ledger]
backend = "sqlite"
path = "orders.db"

[solver]
auto_fill = false
fill_delay = 4
stacks_fee = 2000
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # no stray .env is picked up by load_dotenv
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TOML)
    return path


def valid_keeper(**overrides) -> KeeperConfig:
    config = KeeperConfig(
        oracle_private_key=ORACLE_KEY,
        stacks=StacksConfig(fill_gate_address=GATE, sbtc_address=GATE),
    )
    config.origin_chains[0].gate_address = OPEN_GATE
    config.evm_destination.gate_address = FILL_GATE
    for name, value in overrides.items():
        setattr(config, name, value)
    return config


def valid_solver(**overrides) -> SolverConfig:
    config = SolverConfig(
        stacks=StacksConfig(fill_gate_address=GATE, sbtc_address=GATE),
        stacks_private_key="01" * 32,
        solver_origin_address=SOLVER_ORIGIN,
    )
    config.origin_chain.gate_address = OPEN_GATE
    config.evm_destination.gate_address = FILL_GATE
    for name, value in overrides.items():
        setattr(config, name, value)
    return config


# ============================================================================
#  TOML LOADING
# ============================================================================

class TestTomlLoading:

    def test_keeper_sections(self, config_file):
        config = KeeperConfig.from_file(str(config_file))

        assert [c.chain_id for c in config.origin_chains] == [421614, 84532]
        first = config.origin_chains[0]
        assert first.rpc_url == "https://arb.example"
        assert first.start_block == 1000
        assert first.confirmations == 2
        assert config.stacks.api_url == "https://stacks.example"
        assert config.stacks.poll_interval == 2.5
        assert config.stacks.initial_cursor == "latest"
        assert config.stacks.sbtc_asset_identifier == f"{GATE}.mock-sbtc::sbtc-token"
        assert config.settlement.max_attempts == 3
        assert config.ledger.backend == "sqlite"
        assert config.ledger.path == "orders.db"

    def test_solver_sections(self, config_file):
        config = SolverConfig.from_file(str(config_file))
        assert config.origin_chain.chain_id == 421614
        assert config.auto_fill is False
        assert config.fill_delay == 4.0
        assert config.stacks_fee == 2000

    def test_missing_file_uses_defaults(self, tmp_path):
        config = KeeperConfig.from_file(str(tmp_path / "absent.toml"))
        assert config.destination_type == "stacks"
        assert [c.chain_id for c in config.origin_chains] == [421614]
        assert config.stacks.fill_gate_contract_id.endswith(".fill-gate")
        assert config.settlement.max_attempts == 1
        assert config.ledger.backend == "memory"

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("destination_type = \n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            KeeperConfig.from_file(str(path))

    def test_config_path_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("FUELSTACK_CONFIG", str(config_file))
        assert load_keeper_config().settlement.max_attempts == 3
        assert load_solver_config().stacks_fee == 2000

    def test_explicit_path_wins(self, config_file, tmp_path, monkeypatch):
        monkeypatch.setenv("FUELSTACK_CONFIG", str(tmp_path / "absent.toml"))
        assert load_keeper_config(str(config_file)).settlement.max_attempts == 3


# ============================================================================
#  ENVIRONMENT OVERRIDES
# ============================================================================

class TestEnvOverrides:

    def test_keeper_env(self, config_file, monkeypatch):
        monkeypatch.setenv("ORACLE_PRIVATE_KEY", ORACLE_KEY)
        monkeypatch.setenv("DESTINATION_TYPE", "EVM")
        monkeypatch.setenv("OPENGATE_RPC_URL", "https://override.example")
        monkeypatch.setenv("FILLGATE_ADDRESS", "0x" + "0c" * 20)
        monkeypatch.setenv("STACKS_FILLGATE_NAME", "fill-gate-v2")
        monkeypatch.setenv("FUELSTACK_LEDGER_PATH", "/var/lib/fuelstack.db")

        config = KeeperConfig.from_file(str(config_file))
        assert config.oracle_private_key == ORACLE_KEY
        assert config.destination_type == "evm"
        assert config.origin_chains[0].rpc_url == "https://override.example"
        assert config.origin_chains[1].rpc_url == "https://base.example"
        assert config.evm_destination.gate_address == "0x" + "0c" * 20
        assert config.stacks.fill_gate_contract_id == f"{GATE}.fill-gate-v2"
        assert config.ledger.path == "/var/lib/fuelstack.db"

    def test_ledger_path_env_switches_to_sqlite(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FUELSTACK_LEDGER_PATH", "orders.db")
        assert KeeperConfig.from_file(str(tmp_path / "absent.toml")).ledger.backend == "sqlite"

    def test_solver_env(self, config_file, monkeypatch):
        monkeypatch.setenv("SOLVER_STACKS_PRIVATE_KEY", "02" * 32)
        monkeypatch.setenv("SOLVER_EVM_ADDRESS", SOLVER_ORIGIN)
        monkeypatch.setenv("STACKS_RECIPIENT_ADDRESS", STACKS_RECIPIENT)

        config = SolverConfig.from_file(str(config_file))
        assert config.stacks_private_key == "02" * 32
        assert config.solver_origin_address == SOLVER_ORIGIN
        assert config.stacks_recipient_address == STACKS_RECIPIENT
        assert config.validate()

    def test_empty_env_value_ignored(self, config_file, monkeypatch):
        monkeypatch.setenv("OPENGATE_RPC_URL", "")
        config = KeeperConfig.from_file(str(config_file))
        assert config.origin_chains[0].rpc_url == "https://arb.example"


# ============================================================================
#  VALIDATION
# ============================================================================

class TestKeeperValidation:

    def test_valid(self):
        assert valid_keeper().validate()

    def test_missing_oracle_key(self):
        with pytest.raises(ConfigurationError, match="ORACLE_PRIVATE_KEY"):
            valid_keeper(oracle_private_key="").validate()

    def test_malformed_oracle_key(self):
        with pytest.raises(ConfigurationError, match="32 bytes"):
            valid_keeper(oracle_private_key="0x1234").validate()

    def test_unknown_destination(self):
        with pytest.raises(ConfigurationError, match="destination_type"):
            valid_keeper(destination_type="solana").validate()

    def test_duplicate_origin_chain(self):
        config = valid_keeper()
        config.origin_chains = config.origin_chains * 2
        with pytest.raises(ConfigurationError, match="listed twice"):
            config.validate()

    def test_invalid_gate_address(self):
        config = valid_keeper()
        config.origin_chains[0].gate_address = "0x1234"
        with pytest.raises(ConfigurationError, match="gate address"):
            config.validate()

    def test_stacks_address_must_match_network(self):
        config = valid_keeper()
        config.stacks.network = "mainnet"
        with pytest.raises(ConfigurationError, match="fill gate"):
            config.validate()
        config.stacks.fill_gate_address = MAINNET_GATE
        config.stacks.sbtc_address = MAINNET_GATE
        assert config.validate()

    def test_bad_contract_name(self):
        config = valid_keeper()
        config.stacks.fill_gate_name = "1-not-a-name"
        with pytest.raises(ConfigurationError, match="contract name"):
            config.validate()

    def test_bad_initial_cursor(self):
        config = valid_keeper()
        config.stacks.initial_cursor = "oldest"
        with pytest.raises(ConfigurationError, match="initial_cursor"):
            config.validate()

    def test_evm_destination_skips_stacks(self):
        config = valid_keeper(destination_type="evm")
        config.stacks.fill_gate_address = "not-a-principal"
        assert config.validate()

    def test_retry_and_backend_bounds(self):
        config = valid_keeper()
        config.settlement.max_attempts = 0
        with pytest.raises(ConfigurationError, match="max_attempts"):
            config.validate()
        config.settlement.max_attempts = 1
        config.ledger.backend = "postgres"
        with pytest.raises(ConfigurationError, match="ledger.backend"):
            config.validate()


class TestSolverValidation:

    def test_valid(self):
        assert valid_solver().validate()

    def test_missing_stacks_key(self):
        with pytest.raises(ConfigurationError, match="SOLVER_STACKS_PRIVATE_KEY"):
            valid_solver(stacks_private_key="").validate()

    def test_bad_stacks_key(self):
        with pytest.raises(ConfigurationError, match="SOLVER_STACKS_PRIVATE_KEY"):
            valid_solver(stacks_private_key="zz").validate()

    def test_missing_payout_address(self):
        with pytest.raises(ConfigurationError, match="SOLVER_EVM_ADDRESS"):
            valid_solver(solver_origin_address="").validate()

    def test_bad_payout_address(self):
        with pytest.raises(ConfigurationError, match="SOLVER_EVM_ADDRESS"):
            valid_solver(solver_origin_address="0xnothex").validate()

    def test_bad_fallback_recipient(self):
        with pytest.raises(ConfigurationError, match="STACKS_RECIPIENT_ADDRESS"):
            valid_solver(stacks_recipient_address="ST000").validate()

    def test_negative_fill_delay(self):
        with pytest.raises(ConfigurationError, match="fill_delay"):
            valid_solver(fill_delay=-1).validate()

    def test_evm_destination_needs_evm_key(self):
        config = valid_solver(destination_type="evm")
        with pytest.raises(ConfigurationError, match="SOLVER_PRIVATE_KEY"):
            config.validate()
        config.solver_private_key = "22" * 32
        assert config.validate()
