"""
FuelStack TOML Configuration Loader

Loads config.toml at startup with environment variable overrides; `.env`
is read through python-dotenv first, so it behaves like the real
environment. Private keys MUST come from the environment, never TOML.

Environment variable mapping:
    oracle / solver keys        -> ORACLE_PRIVATE_KEY, SOLVER_PRIVATE_KEY,
                                   SOLVER_STACKS_PRIVATE_KEY
    [[origin_chains]][0]        -> OPENGATE_RPC_URL, OPENGATE_ADDRESS
    [evm_destination]           -> FILLGATE_RPC_URL, FILLGATE_ADDRESS
    [stacks]                    -> STACKS_API_URL, STACKS_NETWORK,
                                   STACKS_FILLGATE_ADDRESS, STACKS_FILLGATE_NAME,
                                   STACKS_SBTC_ADDRESS, STACKS_SBTC_NAME
    [ledger] path               -> FUELSTACK_LEDGER_PATH
    destination_type            -> DESTINATION_TYPE
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from eth_utils import is_address

from ..constants import (
    EVM_MAX_BLOCK_RANGE,
    EVM_POLL_INTERVAL,
    EVM_RETRY_DELAY,
    RECEIPT_TIMEOUT,
    STACKS_DEFAULT_FEE,
    STACKS_EVENT_LIMIT,
    STACKS_POLL_INTERVAL,
    STACKS_TESTNET_API_URL,
)
from ..exceptions import ConfigurationError, DecodeError
from ..logger import get_logger
from ..stacks.c32 import CONTRACT_NAME_RE, is_valid_principal
from ..stacks.transactions import StacksKey

logger = get_logger(__name__)

DESTINATION_TYPES = ("stacks", "evm")
LEDGER_BACKENDS = ("memory", "sqlite")
INITIAL_CURSORS = ("none", "latest")

_EVM_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


# ---------------------------------------------------------------------------
# Chain sections
# ---------------------------------------------------------------------------


@dataclass
class EvmChainConfig:
    """One EVM chain with its gate contract ([[origin_chains]] / [evm_destination])."""
    chain_id: int
    name: str
    rpc_url: str
    gate_address: str
    token_address: str = ""
    start_block: Optional[int] = None
    confirmations: int = 0
    poll_interval: float = EVM_POLL_INTERVAL
    retry_delay: float = EVM_RETRY_DELAY
    max_block_range: int = EVM_MAX_BLOCK_RANGE

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default: Optional["EvmChainConfig"] = None) -> "EvmChainConfig":
        base = default or cls(chain_id=0, name="", rpc_url="", gate_address="")
        return cls(
            chain_id=int(data.get("chain_id", base.chain_id)),
            name=data.get("name", base.name),
            rpc_url=data.get("rpc_url", base.rpc_url),
            gate_address=data.get("gate_address", base.gate_address),
            token_address=data.get("token_address", base.token_address),
            start_block=data.get("start_block", base.start_block),
            confirmations=int(data.get("confirmations", base.confirmations)),
            poll_interval=float(data.get("poll_interval", base.poll_interval)),
            retry_delay=float(data.get("retry_delay", base.retry_delay)),
            max_block_range=int(data.get("max_block_range", base.max_block_range)),
        )

    def validate(self, role: str) -> None:
        if self.chain_id < 1:
            raise ConfigurationError(f"{role}: chain_id must be >= 1")
        if not self.rpc_url:
            raise ConfigurationError(f"{role} ({self.name}): rpc_url not set")
        if not is_address(self.gate_address):
            raise ConfigurationError(f"{role} ({self.name}): invalid gate address {self.gate_address!r}")
        if self.token_address and not is_address(self.token_address):
            raise ConfigurationError(f"{role} ({self.name}): invalid token address {self.token_address!r}")
        if self.confirmations < 0:
            raise ConfigurationError(f"{role} ({self.name}): confirmations must be >= 0")
        if self.max_block_range < 1:
            raise ConfigurationError(f"{role} ({self.name}): max_block_range must be >= 1")


ARBITRUM_SEPOLIA = EvmChainConfig(
    chain_id=421614,
    name="arbitrum-sepolia",
    rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
    gate_address="0xc2287A4DF839A6ca7B97202178914208BD1B18E2",
)

BASE_SEPOLIA = EvmChainConfig(
    chain_id=84532,
    name="base-sepolia",
    rpc_url="https://sepolia.base.org",
    gate_address="0xe151FE7360B77973133E2d3D1A0B47A386Ba43Cf",
    token_address="0x3449353C85500Ee971eE64b193D15eF39BF01f04",
)


@dataclass
class StacksConfig:
    """[stacks] section."""
    api_url: str = STACKS_TESTNET_API_URL
    network: str = "testnet"
    fill_gate_address: str = "ST3P57DRBDE7ZRHEGEA3S64H0RFPSR8MV3PJGFSEX"
    fill_gate_name: str = "fill-gate"
    sbtc_address: str = "ST3P57DRBDE7ZRHEGEA3S64H0RFPSR8MV3PJGFSEX"
    sbtc_name: str = "mock-sbtc"
    sbtc_asset_name: str = ""
    poll_interval: float = STACKS_POLL_INTERVAL
    event_limit: int = STACKS_EVENT_LIMIT
    initial_cursor: str = "none"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StacksConfig":
        d = cls()
        return cls(
            api_url=data.get("api_url", d.api_url),
            network=data.get("network", d.network),
            fill_gate_address=data.get("fill_gate_address", d.fill_gate_address),
            fill_gate_name=data.get("fill_gate_name", d.fill_gate_name),
            sbtc_address=data.get("sbtc_address", d.sbtc_address),
            sbtc_name=data.get("sbtc_name", d.sbtc_name),
            sbtc_asset_name=data.get("sbtc_asset_name", d.sbtc_asset_name),
            poll_interval=float(data.get("poll_interval", d.poll_interval)),
            event_limit=int(data.get("event_limit", d.event_limit)),
            initial_cursor=data.get("initial_cursor", d.initial_cursor),
        )

    def apply_env(self) -> None:
        if v := _env("STACKS_API_URL"):
            self.api_url = v
        if v := _env("STACKS_NETWORK"):
            self.network = v
        if v := _env("STACKS_FILLGATE_ADDRESS"):
            self.fill_gate_address = v
        if v := _env("STACKS_FILLGATE_NAME"):
            self.fill_gate_name = v
        if v := _env("STACKS_SBTC_ADDRESS"):
            self.sbtc_address = v
        if v := _env("STACKS_SBTC_NAME"):
            self.sbtc_name = v

    @property
    def fill_gate_contract_id(self) -> str:
        return f"{self.fill_gate_address}.{self.fill_gate_name}"

    @property
    def sbtc_contract_id(self) -> str:
        return f"{self.sbtc_address}.{self.sbtc_name}"

    @property
    def sbtc_asset_identifier(self) -> str:
        return f"{self.sbtc_contract_id}::{self.sbtc_asset_name or self.sbtc_name}"

    def validate(self) -> None:
        if self.network not in ("testnet", "mainnet"):
            raise ConfigurationError(f"Invalid Stacks network: {self.network}")
        if not self.api_url:
            raise ConfigurationError("Stacks api_url not set")
        testnet = self.network == "testnet"
        for label, address, name in (
            ("fill gate", self.fill_gate_address, self.fill_gate_name),
            ("sBTC", self.sbtc_address, self.sbtc_name),
        ):
            if not is_valid_principal(address, testnet=testnet):
                raise ConfigurationError(f"Invalid Stacks {label} address {address!r} for {self.network}")
            if not CONTRACT_NAME_RE.match(name or ""):
                raise ConfigurationError(f"Invalid Stacks {label} contract name {name!r}")
        if self.event_limit < 1:
            raise ConfigurationError("Stacks event_limit must be >= 1")
        if self.initial_cursor not in INITIAL_CURSORS:
            raise ConfigurationError(f"initial_cursor must be one of {INITIAL_CURSORS}")


# ---------------------------------------------------------------------------
# Keeper sections
# ---------------------------------------------------------------------------


@dataclass
class SettlementConfig:
    """[settlement] section. max_attempts = 1 disables retry."""
    max_attempts: int = 1
    retry_delay: float = 5.0
    receipt_timeout: float = RECEIPT_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementConfig":
        return cls(
            max_attempts=int(data.get("max_attempts", 1)),
            retry_delay=float(data.get("retry_delay", 5.0)),
            receipt_timeout=float(data.get("receipt_timeout", RECEIPT_TIMEOUT)),
        )


@dataclass
class LedgerConfig:
    """[ledger] section."""
    backend: str = "memory"
    path: str = "data/fuelstack.db"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerConfig":
        return cls(
            backend=data.get("backend", "memory"),
            path=data.get("path", "data/fuelstack.db"),
        )

    def apply_env(self) -> None:
        if v := _env("FUELSTACK_LEDGER_PATH"):
            self.path = v
            self.backend = "sqlite"


def _origin_chains(data: Dict[str, Any]) -> List[EvmChainConfig]:
    raw = data.get("origin_chains")
    if not raw:
        return [EvmChainConfig.from_dict({}, ARBITRUM_SEPOLIA)]
    return [EvmChainConfig.from_dict(c) for c in raw]


def _apply_evm_env(origin: EvmChainConfig, destination: EvmChainConfig) -> None:
    if v := _env("OPENGATE_RPC_URL"):
        origin.rpc_url = v
    if v := _env("OPENGATE_ADDRESS"):
        origin.gate_address = v
    if v := _env("FILLGATE_RPC_URL"):
        destination.rpc_url = v
    if v := _env("FILLGATE_ADDRESS"):
        destination.gate_address = v


def _validate_destination(destination_type: str) -> None:
    if destination_type not in DESTINATION_TYPES:
        raise ConfigurationError(
            f"destination_type must be one of {DESTINATION_TYPES}, got {destination_type!r}"
        )


def _validate_evm_key(name: str, value: str) -> None:
    if not value:
        raise ConfigurationError(f"{name} not set")
    if not _EVM_KEY_RE.match(value):
        raise ConfigurationError(f"{name} must be 32 bytes of hex")


@dataclass
class KeeperConfig:
    """
    Keeper (oracle) configuration.

    Loads every section of config.toml and applies environment variable
    overrides.
    """
    destination_type: str = "stacks"
    origin_chains: List[EvmChainConfig] = field(
        default_factory=lambda: [EvmChainConfig.from_dict({}, ARBITRUM_SEPOLIA)]
    )
    evm_destination: EvmChainConfig = field(
        default_factory=lambda: EvmChainConfig.from_dict({}, BASE_SEPOLIA)
    )
    stacks: StacksConfig = field(default_factory=StacksConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    oracle_private_key: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeeperConfig":
        return cls(
            destination_type=data.get("destination_type", "stacks"),
            origin_chains=_origin_chains(data),
            evm_destination=EvmChainConfig.from_dict(data.get("evm_destination", {}), BASE_SEPOLIA),
            stacks=StacksConfig.from_dict(data.get("stacks", {})),
            settlement=SettlementConfig.from_dict(data.get("settlement", {})),
            ledger=LedgerConfig.from_dict(data.get("ledger", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "KeeperConfig":
        return cls.from_dict(_read_toml(config_path)).apply_env()

    def apply_env(self) -> "KeeperConfig":
        if v := _env("ORACLE_PRIVATE_KEY"):
            self.oracle_private_key = v
        if v := _env("DESTINATION_TYPE"):
            self.destination_type = v.lower()
        _apply_evm_env(self.origin_chains[0], self.evm_destination)
        self.stacks.apply_env()
        self.ledger.apply_env()
        return self

    def validate(self) -> bool:
        """
        Raises:
            ConfigurationError: on missing or invalid settings
        """
        _validate_destination(self.destination_type)
        _validate_evm_key("ORACLE_PRIVATE_KEY", self.oracle_private_key)
        if not self.origin_chains:
            raise ConfigurationError("At least one origin chain is required")
        seen = set()
        for chain in self.origin_chains:
            chain.validate("origin chain")
            if chain.chain_id in seen:
                raise ConfigurationError(f"Origin chain {chain.chain_id} listed twice")
            seen.add(chain.chain_id)
        if self.destination_type == "evm":
            self.evm_destination.validate("EVM destination")
        else:
            self.stacks.validate()
        if self.settlement.max_attempts < 1:
            raise ConfigurationError("settlement.max_attempts must be >= 1")
        if self.ledger.backend not in LEDGER_BACKENDS:
            raise ConfigurationError(f"ledger.backend must be one of {LEDGER_BACKENDS}")
        return True


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------


@dataclass
class SolverConfig:
    """Solver configuration: [solver] plus the shared chain sections."""
    destination_type: str = "stacks"
    origin_chain: EvmChainConfig = field(
        default_factory=lambda: EvmChainConfig.from_dict({}, ARBITRUM_SEPOLIA)
    )
    evm_destination: EvmChainConfig = field(
        default_factory=lambda: EvmChainConfig.from_dict({}, BASE_SEPOLIA)
    )
    stacks: StacksConfig = field(default_factory=StacksConfig)
    auto_fill: bool = True
    fill_delay: float = 0.0
    stacks_fee: int = STACKS_DEFAULT_FEE
    solver_private_key: str = ""
    stacks_private_key: str = ""
    solver_origin_address: str = ""
    stacks_recipient_address: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolverConfig":
        solver = data.get("solver", {})
        return cls(
            destination_type=data.get("destination_type", "stacks"),
            origin_chain=_origin_chains(data)[0],
            evm_destination=EvmChainConfig.from_dict(data.get("evm_destination", {}), BASE_SEPOLIA),
            stacks=StacksConfig.from_dict(data.get("stacks", {})),
            auto_fill=bool(solver.get("auto_fill", True)),
            fill_delay=float(solver.get("fill_delay", 0.0)),
            stacks_fee=int(solver.get("stacks_fee", STACKS_DEFAULT_FEE)),
            solver_origin_address=solver.get("solver_origin_address", ""),
            stacks_recipient_address=solver.get("stacks_recipient_address", ""),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "SolverConfig":
        return cls.from_dict(_read_toml(config_path)).apply_env()

    def apply_env(self) -> "SolverConfig":
        if v := _env("SOLVER_PRIVATE_KEY"):
            self.solver_private_key = v
        if v := _env("SOLVER_STACKS_PRIVATE_KEY"):
            self.stacks_private_key = v
        if v := _env("SOLVER_EVM_ADDRESS"):
            self.solver_origin_address = v
        if v := _env("STACKS_RECIPIENT_ADDRESS"):
            self.stacks_recipient_address = v
        if v := _env("DESTINATION_TYPE"):
            self.destination_type = v.lower()
        _apply_evm_env(self.origin_chain, self.evm_destination)
        self.stacks.apply_env()
        return self

    def validate(self) -> bool:
        _validate_destination(self.destination_type)
        self.origin_chain.validate("origin chain")
        if self.solver_origin_address and not is_address(self.solver_origin_address):
            raise ConfigurationError(f"Invalid SOLVER_EVM_ADDRESS {self.solver_origin_address!r}")
        if self.fill_delay < 0:
            raise ConfigurationError("fill_delay must be >= 0")

        if self.destination_type == "evm":
            self.evm_destination.validate("EVM destination")
            _validate_evm_key("SOLVER_PRIVATE_KEY", self.solver_private_key)
            return True

        self.stacks.validate()
        if not self.stacks_private_key:
            raise ConfigurationError("SOLVER_STACKS_PRIVATE_KEY not set")
        try:
            StacksKey(self.stacks_private_key)
        except DecodeError as e:
            raise ConfigurationError(f"SOLVER_STACKS_PRIVATE_KEY: {e}") from e
        if not self.solver_origin_address:
            raise ConfigurationError("SOLVER_EVM_ADDRESS not set (origin-chain payout address)")
        if self.stacks_fee < 0:
            raise ConfigurationError("stacks_fee must be >= 0")
        if self.stacks_recipient_address and not is_valid_principal(
            self.stacks_recipient_address, testnet=self.stacks.network == "testnet"
        ):
            raise ConfigurationError(f"Invalid STACKS_RECIPIENT_ADDRESS {self.stacks_recipient_address!r}")
        return True


# -----------------------------------------------------------------------
# Convenience functions
# -----------------------------------------------------------------------

def _read_toml(config_path: str) -> Dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        logger.warning("Config file not found: %s, using defaults", config_path)
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e


def _resolve_path(path: Optional[str]) -> str:
    load_dotenv()
    return path or os.environ.get("FUELSTACK_CONFIG", "config.toml")


def load_keeper_config(path: Optional[str] = None) -> KeeperConfig:
    """
    Load keeper configuration.

    Resolution order:
        1. Explicit *path* argument
        2. FUELSTACK_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    return KeeperConfig.from_file(_resolve_path(path))


def load_solver_config(path: Optional[str] = None) -> SolverConfig:
    """Load solver configuration; same resolution order as load_keeper_config."""
    return SolverConfig.from_file(_resolve_path(path))
