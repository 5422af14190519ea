"""
FuelStack Configuration

Loads config.toml at startup.
Environment variables (and .env) override TOML values.
"""

from .loader import (
    ARBITRUM_SEPOLIA,
    BASE_SEPOLIA,
    EvmChainConfig,
    KeeperConfig,
    LedgerConfig,
    SettlementConfig,
    SolverConfig,
    StacksConfig,
    load_keeper_config,
    load_solver_config,
)

__all__ = [
    "ARBITRUM_SEPOLIA",
    "BASE_SEPOLIA",
    "EvmChainConfig",
    "KeeperConfig",
    "LedgerConfig",
    "SettlementConfig",
    "SolverConfig",
    "StacksConfig",
    "load_keeper_config",
    "load_solver_config",
]
