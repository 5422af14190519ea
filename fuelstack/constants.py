"""
FuelStack Constants

This module consolidates the global constants and environment configuration
used by the keeper and the solver. Logger settings are read once from `.env`;
chain-level settings live in `fuelstack.config`.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'True',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW MIRROR THE DEPLOYED GATE CONTRACTS. CHANGING THEM WITHOUT REDEPLOYING
# THE CONTRACTS WILL MAKE THE KEEPER REJECT VALID FILLS OR SETTLE INVALID ONES.

# ==================================================================================
# TOKEN & DECIMAL CONVENTIONS
# ==================================================================================
ZERO_ADDRESS = '0x' + '0' * 40

EVM_NATIVE_DECIMALS = 18     # ETH-style native asset on the origin chain
STACKS_NATIVE_DECIMALS = 6   # micro-STX
SBTC_DECIMALS = 8            # pegged BTC, identical on both chains

NATIVE_SYMBOL = 'STX'
PEGGED_SYMBOL = 'sBTC'
STACKS_NATIVE_TOKEN_TAG = 'native'  # token-out value printed by fill-native


# ==================================================================================
# ORDER STATUS LABELS (bytes32 right-padded ASCII on-chain)
# ==================================================================================
STATUS_OPENED = 'OPENED'
STATUS_FILLED = 'FILLED'
STATUS_SETTLED = 'SETTLED'
STATUS_REFUNDED = 'REFUNDED'


# ==================================================================================
# LISTENER TIMING
# ==================================================================================
EVM_POLL_INTERVAL = 4.0         # seconds between eth_getLogs polls
EVM_RETRY_DELAY = 5.0           # seconds before retrying a failed RPC call
EVM_MAX_BLOCK_RANGE = 2000      # blocks per eth_getLogs request
STACKS_POLL_INTERVAL = 10.0     # seconds between Hiro API polls
STACKS_EVENT_LIMIT = 20         # events fetched per poll
RECEIPT_TIMEOUT = 120.0         # seconds to wait for a transaction receipt
CONNECTION_TIMEOUT = 10.0


# ==================================================================================
# STACKS NETWORK PARAMETERS
# ==================================================================================
STACKS_TESTNET_API_URL = 'https://api.testnet.hiro.so'
STACKS_MAINNET_API_URL = 'https://api.hiro.so'
STACKS_DEFAULT_FEE = 10_000     # micro-STX, 0.01 STX
STACKS_TX_POLL_INTERVAL = 5.0
STACKS_TX_TIMEOUT = 180.0
SOLVER_RECENT_OUTCOMES = 100   # fill outcomes kept in memory by the solver listener


# ==================================================================================
# CUSTOM CONFIGURATION CLASSES
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
