"""
FuelStack Keeper

Watches the origin open gates and the destination fill gate, validates
fills against the order ledger and settles them on the origin chain.
"""

from .listeners import EvmFillGateListener, OpenGateListener, StacksFillGateListener
from .manager import KeeperManager
from .pipeline import FillProcessor

__all__ = [
    "EvmFillGateListener",
    "FillProcessor",
    "KeeperManager",
    "OpenGateListener",
    "StacksFillGateListener",
]
