"""
FuelStack Solver

Watches the origin open gate and fills new orders on the destination
chain with the solver's own funds.
"""

from .filler import EvmOrderFiller, FillReason, OrderFiller, StacksOrderFiller
from .listener import SolverListener

__all__ = [
    "EvmOrderFiller",
    "FillReason",
    "OrderFiller",
    "SolverListener",
    "StacksOrderFiller",
]
