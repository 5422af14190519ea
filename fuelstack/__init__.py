"""
FuelStack Package

Intent bridge between EVM origin chains and Stacks (or an EVM destination).
Core imports are lazily loaded so the CLIs only pull in what they use.
For direct module access, import from submodules:

    from fuelstack.bridge import OrderLedger, FillValidator
    from fuelstack.keeper import KeeperManager
    from fuelstack.solver import StacksOrderFiller
"""

__version__ = '0.1.0'


def __getattr__(name):
    """Lazy module loading."""
    if name == 'OrderLedger':
        from .bridge.ledger import OrderLedger
        return OrderLedger
    elif name == 'KeeperManager':
        from .keeper.manager import KeeperManager
        return KeeperManager
    elif name == 'FuelStackException':
        from .exceptions import FuelStackException
        return FuelStackException
    raise AttributeError(f"module 'fuelstack' has no attribute {name!r}")

__all__ = ['OrderLedger', 'KeeperManager', 'FuelStackException']
