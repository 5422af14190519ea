"""
Fill pipeline: validate -> FILLED -> settle.

Destination listeners hand every decoded fill event to FillProcessor. A
rejected fill leaves the order OPENED; a failed settlement leaves it
FILLED for `settle-stuck`.
"""

from dataclasses import dataclass
from typing import Union

from ..bridge.settler import Settler
from ..bridge.types import EvmFillEvent, StacksFillEvent
from ..bridge.validator import FillValidator, ValidationResult
from ..exceptions import SettlementError
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineStats:
    fills_seen: int = 0
    accepted: int = 0
    rejected: int = 0
    settled: int = 0
    settlement_failures: int = 0


class FillProcessor:

    def __init__(self, validator: FillValidator, settler: Settler, auto_settle: bool = True):
        self.validator = validator
        self.settler = settler
        self.auto_settle = auto_settle
        self.stats = PipelineStats()

    async def handle_fill(self, event: Union[EvmFillEvent, StacksFillEvent]) -> ValidationResult:
        self.stats.fills_seen += 1
        solver_recipient = event.solver_origin_address
        result = await self.validator.accept(event, solver_recipient=solver_recipient)
        if not result.accepted:
            self.stats.rejected += 1
            return result

        self.stats.accepted += 1
        if self.auto_settle:
            try:
                await self.settler.settle(result.order.key, solver_recipient)
                self.stats.settled += 1
            except SettlementError as e:
                self.stats.settlement_failures += 1
                logger.error(f"[pipeline] Order {result.order.key} left FILLED: {e}")
        return result

    async def handle_evm_fill(self, event: EvmFillEvent) -> None:
        await self.handle_fill(event)

    async def handle_stacks_fill(self, event: StacksFillEvent) -> None:
        await self.handle_fill(event)
