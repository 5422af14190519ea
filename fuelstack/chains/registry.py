"""
Chain client registry.

Built once at startup from configuration and injected into the listeners
and the settler; maps an origin chain id to its open gate.
"""

from typing import Dict, Iterator, List

from ..exceptions import ConfigurationError
from ..logger import get_logger
from .evm import OpenGateContract

logger = get_logger(__name__)


class ChainRegistry:
    """source_chain_id -> OpenGateContract"""

    def __init__(self):
        self._gates: Dict[int, OpenGateContract] = {}

    def register(self, gate: OpenGateContract) -> None:
        if gate.chain_id in self._gates:
            raise ConfigurationError(f"Chain {gate.chain_id} registered twice")
        self._gates[gate.chain_id] = gate
        logger.debug(f"Registered open gate {gate.address} on chain {gate.chain_id}")

    def get(self, chain_id: int) -> OpenGateContract:
        try:
            return self._gates[chain_id]
        except KeyError:
            raise ConfigurationError(f"No client configured for chain {chain_id}") from None

    def __contains__(self, chain_id: int) -> bool:
        return chain_id in self._gates

    def __iter__(self) -> Iterator[OpenGateContract]:
        return iter(self._gates.values())

    def __len__(self) -> int:
        return len(self._gates)

    @property
    def chain_ids(self) -> List[int]:
        return sorted(self._gates)

    async def close(self) -> None:
        closed = set()
        for gate in self._gates.values():
            if id(gate.client) not in closed:
                closed.add(id(gate.client))
                await gate.client.close()
