"""
FuelStack chain access

  - abis: gate and ERC20 ABIs, event topics
  - evm: EvmChainClient, OpenGateContract, FillGateContract, EvmLogWatcher
  - registry: ChainRegistry (origin chain id -> open gate)
"""
