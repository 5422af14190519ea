"""
FuelStack Stacks support

  - c32: c32check addresses
  - clarity: Clarity value serialization and repr parsing
  - transactions: SIP-005 contract-call transactions and signing
  - api: Hiro API client
  - events: fill gate print event decoding
"""
