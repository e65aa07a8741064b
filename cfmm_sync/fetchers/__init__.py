"""
Remote ledger clients.

The sync engine only depends on the LedgerClient contract; Web3LedgerClient
is the production implementation over JSON-RPC.
"""

from .ledger import BlockIdentifier, LedgerClient
from .web3_client import Web3LedgerClient, decode_try_aggregate, encode_try_aggregate, normalize_log

__all__ = [
    'BlockIdentifier',
    'LedgerClient',
    'Web3LedgerClient',
    'encode_try_aggregate',
    'decode_try_aggregate',
    'normalize_log',
]
