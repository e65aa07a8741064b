"""
Decode errors for discovery and state results.
"""

from typing import Optional


class DecodeError(Exception):
    """
    A single pool (or log) could not be decoded.

    Collected as a warning beside successful results; never aborts a batch.
    """

    def __init__(self, pool_address: Optional[str], reason: str):
        super().__init__(f"{pool_address or '<unknown>'}: {reason}")
        self.pool_address = pool_address
        self.reason = reason
