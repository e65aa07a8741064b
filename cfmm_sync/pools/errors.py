"""
Exceptions raised by pool construction and pool math.
"""


class PoolError(Exception):
    """Base exception for pool model errors."""
    pass


class InvalidPool(PoolError):
    """Raised when pool fields are malformed (e.g. token0 == token1)."""

    def __init__(self, message: str, pool_address: str = None):
        super().__init__(message)
        self.pool_address = pool_address


class InsufficientLiquidity(PoolError):
    """Raised when a swap cannot be filled from the known liquidity."""

    def __init__(self, message: str, amount_remaining: int = 0):
        super().__init__(message)
        self.amount_remaining = amount_remaining


class Overflow(PoolError):
    """Raised when an amount exceeds the integer width used by the pool."""
    pass
