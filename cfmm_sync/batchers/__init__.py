"""
Batched ledger calls.

This package provides throttled, retried batch calling for pool discovery
(creation event scans) and pool state (Multicall3 aggregates).
"""

from .base import (
    BaseBatcher,
    BatchConfig,
    DiscoveryResult,
    FetchStateResult,
    raise_phase_failure,
    split_range,
)
from .discovery import PoolDiscoveryBatcher
from .errors import (
    BatchError,
    Cancelled,
    DiscoveryFailed,
    ErrorHandler,
    FatalRemoteError,
    FetchFailed,
    RangeTooLarge,
    RateLimitError,
    RemoteError,
    TransientRemoteError,
)
from .pool_state import PoolStateBatcher
from .throttle import RequestThrottle, ThrottleConfig

__all__ = [
    'BaseBatcher',
    'BatchConfig',
    'DiscoveryResult',
    'FetchStateResult',
    'split_range',
    'raise_phase_failure',
    'PoolDiscoveryBatcher',
    'PoolStateBatcher',
    'RequestThrottle',
    'ThrottleConfig',
    'BatchError',
    'RemoteError',
    'TransientRemoteError',
    'RateLimitError',
    'RangeTooLarge',
    'FatalRemoteError',
    'DiscoveryFailed',
    'FetchFailed',
    'Cancelled',
    'ErrorHandler',
]
