"""
cfmm-sync: local, checkpointed model of CFMM liquidity pool state.

Discovers pools from factory creation events, fetches their state in
batched aggregate calls through a rate-limit aware throttle, and keeps a
resumable checkpoint of progress.
"""

__version__ = "0.1.0"
