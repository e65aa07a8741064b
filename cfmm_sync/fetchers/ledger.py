"""
Remote ledger access contract used by the batch request layer.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

BlockIdentifier = Union[int, str]


class LedgerClient(ABC):
    """
    Abstract remote ledger.

    Implementations raise errors from cfmm_sync.batchers.errors:
    RateLimitError / TransientRemoteError for retryable failures,
    RangeTooLarge when a log query spans too much, FatalRemoteError otherwise.
    """

    @abstractmethod
    async def call_logs(
        self,
        address: Union[str, Sequence[str]],
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> List[Dict[str, Any]]:
        """
        Fetch logs emitted by address within [from_block, to_block].

        Returns:
            Logs as dicts with address, topics, data, block_number, log_index
        """
        pass

    @abstractmethod
    async def call_aggregate(
        self,
        target: str,
        calls: Sequence[Tuple[str, bytes]],
        block_identifier: BlockIdentifier = "latest",
    ) -> List[Tuple[bool, bytes]]:
        """
        Execute calls in one round trip through an aggregator contract.

        Returns:
            (success, return data) per call, in call order
        """
        pass

    @abstractmethod
    async def get_block_number(self) -> int:
        """Latest block number."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None
