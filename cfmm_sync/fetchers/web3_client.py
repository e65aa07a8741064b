"""
web3.py implementation of the remote ledger contract.

Logs come from eth_getLogs; state calls are packed into a single
Multicall3 tryAggregate eth_call so partial reverts come back per call.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import AsyncWeb3

from ..batchers.errors import ErrorHandler, FatalRemoteError
from ..config.chains import MULTICALL3_ADDRESS
from .ledger import BlockIdentifier, LedgerClient

TRY_AGGREGATE_SELECTOR = function_signature_to_4byte_selector(
    "tryAggregate(bool,(address,bytes)[])"
)


def encode_try_aggregate(calls: Sequence[Tuple[str, bytes]]) -> bytes:
    """Calldata for Multicall3.tryAggregate(false, calls)."""
    return TRY_AGGREGATE_SELECTOR + encode(
        ["bool", "(address,bytes)[]"],
        [False, [(to_checksum_address(target), bytes(data)) for target, data in calls]],
    )


def decode_try_aggregate(raw: bytes) -> List[Tuple[bool, bytes]]:
    results, = decode(["(bool,bytes)[]"], raw)
    return [(bool(success), bytes(data)) for success, data in results]


def normalize_log(log: Any) -> Dict[str, Any]:
    """Convert a web3 log entry into the plain dict shape the codecs expect."""
    return {
        "address": log["address"],
        "topics": [bytes(topic) for topic in log["topics"]],
        "data": bytes(log["data"]),
        "block_number": int(log["blockNumber"]),
        "log_index": int(log["logIndex"]),
    }


class Web3LedgerClient(LedgerClient):
    """
    LedgerClient backed by an AsyncWeb3 HTTP provider.

    Example:
        client = Web3LedgerClient("http://localhost:8545")
        block = await client.get_block_number()
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        web3: Optional[AsyncWeb3] = None,
        multicall_address: str = MULTICALL3_ADDRESS,
        timeout: float = 30.0,
    ):
        if web3 is None:
            if not rpc_url:
                raise ValueError("Either rpc_url or web3 is required")
            web3 = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
            )
        self.web3 = web3
        self.multicall_address = to_checksum_address(multicall_address)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.error_handler = ErrorHandler(self.logger)

    async def call_logs(
        self,
        address: Union[str, Sequence[str]],
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> List[Dict[str, Any]]:
        if isinstance(address, str):
            address = to_checksum_address(address)
        else:
            address = [to_checksum_address(a) for a in address]

        try:
            logs = await self.web3.eth.get_logs({
                "address": address,
                "topics": list(topics),
                "fromBlock": from_block,
                "toBlock": to_block,
            })
        except Exception as e:
            raise self.error_handler.to_remote_error(e) from e

        return [normalize_log(log) for log in logs]

    async def call_aggregate(
        self,
        target: str,
        calls: Sequence[Tuple[str, bytes]],
        block_identifier: BlockIdentifier = "latest",
    ) -> List[Tuple[bool, bytes]]:
        if not calls:
            return []

        try:
            raw = await self.web3.eth.call(
                {"to": to_checksum_address(target), "data": encode_try_aggregate(calls)},
                block_identifier=block_identifier,
            )
        except Exception as e:
            raise self.error_handler.to_remote_error(e) from e

        try:
            results = decode_try_aggregate(bytes(raw))
        except Exception as e:
            raise FatalRemoteError(f"Malformed aggregate response: {e}") from e

        if len(results) != len(calls):
            raise FatalRemoteError(
                f"Aggregate returned {len(results)} results for {len(calls)} calls"
            )
        return results

    async def get_block_number(self) -> int:
        try:
            return int(await self.web3.eth.block_number)
        except Exception as e:
            raise self.error_handler.to_remote_error(e) from e

    async def close(self) -> None:
        disconnect = getattr(self.web3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
