from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode, encode

from cfmm_sync.batchers.errors import FatalRemoteError, RateLimitError, TransientRemoteError
from cfmm_sync.fetchers import Web3LedgerClient
from cfmm_sync.fetchers.web3_client import (
    TRY_AGGREGATE_SELECTOR,
    decode_try_aggregate,
    encode_try_aggregate,
    normalize_log,
)
from testing_support import address


def aggregate_response(results):
    return encode(["(bool,bytes)[]"], [results])


@pytest.fixture
def web3():
    mock = MagicMock()
    mock.eth.call = AsyncMock()
    mock.eth.get_logs = AsyncMock(return_value=[])
    return mock


class TestMulticallEncoding:
    """Multicall3 tryAggregate calldata and results."""

    def test_encode_try_aggregate(self):
        calldata = encode_try_aggregate([(address(0xA1).lower(), b"\x09\x02\xf1\xac")])

        assert calldata[:4] == TRY_AGGREGATE_SELECTOR
        require_success, calls = decode(["bool", "(address,bytes)[]"], calldata[4:])
        assert require_success is False
        assert calls[0][0].lower() == address(0xA1).lower()
        assert calls[0][1] == b"\x09\x02\xf1\xac"

    def test_decode_try_aggregate(self):
        raw = aggregate_response([(True, b"\x01"), (False, b"")])
        assert decode_try_aggregate(raw) == [(True, b"\x01"), (False, b"")]

    def test_normalize_log(self):
        log = {
            "address": address(0xF2),
            "topics": [b"\x11" * 32],
            "data": b"\x00" * 64,
            "blockNumber": 150,
            "logIndex": 4,
        }
        assert normalize_log(log) == {
            "address": address(0xF2),
            "topics": [b"\x11" * 32],
            "data": b"\x00" * 64,
            "block_number": 150,
            "log_index": 4,
        }


class TestWeb3LedgerClient:
    """LedgerClient over a mocked AsyncWeb3."""

    def test_requires_url_or_web3(self):
        with pytest.raises(ValueError):
            Web3LedgerClient()

    @pytest.mark.asyncio
    async def test_call_aggregate(self, web3):
        web3.eth.call.return_value = aggregate_response([(True, b"\x01"), (True, b"\x02")])
        client = Web3LedgerClient(web3=web3)

        results = await client.call_aggregate(
            client.multicall_address, [(address(1), b"\x00"), (address(2), b"\x00")], 200
        )

        assert results == [(True, b"\x01"), (True, b"\x02")]
        _, kwargs = web3.eth.call.call_args
        assert kwargs["block_identifier"] == 200

    @pytest.mark.asyncio
    async def test_empty_aggregate_skips_request(self, web3):
        client = Web3LedgerClient(web3=web3)
        assert await client.call_aggregate(client.multicall_address, []) == []
        web3.eth.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_count_mismatch_is_fatal(self, web3):
        web3.eth.call.return_value = aggregate_response([(True, b"\x01")])
        client = Web3LedgerClient(web3=web3)

        with pytest.raises(FatalRemoteError):
            await client.call_aggregate(client.multicall_address, [(address(1), b""), (address(2), b"")])

    @pytest.mark.asyncio
    async def test_malformed_response_is_fatal(self, web3):
        web3.eth.call.return_value = b"\x00\x01"
        client = Web3LedgerClient(web3=web3)

        with pytest.raises(FatalRemoteError):
            await client.call_aggregate(client.multicall_address, [(address(1), b"")])

    @pytest.mark.asyncio
    async def test_provider_errors_mapped(self, web3):
        web3.eth.call.side_effect = Exception("429 Too Many Requests")
        web3.eth.get_logs.side_effect = Exception("Read timed out")
        client = Web3LedgerClient(web3=web3)

        with pytest.raises(RateLimitError):
            await client.call_aggregate(client.multicall_address, [(address(1), b"")])
        with pytest.raises(TransientRemoteError):
            await client.call_logs(address(0xF2), ["0x" + "11" * 32], 100, 200)

    @pytest.mark.asyncio
    async def test_call_logs_normalizes(self, web3):
        web3.eth.get_logs.return_value = [{
            "address": address(0xF2),
            "topics": [b"\x11" * 32],
            "data": b"",
            "blockNumber": 120,
            "logIndex": 0,
        }]
        client = Web3LedgerClient(web3=web3)

        logs = await client.call_logs(address(0xF2).lower(), ["0x" + "11" * 32], 100, 200)

        assert logs[0]["block_number"] == 120
        params = web3.eth.get_logs.call_args[0][0]
        assert params["address"] == address(0xF2)
        assert (params["fromBlock"], params["toBlock"]) == (100, 200)
