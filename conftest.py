import pytest

from cfmm_sync.batchers.base import BatchConfig
from cfmm_sync.batchers.throttle import RequestThrottle, ThrottleConfig
from cfmm_sync.dexes.dex import Dex
from testing_support import FakeClock, FakeLedger, MemoryCheckpointStore, address

FACTORY_V2 = address(0xF2)
FACTORY_V3 = address(0xF3)


@pytest.fixture
def ledger():
    return FakeLedger(block_number=200)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def throttle():
    # Rate limiting off so tests never wait on the token bucket
    return RequestThrottle(ThrottleConfig(max_rate=0, max_concurrent=4))


@pytest.fixture
def batch_config():
    return BatchConfig(max_retries=3, retry_base_delay=0.0, retry_max_delay=0.0)


@pytest.fixture
def v2_dex():
    return Dex.constant_product(FACTORY_V2, creation_block=100, fee_bps=30)


@pytest.fixture
def v3_dex():
    return Dex.concentrated_liquidity(FACTORY_V3, creation_block=100)


@pytest.fixture
def memory_store():
    return MemoryCheckpointStore()
