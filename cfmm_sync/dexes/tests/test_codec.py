"""
Tests for creation-log and state decoding.
"""

from eth_abi import encode

from cfmm_sync.dexes import (
    DecodeError,
    decode_tick_bitmap,
    decode_ticks,
    discovery_decode,
    state_calls,
    state_decode,
    tick_bitmap_calls,
    tick_bitmap_words,
)
from cfmm_sync.dexes.codec import (
    DECIMALS_SELECTOR,
    GET_RESERVES_SELECTOR,
    LIQUIDITY_SELECTOR,
    SLOT0_SELECTOR,
)
from cfmm_sync.dexes.dex import PoolIdentity
from cfmm_sync.pools import ConcentratedLiquidityPool, ConstantProductPool
from cfmm_sync.pools.v3_math import Q96
from testing_support import address, pair_created_log, pool_created_log

TOKEN_A = address(0x1000)
TOKEN_B = address(0x2000)


def reserves(r0, r1):
    return True, encode(["uint112", "uint112", "uint32"], [r0, r1, 0])


def decimals(d):
    return True, encode(["uint8"], [d])


class TestDiscoveryDecode:
    """Creation logs -> pool identities."""

    def test_pair_created(self, v2_dex):
        log = pair_created_log(v2_dex.factory_address, TOKEN_A, TOKEN_B, address(0xA1), 150, log_index=3)
        identities, warnings = discovery_decode(v2_dex, [log])

        assert warnings == []
        identity, = identities
        assert identity.address == address(0xA1)
        assert identity.token0 == TOKEN_A
        assert identity.token1 == TOKEN_B
        assert identity.dex_id == v2_dex.dex_id
        assert identity.created_block == 150
        assert identity.log_index == 3
        assert identity.fee is None

    def test_pool_created(self, v3_dex):
        log = pool_created_log(v3_dex.factory_address, TOKEN_A, TOKEN_B, 3000, 60, address(0xC1), 120)
        identities, warnings = discovery_decode(v3_dex, [log])

        assert warnings == []
        assert identities[0].fee == 3000
        assert identities[0].tick_spacing == 60

    def test_missing_tick_spacing_falls_back_to_fee_tier(self, v3_dex):
        log = pool_created_log(v3_dex.factory_address, TOKEN_A, TOKEN_B, 500, 0, address(0xC1), 120)
        identities, _ = discovery_decode(v3_dex, [log])
        assert identities[0].tick_spacing == 10

    def test_malformed_log_becomes_warning(self, v2_dex):
        good = pair_created_log(v2_dex.factory_address, TOKEN_A, TOKEN_B, address(0xA1), 150)
        truncated = dict(good, data=b"\x00" * 5, block_number=151)
        identities, warnings = discovery_decode(v2_dex, [truncated, good])

        assert len(identities) == 1
        assert len(warnings) == 1
        assert isinstance(warnings[0], DecodeError)

    def test_reversed_tokens_rejected(self, v2_dex):
        log = pair_created_log(v2_dex.factory_address, TOKEN_B, TOKEN_A, address(0xA1), 150)
        identities, warnings = discovery_decode(v2_dex, [log])

        assert identities == []
        assert warnings[0].pool_address == address(0xA1)

    def test_foreign_event_ignored_as_warning(self, v2_dex):
        log = pool_created_log(v2_dex.factory_address, TOKEN_A, TOKEN_B, 3000, 60, address(0xC1), 120)
        identities, warnings = discovery_decode(v2_dex, [log])
        assert identities == []
        assert len(warnings) == 1


class TestStateDecode:
    """Aggregated call results -> pools."""

    def _identity(self, dex, n, **kwargs):
        return PoolIdentity(address(0xA0 + n), TOKEN_A, TOKEN_B, dex.dex_id, 100 + n, **kwargs)

    def test_state_calls_include_decimals_until_cached(self, v2_dex):
        identity = self._identity(v2_dex, 1)
        selectors = [data for _, data in state_calls(v2_dex, identity)]
        assert selectors == [GET_RESERVES_SELECTOR, DECIMALS_SELECTOR, DECIMALS_SELECTOR]

        cached = identity.with_decimals(18, 6)
        assert [data for _, data in state_calls(v2_dex, cached)] == [GET_RESERVES_SELECTOR]

    def test_cl_state_calls(self, v3_dex):
        identity = self._identity(v3_dex, 1, fee=3000, tick_spacing=60, decimals0=18, decimals1=18)
        assert [data for _, data in state_calls(v3_dex, identity)] == [SLOT0_SELECTOR, LIQUIDITY_SELECTOR]

    def test_constant_product_decode(self, v2_dex):
        identity = self._identity(v2_dex, 1)
        pools, warnings = state_decode(
            v2_dex, [reserves(1000, 2000), decimals(18), decimals(6)], [identity], block_number=200
        )

        assert warnings == []
        pool, = pools
        assert isinstance(pool, ConstantProductPool)
        assert (pool.reserve0, pool.reserve1) == (1000, 2000)
        assert (pool.decimals0, pool.decimals1) == (18, 6)
        assert pool.fee_bps == 30
        assert pool.block_number == 200

    def test_one_bad_pool_does_not_discard_batch(self, v2_dex):
        identities = [self._identity(v2_dex, n, decimals0=18, decimals1=18) for n in range(10)]
        results = [reserves(1000 + n, 2000) for n in range(10)]
        results[4] = (True, b"\x01\x02")

        pools, warnings = state_decode(v2_dex, results, identities)

        assert len(pools) == 9
        assert [w.pool_address for w in warnings] == [identities[4].address]
        assert [p.address for p in pools] == [i.address for i in identities if i is not identities[4]]

    def test_reverted_call_is_warning(self, v2_dex):
        identity = self._identity(v2_dex, 1, decimals0=18, decimals1=18)
        pools, warnings = state_decode(v2_dex, [(False, b"")], [identity])
        assert pools == []
        assert "reverted" in str(warnings[0])

    def test_decimals_out_of_range(self, v2_dex):
        identity = self._identity(v2_dex, 1)
        pools, warnings = state_decode(
            v2_dex, [reserves(1, 1), (True, encode(["uint256"], [300])), decimals(18)], [identity]
        )
        assert pools == []
        assert len(warnings) == 1

    def test_missing_results(self, v2_dex):
        identities = [self._identity(v2_dex, n, decimals0=18, decimals1=18) for n in range(2)]
        pools, warnings = state_decode(v2_dex, [reserves(1, 1)], identities)
        assert len(pools) == 1
        assert warnings[0].pool_address == identities[1].address

    def test_concentrated_liquidity_decode(self, v3_dex):
        identity = self._identity(v3_dex, 1, fee=500, tick_spacing=10, decimals0=18, decimals1=18)
        slot0 = encode(
            ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"],
            [Q96, -5, 0, 1, 1, 0, True],
        )
        pools, warnings = state_decode(
            v3_dex, [(True, slot0), (True, encode(["uint128"], [10**18]))], [identity]
        )

        assert warnings == []
        pool, = pools
        assert isinstance(pool, ConcentratedLiquidityPool)
        assert pool.tick == -5
        assert pool.liquidity == 10**18
        assert pool.fee_pips == 500
        assert pool.tick_spacing == 10


class TestTickBitmap:
    """Tick bitmap words and tick decoding."""

    def _pool(self, tick=0, spacing=60):
        return ConcentratedLiquidityPool(
            address(0xC1), TOKEN_A, TOKEN_B, "concentrated_liquidity:0xf3",
            sqrt_price_x96=Q96, tick=tick, liquidity=1, fee_pips=3000, tick_spacing=spacing,
        )

    def test_words_around_current_tick(self):
        assert tick_bitmap_words(self._pool(tick=0), radius=1) == [-1, 0, 1]
        # -60 // 60 = -1, which sits in word -1
        assert tick_bitmap_words(self._pool(tick=-60), radius=0) == [-1]

    def test_bitmap_calls_one_per_word(self):
        pool = self._pool()
        assert len(tick_bitmap_calls(pool, [-1, 0, 1])) == 3

    def test_decode_bitmap(self):
        pool = self._pool()
        words = [-1, 0]
        bitmap_neg = 1 << 255  # compressed -1 -> tick -60
        bitmap_zero = 1 | (1 << 1)  # compressed 0 and 1 -> ticks 0 and 60
        results = [
            (True, encode(["uint256"], [bitmap_neg])),
            (True, encode(["uint256"], [bitmap_zero])),
        ]
        assert decode_tick_bitmap(pool, words, results) == [-60, 0, 60]

    def test_decode_ticks_skips_uninitialized(self):
        pool = self._pool()
        results = [
            (True, encode(["uint128", "int128"], [10, -10])),
            (True, encode(["uint128", "int128"], [0, 0])),
        ]
        assert decode_ticks(pool, [-60, 60], results) == {-60: -10}
