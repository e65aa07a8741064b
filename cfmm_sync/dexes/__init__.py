"""
Dex model: protocol family descriptors and the codecs that turn raw ledger
results (creation logs, aggregated calls) into pool identities and pools.
"""

from .codec import (
    decode_tick_bitmap,
    decode_ticks,
    discovery_decode,
    discovery_topic,
    state_calls,
    state_decode,
    tick_bitmap_calls,
    tick_bitmap_words,
    tick_calls,
    with_ticks,
)
from .dex import Dex, DexRegistry, PoolIdentity, dexes_from_config
from .errors import DecodeError

__all__ = [
    'Dex',
    'DexRegistry',
    'PoolIdentity',
    'dexes_from_config',
    'DecodeError',
    'discovery_topic',
    'discovery_decode',
    'state_calls',
    'state_decode',
    'tick_bitmap_words',
    'tick_bitmap_calls',
    'decode_tick_bitmap',
    'tick_calls',
    'decode_ticks',
    'with_ticks',
]
