"""
Checkpoint snapshot of sync progress and its canonical JSON encoding.

The encoding is sorted-key, compact JSON with every integer as a JSON
integer, so decoding and re-encoding a checkpoint reproduces the exact same
bytes. Decoding validates every field; malformed dex entries are reported
individually alongside a partial checkpoint of the entries that did parse.
"""

import json
import logging
import time
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..dexes.dex import Dex, PoolIdentity
from ..pools.types import DexVariant

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_CHECKPOINT_FIELDS = {"format_version", "synced_through", "checkpoint_timestamp", "dexes"}
_DEX_ENTRY_FIELDS = {"dex", "synced_through", "pools"}
_DEX_FIELDS = {"variant", "factory_address", "creation_block", "protocol_params"}
_IDENTITY_FIELDS = {f.name: f for f in fields(PoolIdentity)}
_IDENTITY_STR_FIELDS = ("address", "token0", "token1", "dex_id")
_IDENTITY_OPTIONAL_INT_FIELDS = ("fee", "tick_spacing", "decimals0", "decimals1")


class CheckpointError(Exception):
    """Base exception for checkpoint errors."""
    pass


class CheckpointCorrupt(CheckpointError):
    """
    Stored checkpoint bytes could not be decoded.

    Attributes:
        reason: What was wrong
        newer_version: The checkpoint was written by a newer format version
        corrupt_dex_ids: Dex entries that failed validation
        partial: Checkpoint holding the entries that did validate, if any
    """

    def __init__(
        self,
        reason: str,
        newer_version: bool = False,
        corrupt_dex_ids: Sequence[str] = (),
        partial: Optional["Checkpoint"] = None,
    ):
        super().__init__(f"Corrupt checkpoint: {reason}")
        self.reason = reason
        self.newer_version = newer_version
        self.corrupt_dex_ids = list(corrupt_dex_ids)
        self.partial = partial


def _is_int(value) -> bool:
    return type(value) is int


def _require(condition: bool, reason: str) -> None:
    if not condition:
        raise CheckpointCorrupt(reason)


@dataclass(frozen=True)
class DexCheckpoint:
    """
    Progress of one dex.

    synced_through is None until the first committed scan; discovery resumes
    at synced_through + 1, or at the dex creation block.
    """

    dex: Dex
    synced_through: Optional[int] = None
    pools: Tuple[PoolIdentity, ...] = ()

    @property
    def dex_id(self) -> str:
        return self.dex.dex_id

    @property
    def next_block(self) -> int:
        if self.synced_through is None:
            return self.dex.creation_block
        return self.synced_through + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dex": _dex_to_dict(self.dex),
            "synced_through": self.synced_through,
            "pools": [identity.to_dict() for identity in self.pools],
        }


@dataclass(frozen=True)
class Checkpoint:
    """
    Snapshot of sync progress: global frontier plus per-dex progress and pools.
    """

    format_version: int = FORMAT_VERSION
    synced_through: Optional[int] = None
    checkpoint_timestamp: Optional[int] = None
    dexes: Tuple[DexCheckpoint, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "Checkpoint":
        return cls()

    @property
    def pool_count(self) -> int:
        return sum(len(entry.pools) for entry in self.dexes)

    def dex_checkpoint(self, dex_id: str) -> Optional[DexCheckpoint]:
        for entry in self.dexes:
            if entry.dex_id == dex_id:
                return entry
        return None

    def advanced(self, synced_through: int, dexes: Sequence[DexCheckpoint],
                 timestamp: Optional[int] = None) -> "Checkpoint":
        """Copy with a new frontier, dex entries and timestamp."""
        return replace(
            self,
            format_version=FORMAT_VERSION,
            synced_through=synced_through,
            checkpoint_timestamp=int(time.time()) if timestamp is None else timestamp,
            dexes=tuple(dexes),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": self.format_version,
            "synced_through": self.synced_through,
            "checkpoint_timestamp": self.checkpoint_timestamp,
            "dexes": [entry.to_dict() for entry in self.dexes],
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Checkpoint":
        """
        Decode checkpoint bytes.

        Raises:
            CheckpointCorrupt: Invalid JSON, missing or unknown fields, wrong
                types, a newer format version (newer_version=True), or
                malformed dex entries (corrupt_dex_ids and partial set)
        """
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, AttributeError) as e:
            raise CheckpointCorrupt(f"Invalid JSON: {e}")

        _require(isinstance(raw, dict), "Top level must be an object")

        version = raw.get("format_version")
        _require(_is_int(version), "format_version must be an integer")
        if version > FORMAT_VERSION:
            raise CheckpointCorrupt(
                f"format_version {version} is newer than supported {FORMAT_VERSION}",
                newer_version=True,
            )
        _require(version >= 1, f"Unsupported format_version {version}")

        keys = set(raw)
        _require(keys == _CHECKPOINT_FIELDS,
                 f"Unexpected fields: missing {sorted(_CHECKPOINT_FIELDS - keys)}, "
                 f"unknown {sorted(keys - _CHECKPOINT_FIELDS)}")

        synced_through = raw["synced_through"]
        _require(synced_through is None or (_is_int(synced_through) and synced_through >= 0),
                 "synced_through must be a non-negative integer or null")
        timestamp = raw["checkpoint_timestamp"]
        _require(timestamp is None or _is_int(timestamp),
                 "checkpoint_timestamp must be an integer or null")
        _require(isinstance(raw["dexes"], list), "dexes must be a list")

        entries = []
        corrupt = []
        seen = set()
        for index, entry in enumerate(raw["dexes"]):
            label = _entry_label(entry, index)
            try:
                parsed = _dex_entry_from_dict(entry)
                _require(parsed.dex_id not in seen, f"Duplicate dex entry {parsed.dex_id}")
                _require(
                    parsed.synced_through is None or synced_through is None
                    or parsed.synced_through <= synced_through,
                    f"Dex frontier {parsed.synced_through} beyond checkpoint frontier",
                )
            except CheckpointCorrupt as e:
                logger.warning(f"Corrupt checkpoint entry {label}: {e.reason}")
                corrupt.append(label)
                continue
            seen.add(parsed.dex_id)
            entries.append(parsed)

        checkpoint = cls(
            format_version=version,
            synced_through=synced_through,
            checkpoint_timestamp=timestamp,
            dexes=tuple(entries),
        )
        if corrupt:
            raise CheckpointCorrupt(
                f"{len(corrupt)} malformed dex entries",
                corrupt_dex_ids=corrupt,
                partial=checkpoint,
            )
        return checkpoint


def _dex_to_dict(dex: Dex) -> Dict[str, Any]:
    params = {}
    for key, value in dex.protocol_params.items():
        if isinstance(value, Mapping):
            value = {str(k): v for k, v in value.items()}
        params[key] = value
    return {
        "variant": dex.variant.value,
        "factory_address": dex.factory_address,
        "creation_block": dex.creation_block,
        "protocol_params": params,
    }


def _entry_label(entry, index: int) -> str:
    try:
        dex = entry["dex"]
        return f"{dex['variant']}:{dex['factory_address'].lower()}"
    except (TypeError, KeyError, AttributeError):
        return f"<entry {index}>"


def _dex_from_dict(raw) -> Dex:
    _require(isinstance(raw, dict) and set(raw) == _DEX_FIELDS, "Malformed dex descriptor")
    _require(isinstance(raw["factory_address"], str), "factory_address must be a string")
    _require(_is_int(raw["creation_block"]), "creation_block must be an integer")
    _require(isinstance(raw["protocol_params"], dict), "protocol_params must be an object")
    try:
        variant = DexVariant(raw["variant"])
        return Dex(variant, raw["factory_address"], raw["creation_block"], raw["protocol_params"])
    except (ValueError, TypeError, AttributeError) as e:
        raise CheckpointCorrupt(f"Invalid dex descriptor: {e}")


def _identity_from_dict(raw, dex_id: str) -> PoolIdentity:
    _require(isinstance(raw, dict), "Pool entry must be an object")
    keys = set(raw)
    _require(keys == set(_IDENTITY_FIELDS), f"Pool entry fields {sorted(keys)} do not match")
    for name in _IDENTITY_STR_FIELDS:
        _require(isinstance(raw[name], str) and raw[name], f"Pool {name} must be a string")
    _require(raw["dex_id"] == dex_id, f"Pool {raw['address']} belongs to {raw['dex_id']}")
    _require(_is_int(raw["created_block"]) and raw["created_block"] >= 0,
             f"Pool {raw['address']} created_block must be a non-negative integer")
    _require(_is_int(raw["log_index"]), f"Pool {raw['address']} log_index must be an integer")
    for name in _IDENTITY_OPTIONAL_INT_FIELDS:
        _require(raw[name] is None or _is_int(raw[name]),
                 f"Pool {raw['address']} {name} must be an integer or null")
    return PoolIdentity.from_dict(raw)


def _dex_entry_from_dict(raw) -> DexCheckpoint:
    _require(isinstance(raw, dict) and set(raw) == _DEX_ENTRY_FIELDS, "Malformed dex entry")
    dex = _dex_from_dict(raw["dex"])
    synced_through = raw["synced_through"]
    _require(synced_through is None or (_is_int(synced_through) and synced_through >= 0),
             "Dex synced_through must be a non-negative integer or null")
    _require(isinstance(raw["pools"], list), "Dex pools must be a list")

    pools: List[PoolIdentity] = []
    addresses = set()
    for pool in raw["pools"]:
        identity = _identity_from_dict(pool, dex.dex_id)
        _require(identity.address.lower() not in addresses, f"Duplicate pool {identity.address}")
        addresses.add(identity.address.lower())
        pools.append(identity)
    return DexCheckpoint(dex=dex, synced_through=synced_through, pools=tuple(pools))
