#!/usr/bin/env python3
"""
Taproot PSBT field types (BIP 371)
"""

import io
from typing import List, NamedTuple, Tuple

from .bip32 import KeySource
from .errors import SerializationError
from .serialization import compact_size_uint, deser_string, read_compact_size_uint, read_exact, ser_string


class TapKeyOrigin(NamedTuple):
    """Leaf hashes a key appears in, and the key's BIP 32 origin"""

    leaf_hashes: Tuple[bytes, ...]
    key_source: KeySource

    def serialize(self) -> bytes:
        result = compact_size_uint(len(self.leaf_hashes))
        for leaf_hash in self.leaf_hashes:
            result += leaf_hash
        return result + self.key_source.serialize()

    @classmethod
    def deserialize(cls, value: bytes) -> "TapKeyOrigin":
        f = io.BytesIO(value)
        leaf_hashes = tuple(read_exact(f, 32) for _ in range(read_compact_size_uint(f)))
        return cls(leaf_hashes, KeySource.deserialize(f.read()))


class TapLeaf(NamedTuple):
    depth: int
    leaf_version: int
    script: bytes


def serialize_tap_tree(leaves: Tuple[TapLeaf, ...]) -> bytes:
    """PSBT_OUT_TAP_TREE value: depth, leaf version, script for each leaf in DFS order"""
    result = b''
    for leaf in leaves:
        result += bytes([leaf.depth, leaf.leaf_version]) + ser_string(leaf.script)
    return result


def deserialize_tap_tree(value: bytes) -> Tuple[TapLeaf, ...]:
    f = io.BytesIO(value)
    leaves: List[TapLeaf] = []
    while f.tell() < len(value):
        header = read_exact(f, 2)
        if header[0] > 128:
            raise SerializationError(f"Tap tree depth {header[0]} exceeds 128")
        leaves.append(TapLeaf(header[0], header[1], deser_string(f)))
    if not leaves:
        raise SerializationError("Empty tap tree")
    return tuple(leaves)
