#!/usr/bin/env python3
"""
BIP 32 key origin helpers

A KeySource is the (master fingerprint, derivation path) pair PSBT attaches to
public keys and extended public keys.
"""

import struct
from typing import NamedTuple, Tuple

from .errors import SerializationError

HARDENED = 0x80000000


class KeySource(NamedTuple):
    fingerprint: bytes  # 4 bytes
    path: Tuple[int, ...]

    def serialize(self) -> bytes:
        """Fingerprint followed by little-endian uint32 path elements"""
        return self.fingerprint + b''.join(struct.pack('<I', i) for i in self.path)

    @classmethod
    def deserialize(cls, value: bytes) -> "KeySource":
        if len(value) < 4 or len(value) % 4 != 0:
            raise SerializationError(f"Invalid key source length {len(value)}")
        path = tuple(struct.unpack('<I', value[i:i + 4])[0] for i in range(4, len(value), 4))
        return cls(value[:4], path)

    @classmethod
    def from_string(cls, fingerprint: str, path: str) -> "KeySource":
        """
        Build a key source from hex fingerprint and a path like m/84'/0'/0'/0/5

        Args:
            fingerprint: 8 hex characters
            path: Derivation path, hardened elements marked with ' or h
        """
        elements = []
        for part in path.split('/'):
            if part in ('m', ''):
                continue
            if part[-1] in "'h":
                elements.append(int(part[:-1]) | HARDENED)
            else:
                elements.append(int(part))
        return cls(bytes.fromhex(fingerprint), tuple(elements))

    def path_string(self) -> str:
        parts = ['m']
        for i in self.path:
            parts.append(f"{i & ~HARDENED}'" if i & HARDENED else str(i))
        return '/'.join(parts)

    def __str__(self) -> str:
        return f"[{self.fingerprint.hex()}]{self.path_string()[1:]}"
