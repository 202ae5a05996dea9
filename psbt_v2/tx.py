#!/usr/bin/env python3
"""
Bitcoin transaction primitives

Just enough of the network transaction format for PSBT work: outpoints,
inputs, outputs, (de)serialization with and without witness data, txid and
weight.
"""

import hashlib
import io
import math
from dataclasses import dataclass, field
from typing import BinaryIO, List

from .constants import SEQUENCE_FINAL
from .errors import SerializationError
from .serialization import (
    compact_size_uint,
    deser_string,
    deser_uint32,
    deser_uint64,
    read_compact_size_uint,
    read_exact,
    ser_string,
    ser_uint32,
    ser_uint64,
)


def hash256(data: bytes) -> bytes:
    """Double SHA256"""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


@dataclass(frozen=True)
class OutPoint:
    """Reference to a transaction output; txid in internal byte order"""

    txid: bytes
    vout: int

    def serialize(self) -> bytes:
        return self.txid + ser_uint32(self.vout)

    @classmethod
    def deserialize(cls, f: BinaryIO) -> "OutPoint":
        return cls(read_exact(f, 32), deser_uint32(f))

    def __str__(self) -> str:
        return f"{self.txid[::-1].hex()}:{self.vout}"


@dataclass
class TxOut:
    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        return ser_uint64(self.value) + ser_string(self.script_pubkey)

    @classmethod
    def deserialize(cls, f: BinaryIO) -> "TxOut":
        value = deser_uint64(f)
        return cls(value, deser_string(f))

    @classmethod
    def from_bytes(cls, data: bytes) -> "TxOut":
        f = io.BytesIO(data)
        txout = cls.deserialize(f)
        if f.read(1):
            raise SerializationError("Trailing data after transaction output")
        return txout


@dataclass
class TxIn:
    prevout: OutPoint
    script_sig: bytes = b''
    sequence: int = SEQUENCE_FINAL
    witness: List[bytes] = field(default_factory=list)

    def serialize(self) -> bytes:
        """Serialize without witness"""
        return self.prevout.serialize() + ser_string(self.script_sig) + ser_uint32(self.sequence)

    @classmethod
    def deserialize(cls, f: BinaryIO) -> "TxIn":
        prevout = OutPoint.deserialize(f)
        script_sig = deser_string(f)
        return cls(prevout, script_sig, deser_uint32(f))


def serialize_witness(stack: List[bytes]) -> bytes:
    """Serialize a witness stack: item count followed by each item"""
    result = compact_size_uint(len(stack))
    for item in stack:
        result += ser_string(item)
    return result


def deserialize_witness(f: BinaryIO) -> List[bytes]:
    return [deser_string(f) for _ in range(read_compact_size_uint(f))]


@dataclass
class Transaction:
    version: int = 2
    inputs: List[TxIn] = field(default_factory=list)
    outputs: List[TxOut] = field(default_factory=list)
    lock_time: int = 0

    def has_witness(self) -> bool:
        return any(txin.witness for txin in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        """
        Serialize to network format

        Args:
            include_witness: Use the segwit encoding (marker, flag, witnesses)
                when any input has witness data

        Returns:
            Serialized transaction bytes
        """
        segwit = include_witness and self.has_witness()
        result = ser_uint32(self.version)
        if segwit:
            result += b'\x00\x01'  # marker + flag
        result += compact_size_uint(len(self.inputs))
        for txin in self.inputs:
            result += txin.serialize()
        result += compact_size_uint(len(self.outputs))
        for txout in self.outputs:
            result += txout.serialize()
        if segwit:
            for txin in self.inputs:
                result += serialize_witness(txin.witness)
        result += ser_uint32(self.lock_time)
        return result

    @classmethod
    def deserialize(cls, f: BinaryIO, allow_witness: bool = True) -> "Transaction":
        """
        Read a transaction from stream

        Args:
            f: Stream positioned at the transaction
            allow_witness: Treat a zero input count followed by 0x01 as the
                segwit marker. PSBT unsigned transactions are always read
                with this disabled.

        Raises:
            SerializationError: If the data is truncated or malformed
        """
        version = deser_uint32(f)
        n_inputs = read_compact_size_uint(f)
        segwit = False
        if n_inputs == 0 and allow_witness:
            flag = read_exact(f, 1)[0]
            if flag != 0x01:
                raise SerializationError(f"Unexpected segwit flag {flag:#x}")
            segwit = True
            n_inputs = read_compact_size_uint(f)

        inputs = [TxIn.deserialize(f) for _ in range(n_inputs)]
        outputs = [TxOut.deserialize(f) for _ in range(read_compact_size_uint(f))]
        if segwit:
            for txin in inputs:
                txin.witness = deserialize_witness(f)
            if not any(txin.witness for txin in inputs):
                raise SerializationError("Segwit transaction without witness data")
        lock_time = deser_uint32(f)
        return cls(version, inputs, outputs, lock_time)

    @classmethod
    def from_bytes(cls, data: bytes, allow_witness: bool = True) -> "Transaction":
        f = io.BytesIO(data)
        tx = cls.deserialize(f, allow_witness)
        if f.read(1):
            raise SerializationError("Trailing data after transaction")
        return tx

    @classmethod
    def from_hex(cls, tx_hex: str) -> "Transaction":
        return cls.from_bytes(bytes.fromhex(tx_hex))

    def txid(self) -> bytes:
        """Transaction id in internal byte order"""
        return hash256(self.serialize(include_witness=False))

    def txid_hex(self) -> str:
        """Transaction id as displayed by block explorers"""
        return self.txid()[::-1].hex()

    def weight(self) -> int:
        base_size = len(self.serialize(include_witness=False))
        total_size = len(self.serialize(include_witness=True))
        return base_size * 3 + total_size

    def vsize(self) -> int:
        return math.ceil(self.weight() / 4)

    def hex(self) -> str:
        return self.serialize().hex()
