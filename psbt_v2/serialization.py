#!/usr/bin/env python3
"""
PSBT serialization primitives

Compact size integers, length-prefixed strings and BIP 174 key-value map
framing. Readers take a binary stream (``io.BytesIO``) and raise
SerializationError on truncated or malformed data.
"""

import io
import struct
from typing import BinaryIO, List, Set

from .errors import SerializationError


def compact_size_uint(n: int) -> bytes:
    """Encode integer as Bitcoin compact size uint"""
    if n < 0xfd:
        return struct.pack('<B', n)
    elif n <= 0xffff:
        return b'\xfd' + struct.pack('<H', n)
    elif n <= 0xffffffff:
        return b'\xfe' + struct.pack('<L', n)
    else:
        return b'\xff' + struct.pack('<Q', n)


def ser_string(data: bytes) -> bytes:
    """Write data with compact size length prefix"""
    return compact_size_uint(len(data)) + data


def ser_uint32(n: int) -> bytes:
    """Serialize 32-bit unsigned integer in little-endian"""
    return struct.pack('<I', n)


def ser_uint64(n: int) -> bytes:
    """Serialize 64-bit unsigned integer in little-endian"""
    return struct.pack('<Q', n)


def read_exact(f: BinaryIO, n: int) -> bytes:
    """Read exactly n bytes or raise SerializationError"""
    data = f.read(n)
    if len(data) != n:
        raise SerializationError(f"Truncated data: wanted {n} bytes, got {len(data)}")
    return data


def read_compact_size_uint(f: BinaryIO) -> int:
    """Read compact size uint from stream"""
    first_byte = read_exact(f, 1)[0]
    if first_byte < 0xfd:
        return first_byte
    elif first_byte == 0xfd:
        return struct.unpack('<H', read_exact(f, 2))[0]
    elif first_byte == 0xfe:
        return struct.unpack('<L', read_exact(f, 4))[0]
    else:  # 0xff
        return struct.unpack('<Q', read_exact(f, 8))[0]


def deser_string(f: BinaryIO) -> bytes:
    """Read compact size length prefixed data"""
    return read_exact(f, read_compact_size_uint(f))


def deser_uint32(f: BinaryIO) -> int:
    return struct.unpack('<I', read_exact(f, 4))[0]


def deser_uint64(f: BinaryIO) -> int:
    return struct.unpack('<Q', read_exact(f, 8))[0]


def expect_length(value: bytes, length: int, what: str) -> bytes:
    """Check a fixed-size field value"""
    if len(value) != length:
        raise SerializationError(f"{what} must be {length} bytes, got {len(value)}")
    return value


def decode_uint32(value: bytes, what: str) -> int:
    return struct.unpack('<I', expect_length(value, 4, what))[0]


def decode_uint64(value: bytes, what: str) -> int:
    return struct.unpack('<Q', expect_length(value, 8, what))[0]


def decode_compact_size(value: bytes, what: str) -> int:
    """Decode a field value that holds exactly one compact size uint"""
    f = io.BytesIO(value)
    n = read_compact_size_uint(f)
    if f.read(1):
        raise SerializationError(f"Trailing data in {what}")
    return n


class PSBTField:
    """Represents a single PSBT key-value pair"""

    def __init__(self, key_type: int, key_data: bytes, value_data: bytes):
        self.key_type = key_type
        self.key_data = key_data
        self.value_data = value_data

    @property
    def key(self) -> bytes:
        """Full key: compact size key type followed by key data"""
        return compact_size_uint(self.key_type) + self.key_data

    def serialize(self) -> bytes:
        """Serialize this field to PSBT format: key_len + key + value_len + value"""
        return ser_string(self.key) + ser_string(self.value_data)

    def __repr__(self) -> str:
        return f"PSBTField(type={self.key_type:#x}, key={self.key_data.hex()}, value={self.value_data.hex()})"


def serialize_section(fields: List[PSBTField]) -> bytes:
    """Serialize a section (global, input, or output), sorted by key"""
    result = b''
    for field in sorted(fields, key=lambda fld: fld.key):
        result += field.serialize()
    # End with separator (empty key)
    result += b'\x00'
    return result


def parse_section(f: BinaryIO) -> List[PSBTField]:
    """
    Parse one key-value map up to its 0x00 separator

    Args:
        f: Stream positioned at the start of the map

    Returns:
        Fields in wire order

    Raises:
        SerializationError: On truncated data or a duplicate key
    """
    fields = []
    seen: Set[bytes] = set()
    while True:
        key = deser_string(f)
        if not key:  # End of section
            break
        if key in seen:
            raise SerializationError(f"Duplicate key: {key.hex()}")
        seen.add(key)

        key_stream = io.BytesIO(key)
        key_type = read_compact_size_uint(key_stream)
        key_data = key_stream.read()
        value_data = deser_string(f)
        fields.append(PSBTField(key_type, key_data, value_data))
    return fields
