#!/usr/bin/env python3
"""
PSBT Utility Functions

Script template helpers used by the finalizer and the updater.
"""

import hashlib

OP_0 = 0x00
OP_PUSHDATA1 = 0x4c
OP_PUSHDATA2 = 0x4d
OP_1 = 0x51
OP_16 = 0x60
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xa9
OP_CHECKSIG = 0xac


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    return hashlib.new('ripemd160', hashlib.sha256(data).digest()).digest()


def push_data(data: bytes) -> bytes:
    """Minimal script push of data"""
    n = len(data)
    if n < OP_PUSHDATA1:
        return bytes([n]) + data
    elif n <= 0xff:
        return bytes([OP_PUSHDATA1, n]) + data
    elif n <= 0xffff:
        return bytes([OP_PUSHDATA2]) + n.to_bytes(2, 'little') + data
    else:
        return bytes([0x4e]) + n.to_bytes(4, 'little') + data


def is_p2pkh(script_pubkey: bytes) -> bool:
    """OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG"""
    return (
        len(script_pubkey) == 25
        and script_pubkey[0] == OP_DUP
        and script_pubkey[1] == OP_HASH160
        and script_pubkey[2] == 20
        and script_pubkey[23] == OP_EQUALVERIFY
        and script_pubkey[24] == OP_CHECKSIG
    )


def is_p2sh(script_pubkey: bytes) -> bool:
    """OP_HASH160 <20> OP_EQUAL"""
    return (
        len(script_pubkey) == 23
        and script_pubkey[0] == OP_HASH160
        and script_pubkey[1] == 20
        and script_pubkey[22] == OP_EQUAL
    )


def is_p2wpkh(script_pubkey: bytes) -> bool:
    return len(script_pubkey) == 22 and script_pubkey[0] == OP_0 and script_pubkey[1] == 20


def is_witness_program(script_pubkey: bytes) -> bool:
    """<OP_0 | OP_1..OP_16> followed by a single push of 2 to 40 bytes"""
    if not 4 <= len(script_pubkey) <= 42:
        return False
    version = script_pubkey[0]
    if version != OP_0 and not OP_1 <= version <= OP_16:
        return False
    return script_pubkey[1] == len(script_pubkey) - 2


def is_taproot_output(script_pubkey: bytes) -> bool:
    """
    Check if script_pubkey is a Taproot (Segwit v1) output

    Taproot format: 0x5120 || 32-byte x-only pubkey
    """
    return len(script_pubkey) == 34 and script_pubkey[0] == OP_1 and script_pubkey[1] == 0x20
