#!/usr/bin/env python3
"""
PSBT v2 Constants

BIP 174/370 field types, transaction modifiable flags and the defaults used
across the package.
"""

import enum


PSBT_MAGIC = b'psbt\xff'

# PSBT_GLOBAL_VERSION values this package understands
PSBT_VERSION_0 = 0
PSBT_VERSION_2 = 2

DEFAULT_TX_VERSION = 2
SEQUENCE_FINAL = 0xffffffff

# nLockTime below this is a block height, at or above it a unix timestamp
LOCK_TIME_THRESHOLD = 500_000_000

# Extractor sanity limit, in sat/vB
DEFAULT_MAX_FEE_RATE = 25_000

SIGHASH_DEFAULT = 0x00
SIGHASH_ALL = 0x01
SIGHASH_NONE = 0x02
SIGHASH_SINGLE = 0x03
SIGHASH_ANYONECANPAY = 0x80

STANDARD_ECDSA_SIGHASH_TYPES = frozenset([
    SIGHASH_ALL,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
    SIGHASH_ALL | SIGHASH_ANYONECANPAY,
    SIGHASH_NONE | SIGHASH_ANYONECANPAY,
    SIGHASH_SINGLE | SIGHASH_ANYONECANPAY,
])


class TxModifiable(enum.IntFlag):
    """PSBT_GLOBAL_TX_MODIFIABLE bits"""

    NONE = 0x00
    INPUTS = 0x01
    OUTPUTS = 0x02
    SIGHASH_SINGLE = 0x04


class PSBTFieldType:
    """BIP 174/370 field key types"""

    # Global fields
    PSBT_GLOBAL_UNSIGNED_TX = 0x00
    PSBT_GLOBAL_XPUB = 0x01
    PSBT_GLOBAL_TX_VERSION = 0x02
    PSBT_GLOBAL_FALLBACK_LOCKTIME = 0x03
    PSBT_GLOBAL_INPUT_COUNT = 0x04
    PSBT_GLOBAL_OUTPUT_COUNT = 0x05
    PSBT_GLOBAL_TX_MODIFIABLE = 0x06
    PSBT_GLOBAL_VERSION = 0xFB
    PSBT_GLOBAL_PROPRIETARY = 0xFC

    # Input fields
    PSBT_IN_NON_WITNESS_UTXO = 0x00
    PSBT_IN_WITNESS_UTXO = 0x01
    PSBT_IN_PARTIAL_SIG = 0x02
    PSBT_IN_SIGHASH_TYPE = 0x03
    PSBT_IN_REDEEM_SCRIPT = 0x04
    PSBT_IN_WITNESS_SCRIPT = 0x05
    PSBT_IN_BIP32_DERIVATION = 0x06
    PSBT_IN_FINAL_SCRIPTSIG = 0x07
    PSBT_IN_FINAL_SCRIPTWITNESS = 0x08
    PSBT_IN_RIPEMD160 = 0x0A
    PSBT_IN_SHA256 = 0x0B
    PSBT_IN_HASH160 = 0x0C
    PSBT_IN_HASH256 = 0x0D
    PSBT_IN_PREVIOUS_TXID = 0x0E
    PSBT_IN_OUTPUT_INDEX = 0x0F
    PSBT_IN_SEQUENCE = 0x10
    PSBT_IN_REQUIRED_TIME_LOCKTIME = 0x11
    PSBT_IN_REQUIRED_HEIGHT_LOCKTIME = 0x12
    PSBT_IN_TAP_KEY_SIG = 0x13
    PSBT_IN_TAP_SCRIPT_SIG = 0x14
    PSBT_IN_TAP_LEAF_SCRIPT = 0x15
    PSBT_IN_TAP_BIP32_DERIVATION = 0x16
    PSBT_IN_TAP_INTERNAL_KEY = 0x17
    PSBT_IN_TAP_MERKLE_ROOT = 0x18
    PSBT_IN_PROPRIETARY = 0xFC

    # Output fields
    PSBT_OUT_REDEEM_SCRIPT = 0x00
    PSBT_OUT_WITNESS_SCRIPT = 0x01
    PSBT_OUT_BIP32_DERIVATION = 0x02
    PSBT_OUT_AMOUNT = 0x03
    PSBT_OUT_SCRIPT = 0x04
    PSBT_OUT_TAP_INTERNAL_KEY = 0x05
    PSBT_OUT_TAP_TREE = 0x06
    PSBT_OUT_TAP_BIP32_DERIVATION = 0x07
    PSBT_OUT_PROPRIETARY = 0xFC
