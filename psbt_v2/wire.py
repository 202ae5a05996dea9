#!/usr/bin/env python3
"""
PSBT wire document and codec

WirePsbt is the loosely typed form of a PSBT as it appears on the wire: every
field that only exists in one PSBT version is optional, so v0 and v2 documents
share one shape. The adapter module turns it into the strict v2 model.

Binary format (BIP 174):
    magic (psbt 0xff) | global map | input maps | output maps
Each map is a sequence of <keylen><keytype><keydata><valuelen><value>
entries terminated by a single 0x00 byte.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .bip32 import KeySource
from .constants import (
    LOCK_TIME_THRESHOLD,
    PSBT_MAGIC,
    PSBT_VERSION_0,
    PSBT_VERSION_2,
    PSBTFieldType,
    TxModifiable,
)
from .errors import (
    MissingInputCountError,
    MissingOutputCountError,
    MissingUnsignedTxError,
    SerializationError,
    UnsupportedVersionError,
)
from .serialization import (
    PSBTField,
    decode_compact_size,
    decode_uint32,
    decode_uint64,
    expect_length,
    compact_size_uint,
    parse_section,
    read_compact_size_uint,
    ser_uint32,
    ser_uint64,
    serialize_section,
)
from .taproot import TapKeyOrigin, TapLeaf, deserialize_tap_tree, serialize_tap_tree
from .tx import Transaction, TxOut, deserialize_witness, serialize_witness

logger = logging.getLogger(__name__)


# ============================================================================
# region FIELDS SHARED BY BOTH PSBT VERSIONS
# ============================================================================

@dataclass(kw_only=True)
class InputFields:
    """Per-input fields that exist in both PSBT v0 and v2"""

    non_witness_utxo: Optional[Transaction] = None
    witness_utxo: Optional[TxOut] = None
    partial_sigs: Dict[bytes, bytes] = field(default_factory=dict)
    sighash_type: Optional[int] = None
    redeem_script: Optional[bytes] = None
    witness_script: Optional[bytes] = None
    bip32_derivation: Dict[bytes, KeySource] = field(default_factory=dict)
    final_script_sig: Optional[bytes] = None
    final_script_witness: Optional[List[bytes]] = None
    ripemd160_preimages: Dict[bytes, bytes] = field(default_factory=dict)
    sha256_preimages: Dict[bytes, bytes] = field(default_factory=dict)
    hash160_preimages: Dict[bytes, bytes] = field(default_factory=dict)
    hash256_preimages: Dict[bytes, bytes] = field(default_factory=dict)
    tap_key_sig: Optional[bytes] = None
    # (x-only pubkey, leaf hash) -> signature
    tap_script_sigs: Dict[Tuple[bytes, bytes], bytes] = field(default_factory=dict)
    # control block -> (script, leaf version)
    tap_scripts: Dict[bytes, Tuple[bytes, int]] = field(default_factory=dict)
    tap_key_origins: Dict[bytes, TapKeyOrigin] = field(default_factory=dict)
    tap_internal_key: Optional[bytes] = None
    tap_merkle_root: Optional[bytes] = None
    proprietary: Dict[bytes, bytes] = field(default_factory=dict)
    unknown: Dict[bytes, bytes] = field(default_factory=dict)


@dataclass(kw_only=True)
class OutputFields:
    """Per-output fields that exist in both PSBT v0 and v2"""

    redeem_script: Optional[bytes] = None
    witness_script: Optional[bytes] = None
    bip32_derivation: Dict[bytes, KeySource] = field(default_factory=dict)
    tap_internal_key: Optional[bytes] = None
    tap_tree: Optional[Tuple[TapLeaf, ...]] = None
    tap_key_origins: Dict[bytes, TapKeyOrigin] = field(default_factory=dict)
    proprietary: Dict[bytes, bytes] = field(default_factory=dict)
    unknown: Dict[bytes, bytes] = field(default_factory=dict)

# endregion


@dataclass(kw_only=True)
class WireInput(InputFields):
    previous_txid: Optional[bytes] = None
    spent_output_index: Optional[int] = None
    sequence: Optional[int] = None
    min_time: Optional[int] = None
    min_height: Optional[int] = None


@dataclass(kw_only=True)
class WireOutput(OutputFields):
    amount: Optional[int] = None
    script_pubkey: Optional[bytes] = None


@dataclass(kw_only=True)
class WirePsbt:
    version: int = PSBT_VERSION_0
    unsigned_tx: Optional[Transaction] = None
    tx_version: Optional[int] = None
    fallback_lock_time: Optional[int] = None
    input_count: Optional[int] = None
    output_count: Optional[int] = None
    tx_modifiable: Optional[TxModifiable] = None
    xpubs: Dict[bytes, KeySource] = field(default_factory=dict)
    proprietary: Dict[bytes, bytes] = field(default_factory=dict)
    unknown: Dict[bytes, bytes] = field(default_factory=dict)
    inputs: List[WireInput] = field(default_factory=list)
    outputs: List[WireOutput] = field(default_factory=list)


# ============================================================================
# region DECODING
# ============================================================================

def _no_key_data(fld: PSBTField, what: str) -> None:
    if fld.key_data:
        raise SerializationError(f"{what} key must not carry key data")


def _key_data_length(fld: PSBTField, lengths: Tuple[int, ...], what: str) -> bytes:
    if len(fld.key_data) not in lengths:
        raise SerializationError(f"{what} key data has invalid length {len(fld.key_data)}")
    return fld.key_data


def _decode_globals(fields: List[PSBTField]) -> WirePsbt:
    psbt = WirePsbt()
    for fld in fields:
        t, value = fld.key_type, fld.value_data
        if t == PSBTFieldType.PSBT_GLOBAL_UNSIGNED_TX:
            _no_key_data(fld, "unsigned tx")
            psbt.unsigned_tx = Transaction.from_bytes(value, allow_witness=False)
        elif t == PSBTFieldType.PSBT_GLOBAL_XPUB:
            xpub = _key_data_length(fld, (78,), "xpub")
            psbt.xpubs[xpub] = KeySource.deserialize(value)
        elif t == PSBTFieldType.PSBT_GLOBAL_TX_VERSION:
            _no_key_data(fld, "tx version")
            psbt.tx_version = decode_uint32(value, "tx version")
        elif t == PSBTFieldType.PSBT_GLOBAL_FALLBACK_LOCKTIME:
            _no_key_data(fld, "fallback locktime")
            psbt.fallback_lock_time = decode_uint32(value, "fallback locktime")
        elif t == PSBTFieldType.PSBT_GLOBAL_INPUT_COUNT:
            _no_key_data(fld, "input count")
            psbt.input_count = decode_compact_size(value, "input count")
        elif t == PSBTFieldType.PSBT_GLOBAL_OUTPUT_COUNT:
            _no_key_data(fld, "output count")
            psbt.output_count = decode_compact_size(value, "output count")
        elif t == PSBTFieldType.PSBT_GLOBAL_TX_MODIFIABLE:
            _no_key_data(fld, "tx modifiable")
            psbt.tx_modifiable = TxModifiable(expect_length(value, 1, "tx modifiable")[0])
        elif t == PSBTFieldType.PSBT_GLOBAL_VERSION:
            _no_key_data(fld, "version")
            psbt.version = decode_uint32(value, "version")
        elif t == PSBTFieldType.PSBT_GLOBAL_PROPRIETARY:
            psbt.proprietary[fld.key_data] = value
        else:
            psbt.unknown[fld.key] = value
    return psbt


def _decode_input(fields: List[PSBTField]) -> WireInput:
    inp = WireInput()
    for fld in fields:
        t, value = fld.key_type, fld.value_data
        if t == PSBTFieldType.PSBT_IN_NON_WITNESS_UTXO:
            _no_key_data(fld, "non-witness utxo")
            inp.non_witness_utxo = Transaction.from_bytes(value)
        elif t == PSBTFieldType.PSBT_IN_WITNESS_UTXO:
            _no_key_data(fld, "witness utxo")
            inp.witness_utxo = TxOut.from_bytes(value)
        elif t == PSBTFieldType.PSBT_IN_PARTIAL_SIG:
            pubkey = _key_data_length(fld, (33, 65), "partial sig")
            inp.partial_sigs[pubkey] = value
        elif t == PSBTFieldType.PSBT_IN_SIGHASH_TYPE:
            _no_key_data(fld, "sighash type")
            inp.sighash_type = decode_uint32(value, "sighash type")
        elif t == PSBTFieldType.PSBT_IN_REDEEM_SCRIPT:
            _no_key_data(fld, "redeem script")
            inp.redeem_script = value
        elif t == PSBTFieldType.PSBT_IN_WITNESS_SCRIPT:
            _no_key_data(fld, "witness script")
            inp.witness_script = value
        elif t == PSBTFieldType.PSBT_IN_BIP32_DERIVATION:
            pubkey = _key_data_length(fld, (33, 65), "bip32 derivation")
            inp.bip32_derivation[pubkey] = KeySource.deserialize(value)
        elif t == PSBTFieldType.PSBT_IN_FINAL_SCRIPTSIG:
            _no_key_data(fld, "final scriptSig")
            inp.final_script_sig = value
        elif t == PSBTFieldType.PSBT_IN_FINAL_SCRIPTWITNESS:
            _no_key_data(fld, "final scriptWitness")
            f = io.BytesIO(value)
            inp.final_script_witness = deserialize_witness(f)
            if f.read(1):
                raise SerializationError("Trailing data in final scriptWitness")
        elif t == PSBTFieldType.PSBT_IN_RIPEMD160:
            inp.ripemd160_preimages[_key_data_length(fld, (20,), "ripemd160")] = value
        elif t == PSBTFieldType.PSBT_IN_SHA256:
            inp.sha256_preimages[_key_data_length(fld, (32,), "sha256")] = value
        elif t == PSBTFieldType.PSBT_IN_HASH160:
            inp.hash160_preimages[_key_data_length(fld, (20,), "hash160")] = value
        elif t == PSBTFieldType.PSBT_IN_HASH256:
            inp.hash256_preimages[_key_data_length(fld, (32,), "hash256")] = value
        elif t == PSBTFieldType.PSBT_IN_PREVIOUS_TXID:
            _no_key_data(fld, "previous txid")
            inp.previous_txid = expect_length(value, 32, "previous txid")
        elif t == PSBTFieldType.PSBT_IN_OUTPUT_INDEX:
            _no_key_data(fld, "output index")
            inp.spent_output_index = decode_uint32(value, "output index")
        elif t == PSBTFieldType.PSBT_IN_SEQUENCE:
            _no_key_data(fld, "sequence")
            inp.sequence = decode_uint32(value, "sequence")
        elif t == PSBTFieldType.PSBT_IN_REQUIRED_TIME_LOCKTIME:
            _no_key_data(fld, "required time locktime")
            inp.min_time = decode_uint32(value, "required time locktime")
            if inp.min_time < LOCK_TIME_THRESHOLD:
                raise SerializationError(f"Required time locktime {inp.min_time} is a block height")
        elif t == PSBTFieldType.PSBT_IN_REQUIRED_HEIGHT_LOCKTIME:
            _no_key_data(fld, "required height locktime")
            inp.min_height = decode_uint32(value, "required height locktime")
            if inp.min_height >= LOCK_TIME_THRESHOLD:
                raise SerializationError(f"Required height locktime {inp.min_height} is a timestamp")
        elif t == PSBTFieldType.PSBT_IN_TAP_KEY_SIG:
            _no_key_data(fld, "tap key sig")
            if len(value) not in (64, 65):
                raise SerializationError(f"Tap key sig has invalid length {len(value)}")
            inp.tap_key_sig = value
        elif t == PSBTFieldType.PSBT_IN_TAP_SCRIPT_SIG:
            key = _key_data_length(fld, (64,), "tap script sig")
            if len(value) not in (64, 65):
                raise SerializationError(f"Tap script sig has invalid length {len(value)}")
            inp.tap_script_sigs[(key[:32], key[32:])] = value
        elif t == PSBTFieldType.PSBT_IN_TAP_LEAF_SCRIPT:
            control_block = fld.key_data
            if len(control_block) < 33 or (len(control_block) - 33) % 32 != 0:
                raise SerializationError(f"Control block has invalid length {len(control_block)}")
            if not value:
                raise SerializationError("Tap leaf script is empty")
            inp.tap_scripts[control_block] = (value[:-1], value[-1])
        elif t == PSBTFieldType.PSBT_IN_TAP_BIP32_DERIVATION:
            xonly = _key_data_length(fld, (32,), "tap bip32 derivation")
            inp.tap_key_origins[xonly] = TapKeyOrigin.deserialize(value)
        elif t == PSBTFieldType.PSBT_IN_TAP_INTERNAL_KEY:
            _no_key_data(fld, "tap internal key")
            inp.tap_internal_key = expect_length(value, 32, "tap internal key")
        elif t == PSBTFieldType.PSBT_IN_TAP_MERKLE_ROOT:
            _no_key_data(fld, "tap merkle root")
            inp.tap_merkle_root = expect_length(value, 32, "tap merkle root")
        elif t == PSBTFieldType.PSBT_IN_PROPRIETARY:
            inp.proprietary[fld.key_data] = value
        else:
            inp.unknown[fld.key] = value
    return inp


def _decode_output(fields: List[PSBTField]) -> WireOutput:
    out = WireOutput()
    for fld in fields:
        t, value = fld.key_type, fld.value_data
        if t == PSBTFieldType.PSBT_OUT_REDEEM_SCRIPT:
            _no_key_data(fld, "redeem script")
            out.redeem_script = value
        elif t == PSBTFieldType.PSBT_OUT_WITNESS_SCRIPT:
            _no_key_data(fld, "witness script")
            out.witness_script = value
        elif t == PSBTFieldType.PSBT_OUT_BIP32_DERIVATION:
            pubkey = _key_data_length(fld, (33, 65), "bip32 derivation")
            out.bip32_derivation[pubkey] = KeySource.deserialize(value)
        elif t == PSBTFieldType.PSBT_OUT_AMOUNT:
            _no_key_data(fld, "amount")
            out.amount = decode_uint64(value, "amount")
        elif t == PSBTFieldType.PSBT_OUT_SCRIPT:
            _no_key_data(fld, "script")
            out.script_pubkey = value
        elif t == PSBTFieldType.PSBT_OUT_TAP_INTERNAL_KEY:
            _no_key_data(fld, "tap internal key")
            out.tap_internal_key = expect_length(value, 32, "tap internal key")
        elif t == PSBTFieldType.PSBT_OUT_TAP_TREE:
            _no_key_data(fld, "tap tree")
            out.tap_tree = deserialize_tap_tree(value)
        elif t == PSBTFieldType.PSBT_OUT_TAP_BIP32_DERIVATION:
            xonly = _key_data_length(fld, (32,), "tap bip32 derivation")
            out.tap_key_origins[xonly] = TapKeyOrigin.deserialize(value)
        elif t == PSBTFieldType.PSBT_OUT_PROPRIETARY:
            out.proprietary[fld.key_data] = value
        else:
            out.unknown[fld.key] = value
    return out


def _raw_field(key: bytes, value: bytes) -> PSBTField:
    """Rebuild a field from a full key kept in an unknown map"""
    f = io.BytesIO(key)
    key_type = read_compact_size_uint(f)
    return PSBTField(key_type, f.read(), value)


def parse_psbt(psbt_data: bytes) -> WirePsbt:
    """
    Parse PSBT bytes into a wire document

    Args:
        psbt_data: Raw PSBT bytes (must start with magic b'psbt\\xff')

    Returns:
        WirePsbt with every known field decoded

    Raises:
        SerializationError: If the data is malformed, truncated, has duplicate
            keys or trailing bytes
        UnsupportedVersionError: If PSBT_GLOBAL_VERSION is not 0 or 2
    """
    if len(psbt_data) < 5 or psbt_data[:5] != PSBT_MAGIC:
        raise SerializationError("Invalid PSBT magic")

    f = io.BytesIO(psbt_data[5:])
    psbt = _decode_globals(parse_section(f))
    if psbt.version not in (PSBT_VERSION_0, PSBT_VERSION_2):
        raise UnsupportedVersionError(psbt.version)

    if psbt.version == PSBT_VERSION_0:
        if psbt.unsigned_tx is None:
            raise MissingUnsignedTxError()
        for txin in psbt.unsigned_tx.inputs:
            if txin.script_sig or txin.witness:
                raise SerializationError("Unsigned tx must not carry scriptSigs or witnesses")
        num_inputs = len(psbt.unsigned_tx.inputs)
        num_outputs = len(psbt.unsigned_tx.outputs)
    else:
        if psbt.input_count is None:
            raise MissingInputCountError()
        if psbt.output_count is None:
            raise MissingOutputCountError()
        num_inputs = psbt.input_count
        num_outputs = psbt.output_count

    psbt.inputs = [_decode_input(parse_section(f)) for _ in range(num_inputs)]
    psbt.outputs = [_decode_output(parse_section(f)) for _ in range(num_outputs)]

    if f.read(1):
        raise SerializationError("Trailing data after PSBT")

    logger.debug("Parsed PSBT v%d with %d inputs and %d outputs",
                 psbt.version, num_inputs, num_outputs)
    return psbt

# endregion


# ============================================================================
# region ENCODING
# ============================================================================

def _encode_globals(psbt: WirePsbt) -> List[PSBTField]:
    fields = []
    if psbt.unsigned_tx is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_UNSIGNED_TX, b'',
                                psbt.unsigned_tx.serialize(include_witness=False)))
    for xpub, source in psbt.xpubs.items():
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_XPUB, xpub, source.serialize()))
    if psbt.tx_version is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_TX_VERSION, b'', ser_uint32(psbt.tx_version)))
    if psbt.fallback_lock_time is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_FALLBACK_LOCKTIME, b'',
                                ser_uint32(psbt.fallback_lock_time)))
    if psbt.input_count is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_INPUT_COUNT, b'', compact_size_uint(psbt.input_count)))
    if psbt.output_count is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_OUTPUT_COUNT, b'', compact_size_uint(psbt.output_count)))
    if psbt.tx_modifiable is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_TX_MODIFIABLE, b'', bytes([int(psbt.tx_modifiable)])))
    # v0 documents omit the version field
    if psbt.version != PSBT_VERSION_0:
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_VERSION, b'', ser_uint32(psbt.version)))
    for key_data, value in psbt.proprietary.items():
        fields.append(PSBTField(PSBTFieldType.PSBT_GLOBAL_PROPRIETARY, key_data, value))
    for key, value in psbt.unknown.items():
        fields.append(_raw_field(key, value))
    return fields


def _encode_input(inp: WireInput) -> List[PSBTField]:
    fields = []

    def add(key_type: int, key_data: bytes, value: Optional[bytes]) -> None:
        if value is not None:
            fields.append(PSBTField(key_type, key_data, value))

    if inp.non_witness_utxo is not None:
        add(PSBTFieldType.PSBT_IN_NON_WITNESS_UTXO, b'', inp.non_witness_utxo.serialize())
    if inp.witness_utxo is not None:
        add(PSBTFieldType.PSBT_IN_WITNESS_UTXO, b'', inp.witness_utxo.serialize())
    for pubkey, sig in inp.partial_sigs.items():
        add(PSBTFieldType.PSBT_IN_PARTIAL_SIG, pubkey, sig)
    if inp.sighash_type is not None:
        add(PSBTFieldType.PSBT_IN_SIGHASH_TYPE, b'', ser_uint32(inp.sighash_type))
    add(PSBTFieldType.PSBT_IN_REDEEM_SCRIPT, b'', inp.redeem_script)
    add(PSBTFieldType.PSBT_IN_WITNESS_SCRIPT, b'', inp.witness_script)
    for pubkey, source in inp.bip32_derivation.items():
        add(PSBTFieldType.PSBT_IN_BIP32_DERIVATION, pubkey, source.serialize())
    add(PSBTFieldType.PSBT_IN_FINAL_SCRIPTSIG, b'', inp.final_script_sig)
    if inp.final_script_witness is not None:
        add(PSBTFieldType.PSBT_IN_FINAL_SCRIPTWITNESS, b'', serialize_witness(inp.final_script_witness))
    for key_type, preimages in (
        (PSBTFieldType.PSBT_IN_RIPEMD160, inp.ripemd160_preimages),
        (PSBTFieldType.PSBT_IN_SHA256, inp.sha256_preimages),
        (PSBTFieldType.PSBT_IN_HASH160, inp.hash160_preimages),
        (PSBTFieldType.PSBT_IN_HASH256, inp.hash256_preimages),
    ):
        for digest, preimage in preimages.items():
            add(key_type, digest, preimage)
    add(PSBTFieldType.PSBT_IN_PREVIOUS_TXID, b'', inp.previous_txid)
    if inp.spent_output_index is not None:
        add(PSBTFieldType.PSBT_IN_OUTPUT_INDEX, b'', ser_uint32(inp.spent_output_index))
    if inp.sequence is not None:
        add(PSBTFieldType.PSBT_IN_SEQUENCE, b'', ser_uint32(inp.sequence))
    if inp.min_time is not None:
        add(PSBTFieldType.PSBT_IN_REQUIRED_TIME_LOCKTIME, b'', ser_uint32(inp.min_time))
    if inp.min_height is not None:
        add(PSBTFieldType.PSBT_IN_REQUIRED_HEIGHT_LOCKTIME, b'', ser_uint32(inp.min_height))
    add(PSBTFieldType.PSBT_IN_TAP_KEY_SIG, b'', inp.tap_key_sig)
    for (xonly, leaf_hash), sig in inp.tap_script_sigs.items():
        add(PSBTFieldType.PSBT_IN_TAP_SCRIPT_SIG, xonly + leaf_hash, sig)
    for control_block, (script, leaf_version) in inp.tap_scripts.items():
        add(PSBTFieldType.PSBT_IN_TAP_LEAF_SCRIPT, control_block, script + bytes([leaf_version]))
    for xonly, origin in inp.tap_key_origins.items():
        add(PSBTFieldType.PSBT_IN_TAP_BIP32_DERIVATION, xonly, origin.serialize())
    add(PSBTFieldType.PSBT_IN_TAP_INTERNAL_KEY, b'', inp.tap_internal_key)
    add(PSBTFieldType.PSBT_IN_TAP_MERKLE_ROOT, b'', inp.tap_merkle_root)
    for key_data, value in inp.proprietary.items():
        add(PSBTFieldType.PSBT_IN_PROPRIETARY, key_data, value)
    for key, value in inp.unknown.items():
        fields.append(_raw_field(key, value))
    return fields


def _encode_output(out: WireOutput) -> List[PSBTField]:
    fields = []
    if out.redeem_script is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_REDEEM_SCRIPT, b'', out.redeem_script))
    if out.witness_script is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_WITNESS_SCRIPT, b'', out.witness_script))
    for pubkey, source in out.bip32_derivation.items():
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_BIP32_DERIVATION, pubkey, source.serialize()))
    if out.amount is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_AMOUNT, b'', ser_uint64(out.amount)))
    if out.script_pubkey is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_SCRIPT, b'', out.script_pubkey))
    if out.tap_internal_key is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_TAP_INTERNAL_KEY, b'', out.tap_internal_key))
    if out.tap_tree is not None:
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_TAP_TREE, b'', serialize_tap_tree(out.tap_tree)))
    for xonly, origin in out.tap_key_origins.items():
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_TAP_BIP32_DERIVATION, xonly, origin.serialize()))
    for key_data, value in out.proprietary.items():
        fields.append(PSBTField(PSBTFieldType.PSBT_OUT_PROPRIETARY, key_data, value))
    for key, value in out.unknown.items():
        fields.append(_raw_field(key, value))
    return fields


def serialize_psbt(psbt: WirePsbt) -> bytes:
    """
    Serialize a wire document to PSBT bytes

    Keys within each map are written in ascending order, so equal documents
    always serialize to equal bytes.
    """
    result = PSBT_MAGIC
    result += serialize_section(_encode_globals(psbt))
    for inp in psbt.inputs:
        result += serialize_section(_encode_input(inp))
    for out in psbt.outputs:
        result += serialize_section(_encode_output(out))
    return result

# endregion
