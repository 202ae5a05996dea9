#!/usr/bin/env python3
"""
PSBT version adapter

Converts between the loosely typed wire document (either PSBT version) and
the strict v2 Psbt. Validation is presence/absence only: a field that must be
set is checked for, a field the version forbids is rejected, and values are
never coerced.
"""

import copy
from dataclasses import fields
from typing import Any, Dict

from .constants import PSBT_VERSION_0, PSBT_VERSION_2, TxModifiable
from .errors import (
    CountMismatchError,
    HasAmountError,
    HasMinHeightError,
    HasMinTimeError,
    HasPreviousTxidError,
    HasScriptPubkeyError,
    HasSequenceError,
    HasSpentOutputIndexError,
    HasV2GlobalFieldError,
    InvalidInputError,
    InvalidOutputError,
    MissingAmountError,
    MissingInputCountError,
    MissingOutputCountError,
    MissingPreviousTxidError,
    MissingScriptPubkeyError,
    MissingSpentOutputIndexError,
    MissingTxVersionError,
    MissingUnsignedTxError,
    PsbtError,
    UnsupportedVersionError,
)
from .input import Input
from .output import Output
from .psbt import Psbt
from .tx import TxIn, TxOut
from .wire import InputFields, OutputFields, WireInput, WireOutput, WirePsbt


def _common(obj: Any, base: type) -> Dict[str, Any]:
    """Values of the fields declared by base, deep copied"""
    return {f.name: copy.deepcopy(getattr(obj, f.name)) for f in fields(base)}


# ============================================================================
# region PER INPUT / OUTPUT
# ============================================================================

def input_to_strict(wire_input: WireInput) -> Input:
    """
    Raises:
        MissingPreviousTxidError, MissingSpentOutputIndexError
    """
    if wire_input.previous_txid is None:
        raise MissingPreviousTxidError()
    if wire_input.spent_output_index is None:
        raise MissingSpentOutputIndexError()
    return Input(
        previous_txid=wire_input.previous_txid,
        spent_output_index=wire_input.spent_output_index,
        sequence=wire_input.sequence,
        min_time=wire_input.min_time,
        min_height=wire_input.min_height,
        **_common(wire_input, InputFields),
    )


def output_to_strict(wire_output: WireOutput) -> Output:
    """
    Raises:
        MissingAmountError, MissingScriptPubkeyError
    """
    if wire_output.amount is None:
        raise MissingAmountError()
    if wire_output.script_pubkey is None:
        raise MissingScriptPubkeyError()
    return Output(
        amount=wire_output.amount,
        script_pubkey=wire_output.script_pubkey,
        **_common(wire_output, OutputFields),
    )


def input_from_strict(inp: Input) -> WireInput:
    return WireInput(
        previous_txid=inp.previous_txid,
        spent_output_index=inp.spent_output_index,
        sequence=inp.sequence,
        min_time=inp.min_time,
        min_height=inp.min_height,
        **_common(inp, InputFields),
    )


def output_from_strict(out: Output) -> WireOutput:
    return WireOutput(amount=out.amount, script_pubkey=out.script_pubkey, **_common(out, OutputFields))


def input_from_legacy(wire_input: WireInput, txin: TxIn) -> Input:
    """
    Build a strict input from a v0 input map and its unsigned tx input

    Raises:
        HasPreviousTxidError, HasSpentOutputIndexError, HasSequenceError,
        HasMinTimeError, HasMinHeightError
    """
    if wire_input.previous_txid is not None:
        raise HasPreviousTxidError()
    if wire_input.spent_output_index is not None:
        raise HasSpentOutputIndexError()
    if wire_input.sequence is not None:
        raise HasSequenceError()
    if wire_input.min_time is not None:
        raise HasMinTimeError()
    if wire_input.min_height is not None:
        raise HasMinHeightError()
    return Input(
        previous_txid=txin.prevout.txid,
        spent_output_index=txin.prevout.vout,
        sequence=txin.sequence,
        **_common(wire_input, InputFields),
    )


def output_from_legacy(wire_output: WireOutput, txout: TxOut) -> Output:
    """
    Raises:
        HasAmountError, HasScriptPubkeyError
    """
    if wire_output.amount is not None:
        raise HasAmountError()
    if wire_output.script_pubkey is not None:
        raise HasScriptPubkeyError()
    return Output(amount=txout.value, script_pubkey=txout.script_pubkey, **_common(wire_output, OutputFields))


def input_to_legacy(inp: Input) -> WireInput:
    return WireInput(**_common(inp, InputFields))


def output_to_legacy(out: Output) -> WireOutput:
    return WireOutput(**_common(out, OutputFields))

# endregion


def _convert_each(convert, wrap_error, *item_lists):
    """Apply convert per index, wrapping shape errors with the index"""
    result = []
    for index, args in enumerate(zip(*item_lists)):
        try:
            result.append(convert(*args))
        except PsbtError as e:
            raise wrap_error(index, e) from e
    return result


def to_strict(wire: WirePsbt) -> Psbt:
    """
    Convert a v2 wire document to a strict Psbt

    Raises:
        UnsupportedVersionError: If wire is not version 2
        MissingTxVersionError, MissingInputCountError, MissingOutputCountError
        CountMismatchError: If a declared count differs from the number of maps
        InvalidInputError, InvalidOutputError: Wrapping the per-map error
    """
    if wire.version != PSBT_VERSION_2:
        raise UnsupportedVersionError(wire.version)
    if wire.tx_version is None:
        raise MissingTxVersionError()
    if wire.input_count is None:
        raise MissingInputCountError()
    if wire.output_count is None:
        raise MissingOutputCountError()
    if wire.input_count != len(wire.inputs):
        raise CountMismatchError("input", wire.input_count, len(wire.inputs))
    if wire.output_count != len(wire.outputs):
        raise CountMismatchError("output", wire.output_count, len(wire.outputs))

    return Psbt(
        tx_version=wire.tx_version,
        fallback_lock_time=wire.fallback_lock_time,
        tx_modifiable_flags=TxModifiable(wire.tx_modifiable or 0),
        xpubs=copy.deepcopy(wire.xpubs),
        inputs=_convert_each(input_to_strict, InvalidInputError, wire.inputs),
        outputs=_convert_each(output_to_strict, InvalidOutputError, wire.outputs),
        proprietary=dict(wire.proprietary),
        unknown=dict(wire.unknown),
    )


def from_strict(psbt: Psbt) -> WirePsbt:
    """Convert a strict Psbt to a v2 wire document"""
    return WirePsbt(
        version=PSBT_VERSION_2,
        tx_version=psbt.tx_version,
        fallback_lock_time=psbt.fallback_lock_time,
        input_count=psbt.input_count,
        output_count=psbt.output_count,
        # Absent and zero mean the same thing
        tx_modifiable=psbt.tx_modifiable_flags or None,
        xpubs=copy.deepcopy(psbt.xpubs),
        proprietary=dict(psbt.proprietary),
        unknown=dict(psbt.unknown),
        inputs=[input_from_strict(inp) for inp in psbt.inputs],
        outputs=[output_from_strict(out) for out in psbt.outputs],
    )


def from_legacy(wire: WirePsbt) -> Psbt:
    """
    Convert a v0 wire document to a strict Psbt

    Outpoints, sequences and amounts/scripts come from the unsigned
    transaction; its lock time becomes the fallback lock time.

    Raises:
        UnsupportedVersionError: If wire is not version 0
        MissingUnsignedTxError: If PSBT_GLOBAL_UNSIGNED_TX is absent
        HasV2GlobalFieldError: If a v2-only global field is present
        CountMismatchError: If map counts differ from the unsigned tx
        InvalidInputError, InvalidOutputError: Wrapping the per-map error
    """
    if wire.version != PSBT_VERSION_0:
        raise UnsupportedVersionError(wire.version)
    if wire.unsigned_tx is None:
        raise MissingUnsignedTxError()
    for name, value in (
        ("PSBT_GLOBAL_TX_VERSION", wire.tx_version),
        ("PSBT_GLOBAL_FALLBACK_LOCKTIME", wire.fallback_lock_time),
        ("PSBT_GLOBAL_INPUT_COUNT", wire.input_count),
        ("PSBT_GLOBAL_OUTPUT_COUNT", wire.output_count),
        ("PSBT_GLOBAL_TX_MODIFIABLE", wire.tx_modifiable),
    ):
        if value is not None:
            raise HasV2GlobalFieldError(name)

    tx = wire.unsigned_tx
    if len(tx.inputs) != len(wire.inputs):
        raise CountMismatchError("input", len(tx.inputs), len(wire.inputs))
    if len(tx.outputs) != len(wire.outputs):
        raise CountMismatchError("output", len(tx.outputs), len(wire.outputs))

    return Psbt(
        tx_version=tx.version,
        fallback_lock_time=tx.lock_time,
        tx_modifiable_flags=TxModifiable.NONE,
        xpubs=copy.deepcopy(wire.xpubs),
        inputs=_convert_each(input_from_legacy, InvalidInputError, wire.inputs, tx.inputs),
        outputs=_convert_each(output_from_legacy, InvalidOutputError, wire.outputs, tx.outputs),
        proprietary=dict(wire.proprietary),
        unknown=dict(wire.unknown),
    )


def to_legacy(psbt: Psbt) -> WirePsbt:
    """
    Convert a strict Psbt to a v0 wire document

    The lock time is resolved into the unsigned transaction, so per-input
    lock time requirements and the modifiable flags are not carried over.

    Raises:
        DetermineLockTimeError: If the lock time cannot be resolved
    """
    return WirePsbt(
        version=PSBT_VERSION_0,
        unsigned_tx=psbt.unsigned_tx(),
        xpubs=copy.deepcopy(psbt.xpubs),
        proprietary=dict(psbt.proprietary),
        unknown=dict(psbt.unknown),
        inputs=[input_to_legacy(inp) for inp in psbt.inputs],
        outputs=[output_to_legacy(out) for out in psbt.outputs],
    )


def from_wire(wire: WirePsbt) -> Psbt:
    """Convert a wire document of either version to a strict Psbt"""
    if wire.version == PSBT_VERSION_2:
        return to_strict(wire)
    if wire.version == PSBT_VERSION_0:
        return from_legacy(wire)
    raise UnsupportedVersionError(wire.version)
