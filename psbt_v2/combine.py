#!/usr/bin/env python3
"""
PSBT Combiner (BIP 174)

Merges two PSBTs describing the same transaction. Neither argument is
modified, and for compatible documents the result does not depend on the
argument order.
"""

import copy
import logging
from typing import Dict, Optional

from .bip32 import KeySource
from .constants import TxModifiable
from .errors import (
    AmountMismatchError,
    InconsistentKeySourcesError,
    InputCountMismatchError,
    OutputCountMismatchError,
    PreviousTxidMismatchError,
    ScriptPubkeyMismatchError,
    SpentOutputIndexMismatchError,
    TxVersionMismatchError,
)
from .input import merge_maps
from .psbt import Psbt

logger = logging.getLogger(__name__)


def _check_compatible(a: Psbt, b: Psbt) -> None:
    if a.tx_version != b.tx_version:
        raise TxVersionMismatchError(a.tx_version, b.tx_version)
    if a.input_count != b.input_count:
        raise InputCountMismatchError(a.input_count, b.input_count)
    if a.output_count != b.output_count:
        raise OutputCountMismatchError(a.output_count, b.output_count)

    for index, (this, that) in enumerate(zip(a.inputs, b.inputs)):
        if this.previous_txid != that.previous_txid:
            raise PreviousTxidMismatchError(this.previous_txid.hex(), that.previous_txid.hex(), index)
        if this.spent_output_index != that.spent_output_index:
            raise SpentOutputIndexMismatchError(this.spent_output_index, that.spent_output_index, index)

    for index, (this, that) in enumerate(zip(a.outputs, b.outputs)):
        if this.amount != that.amount:
            raise AmountMismatchError(this.amount, that.amount, index)
        if this.script_pubkey != that.script_pubkey:
            raise ScriptPubkeyMismatchError(this.script_pubkey.hex(), that.script_pubkey.hex(), index)


def _is_contained(short: tuple, long: tuple) -> bool:
    """short appears at the end or at the start of long"""
    return long[len(long) - len(short):] == short or long[:len(short)] == short


def merge_key_source(xpub: bytes, this: KeySource, that: KeySource) -> KeySource:
    """
    Pick one key source for an xpub present in both documents

    1) if everything is equal keep it
    2) if the paths differ in length and the shorter one is contained in the
       longer one, keep the longer one (it carries more origin information)
    3) anything else is a conflict

    Raises:
        InconsistentKeySourcesError: On a conflict
    """
    if this == that:
        return this
    if len(this.path) != len(that.path):
        shorter, longer = sorted((this, that), key=lambda ks: len(ks.path))
        if _is_contained(shorter.path, longer.path):
            return longer
    raise InconsistentKeySourcesError(xpub)


def merge_xpubs(a: Dict[bytes, KeySource], b: Dict[bytes, KeySource]) -> Dict[bytes, KeySource]:
    merged = dict(a)
    for xpub, source in b.items():
        merged[xpub] = merge_key_source(xpub, a[xpub], source) if xpub in a else source
    return dict(sorted(merged.items()))


def _merge_fallback(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _merge_flags(a: TxModifiable, b: TxModifiable) -> TxModifiable:
    """A bit that either party cleared stays cleared; SIGHASH_SINGLE sticks once set"""
    modifiable = TxModifiable.INPUTS | TxModifiable.OUTPUTS
    return TxModifiable((a & b & modifiable) | ((a | b) & TxModifiable.SIGHASH_SINGLE))


def combine(a: Psbt, b: Psbt) -> Psbt:
    """
    Combine two PSBTs for the same transaction

    Args:
        a: First PSBT; its values win when both set an optional field
        b: Second PSBT

    Returns:
        New Psbt holding the union of both

    Raises:
        CombineMismatchError: If tx version, counts, outpoints, amounts or
            scripts differ (subclass names the field)
        InconsistentKeySourcesError: If the same xpub has conflicting origins
    """
    _check_compatible(a, b)
    a, b = copy.deepcopy(a), copy.deepcopy(b)

    combined = Psbt(
        tx_version=a.tx_version,
        fallback_lock_time=_merge_fallback(a.fallback_lock_time, b.fallback_lock_time),
        tx_modifiable_flags=_merge_flags(a.tx_modifiable_flags, b.tx_modifiable_flags),
        xpubs=merge_xpubs(a.xpubs, b.xpubs),
        inputs=[this.combine(that) for this, that in zip(a.inputs, b.inputs)],
        outputs=[this.combine(that) for this, that in zip(a.outputs, b.outputs)],
        proprietary=merge_maps(a.proprietary, b.proprietary),
        unknown=merge_maps(a.unknown, b.unknown),
    )
    logger.debug("Combined PSBTs with %d inputs and %d outputs",
                 combined.input_count, combined.output_count)
    return combined
