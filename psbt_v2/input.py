#!/usr/bin/env python3
"""
PSBT v2 Input

Strict per-input map: the outpoint being spent is always present.
"""

from dataclasses import dataclass, fields as dataclass_fields
from typing import Dict, Optional

from .constants import LOCK_TIME_THRESHOLD, SEQUENCE_FINAL
from .errors import FundingUtxoError, FundingUtxoOutOfBoundsError, InvalidFieldValueError, MissingUtxoError
from .psbt_utils import is_witness_program
from .tx import OutPoint, TxOut
from .wire import InputFields


def merge_maps(this: Dict, that: Dict) -> Dict:
    """Union of two maps, keeping this' value on duplicate keys, ordered by key"""
    merged = dict(that)
    merged.update(this)
    return dict(sorted(merged.items()))


@dataclass(kw_only=True)
class Input(InputFields):
    previous_txid: bytes
    spent_output_index: int
    sequence: Optional[int] = None
    min_time: Optional[int] = None
    min_height: Optional[int] = None

    def __post_init__(self):
        if len(self.previous_txid) != 32:
            raise InvalidFieldValueError("previous_txid", f"must be 32 bytes, got {len(self.previous_txid)}")
        if self.min_time is not None and self.min_time < LOCK_TIME_THRESHOLD:
            raise InvalidFieldValueError("min_time", f"{self.min_time} is below the lock time threshold")
        if self.min_height is not None and self.min_height >= LOCK_TIME_THRESHOLD:
            raise InvalidFieldValueError("min_height", f"{self.min_height} is not a block height")

    @classmethod
    def from_outpoint(cls, outpoint: OutPoint, **kwargs) -> "Input":
        return cls(previous_txid=outpoint.txid, spent_output_index=outpoint.vout, **kwargs)

    @property
    def outpoint(self) -> OutPoint:
        return OutPoint(self.previous_txid, self.spent_output_index)

    @property
    def sequence_or_final(self) -> int:
        """Sequence number, absent means final"""
        return SEQUENCE_FINAL if self.sequence is None else self.sequence

    # ============================================================================
    # region LOCK TIME PREDICATES
    # ============================================================================

    def has_lock_time(self) -> bool:
        return self.min_time is not None or self.min_height is not None

    def requires_time_based_lock_time(self) -> bool:
        """Only a time based lock time satisfies this input"""
        return self.min_time is not None and self.min_height is None

    def requires_height_based_lock_time(self) -> bool:
        """Only a height based lock time satisfies this input"""
        return self.min_height is not None and self.min_time is None

    def is_satisfied_with_height_based_lock_time(self) -> bool:
        """
        True if a height based lock time works for this input

        That is the case when it requires one, accepts either kind, or has no
        lock time requirement at all.
        """
        return (
            self.requires_height_based_lock_time()
            or (self.min_time is not None and self.min_height is not None)
            or not self.has_lock_time()
        )

    # endregion

    def funding_utxo(self) -> TxOut:
        """
        The output this input spends

        Prefers the witness UTXO and falls back to the spent output of the
        non-witness UTXO.

        Raises:
            FundingUtxoOutOfBoundsError: If spent_output_index is past the end
                of the non-witness UTXO outputs
            MissingUtxoError: If neither UTXO field is set
        """
        if self.witness_utxo is not None:
            return self.witness_utxo
        if self.non_witness_utxo is not None:
            outputs = self.non_witness_utxo.outputs
            if self.spent_output_index >= len(outputs):
                raise FundingUtxoOutOfBoundsError(self.spent_output_index, len(outputs))
            return outputs[self.spent_output_index]
        raise MissingUtxoError()

    def is_finalized(self) -> bool:
        """
        A finalized input has a final witness, or a final scriptSig alone
        when the output it spends is not a witness program.

        The funding script decides, not which UTXO field is present: a
        legacy spend may carry a witness UTXO as well.
        """
        if self.final_script_witness:
            return True
        if self.final_script_sig is None:
            return False
        try:
            spent = self.funding_utxo()
        except FundingUtxoError:
            return True
        return not is_witness_program(spent.script_pubkey)

    def combine(self, other: "Input") -> "Input":
        """
        Merge two views of the same input

        Optional values already set here are kept, maps are unioned with
        entries from self winning. The caller checks that both inputs spend
        the same outpoint.
        """
        values = {}
        for f in dataclass_fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(other, f.name)
            if isinstance(mine, dict):
                values[f.name] = merge_maps(mine, theirs)
            elif mine is not None:
                values[f.name] = mine
            else:
                values[f.name] = theirs
        return Input(**values)
