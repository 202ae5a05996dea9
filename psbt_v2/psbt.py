#!/usr/bin/env python3
"""
PSBT v2 document

Main implementation of the strict PSBT v2 class. Input and output counts are
always the lengths of the input and output lists.
"""

import base64
import binascii
import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .bip32 import KeySource
from .constants import DEFAULT_TX_VERSION, TxModifiable
from .errors import FundingUtxoError, IndexOutOfBoundsError, SerializationError
from .input import Input
from .output import Output
from .tx import Transaction, TxIn, TxOut


@dataclass
class Psbt:
    """
    PSBT v2 with strict inputs and outputs

    Methods organized by concern:
    - Modifiable flags
    - Transaction views: lock time, unsigned tx, id
    - Encoding: binary, base64, hex, JSON, files
    """

    tx_version: int = DEFAULT_TX_VERSION
    # Absent on the wire means 0
    fallback_lock_time: Optional[int] = None
    tx_modifiable_flags: TxModifiable = TxModifiable.NONE
    # 78-byte serialized extended public key -> key source
    xpubs: Dict[bytes, KeySource] = field(default_factory=dict)
    inputs: List[Input] = field(default_factory=list)
    outputs: List[Output] = field(default_factory=list)
    proprietary: Dict[bytes, bytes] = field(default_factory=dict)
    unknown: Dict[bytes, bytes] = field(default_factory=dict)

    @property
    def input_count(self) -> int:
        return len(self.inputs)

    @property
    def output_count(self) -> int:
        return len(self.outputs)

    def copy(self) -> "Psbt":
        return copy.deepcopy(self)

    # ============================================================================
    # region MODIFIABLE FLAGS
    # ============================================================================

    def is_inputs_modifiable(self) -> bool:
        return bool(self.tx_modifiable_flags & TxModifiable.INPUTS)

    def is_outputs_modifiable(self) -> bool:
        return bool(self.tx_modifiable_flags & TxModifiable.OUTPUTS)

    def has_sighash_single(self) -> bool:
        return bool(self.tx_modifiable_flags & TxModifiable.SIGHASH_SINGLE)

    def set_inputs_modifiable(self) -> None:
        self.tx_modifiable_flags |= TxModifiable.INPUTS

    def set_outputs_modifiable(self) -> None:
        self.tx_modifiable_flags |= TxModifiable.OUTPUTS

    def set_sighash_single(self) -> None:
        self.tx_modifiable_flags |= TxModifiable.SIGHASH_SINGLE

    def clear_inputs_modifiable(self) -> None:
        self.tx_modifiable_flags &= ~TxModifiable.INPUTS

    def clear_outputs_modifiable(self) -> None:
        self.tx_modifiable_flags &= ~TxModifiable.OUTPUTS

    # endregion

    # ============================================================================
    # region TRANSACTION VIEWS
    # ============================================================================

    def determine_lock_time(self) -> int:
        """
        Resolve the nLockTime of the transaction

        Raises:
            DetermineLockTimeError: If inputs mix time and height requirements
        """
        from .locktime import determine_lock_time

        return determine_lock_time(self.inputs, self.fallback_lock_time or 0)

    def unsigned_tx(self) -> Transaction:
        """Build the unsigned transaction (empty scriptSigs, no witnesses)"""
        lock_time = self.determine_lock_time()
        return Transaction(
            version=self.tx_version,
            inputs=[TxIn(inp.outpoint, b'', inp.sequence_or_final) for inp in self.inputs],
            outputs=[out.txout for out in self.outputs],
            lock_time=lock_time,
        )

    def id(self) -> bytes:
        """
        Unique identifier of the PSBT (BIP 370)

        The txid of the unsigned transaction with every sequence number set
        to zero, so it does not change when sequences are updated.
        """
        tx = self.unsigned_tx()
        for txin in tx.inputs:
            txin.sequence = 0
        return tx.txid()

    def funding_utxo(self, input_index: int) -> TxOut:
        """
        Funding UTXO of the input at input_index

        Raises:
            IndexOutOfBoundsError: If there is no such input
            FundingUtxoError: Annotated with input_index
        """
        if not 0 <= input_index < len(self.inputs):
            raise IndexOutOfBoundsError("input", input_index, len(self.inputs))
        try:
            return self.inputs[input_index].funding_utxo()
        except FundingUtxoError as e:
            e.input_index = input_index
            raise

    def funding_utxos(self) -> List[TxOut]:
        return [self.funding_utxo(i) for i in range(len(self.inputs))]

    def fee(self) -> int:
        """Sum of funding UTXO values minus sum of output amounts"""
        return sum(utxo.value for utxo in self.funding_utxos()) - sum(out.amount for out in self.outputs)

    def combine_with(self, other: "Psbt") -> "Psbt":
        """Return the combination of this PSBT and other"""
        from .combine import combine

        return combine(self, other)

    # endregion

    # ============================================================================
    # region ENCODING
    # ============================================================================

    def serialize(self) -> bytes:
        """Serialize as PSBT v2 bytes"""
        from .adapter import from_strict
        from .wire import serialize_psbt

        return serialize_psbt(from_strict(self))

    def serialize_v0(self) -> bytes:
        """Serialize as PSBT v0 bytes; requires lock time resolution"""
        from .adapter import to_legacy
        from .wire import serialize_psbt

        return serialize_psbt(to_legacy(self))

    def serialize_hex(self) -> str:
        return self.serialize().hex()

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode()

    @classmethod
    def deserialize(cls, psbt_data: bytes) -> "Psbt":
        """
        Parse a v0 or v2 PSBT into the strict v2 model

        Raises:
            SerializationError: If the bytes are malformed
            UnsupportedVersionError: For versions other than 0 and 2
            InvalidPsbtError: If the document does not have its version's shape
        """
        from .adapter import from_wire
        from .wire import parse_psbt

        return from_wire(parse_psbt(psbt_data))

    @classmethod
    def from_base64(cls, psbt_base64: str) -> "Psbt":
        """
        Create Psbt from base64-encoded PSBT string

        Raises:
            SerializationError: If the string is not valid base64 or PSBT data
        """
        try:
            psbt_data = base64.b64decode(psbt_base64, validate=True)
        except binascii.Error as e:
            raise SerializationError(f"Invalid base64: {e}") from e
        return cls.deserialize(psbt_data)

    @classmethod
    def from_hex(cls, psbt_hex: str) -> "Psbt":
        return cls.deserialize(bytes.fromhex(psbt_hex))

    def to_json(self) -> dict:
        """
        Return a JSON-serializable dict representation of the PSBT

        This is derived from the PSBT and should only be used for human
        inspection, not as a source of truth for programmatic operations.

        Returns:
            dict with 'global', 'inputs', 'outputs' sections
        """
        def hexmap(m: Dict[bytes, bytes]) -> Dict[str, str]:
            return {k.hex(): v.hex() for k, v in m.items()}

        def keysources(m: Dict[bytes, KeySource]) -> Dict[str, str]:
            return {k.hex(): str(v) for k, v in m.items()}

        result = {
            "global": {
                "tx_version": self.tx_version,
                "fallback_lock_time": self.fallback_lock_time,
                "input_count": self.input_count,
                "output_count": self.output_count,
                "tx_modifiable": {
                    "inputs": self.is_inputs_modifiable(),
                    "outputs": self.is_outputs_modifiable(),
                    "sighash_single": self.has_sighash_single(),
                },
                "xpubs": keysources(self.xpubs),
            },
            "inputs": [],
            "outputs": [],
        }

        for inp in self.inputs:
            entry = {
                "previous_txid": inp.previous_txid[::-1].hex(),
                "spent_output_index": inp.spent_output_index,
                "sequence": inp.sequence,
                "min_time": inp.min_time,
                "min_height": inp.min_height,
                "finalized": inp.is_finalized(),
            }
            # Add human-readable values for the fields that are set
            if inp.witness_utxo is not None:
                entry["witness_utxo"] = {
                    "amount": inp.witness_utxo.value,
                    "script_pubkey": inp.witness_utxo.script_pubkey.hex(),
                }
            if inp.non_witness_utxo is not None:
                entry["non_witness_utxo_txid"] = inp.non_witness_utxo.txid_hex()
            if inp.sighash_type is not None:
                entry["sighash_type"] = inp.sighash_type
            if inp.partial_sigs:
                entry["partial_sigs"] = hexmap(inp.partial_sigs)
            if inp.bip32_derivation:
                entry["bip32_derivation"] = keysources(inp.bip32_derivation)
            if inp.final_script_sig is not None:
                entry["final_script_sig"] = inp.final_script_sig.hex()
            if inp.final_script_witness is not None:
                entry["final_script_witness"] = [item.hex() for item in inp.final_script_witness]
            result["inputs"].append(entry)

        for out in self.outputs:
            entry = {"amount": out.amount, "script_pubkey": out.script_pubkey.hex()}
            if out.bip32_derivation:
                entry["bip32_derivation"] = keysources(out.bip32_derivation)
            result["outputs"].append(entry)

        return result

    def save_psbt_to_file(self, filename: str, metadata: Optional[Dict] = None) -> None:
        """
        Save PSBT to JSON file with metadata for multi-party workflows

        Note:
            Delegates to psbt_io.save_psbt_to_file().
        """
        from .psbt_io import save_psbt_to_file as _save_psbt_to_file

        _save_psbt_to_file(self, filename, metadata)

    @classmethod
    def load_psbt_from_file(cls, filename: str) -> Tuple["Psbt", Dict]:
        """Load PSBT and its metadata from a JSON file written by save_psbt_to_file"""
        from .psbt_io import load_psbt_from_file as _load_psbt_from_file

        return _load_psbt_from_file(filename)

    # endregion
