#!/usr/bin/env python3
"""
PSBT v2 Exceptions

Every error raised by the package derives from PsbtError. Errors raised by a
role carry the document they were given in ``psbt`` so a caller can recover
it after a failed transition.
"""

from typing import Dict, List, Optional


class PsbtError(Exception):
    """Base class for all PSBT errors"""

    def __init__(self, message: str = "", psbt=None):
        super().__init__(message)
        self.psbt = psbt


# ============================================================================
# region SHAPE VALIDATION
# ============================================================================

class SerializationError(PsbtError):
    """Malformed wire data"""


class UnsupportedVersionError(PsbtError):
    """PSBT_GLOBAL_VERSION other than 0 or 2"""

    def __init__(self, version: int):
        super().__init__(f"Unsupported PSBT version: {version}")
        self.version = version


class InvalidPsbtError(PsbtError):
    """A wire document does not have the shape its version requires"""


class MissingTxVersionError(InvalidPsbtError):
    def __init__(self):
        super().__init__("PSBT v2 requires PSBT_GLOBAL_TX_VERSION")


class MissingInputCountError(InvalidPsbtError):
    def __init__(self):
        super().__init__("PSBT v2 requires PSBT_GLOBAL_INPUT_COUNT")


class MissingOutputCountError(InvalidPsbtError):
    def __init__(self):
        super().__init__("PSBT v2 requires PSBT_GLOBAL_OUTPUT_COUNT")


class MissingUnsignedTxError(InvalidPsbtError):
    def __init__(self):
        super().__init__("PSBT v0 requires PSBT_GLOBAL_UNSIGNED_TX")


class HasV2GlobalFieldError(InvalidPsbtError):
    """A v0 document carries a global field that only exists in v2"""

    def __init__(self, field: str):
        super().__init__(f"PSBT v0 must not carry {field}")
        self.field = field


class CountMismatchError(InvalidPsbtError):
    """Declared input/output count differs from the number of maps"""

    def __init__(self, kind: str, declared: int, actual: int):
        super().__init__(f"{kind} count {declared} does not match {actual} {kind} maps")
        self.kind = kind
        self.declared = declared
        self.actual = actual


class InvalidFieldValueError(InvalidPsbtError, ValueError):
    """A field is present but its value is out of range or the wrong size"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidInputError(InvalidPsbtError):
    """Wraps the shape error of a single input"""

    def __init__(self, index: int, error: PsbtError):
        super().__init__(f"Invalid input {index}: {error}")
        self.index = index
        self.error = error


class InvalidOutputError(InvalidPsbtError):
    """Wraps the shape error of a single output"""

    def __init__(self, index: int, error: PsbtError):
        super().__init__(f"Invalid output {index}: {error}")
        self.index = index
        self.error = error


class MissingPreviousTxidError(InvalidPsbtError):
    def __init__(self):
        super().__init__("input is missing PSBT_IN_PREVIOUS_TXID")


class MissingSpentOutputIndexError(InvalidPsbtError):
    def __init__(self):
        super().__init__("input is missing PSBT_IN_OUTPUT_INDEX")


class MissingAmountError(InvalidPsbtError):
    def __init__(self):
        super().__init__("output is missing PSBT_OUT_AMOUNT")


class MissingScriptPubkeyError(InvalidPsbtError):
    def __init__(self):
        super().__init__("output is missing PSBT_OUT_SCRIPT")


class HasPreviousTxidError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 input must not carry PSBT_IN_PREVIOUS_TXID")


class HasSpentOutputIndexError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 input must not carry PSBT_IN_OUTPUT_INDEX")


class HasSequenceError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 input must not carry PSBT_IN_SEQUENCE")


class HasMinTimeError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 input must not carry PSBT_IN_REQUIRED_TIME_LOCKTIME")


class HasMinHeightError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 input must not carry PSBT_IN_REQUIRED_HEIGHT_LOCKTIME")


class HasAmountError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 output must not carry PSBT_OUT_AMOUNT")


class HasScriptPubkeyError(InvalidPsbtError):
    def __init__(self):
        super().__init__("v0 output must not carry PSBT_OUT_SCRIPT")

# endregion


# ============================================================================
# region WORKFLOW PRECONDITIONS
# ============================================================================

class RoleConsumedError(PsbtError):
    """A role object was used after handing its document to the next role"""


class PsbtNotModifiableError(PsbtError):
    """A required PSBT_GLOBAL_TX_MODIFIABLE bit is not set"""


class InputsNotModifiableError(PsbtNotModifiableError):
    def __init__(self, psbt=None):
        super().__init__("PSBT inputs are not modifiable", psbt)


class OutputsNotModifiableError(PsbtNotModifiableError):
    def __init__(self, psbt=None):
        super().__init__("PSBT outputs are not modifiable", psbt)


class DetermineLockTimeError(PsbtError):
    """Inputs require both a time based and a height based lock time"""

    def __init__(self, psbt=None):
        super().__init__(
            "unable to determine lock time: inputs mix time and height based locks",
            psbt,
        )


class FundingUtxoError(PsbtError):
    """The funding UTXO of an input cannot be determined"""

    input_index: Optional[int] = None


class MissingUtxoError(FundingUtxoError):
    def __init__(self, input_index: Optional[int] = None, psbt=None):
        where = f"input {input_index}" if input_index is not None else "input"
        super().__init__(f"{where} has neither a witness nor a non-witness UTXO", psbt)
        self.input_index = input_index


class FundingUtxoOutOfBoundsError(FundingUtxoError):
    def __init__(self, index: int, length: int, input_index: Optional[int] = None, psbt=None):
        super().__init__(
            f"spent output index {index} out of bounds for non-witness UTXO with {length} outputs",
            psbt,
        )
        self.index = index
        self.length = length
        self.input_index = input_index


class PsbtNotFinalizedError(PsbtError):
    def __init__(self, input_index: int, psbt=None):
        super().__init__(f"input {input_index} is not finalized", psbt)
        self.input_index = input_index


class IndexOutOfBoundsError(PsbtError):
    def __init__(self, kind: str, index: int, length: int, psbt=None):
        super().__init__(f"{kind} index {index} out of bounds (length {length})", psbt)
        self.kind = kind
        self.index = index
        self.length = length


class DuplicateInputError(PsbtError):
    def __init__(self, txid: bytes, vout: int, psbt=None):
        super().__init__(f"outpoint {txid[::-1].hex()}:{vout} is already spent by this PSBT", psbt)
        self.txid = txid
        self.vout = vout


class NonWitnessUtxoMismatchError(PsbtError):
    def __init__(self, input_index: int, expected: bytes, got: bytes, psbt=None):
        super().__init__(
            f"non-witness UTXO for input {input_index} has txid {got[::-1].hex()}, "
            f"expected {expected[::-1].hex()}",
            psbt,
        )
        self.input_index = input_index
        self.expected = expected
        self.got = got

# endregion


# ============================================================================
# region COMBINER
# ============================================================================

class CombineError(PsbtError):
    """Two documents cannot be merged"""


class CombineMismatchError(CombineError):
    """A field that identifies the transaction differs between the documents"""

    field = "field"

    def __init__(self, this, that, index: Optional[int] = None):
        where = f" at index {index}" if index is not None else ""
        super().__init__(f"{self.field} mismatch{where}: {this!r} != {that!r}")
        self.this = this
        self.that = that
        self.index = index


class TxVersionMismatchError(CombineMismatchError):
    field = "tx_version"


class InputCountMismatchError(CombineMismatchError):
    field = "input_count"


class OutputCountMismatchError(CombineMismatchError):
    field = "output_count"


class PreviousTxidMismatchError(CombineMismatchError):
    field = "previous_txid"


class SpentOutputIndexMismatchError(CombineMismatchError):
    field = "spent_output_index"


class AmountMismatchError(CombineMismatchError):
    field = "amount"


class ScriptPubkeyMismatchError(CombineMismatchError):
    field = "script_pubkey"


class InconsistentKeySourcesError(CombineError):
    """Same xpub with conflicting key sources"""

    def __init__(self, xpub: bytes):
        super().__init__(f"inconsistent key sources for xpub {xpub.hex()}")
        self.xpub = xpub

# endregion


# ============================================================================
# region SIGHASH POLICY
# ============================================================================

class PartialSigsSighashTypeError(PsbtError):
    """Partial signatures disagree with the sighash type of their input"""


class NonStandardInputSighashTypeError(PartialSigsSighashTypeError):
    def __init__(self, input_index: int, sighash_type: int, psbt=None):
        super().__init__(
            f"input {input_index} has non-standard sighash type {sighash_type:#x}", psbt
        )
        self.input_index = input_index
        self.sighash_type = sighash_type


class NonStandardPartialSigSighashTypeError(PartialSigsSighashTypeError):
    def __init__(self, input_index: int, pubkey: bytes, sighash_type: int, psbt=None):
        super().__init__(
            f"partial signature for {pubkey.hex()} on input {input_index} "
            f"has non-standard sighash type {sighash_type:#x}",
            psbt,
        )
        self.input_index = input_index
        self.pubkey = pubkey
        self.sighash_type = sighash_type


class WrongSighashFlagError(PartialSigsSighashTypeError):
    def __init__(self, input_index: int, required: int, got: int, pubkey: bytes, psbt=None):
        super().__init__(
            f"partial signature for {pubkey.hex()} on input {input_index} "
            f"uses sighash {got:#x}, input requires {required:#x}",
            psbt,
        )
        self.input_index = input_index
        self.required = required
        self.got = got
        self.pubkey = pubkey

# endregion


# ============================================================================
# region COLLABORATOR FAILURES
# ============================================================================

class SigningError(PsbtError):
    """
    One or more inputs failed to sign

    Signatures produced for the other inputs are already persisted in ``psbt``.
    """

    def __init__(self, signing_keys: Dict[int, List[bytes]], errors: Dict[int, Exception], psbt=None):
        failed = ", ".join(str(i) for i in sorted(errors))
        super().__init__(f"signing failed for inputs {failed}", psbt)
        self.signing_keys = signing_keys
        self.errors = errors


class FinalizeError(PsbtError):
    """One or more inputs could not be finalized; ``psbt`` is untouched"""

    def __init__(self, errors: Dict[int, Exception], psbt=None):
        failed = ", ".join(str(i) for i in sorted(errors))
        super().__init__(f"finalization failed for inputs {failed}", psbt)
        self.errors = errors


class ExtractTxError(PsbtError):
    """Transaction extraction failed"""


class FeeTooHighError(ExtractTxError):
    def __init__(self, fee_rate: float, max_fee_rate: float, psbt=None):
        super().__init__(
            f"fee rate {fee_rate:.2f} sat/vB exceeds maximum {max_fee_rate} sat/vB", psbt
        )
        self.fee_rate = fee_rate
        self.max_fee_rate = max_fee_rate


class SendingTooMuchError(ExtractTxError):
    def __init__(self, input_total: int, output_total: int, psbt=None):
        super().__init__(
            f"outputs ({output_total} sat) exceed inputs ({input_total} sat)", psbt
        )
        self.input_total = input_total
        self.output_total = output_total

# endregion
