#!/usr/bin/env python3
"""
BIP 174/370 PSBT Role-Based Classes

Implements the distinct roles defined in the Bitcoin PSBT specifications:
- Creator: Creates the initial PSBT v2 globals
- Constructor: Adds inputs and outputs while the modifiable flags allow it
- Updater: Adds UTXOs, scripts, derivation paths and other signing data
- Signer: Collects signatures from a signing backend
- Input Finalizer: Builds final scriptSigs and witnesses
- Extractor: Extracts the network transaction from a finalized PSBT

Each role owns one PSBT. Moving to the next role hands the PSBT over and
the previous role object can no longer be used (RoleConsumedError). Entry
checks run before any state changes; a failed check raises an error that
carries the PSBT in ``error.psbt`` and leaves the role usable.
"""

import copy
import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from .adapter import to_legacy
from .bip32 import KeySource
from .constants import (
    DEFAULT_MAX_FEE_RATE,
    SIGHASH_ALL,
    SIGHASH_ANYONECANPAY,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
    STANDARD_ECDSA_SIGHASH_TYPES,
    TxModifiable,
)
from .errors import (
    DetermineLockTimeError,
    DuplicateInputError,
    ExtractTxError,
    FinalizeError,
    FundingUtxoError,
    IndexOutOfBoundsError,
    InputsNotModifiableError,
    NonStandardInputSighashTypeError,
    NonStandardPartialSigSighashTypeError,
    NonWitnessUtxoMismatchError,
    OutputsNotModifiableError,
    PsbtError,
    PsbtNotFinalizedError,
    RoleConsumedError,
    SigningError,
    WrongSighashFlagError,
)
from .extract import TransactionExtractor
from .finalize import ScriptFinalizer
from .input import Input
from .output import Output
from .protocols import ExtractionBackend, FinalizationBackend, SigningBackend
from .psbt import Psbt
from .psbt_utils import hash160
from .taproot import TapLeaf
from .tx import Transaction, TxOut, hash256

logger = logging.getLogger(__name__)

TAPSCRIPT_LEAF_VERSION = 0xc0


class _Role:
    """Holds the PSBT until it is handed to the next role"""

    def __init__(self, psbt: Psbt):
        self._psbt: Optional[Psbt] = psbt

    @property
    def _doc(self) -> Psbt:
        if self._psbt is None:
            raise RoleConsumedError(f"{type(self).__name__} has already handed on its PSBT")
        return self._psbt

    def _take(self) -> Psbt:
        psbt = self._doc
        self._psbt = None
        return psbt

    def _check_lock_time(self, psbt: Psbt) -> int:
        try:
            return psbt.determine_lock_time()
        except DetermineLockTimeError as e:
            e.psbt = psbt
            raise

    def _checked_input(self, input_index: int) -> Input:
        psbt = self._doc
        if not 0 <= input_index < len(psbt.inputs):
            raise IndexOutOfBoundsError("input", input_index, len(psbt.inputs), psbt)
        return psbt.inputs[input_index]

    def _checked_output(self, output_index: int) -> Output:
        psbt = self._doc
        if not 0 <= output_index < len(psbt.outputs):
            raise IndexOutOfBoundsError("output", output_index, len(psbt.outputs), psbt)
        return psbt.outputs[output_index]


# ============================================================================
# region CREATOR
# ============================================================================

class PSBTCreator(_Role):
    """
    Creator Role: Initializes PSBT v2 globals

    Setters return the creator so calls can be chained:

        constructor = PSBTCreator().fallback_lock_time(800_000).constructor_modifiable()
    """

    def __init__(self):
        super().__init__(Psbt())

    def fallback_lock_time(self, fallback: int) -> "PSBTCreator":
        self._doc.fallback_lock_time = fallback
        return self

    def sighash_single(self) -> "PSBTCreator":
        self._doc.set_sighash_single()
        return self

    def inputs_modifiable(self) -> "PSBTCreator":
        self._doc.set_inputs_modifiable()
        return self

    def outputs_modifiable(self) -> "PSBTCreator":
        self._doc.set_outputs_modifiable()
        return self

    def transaction_version(self, version: int) -> "PSBTCreator":
        self._doc.tx_version = version
        return self

    def constructor_modifiable(self) -> "ModifiableConstructor":
        psbt = self._take()
        psbt.set_inputs_modifiable()
        psbt.set_outputs_modifiable()
        return ModifiableConstructor._unchecked(psbt)

    def constructor_inputs_only_modifiable(self) -> "InputsOnlyConstructor":
        psbt = self._take()
        psbt.set_inputs_modifiable()
        psbt.clear_outputs_modifiable()
        return InputsOnlyConstructor._unchecked(psbt)

    def constructor_outputs_only_modifiable(self) -> "OutputsOnlyConstructor":
        psbt = self._take()
        psbt.clear_inputs_modifiable()
        psbt.set_outputs_modifiable()
        return OutputsOnlyConstructor._unchecked(psbt)

    def psbt(self) -> Psbt:
        """Hand over the PSBT without a constructor"""
        return self._take()

# endregion


# ============================================================================
# region CONSTRUCTOR
# ============================================================================

class PSBTConstructor(_Role):
    """
    Constructor Role: Adds transaction inputs and outputs to PSBT

    Use one of the capability variants: ModifiableConstructor,
    InputsOnlyConstructor or OutputsOnlyConstructor. Only the variants that
    may add inputs have input(), and likewise for outputs.
    """

    # Flags a PSBT must have for this variant
    REQUIRED_FLAGS = TxModifiable.NONE
    # PSBTCreator method that builds a fresh PSBT for this variant
    CREATOR_METHOD = ""

    def __init__(self, psbt: Optional[Psbt] = None):
        """
        Args:
            psbt: Existing PSBT to continue constructing; a fresh one from
                PSBTCreator when omitted

        Raises:
            InputsNotModifiableError, OutputsNotModifiableError: If a flag this
                variant needs is not set
        """
        if psbt is None:
            psbt = getattr(PSBTCreator(), self.CREATOR_METHOD)()._take()
        self._check_modifiable(psbt)
        super().__init__(psbt)

    @classmethod
    def from_psbt(cls, psbt: Psbt) -> "PSBTConstructor":
        return cls(psbt)

    @classmethod
    def _unchecked(cls, psbt: Psbt) -> "PSBTConstructor":
        constructor = cls.__new__(cls)
        _Role.__init__(constructor, psbt)
        return constructor

    @classmethod
    def _check_modifiable(cls, psbt: Psbt) -> None:
        if cls.REQUIRED_FLAGS & TxModifiable.INPUTS and not psbt.is_inputs_modifiable():
            raise InputsNotModifiableError(psbt)
        if cls.REQUIRED_FLAGS & TxModifiable.OUTPUTS and not psbt.is_outputs_modifiable():
            raise OutputsNotModifiableError(psbt)

    def no_more_inputs(self) -> "PSBTConstructor":
        """Clear the inputs modifiable flag; cannot be undone"""
        self._doc.clear_inputs_modifiable()
        return self

    def no_more_outputs(self) -> "PSBTConstructor":
        """Clear the outputs modifiable flag; cannot be undone"""
        self._doc.clear_outputs_modifiable()
        return self

    def updater(self) -> "PSBTUpdater":
        """
        Finish construction: clear both modifiable flags and hand over

        Raises:
            DetermineLockTimeError: If the inputs' lock time requirements
                conflict; the constructor stays usable
        """
        self._check_lock_time(self._doc)
        psbt = self._take()
        psbt.clear_inputs_modifiable()
        psbt.clear_outputs_modifiable()
        logger.debug("Construction finished with %d inputs and %d outputs",
                     psbt.input_count, psbt.output_count)
        return PSBTUpdater(psbt)

    def into_inner(self) -> Psbt:
        """
        Hand over the PSBT, flags unchanged

        Raises:
            DetermineLockTimeError: If the lock time cannot be resolved
        """
        self._check_lock_time(self._doc)
        return self._take()


class _AddsInputs:

    def input(self, inp: Input) -> "PSBTConstructor":
        """
        Append an input

        Raises:
            InputsNotModifiableError: If no_more_inputs() was called
            DuplicateInputError: If the outpoint is already spent by this PSBT
        """
        psbt = self._doc
        if not psbt.is_inputs_modifiable():
            raise InputsNotModifiableError(psbt)
        if any(existing.outpoint == inp.outpoint for existing in psbt.inputs):
            raise DuplicateInputError(inp.previous_txid, inp.spent_output_index, psbt)
        psbt.inputs.append(inp)
        logger.debug("Added input %d spending %s", psbt.input_count - 1, inp.outpoint)
        return self


class _AddsOutputs:

    def output(self, out: Output) -> "PSBTConstructor":
        """
        Append an output

        Raises:
            OutputsNotModifiableError: If no_more_outputs() was called
        """
        psbt = self._doc
        if not psbt.is_outputs_modifiable():
            raise OutputsNotModifiableError(psbt)
        psbt.outputs.append(out)
        logger.debug("Added output %d paying %d sat", psbt.output_count - 1, out.amount)
        return self


class ModifiableConstructor(_AddsInputs, _AddsOutputs, PSBTConstructor):
    REQUIRED_FLAGS = TxModifiable.INPUTS | TxModifiable.OUTPUTS
    CREATOR_METHOD = "constructor_modifiable"


class InputsOnlyConstructor(_AddsInputs, PSBTConstructor):
    REQUIRED_FLAGS = TxModifiable.INPUTS
    CREATOR_METHOD = "constructor_inputs_only_modifiable"


class OutputsOnlyConstructor(_AddsOutputs, PSBTConstructor):
    REQUIRED_FLAGS = TxModifiable.OUTPUTS
    CREATOR_METHOD = "constructor_outputs_only_modifiable"

# endregion


# ============================================================================
# region UPDATER
# ============================================================================

class PSBTUpdater(_Role):
    """
    Updater Role: Adds the data signers and finalizers need

    Setters take the input/output index first and return the updater.
    """

    def __init__(self, psbt: Psbt):
        """
        Raises:
            DetermineLockTimeError: If the lock time cannot be resolved
        """
        self._check_lock_time(psbt)
        super().__init__(psbt)

    def id(self) -> bytes:
        return self._doc.id()

    def set_sequence(self, input_index: int, sequence: int) -> "PSBTUpdater":
        self._checked_input(input_index).sequence = sequence
        return self

    def set_sighash_type(self, input_index: int, sighash_type: int) -> "PSBTUpdater":
        self._checked_input(input_index).sighash_type = sighash_type
        return self

    def set_witness_utxo(self, input_index: int, utxo: TxOut) -> "PSBTUpdater":
        self._checked_input(input_index).witness_utxo = utxo
        return self

    def set_non_witness_utxo(self, input_index: int, tx: Transaction) -> "PSBTUpdater":
        """
        Raises:
            NonWitnessUtxoMismatchError: If tx is not the transaction the input spends from
        """
        inp = self._checked_input(input_index)
        txid = tx.txid()
        if txid != inp.previous_txid:
            raise NonWitnessUtxoMismatchError(input_index, inp.previous_txid, txid, self._doc)
        inp.non_witness_utxo = tx
        return self

    def set_redeem_script(self, input_index: int, script: bytes) -> "PSBTUpdater":
        self._checked_input(input_index).redeem_script = script
        return self

    def set_witness_script(self, input_index: int, script: bytes) -> "PSBTUpdater":
        self._checked_input(input_index).witness_script = script
        return self

    def add_input_bip32_derivation(self, input_index: int, pubkey: bytes, key_source: KeySource) -> "PSBTUpdater":
        """
        Add BIP32 derivation path for an input public key

        Hardware wallets use this to find the key that signs the input.
        """
        inp = self._checked_input(input_index)
        inp.bip32_derivation[pubkey] = key_source
        inp.bip32_derivation = dict(sorted(inp.bip32_derivation.items()))
        return self

    def add_output_bip32_derivation(self, output_index: int, pubkey: bytes, key_source: KeySource) -> "PSBTUpdater":
        """Add BIP32 derivation path for an output public key (change detection)"""
        out = self._checked_output(output_index)
        out.bip32_derivation[pubkey] = key_source
        out.bip32_derivation = dict(sorted(out.bip32_derivation.items()))
        return self

    def add_preimage(self, input_index: int, preimage: bytes, hash_type: str) -> "PSBTUpdater":
        """
        Add a hash preimage

        Args:
            input_index: Input the preimage belongs to
            preimage: The preimage
            hash_type: One of 'sha256', 'hash256', 'ripemd160', 'hash160'
        """
        inp = self._checked_input(input_index)
        if hash_type == 'sha256':
            inp.sha256_preimages[hashlib.sha256(preimage).digest()] = preimage
        elif hash_type == 'hash256':
            inp.hash256_preimages[hash256(preimage)] = preimage
        elif hash_type == 'ripemd160':
            inp.ripemd160_preimages[hashlib.new('ripemd160', preimage).digest()] = preimage
        elif hash_type == 'hash160':
            inp.hash160_preimages[hash160(preimage)] = preimage
        else:
            raise ValueError(f"Unknown hash type: {hash_type}")
        return self

    def set_tap_internal_key(self, input_index: int, xonly_pubkey: bytes) -> "PSBTUpdater":
        if len(xonly_pubkey) != 32:
            raise ValueError("Taproot internal key must be 32 bytes")
        self._checked_input(input_index).tap_internal_key = xonly_pubkey
        return self

    def set_tap_merkle_root(self, input_index: int, merkle_root: bytes) -> "PSBTUpdater":
        if len(merkle_root) != 32:
            raise ValueError("Taproot merkle root must be 32 bytes")
        self._checked_input(input_index).tap_merkle_root = merkle_root
        return self

    def add_tap_leaf_script(self, input_index: int, control_block: bytes, script: bytes,
                            leaf_version: int = TAPSCRIPT_LEAF_VERSION) -> "PSBTUpdater":
        self._checked_input(input_index).tap_scripts[control_block] = (script, leaf_version)
        return self

    def set_output_tap_internal_key(self, output_index: int, xonly_pubkey: bytes) -> "PSBTUpdater":
        if len(xonly_pubkey) != 32:
            raise ValueError("Taproot internal key must be 32 bytes")
        self._checked_output(output_index).tap_internal_key = xonly_pubkey
        return self

    def set_output_tap_tree(self, output_index: int, leaves: List[TapLeaf]) -> "PSBTUpdater":
        self._checked_output(output_index).tap_tree = tuple(leaves)
        return self

    def add_xpub(self, xpub: bytes, key_source: KeySource) -> "PSBTUpdater":
        """Add a global extended public key (78-byte serialization)"""
        if len(xpub) != 78:
            raise ValueError(f"Serialized xpub must be 78 bytes, got {len(xpub)}")
        psbt = self._doc
        psbt.xpubs[xpub] = key_source
        psbt.xpubs = dict(sorted(psbt.xpubs.items()))
        return self

    def signer(self) -> "PSBTSigner":
        return PSBTSigner(self._take())

    def into_inner(self) -> Psbt:
        return self._take()

# endregion


# ============================================================================
# region SIGNER
# ============================================================================

def clear_tx_modifiable(psbt: Psbt, sighash_type: int) -> None:
    """
    Update the modifiable flags after signing with sighash_type (BIP 370)

    - without ANYONECANPAY the inputs can no longer change
    - unless NONE the outputs can no longer change
    - SINGLE marks the PSBT as containing SIGHASH_SINGLE signatures
    """
    if not sighash_type & SIGHASH_ANYONECANPAY:
        psbt.clear_inputs_modifiable()
    if sighash_type & 0x03 != SIGHASH_NONE:
        psbt.clear_outputs_modifiable()
    if sighash_type & 0x03 == SIGHASH_SINGLE:
        psbt.set_sighash_single()


class PSBTSigner(_Role):
    """
    Signer Role: Adds signatures from a signing backend

    The backend does the cryptography; the signer decides which inputs to
    offer, stores the signatures and keeps the modifiable flags consistent
    with the sighash types used.
    """

    def __init__(self, psbt: Psbt):
        """
        Raises:
            DetermineLockTimeError: If the lock time cannot be resolved
        """
        self._check_lock_time(psbt)
        super().__init__(psbt)

    def id(self) -> bytes:
        return self._doc.id()

    def unsigned_tx(self) -> Transaction:
        return self._doc.unsigned_tx()

    def clear_tx_modifiable(self, sighash_type: int) -> "PSBTSigner":
        clear_tx_modifiable(self._doc, sighash_type)
        return self

    @staticmethod
    def _has_satisfying_signature(inp: Input) -> bool:
        if inp.tap_key_sig is not None:
            return True
        target = SIGHASH_ALL if inp.sighash_type is None else inp.sighash_type
        return any(sig and sig[-1] == target for sig in inp.partial_sigs.values())

    def sign(self, backend: SigningBackend) -> Tuple[Psbt, Dict[int, List[bytes]]]:
        """
        Sign every input that is neither finalized nor already signed

        An input counts as signed once it holds a taproot key signature or a
        partial signature with the sighash type the input asks for.

        Args:
            backend: Signing backend

        Returns:
            Tuple of (signed PSBT, map of input index to the pubkeys that signed it)

        Raises:
            SigningError: If the backend failed on any input. The error holds
                the PSBT with the signatures that did succeed; this signer
                keeps the unsigned PSBT and can be retried.
        """
        psbt = copy.deepcopy(self._doc)
        tx = psbt.unsigned_tx()
        signing_keys: Dict[int, List[bytes]] = {}
        errors: Dict[int, Exception] = {}

        for index, inp in enumerate(psbt.inputs):
            if inp.is_finalized() or self._has_satisfying_signature(inp):
                continue
            try:
                sigs = backend.sign_input(tx, psbt, index)
            except Exception as e:  # raised below as SigningError
                logger.debug("Signing input %d failed: %s", index, e)
                errors[index] = e
                continue
            if not sigs:
                continue
            inp.partial_sigs.update(sigs)
            inp.partial_sigs = dict(sorted(inp.partial_sigs.items()))
            signing_keys[index] = sorted(sigs)
            clear_tx_modifiable(psbt, inp.sighash_type if inp.sighash_type is not None else SIGHASH_ALL)
            logger.debug("Signed input %d with %d key(s)", index, len(sigs))

        if errors:
            raise SigningError(signing_keys, errors, psbt)

        self._take()
        return psbt, signing_keys

    def into_inner(self) -> Psbt:
        return self._take()

# endregion


# ============================================================================
# region INPUT FINALIZER
# ============================================================================

class PSBTInputFinalizer(_Role):
    """
    Input Finalizer Role: Builds final scriptSigs and witnesses

    Entry requires every input's funding UTXO, a resolvable lock time and
    partial signatures whose sighash flags agree with their input.
    """

    def __init__(self, psbt: Psbt):
        """
        Raises:
            FundingUtxoError: If an input has no usable UTXO
            DetermineLockTimeError: If the lock time cannot be resolved
            PartialSigsSighashTypeError: If a partial signature's sighash
                flag is non-standard or differs from its input's
        """
        for index in range(len(psbt.inputs)):
            try:
                psbt.funding_utxo(index)
            except FundingUtxoError as e:
                e.psbt = psbt
                raise
        self._check_lock_time(psbt)
        self._check_partial_sigs_sighash_type(psbt)
        super().__init__(psbt)

    @staticmethod
    def _check_partial_sigs_sighash_type(psbt: Psbt) -> None:
        for index, inp in enumerate(psbt.inputs):
            target = SIGHASH_ALL if inp.sighash_type is None else inp.sighash_type
            if target not in STANDARD_ECDSA_SIGHASH_TYPES:
                raise NonStandardInputSighashTypeError(index, target, psbt)

            for pubkey, sig in inp.partial_sigs.items():
                flag = sig[-1] if sig else 0
                if flag not in STANDARD_ECDSA_SIGHASH_TYPES:
                    raise NonStandardPartialSigSighashTypeError(index, pubkey, flag, psbt)
                if flag != target:
                    raise WrongSighashFlagError(index, target, flag, pubkey, psbt)

    def id(self) -> bytes:
        return self._doc.id()

    @staticmethod
    def _clear_signing_data(inp: Input, script_sig: bytes, witness: List[bytes]) -> Input:
        """
        Finalized input: UTXOs, outpoint, sequence, lock time requirements,
        proprietary and unknown entries stay; everything used to build the
        final scripts is removed.
        """
        return Input(
            previous_txid=inp.previous_txid,
            spent_output_index=inp.spent_output_index,
            sequence=inp.sequence,
            min_time=inp.min_time,
            min_height=inp.min_height,
            non_witness_utxo=inp.non_witness_utxo,
            witness_utxo=inp.witness_utxo,
            final_script_sig=script_sig if script_sig or not witness else None,
            final_script_witness=witness or None,
            proprietary=inp.proprietary,
            unknown=inp.unknown,
        )

    def finalize(self, backend: Optional[FinalizationBackend] = None) -> Psbt:
        """
        Finalize every input that is not finalized yet

        Args:
            backend: Builds scriptSig/witness per input; ScriptFinalizer by default

        Returns:
            The finalized PSBT

        Raises:
            FinalizeError: If any input fails, with the per-input errors; the
                PSBT is untouched and this finalizer stays usable
        """
        if backend is None:
            backend = ScriptFinalizer()

        psbt = copy.deepcopy(self._doc)
        finalized: Dict[int, Input] = {}
        errors: Dict[int, Exception] = {}
        for index, inp in enumerate(psbt.inputs):
            if inp.is_finalized():
                continue
            try:
                script_sig, witness = backend.finalize_input(inp, psbt.funding_utxo(index))
            except Exception as e:  # raised below as FinalizeError
                logger.debug("Finalizing input %d failed: %s", index, e)
                errors[index] = e
                continue
            finalized[index] = self._clear_signing_data(inp, script_sig, witness)

        if errors:
            raise FinalizeError(errors, self._doc)

        for index, inp in finalized.items():
            psbt.inputs[index] = inp
            logger.debug("Finalized input %d", index)
        self._take()
        return psbt

    def into_inner(self) -> Psbt:
        return self._take()

# endregion


# ============================================================================
# region EXTRACTOR
# ============================================================================

class PSBTExtractor(_Role):
    """
    Transaction Extractor Role: Extracts the network transaction

    Extraction goes through the v0 form of the PSBT, which carries the
    unsigned transaction with its resolved lock time.
    """

    def __init__(self, psbt: Psbt, backend: Optional[ExtractionBackend] = None):
        """
        Raises:
            PsbtNotFinalizedError: If any input is not finalized
            DetermineLockTimeError: If the lock time cannot be resolved
        """
        for index, inp in enumerate(psbt.inputs):
            if not inp.is_finalized():
                raise PsbtNotFinalizedError(index, psbt)
        self._check_lock_time(psbt)
        super().__init__(psbt)
        self._backend = backend if backend is not None else TransactionExtractor()

    def id(self) -> bytes:
        return self._doc.id()

    def _extract(self, max_fee_rate: Optional[float]) -> Transaction:
        try:
            tx = self._backend.extract(to_legacy(self._doc), max_fee_rate)
        except PsbtError as e:
            e.psbt = self._doc
            raise
        except Exception as e:
            raise ExtractTxError(f"extraction backend failed: {e}", self._doc) from e
        logger.info("Extracted transaction %s", tx.txid_hex())
        return tx

    def extract_tx(self) -> Transaction:
        """Extract with the default fee rate limit"""
        return self._extract(DEFAULT_MAX_FEE_RATE)

    def extract_tx_with_fee_rate_limit(self, max_fee_rate: float) -> Transaction:
        """
        Raises:
            FeeTooHighError: If the fee rate exceeds max_fee_rate sat/vB
        """
        return self._extract(max_fee_rate)

    def extract_tx_unchecked_fee_rate(self) -> Transaction:
        return self._extract(None)

    def into_inner(self) -> Psbt:
        return self._take()

# endregion
