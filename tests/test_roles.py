"""
Tests for the role workflow: Creator, Constructor, Updater, Signer,
Input Finalizer and Extractor.
"""

import hashlib

import pytest

from psbt_v2 import (
    InputsOnlyConstructor,
    KeySource,
    ModifiableConstructor,
    OutputsOnlyConstructor,
    PSBTCreator,
    PSBTExtractor,
    PSBTInputFinalizer,
    PSBTSigner,
    PSBTUpdater,
    Psbt,
    TapLeaf,
    TxModifiable,
    TxOut,
    clear_tx_modifiable,
)
from psbt_v2.constants import (
    SIGHASH_ALL,
    SIGHASH_ANYONECANPAY,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
)
from psbt_v2.errors import (
    DetermineLockTimeError,
    DuplicateInputError,
    ExtractTxError,
    FeeTooHighError,
    FinalizeError,
    FundingUtxoOutOfBoundsError,
    IndexOutOfBoundsError,
    InputsNotModifiableError,
    MissingUtxoError,
    NonStandardInputSighashTypeError,
    NonStandardPartialSigSighashTypeError,
    NonWitnessUtxoMismatchError,
    OutputsNotModifiableError,
    PartialSigsSighashTypeError,
    PsbtNotFinalizedError,
    RoleConsumedError,
    SendingTooMuchError,
    SigningError,
    WrongSighashFlagError,
)
from psbt_v2.tx import hash256

from conftest import (
    PUBKEY,
    PUBKEY_2,
    P2TR_SCRIPT,
    TXID_A,
    TXID_B,
    DummySigner,
    FailingSigner,
    make_input,
    make_output,
    make_prev_tx,
    make_sig,
)

XPUB = bytes([0x04]) + bytes(77)


def signed(psbt: Psbt, sighash_type: int = SIGHASH_ALL) -> Psbt:
    for inp in psbt.inputs:
        inp.partial_sigs[PUBKEY] = make_sig(sighash_type)
    return psbt


def finalized(psbt: Psbt) -> Psbt:
    return PSBTInputFinalizer(signed(psbt)).finalize()


# ============================================================================
# region CREATOR / CONSTRUCTOR
# ============================================================================

class TestCreator:
    """Test the Creator role."""

    def test_defaults(self):
        """Test a bare creator builds an empty v2 document."""
        psbt = PSBTCreator().psbt()
        assert psbt.tx_version == 2
        assert psbt.fallback_lock_time is None
        assert psbt.tx_modifiable_flags == TxModifiable.NONE
        assert psbt.input_count == 0 and psbt.output_count == 0

    def test_setters_chain(self):
        """Test globals set through the chained setters."""
        psbt = (PSBTCreator()
                .fallback_lock_time(800_000)
                .transaction_version(3)
                .sighash_single()
                .outputs_modifiable()
                .psbt())
        assert psbt.fallback_lock_time == 800_000
        assert psbt.tx_version == 3
        assert psbt.tx_modifiable_flags == TxModifiable.OUTPUTS | TxModifiable.SIGHASH_SINGLE

    @pytest.mark.parametrize("method,cls,flags", [
        ("constructor_modifiable", ModifiableConstructor, TxModifiable.INPUTS | TxModifiable.OUTPUTS),
        ("constructor_inputs_only_modifiable", InputsOnlyConstructor, TxModifiable.INPUTS),
        ("constructor_outputs_only_modifiable", OutputsOnlyConstructor, TxModifiable.OUTPUTS),
    ])
    def test_constructor_variants(self, method, cls, flags):
        """Test each transition sets the flags of its constructor variant."""
        constructor = getattr(PSBTCreator(), method)()
        assert isinstance(constructor, cls)
        assert constructor.into_inner().tx_modifiable_flags == flags

    def test_consumed(self):
        """Test the creator cannot be used after the transition."""
        creator = PSBTCreator()
        creator.constructor_modifiable()
        with pytest.raises(RoleConsumedError):
            creator.fallback_lock_time(1)
        with pytest.raises(RoleConsumedError):
            creator.psbt()


class TestConstructor:
    """Test the Constructor role."""

    def test_add_inputs_and_outputs(self):
        """Test inputs and outputs are appended in order."""
        psbt = (ModifiableConstructor()
                .input(make_input(TXID_A, 0))
                .input(make_input(TXID_B, 0))
                .output(make_output())
                .into_inner())
        assert [inp.previous_txid for inp in psbt.inputs] == [TXID_A, TXID_B]
        assert psbt.input_count == 2 and psbt.output_count == 1

    def test_capabilities(self):
        """Test variants only expose the additions their flags allow."""
        assert not hasattr(InputsOnlyConstructor, "output")
        assert not hasattr(OutputsOnlyConstructor, "input")
        assert hasattr(ModifiableConstructor, "input") and hasattr(ModifiableConstructor, "output")

    def test_input_after_no_more_inputs(self):
        """Test clearing the inputs flag blocks further inputs."""
        constructor = ModifiableConstructor().input(make_input(TXID_A, 0)).no_more_inputs()
        with pytest.raises(InputsNotModifiableError) as exc_info:
            constructor.input(make_input(TXID_B, 0))
        assert exc_info.value.psbt.input_count == 1
        constructor.output(make_output())

    def test_output_after_no_more_outputs(self):
        """Test clearing the outputs flag blocks further outputs."""
        constructor = ModifiableConstructor().no_more_outputs()
        with pytest.raises(OutputsNotModifiableError):
            constructor.output(make_output())

    def test_inputs_capable_constructor_needs_flag(self, two_input_psbt):
        """Test an inputs-capable constructor refuses a document without the inputs flag."""
        two_input_psbt.set_outputs_modifiable()
        with pytest.raises(InputsNotModifiableError):
            ModifiableConstructor(two_input_psbt)
        with pytest.raises(InputsNotModifiableError):
            InputsOnlyConstructor.from_psbt(two_input_psbt)
        assert isinstance(OutputsOnlyConstructor(two_input_psbt), OutputsOnlyConstructor)

    def test_outputs_capable_constructor_needs_flag(self, two_input_psbt):
        """Test an outputs-capable constructor refuses a document without the outputs flag."""
        two_input_psbt.set_inputs_modifiable()
        with pytest.raises(OutputsNotModifiableError):
            OutputsOnlyConstructor(two_input_psbt)

    def test_duplicate_outpoint(self):
        """Test the same outpoint cannot be spent twice."""
        constructor = InputsOnlyConstructor().input(make_input(TXID_A, 0))
        with pytest.raises(DuplicateInputError):
            constructor.input(make_input(TXID_A, 0, amount=1))
        constructor.input(make_input(TXID_A, 1))

    def test_updater_clears_flags(self, modifiable_psbt):
        """Test finishing construction freezes inputs and outputs."""
        constructor = ModifiableConstructor(modifiable_psbt)
        updater = constructor.updater()
        assert isinstance(updater, PSBTUpdater)
        psbt = updater.into_inner()
        assert not psbt.is_inputs_modifiable()
        assert not psbt.is_outputs_modifiable()
        with pytest.raises(RoleConsumedError):
            constructor.no_more_inputs()

    def test_updater_lock_time_conflict(self):
        """Test a lock time conflict keeps the constructor usable."""
        constructor = (ModifiableConstructor()
                       .input(make_input(TXID_A, 0, min_time=1_700_000_000))
                       .input(make_input(TXID_B, 0, min_height=800_000)))
        with pytest.raises(DetermineLockTimeError) as exc_info:
            constructor.updater()
        assert exc_info.value.psbt.input_count == 2
        assert exc_info.value.psbt.is_inputs_modifiable()
        constructor.output(make_output())

# endregion


# ============================================================================
# region UPDATER
# ============================================================================

class TestUpdater:
    """Test the Updater role."""

    @pytest.fixture
    def updater(self, two_input_psbt):
        return PSBTUpdater(two_input_psbt)

    def test_lock_time_checked_on_entry(self, two_input_psbt):
        """Test the updater refuses a document with conflicting locks."""
        two_input_psbt.inputs[0] = make_input(TXID_A, 0, min_time=1_700_000_000)
        two_input_psbt.inputs[1] = make_input(TXID_B, 1, min_height=800_000)
        with pytest.raises(DetermineLockTimeError) as exc_info:
            PSBTUpdater(two_input_psbt)
        assert exc_info.value.psbt is two_input_psbt

    def test_id_ignores_sequence(self, updater):
        """Test the PSBT id does not change when a sequence changes."""
        before = updater.id()
        updater.set_sequence(0, 0xfffffffd)
        assert updater.id() == before
        assert updater.into_inner().inputs[0].sequence == 0xfffffffd

    def test_id_changes_with_outputs(self, two_input_psbt):
        """Test the PSBT id commits to the outputs."""
        before = two_input_psbt.id()
        two_input_psbt.outputs[0].amount -= 1
        assert two_input_psbt.id() != before

    def test_index_out_of_bounds(self, updater):
        """Test setters check the index."""
        with pytest.raises(IndexOutOfBoundsError) as exc_info:
            updater.set_sighash_type(2, SIGHASH_ALL)
        assert (exc_info.value.kind, exc_info.value.index, exc_info.value.length) == ("input", 2, 2)
        with pytest.raises(IndexOutOfBoundsError):
            updater.add_output_bip32_derivation(1, PUBKEY, KeySource(bytes(4), ()))

    def test_scripts_and_utxos(self, updater):
        """Test per-input data setters."""
        utxo = TxOut(1234, P2TR_SCRIPT)
        psbt = (updater
                .set_witness_utxo(1, utxo)
                .set_sighash_type(1, SIGHASH_ALL | SIGHASH_ANYONECANPAY)
                .set_redeem_script(0, b'\x00\x14' + bytes(20))
                .set_witness_script(0, b'\x51')
                .into_inner())
        assert psbt.inputs[1].witness_utxo == utxo
        assert psbt.inputs[1].sighash_type == 0x81
        assert psbt.inputs[0].witness_script == b'\x51'

    def test_non_witness_utxo(self):
        """Test the previous transaction must match the outpoint."""
        prev_tx = make_prev_tx()
        updater = PSBTUpdater(Psbt(inputs=[make_input(prev_tx.txid(), 0, witness_utxo=None)]))
        updater.set_non_witness_utxo(0, prev_tx)
        with pytest.raises(NonWitnessUtxoMismatchError):
            updater.set_non_witness_utxo(0, make_prev_tx(amount=1))
        assert updater.into_inner().inputs[0].funding_utxo() == prev_tx.outputs[0]

    def test_bip32_derivations_sorted(self, updater):
        """Test derivation maps stay in key order."""
        ks = KeySource.from_string("d34db33f", "m/84'/0'/0'/0/0")
        updater.add_input_bip32_derivation(0, PUBKEY_2, ks)
        updater.add_input_bip32_derivation(0, PUBKEY, ks)
        updater.add_output_bip32_derivation(0, PUBKEY, ks)
        psbt = updater.into_inner()
        assert list(psbt.inputs[0].bip32_derivation) == [PUBKEY, PUBKEY_2]
        assert psbt.outputs[0].bip32_derivation[PUBKEY].path_string() == "m/84'/0'/0'/0/0"

    def test_preimages(self, updater):
        """Test preimages are stored under their digest."""
        updater.add_preimage(0, b'secret', 'sha256')
        updater.add_preimage(0, b'secret', 'hash256')
        with pytest.raises(ValueError):
            updater.add_preimage(0, b'secret', 'md5')
        inp = updater.into_inner().inputs[0]
        assert inp.sha256_preimages == {hashlib.sha256(b'secret').digest(): b'secret'}
        assert inp.hash256_preimages == {hash256(b'secret'): b'secret'}

    def test_taproot_fields(self, updater):
        """Test taproot setters validate key sizes."""
        xonly = PUBKEY[1:]
        leaves = [TapLeaf(0, 0xc0, b'\x51')]
        updater.set_tap_internal_key(0, xonly).set_tap_merkle_root(0, bytes(32))
        updater.add_tap_leaf_script(0, bytes([0xc0]) + xonly, b'\x51')
        updater.set_output_tap_internal_key(0, xonly).set_output_tap_tree(0, leaves)
        with pytest.raises(ValueError):
            updater.set_tap_internal_key(0, PUBKEY)
        psbt = updater.into_inner()
        assert psbt.inputs[0].tap_scripts == {bytes([0xc0]) + xonly: (b'\x51', 0xc0)}
        assert psbt.outputs[0].tap_tree == tuple(leaves)

    def test_add_xpub(self, updater):
        """Test global xpubs need the 78-byte serialization."""
        ks = KeySource(bytes.fromhex("d34db33f"), (0x80000054,))
        updater.add_xpub(XPUB, ks)
        with pytest.raises(ValueError):
            updater.add_xpub(b'\x04' * 10, ks)
        assert updater.into_inner().xpubs == {XPUB: ks}

    def test_signer_transition(self, updater):
        """Test handing over to the signer consumes the updater."""
        assert isinstance(updater.signer(), PSBTSigner)
        with pytest.raises(RoleConsumedError):
            updater.id()

# endregion


# ============================================================================
# region SIGNER
# ============================================================================

class TestClearTxModifiable:
    """Test flag updates after signing with each sighash type."""

    @pytest.mark.parametrize("sighash_type,expected", [
        (SIGHASH_ALL, TxModifiable.NONE),
        (SIGHASH_NONE, TxModifiable.OUTPUTS),
        (SIGHASH_SINGLE, TxModifiable.SIGHASH_SINGLE),
        (SIGHASH_ALL | SIGHASH_ANYONECANPAY, TxModifiable.INPUTS),
        (SIGHASH_NONE | SIGHASH_ANYONECANPAY, TxModifiable.INPUTS | TxModifiable.OUTPUTS),
        (SIGHASH_SINGLE | SIGHASH_ANYONECANPAY, TxModifiable.INPUTS | TxModifiable.SIGHASH_SINGLE),
    ])
    def test_flags(self, modifiable_psbt, sighash_type, expected):
        """Test the resulting flags."""
        clear_tx_modifiable(modifiable_psbt, sighash_type)
        assert modifiable_psbt.tx_modifiable_flags == expected


class TestSigner:
    """Test the Signer role."""

    def test_sign_all_inputs(self, two_input_psbt):
        """Test every input gets the backend's signature."""
        backend = DummySigner()
        psbt, signing_keys = PSBTSigner(two_input_psbt).sign(backend)
        assert backend.calls == [0, 1]
        assert signing_keys == {0: [PUBKEY], 1: [PUBKEY]}
        assert all(inp.partial_sigs == {PUBKEY: make_sig()} for inp in psbt.inputs)
        assert not two_input_psbt.inputs[0].partial_sigs

    def test_sign_clears_flags(self, modifiable_psbt):
        """Test signing with the input sighash updates the flags."""
        for inp in modifiable_psbt.inputs:
            inp.sighash_type = SIGHASH_ALL | SIGHASH_ANYONECANPAY
        psbt, _ = PSBTSigner(modifiable_psbt).sign(DummySigner(sighash_type=0x81))
        assert psbt.tx_modifiable_flags == TxModifiable.INPUTS

    def test_sign_default_sighash_all(self, modifiable_psbt):
        """Test inputs without sighash type sign as ALL."""
        psbt, _ = PSBTSigner(modifiable_psbt).sign(DummySigner())
        assert psbt.tx_modifiable_flags == TxModifiable.NONE

    def test_signer_consumed(self, two_input_psbt):
        """Test a successful sign hands the PSBT over."""
        signer = PSBTSigner(two_input_psbt)
        signer.sign(DummySigner())
        with pytest.raises(RoleConsumedError):
            signer.unsigned_tx()

    def test_skip_finalized_inputs(self, two_input_psbt):
        """Test finalized inputs are not offered to the backend."""
        two_input_psbt.inputs[0].final_script_witness = [make_sig(), PUBKEY]
        backend = DummySigner()
        _, signing_keys = PSBTSigner(two_input_psbt).sign(backend)
        assert backend.calls == [1]
        assert signing_keys == {1: [PUBKEY]}

    def test_skip_already_signed_inputs(self, two_input_psbt):
        """Test inputs holding a signature of their sighash type are not offered."""
        two_input_psbt.inputs[0].partial_sigs[PUBKEY_2] = make_sig()
        backend = DummySigner()
        psbt, signing_keys = PSBTSigner(two_input_psbt).sign(backend)
        assert backend.calls == [1]
        assert signing_keys == {1: [PUBKEY]}
        assert psbt.inputs[0].partial_sigs == {PUBKEY_2: make_sig()}

    def test_other_sighash_signature_does_not_satisfy(self, two_input_psbt):
        """Test a signature with another sighash type leaves the input to sign."""
        two_input_psbt.inputs[0].partial_sigs[PUBKEY_2] = make_sig(SIGHASH_NONE)
        backend = DummySigner()
        PSBTSigner(two_input_psbt).sign(backend)
        assert backend.calls == [0, 1]

    def test_empty_result_is_not_signed(self, modifiable_psbt):
        """Test inputs the backend has no key for leave the flags alone."""
        class NoKeys:
            def sign_input(self, unsigned_tx, psbt, input_index):
                return {}

        psbt, signing_keys = PSBTSigner(modifiable_psbt).sign(NoKeys())
        assert signing_keys == {}
        assert psbt.is_inputs_modifiable() and psbt.is_outputs_modifiable()

    def test_signing_error(self, two_input_psbt):
        """Test a failing input reports errors and keeps the other signatures."""
        signer = PSBTSigner(two_input_psbt)
        with pytest.raises(SigningError) as exc_info:
            signer.sign(FailingSigner(fail_on=[1]))
        error = exc_info.value
        assert error.signing_keys == {0: [PUBKEY]}
        assert set(error.errors) == {1}
        assert isinstance(error.errors[1], RuntimeError)
        assert error.psbt.inputs[0].partial_sigs == {PUBKEY: make_sig()}
        assert not error.psbt.inputs[1].partial_sigs
        # The signer still holds the unsigned document
        assert not signer.into_inner().inputs[0].partial_sigs

    def test_backend_sees_unsigned_tx(self, two_input_psbt):
        """Test the backend gets the transaction being signed."""
        seen = []

        class Recorder:
            def sign_input(self, unsigned_tx, psbt, input_index):
                seen.append(unsigned_tx.txid())
                return {}

        signer = PSBTSigner(two_input_psbt)
        expected = signer.unsigned_tx().txid()
        signer.sign(Recorder())
        assert seen == [expected, expected]

# endregion


# ============================================================================
# region INPUT FINALIZER
# ============================================================================

class TestInputFinalizer:
    """Test the Input Finalizer role."""

    def test_missing_utxo(self, two_input_psbt):
        """Test entry fails when an input has no funding UTXO."""
        two_input_psbt.inputs[1].witness_utxo = None
        with pytest.raises(MissingUtxoError) as exc_info:
            PSBTInputFinalizer(two_input_psbt)
        assert exc_info.value.input_index == 1
        assert exc_info.value.psbt is two_input_psbt

    def test_missing_utxo_on_signed_input(self, two_input_psbt):
        """Test a signed input without funding UTXO still blocks entry."""
        two_input_psbt.inputs[0].partial_sigs[PUBKEY] = make_sig()
        two_input_psbt.inputs[0].witness_utxo = None
        with pytest.raises(MissingUtxoError) as exc_info:
            PSBTInputFinalizer(two_input_psbt)
        assert exc_info.value.input_index == 0

    def test_non_witness_utxo_out_of_bounds(self):
        """Test the spent output must exist in the previous transaction."""
        prev_tx = make_prev_tx()
        psbt = Psbt(inputs=[make_input(prev_tx.txid(), 5, witness_utxo=None, non_witness_utxo=prev_tx)])
        with pytest.raises(FundingUtxoOutOfBoundsError) as exc_info:
            PSBTInputFinalizer(psbt)
        assert (exc_info.value.index, exc_info.value.length) == (5, 1)

    def test_lock_time_conflict(self):
        """Test entry fails on a lock time conflict."""
        psbt = Psbt(inputs=[make_input(TXID_A, 0, min_time=1_700_000_000),
                            make_input(TXID_B, 0, min_height=800_000)])
        with pytest.raises(DetermineLockTimeError):
            PSBTInputFinalizer(psbt)

    def test_non_standard_input_sighash(self, two_input_psbt):
        """Test a non-standard input sighash type is rejected."""
        two_input_psbt.inputs[0].sighash_type = 0x04
        with pytest.raises(NonStandardInputSighashTypeError) as exc_info:
            PSBTInputFinalizer(two_input_psbt)
        assert exc_info.value.sighash_type == 0x04

    def test_non_standard_partial_sig(self, two_input_psbt):
        """Test a partial signature with a non-standard sighash byte is rejected."""
        two_input_psbt.inputs[1].partial_sigs[PUBKEY] = make_sig(0x05)
        with pytest.raises(NonStandardPartialSigSighashTypeError) as exc_info:
            PSBTInputFinalizer(two_input_psbt)
        assert exc_info.value.input_index == 1

    def test_wrong_sighash_flag(self, two_input_psbt):
        """Test a partial signature must use its input's sighash type."""
        two_input_psbt.inputs[0].sighash_type = SIGHASH_SINGLE
        two_input_psbt.inputs[0].partial_sigs[PUBKEY] = make_sig(SIGHASH_ALL)
        with pytest.raises(WrongSighashFlagError) as exc_info:
            PSBTInputFinalizer(two_input_psbt)
        assert (exc_info.value.required, exc_info.value.got) == (SIGHASH_SINGLE, SIGHASH_ALL)
        assert isinstance(exc_info.value, PartialSigsSighashTypeError)

    def test_finalize_p2wpkh(self, two_input_psbt):
        """Test P2WPKH inputs get a witness and lose their signing data."""
        signed(two_input_psbt)
        two_input_psbt.inputs[0].bip32_derivation[PUBKEY] = KeySource(bytes(4), (1,))
        two_input_psbt.inputs[0].unknown[b'\x30'] = b'\x01'
        psbt = PSBTInputFinalizer(two_input_psbt).finalize()
        inp = psbt.inputs[0]
        assert inp.final_script_witness == [make_sig(), PUBKEY]
        assert inp.final_script_sig is None
        assert inp.partial_sigs == {}
        assert inp.bip32_derivation == {}
        assert inp.unknown == {b'\x30': b'\x01'}
        assert inp.witness_utxo is not None
        assert all(i.is_finalized() for i in psbt.inputs)

    def test_finalize_p2pkh(self):
        """Test legacy inputs get a scriptSig and no witness."""
        prev_tx = make_prev_tx()
        psbt = signed(Psbt(
            inputs=[make_input(prev_tx.txid(), 0, witness_utxo=None, non_witness_utxo=prev_tx)],
            outputs=[make_output()],
        ))
        inp = PSBTInputFinalizer(psbt).finalize().inputs[0]
        sig = make_sig()
        assert inp.final_script_sig == bytes([len(sig)]) + sig + bytes([len(PUBKEY)]) + PUBKEY
        assert inp.final_script_witness is None
        assert inp.is_finalized()

    def test_finalize_p2pkh_with_both_utxos(self):
        """Test a legacy input that also carries a witness UTXO is finalized by its scriptSig."""
        prev_tx = make_prev_tx()
        psbt = signed(Psbt(
            inputs=[make_input(prev_tx.txid(), 0, witness_utxo=prev_tx.outputs[0], non_witness_utxo=prev_tx)],
            outputs=[make_output()],
        ))
        final = PSBTInputFinalizer(psbt).finalize()
        inp = final.inputs[0]
        assert inp.final_script_witness is None
        assert inp.is_finalized()
        tx = PSBTExtractor(final).extract_tx_unchecked_fee_rate()
        assert tx.inputs[0].script_sig == inp.final_script_sig
        assert tx.inputs[0].witness == []

    def test_script_sig_alone_does_not_finalize_segwit(self, two_input_psbt):
        """Test a witness program spend needs a final witness."""
        inp = two_input_psbt.inputs[0]
        inp.final_script_sig = bytes([0x00])
        assert not inp.is_finalized()
        inp.final_script_witness = [make_sig(), PUBKEY]
        assert inp.is_finalized()

    def test_finalize_p2sh_p2wpkh(self):
        """Test wrapped segwit inputs get both scriptSig and witness."""
        redeem_script = bytes.fromhex("0014") + bytes([0x77] * 20)
        p2sh = bytes.fromhex("a914") + bytes([0x88] * 20) + bytes.fromhex("87")
        psbt = signed(Psbt(inputs=[make_input(witness_utxo=TxOut(100_000, p2sh),
                                              redeem_script=redeem_script)]))
        inp = PSBTInputFinalizer(psbt).finalize().inputs[0]
        assert inp.final_script_sig == bytes([len(redeem_script)]) + redeem_script
        assert inp.final_script_witness == [make_sig(), PUBKEY]
        assert inp.redeem_script is None

    def test_finalize_taproot_key_path(self):
        """Test key path spends use the taproot key signature."""
        psbt = Psbt(inputs=[make_input(witness_utxo=TxOut(100_000, P2TR_SCRIPT), tap_key_sig=bytes(64))])
        inp = PSBTInputFinalizer(psbt).finalize().inputs[0]
        assert inp.final_script_witness == [bytes(64)]
        assert inp.tap_key_sig is None

    def test_finalize_error_keeps_finalizer(self, two_input_psbt):
        """Test an input without signature fails and leaves everything untouched."""
        two_input_psbt.inputs[0].partial_sigs[PUBKEY] = make_sig()
        finalizer = PSBTInputFinalizer(two_input_psbt)
        with pytest.raises(FinalizeError) as exc_info:
            finalizer.finalize()
        assert set(exc_info.value.errors) == {1}
        assert isinstance(exc_info.value.errors[1], ValueError)
        assert not exc_info.value.psbt.inputs[0].is_finalized()
        assert finalizer.id() == two_input_psbt.id()

    def test_backend_exception_is_wrapped(self, two_input_psbt):
        """Test any exception from the backend becomes a per-input error."""
        class Unplugged:
            def finalize_input(self, inp, funding_utxo):
                raise KeyError("device")

        finalizer = PSBTInputFinalizer(signed(two_input_psbt))
        with pytest.raises(FinalizeError) as exc_info:
            finalizer.finalize(Unplugged())
        assert set(exc_info.value.errors) == {0, 1}
        assert isinstance(exc_info.value.errors[0], KeyError)
        assert not exc_info.value.psbt.inputs[0].is_finalized()
        assert finalizer.id() == two_input_psbt.id()

    def test_custom_backend(self, two_input_psbt):
        """Test a finalization backend replaces the script templates."""
        class Always:
            def finalize_input(self, inp, funding_utxo):
                return b'', [b'\x01']

        psbt = PSBTInputFinalizer(two_input_psbt).finalize(Always())
        assert [inp.final_script_witness for inp in psbt.inputs] == [[b'\x01'], [b'\x01']]

# endregion


# ============================================================================
# region EXTRACTOR
# ============================================================================

class TestExtractor:
    """Test the Transaction Extractor role."""

    def test_requires_finalized(self, two_input_psbt):
        """Test every input must be finalized."""
        with pytest.raises(PsbtNotFinalizedError) as exc_info:
            PSBTExtractor(two_input_psbt)
        assert exc_info.value.input_index == 0

    def test_extract(self, two_input_psbt):
        """Test the network transaction carries witnesses and resolved fields."""
        two_input_psbt.fallback_lock_time = 850_000
        two_input_psbt.inputs[1].sequence = 0xfffffffd
        tx = PSBTExtractor(finalized(two_input_psbt)).extract_tx()
        assert tx.lock_time == 850_000
        assert [txin.sequence for txin in tx.inputs] == [0xffffffff, 0xfffffffd]
        assert tx.inputs[0].witness == [make_sig(), PUBKEY]
        assert tx.inputs[0].prevout.txid == TXID_A
        assert tx.outputs[0].value == 140_000
        assert tx.txid() == two_input_psbt.unsigned_tx().txid()

    def test_fee_rate_limit(self, two_input_psbt):
        """Test a fee rate above the limit is refused."""
        extractor = PSBTExtractor(finalized(two_input_psbt))
        with pytest.raises(FeeTooHighError) as exc_info:
            extractor.extract_tx_with_fee_rate_limit(1.0)
        assert exc_info.value.fee_rate > 1.0
        assert exc_info.value.psbt is not None
        assert extractor.extract_tx_with_fee_rate_limit(1000.0).outputs[0].value == 140_000

    def test_unchecked_fee_rate(self):
        """Test extraction without fee check accepts any fee."""
        psbt = Psbt(inputs=[make_input(amount=100_000_000)], outputs=[make_output(1_000)])
        extractor = PSBTExtractor(finalized(psbt))
        with pytest.raises(FeeTooHighError):
            extractor.extract_tx()
        assert extractor.extract_tx_unchecked_fee_rate().outputs[0].value == 1_000

    def test_backend_exception_is_wrapped(self, two_input_psbt):
        """Test a failing extraction backend surfaces as ExtractTxError."""
        class Offline:
            def extract(self, wire, max_fee_rate):
                raise RuntimeError("node offline")

        extractor = PSBTExtractor(finalized(two_input_psbt), backend=Offline())
        with pytest.raises(ExtractTxError) as exc_info:
            extractor.extract_tx()
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.psbt is not None

    def test_sending_too_much(self, two_input_psbt):
        """Test outputs larger than inputs are refused."""
        two_input_psbt.outputs[0].amount = 200_000
        with pytest.raises(SendingTooMuchError):
            PSBTExtractor(finalized(two_input_psbt)).extract_tx()

# endregion


class TestFullWorkflow:
    """Test a document through every role."""

    def test_creator_to_extractor(self):
        """Test the happy path from Creator to Extractor."""
        constructor = PSBTCreator().fallback_lock_time(800_000).constructor_modifiable()
        constructor.input(make_input(TXID_A, 0)).output(make_output())
        updater = constructor.updater()
        updater.set_sequence(0, 0xfffffffd)
        psbt_id = updater.id()

        psbt, signing_keys = updater.signer().sign(DummySigner())
        assert signing_keys == {0: [PUBKEY]}
        assert psbt.id() == psbt_id

        psbt = PSBTInputFinalizer(psbt).finalize()
        tx = PSBTExtractor(psbt).extract_tx()
        assert tx.lock_time == 800_000
        assert tx.inputs[0].witness == [make_sig(), PUBKEY]
        assert psbt.fee() == 10_000

    def test_combine_signatures_from_two_signers(self, two_input_psbt):
        """Test separately signed copies combine into one finalizable PSBT."""
        class SignsOne(DummySigner):
            def __init__(self, index):
                super().__init__()
                self.index = index

            def sign_input(self, unsigned_tx, psbt, input_index):
                if input_index != self.index:
                    return {}
                return super().sign_input(unsigned_tx, psbt, input_index)

        alice, _ = PSBTSigner(two_input_psbt.copy()).sign(SignsOne(0))
        bob, _ = PSBTSigner(two_input_psbt.copy()).sign(SignsOne(1))
        combined = alice.combine_with(bob)
        assert combined == bob.combine_with(alice)
        psbt = PSBTInputFinalizer(combined).finalize()
        assert PSBTExtractor(psbt).extract_tx_unchecked_fee_rate().inputs[1].witness == [make_sig(), PUBKEY]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
