"""
Shared fixtures for the psbt_v2 test suite.

Keys and signatures are placeholders (DO NOT use in production); the roles
never verify signatures, they only move them around.
"""

from typing import Dict

import pytest

from psbt_v2 import Input, Output, Psbt, Transaction, TxIn, TxOut, OutPoint
from psbt_v2.constants import SIGHASH_ALL

TXID_A = bytes(range(32))
TXID_B = bytes([0xbb] * 32)

PUBKEY = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
PUBKEY_2 = bytes.fromhex("02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5")

P2WPKH_SCRIPT = bytes.fromhex("0014") + bytes(20)
P2WPKH_CHANGE_SCRIPT = bytes.fromhex("0014") + bytes([0x11] * 20)
P2PKH_SCRIPT = bytes.fromhex("76a914") + bytes([0x22] * 20) + bytes.fromhex("88ac")
P2TR_SCRIPT = bytes.fromhex("5120") + bytes([0x33] * 32)


def make_sig(sighash_type: int = SIGHASH_ALL) -> bytes:
    """Placeholder DER signature with the sighash byte appended"""
    return bytes.fromhex("3044") + bytes([0x44] * 68) + bytes([sighash_type])


def make_input(txid: bytes = TXID_A, vout: int = 0, amount: int = 100_000, **kwargs) -> Input:
    """P2WPKH input with its witness UTXO"""
    kwargs.setdefault("witness_utxo", TxOut(amount, P2WPKH_SCRIPT))
    return Input(previous_txid=txid, spent_output_index=vout, **kwargs)


def make_output(amount: int = 90_000, script: bytes = P2WPKH_CHANGE_SCRIPT, **kwargs) -> Output:
    return Output(amount=amount, script_pubkey=script, **kwargs)


def make_prev_tx(script_pubkey: bytes = P2PKH_SCRIPT, amount: int = 100_000) -> Transaction:
    """Transaction that can serve as a non-witness UTXO"""
    return Transaction(
        version=2,
        inputs=[TxIn(OutPoint(TXID_B, 3))],
        outputs=[TxOut(amount, script_pubkey)],
        lock_time=0,
    )


class DummySigner:
    """Signs every input it is offered with one fixed key"""

    def __init__(self, pubkey: bytes = PUBKEY, sighash_type: int = SIGHASH_ALL):
        self.pubkey = pubkey
        self.sighash_type = sighash_type
        self.calls = []

    def sign_input(self, unsigned_tx: Transaction, psbt: Psbt, input_index: int) -> Dict[bytes, bytes]:
        self.calls.append(input_index)
        return {self.pubkey: make_sig(self.sighash_type)}


class FailingSigner(DummySigner):
    """Raises on the configured input indices"""

    def __init__(self, fail_on, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = set(fail_on)

    def sign_input(self, unsigned_tx: Transaction, psbt: Psbt, input_index: int) -> Dict[bytes, bytes]:
        if input_index in self.fail_on:
            raise RuntimeError(f"device refused input {input_index}")
        return super().sign_input(unsigned_tx, psbt, input_index)


@pytest.fixture
def two_input_psbt():
    """PSBT v2 with two P2WPKH inputs and one output, no modifiable flags"""
    return Psbt(
        inputs=[make_input(TXID_A, 0), make_input(TXID_B, 1, amount=50_000)],
        outputs=[make_output(140_000)],
    )


@pytest.fixture
def modifiable_psbt(two_input_psbt):
    two_input_psbt.set_inputs_modifiable()
    two_input_psbt.set_outputs_modifiable()
    return two_input_psbt
