#!/usr/bin/env python3
"""
Multi-Party PSBT v2 Workflow

Three parties fund one transaction, each playing part of the BIP 370 roles:

- Alice: CREATOR + CONSTRUCTOR (input 0 and the payment output)
- Bob: CONSTRUCTOR (input 1 and his change output), then UPDATER
- Alice and Bob: SIGNER, each on a separate copy
- Coordinator: COMBINER + INPUT FINALIZER + EXTRACTOR

Each step hands the PSBT on through a JSON file in ./output, the way the
parties would exchange it over the wire.

The signing backend below returns placeholder signatures: the roles never
verify signatures, so the workflow runs end to end, but the extracted
transaction is not valid on-chain.
"""

import logging
import os
import sys
from typing import Dict

# Add parent directories to path for psbt_v2 imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
from psbt_v2 import (
    Input,
    KeySource,
    ModifiableConstructor,
    Output,
    PSBTCreator,
    PSBTExtractor,
    PSBTInputFinalizer,
    PSBTSigner,
    Psbt,
    Transaction,
    TxOut,
    load_psbt_from_file,
    save_psbt_to_file,
)
from psbt_v2.errors import PsbtError

logger = logging.getLogger("separate_roles")

OUTPUT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "output")

ALICE_PUBKEY = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
BOB_PUBKEY = bytes.fromhex("02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5")

ALICE_SCRIPT = bytes.fromhex("0014") + bytes([0xa1] * 20)
BOB_SCRIPT = bytes.fromhex("0014") + bytes([0xb0] * 20)
RECIPIENT_SCRIPT = bytes.fromhex("5120") + bytes([0xcc] * 32)


class PlaceholderSigner:
    """Signs inputs whose BIP32 derivation lists our pubkey"""

    def __init__(self, name: str, pubkey: bytes):
        self.name = name
        self.pubkey = pubkey

    def sign_input(self, unsigned_tx: Transaction, psbt: Psbt, input_index: int) -> Dict[bytes, bytes]:
        if self.pubkey not in psbt.inputs[input_index].bip32_derivation:
            return {}
        logger.info("%s signs input %d of %s", self.name, input_index, unsigned_tx.txid_hex())
        # DER-shaped placeholder followed by SIGHASH_ALL
        return {self.pubkey: bytes.fromhex("3044") + bytes(68) + b'\x01'}


def path(name: str) -> str:
    return os.path.join(OUTPUT_DIR, name)


def alice_creates() -> None:
    """Step 1: Alice creates the PSBT and adds her input and the payment"""
    constructor = PSBTCreator().fallback_lock_time(850_000).constructor_modifiable()
    constructor.input(Input(
        previous_txid=bytes([0xa0] * 32),
        spent_output_index=0,
        witness_utxo=TxOut(60_000, ALICE_SCRIPT),
    ))
    constructor.output(Output(amount=80_000, script_pubkey=RECIPIENT_SCRIPT))

    psbt = constructor.into_inner()
    save_psbt_to_file(psbt, path("step1.json"), {"step": 1, "completed_by": "alice"})
    print(f"  Alice: {psbt.input_count} input, {psbt.output_count} output, flags {psbt.tx_modifiable_flags!r}")


def bob_constructs_and_updates() -> None:
    """Step 2: Bob adds his input and change, closes construction and adds derivations"""
    psbt, _ = load_psbt_from_file(path("step1.json"))
    constructor = ModifiableConstructor(psbt)
    constructor.input(Input(
        previous_txid=bytes([0xb1] * 32),
        spent_output_index=3,
        sequence=0xfffffffd,
        min_height=849_990,
        witness_utxo=TxOut(40_000, BOB_SCRIPT),
    ))
    constructor.output(Output(amount=19_000, script_pubkey=BOB_SCRIPT))

    updater = constructor.updater()
    updater.add_input_bip32_derivation(0, ALICE_PUBKEY, KeySource.from_string("a1a1a1a1", "m/84'/0'/0'/0/7"))
    updater.add_input_bip32_derivation(1, BOB_PUBKEY, KeySource.from_string("b0b0b0b0", "m/84'/0'/0'/0/2"))
    updater.add_output_bip32_derivation(1, BOB_PUBKEY, KeySource.from_string("b0b0b0b0", "m/84'/0'/0'/1/0"))
    print(f"  Bob: PSBT id {updater.id()[::-1].hex()}")

    psbt = updater.into_inner()
    save_psbt_to_file(psbt, path("step2.json"), {"step": 2, "completed_by": "bob"})


def sign(name: str, pubkey: bytes) -> None:
    """Step 3: a signer signs its own copy"""
    psbt, _ = load_psbt_from_file(path("step2.json"))
    signed, signing_keys = PSBTSigner(psbt).sign(PlaceholderSigner(name, pubkey))
    save_psbt_to_file(signed, path(f"step3_{name}.json"), {"step": 3, "completed_by": name})
    print(f"  {name.capitalize()}: signed inputs {sorted(signing_keys)}")


def coordinator_finishes() -> None:
    """Step 4: combine both copies, finalize and extract"""
    alice_copy, _ = load_psbt_from_file(path("step3_alice.json"))
    bob_copy, _ = load_psbt_from_file(path("step3_bob.json"))
    combined = alice_copy.combine_with(bob_copy)

    finalized = PSBTInputFinalizer(combined).finalize()
    save_psbt_to_file(finalized, path("step4_final.json"), {"step": 4, "completed_by": "coordinator"})

    tx = PSBTExtractor(finalized).extract_tx()
    print(f"  Coordinator: fee {finalized.fee()} sat, lock time {tx.lock_time}")
    print(f"  Transaction {tx.txid_hex()} ({tx.vsize()} vB)")
    print(f"  {tx.hex()}")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    os.makedirs(OUTPUT_DIR, exist_ok=True)

    try:
        print("Step 1: Alice creates")
        alice_creates()
        print("Step 2: Bob constructs and updates")
        bob_constructs_and_updates()
        print("Step 3: Alice and Bob sign separately")
        sign("alice", ALICE_PUBKEY)
        sign("bob", BOB_PUBKEY)
        print("Step 4: Coordinator combines, finalizes and extracts")
        coordinator_finishes()
    except PsbtError as e:
        logger.error("Workflow failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
