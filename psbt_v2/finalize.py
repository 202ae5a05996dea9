#!/usr/bin/env python3
"""
Default input finalizer

Builds final scriptSig/witness for single-key spends:
- P2WPKH: witness = [signature, pubkey]
- P2SH-P2WPKH: scriptSig = push(redeem script), witness = [signature, pubkey]
- P2PKH: scriptSig = push(signature) push(pubkey)
- P2TR key path: witness = [schnorr signature]
"""

from typing import List, Optional, Tuple

from .input import Input
from .psbt_utils import hash160, is_p2pkh, is_p2sh, is_p2wpkh, is_taproot_output, push_data
from .tx import TxOut


class ScriptFinalizer:
    """Finalizes inputs that spend one of the standard single-key templates"""

    @staticmethod
    def _select_signature(inp: Input, key_hash: Optional[bytes]) -> Tuple[bytes, bytes]:
        """
        Pick the (pubkey, signature) pair that spends the input

        With a single partial signature no hashing is needed; with several the
        pubkey whose HASH160 matches the script is chosen.
        """
        if not inp.partial_sigs:
            raise ValueError("missing signature")
        if len(inp.partial_sigs) == 1:
            return next(iter(inp.partial_sigs.items()))
        for pubkey, sig in inp.partial_sigs.items():
            if key_hash is not None and hash160(pubkey) == key_hash:
                return pubkey, sig
        raise ValueError("no partial signature matches the script")

    def finalize_input(self, inp: Input, funding_utxo: TxOut) -> Tuple[bytes, List[bytes]]:
        """
        Args:
            inp: Input with its partial signatures
            funding_utxo: Output the input spends

        Returns:
            (script_sig, witness)

        Raises:
            ValueError: If the input is missing a signature or spends an
                unsupported script
        """
        script_pubkey = funding_utxo.script_pubkey

        if is_taproot_output(script_pubkey):
            if inp.tap_key_sig is None:
                raise ValueError("missing taproot key path signature")
            return b'', [inp.tap_key_sig]

        if is_p2wpkh(script_pubkey):
            pubkey, sig = self._select_signature(inp, script_pubkey[2:])
            return b'', [sig, pubkey]

        if is_p2sh(script_pubkey):
            redeem_script = inp.redeem_script
            if redeem_script is None or not is_p2wpkh(redeem_script):
                raise ValueError("only P2SH-wrapped P2WPKH is supported")
            pubkey, sig = self._select_signature(inp, redeem_script[2:])
            return push_data(redeem_script), [sig, pubkey]

        if is_p2pkh(script_pubkey):
            pubkey, sig = self._select_signature(inp, script_pubkey[3:23])
            return push_data(sig) + push_data(pubkey), []

        raise ValueError(f"unsupported script: {script_pubkey.hex()}")
