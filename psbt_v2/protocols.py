#!/usr/bin/env python3
"""
Collaborator interfaces

The roles delegate work that needs keys, sighash computation or script
knowledge to objects implementing these protocols.
"""

from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Tuple

from .tx import Transaction, TxOut

if TYPE_CHECKING:
    from .input import Input
    from .psbt import Psbt
    from .wire import WirePsbt


class SigningBackend(Protocol):
    """Produces signatures for one input"""

    def sign_input(self, unsigned_tx: Transaction, psbt: "Psbt", input_index: int) -> Dict[bytes, bytes]:
        """
        Sign input_index of unsigned_tx

        Args:
            unsigned_tx: Transaction being signed
            psbt: Read-only view of the document, for UTXOs, scripts and
                derivation paths
            input_index: Input to sign

        Returns:
            Map of public key to DER signature with the sighash byte appended.
            Empty if this backend has no key for the input.

        Raises:
            Exception: Any failure; the signer records it against input_index
        """
        ...


class FinalizationBackend(Protocol):
    """Builds the final scriptSig and witness of one input"""

    def finalize_input(self, inp: "Input", funding_utxo: TxOut) -> Tuple[bytes, List[bytes]]:
        """
        Returns:
            (script_sig, witness); an empty witness means a non-segwit spend
        """
        ...


class ExtractionBackend(Protocol):
    """Assembles the network transaction from a finalized v0 document"""

    def extract(self, psbt: "WirePsbt", max_fee_rate: Optional[float]) -> Transaction:
        """
        Raises:
            FeeTooHighError: If the fee rate exceeds max_fee_rate sat/vB;
                max_fee_rate None skips the check
            ExtractTxError: On any other failure
        """
        ...
