#!/usr/bin/env python3
"""
Default transaction extractor

Fills the final scriptSigs and witnesses of a finalized v0 document into its
unsigned transaction and checks the fee rate.
"""

import copy
import logging
from typing import Optional

from .errors import ExtractTxError, FeeTooHighError, SendingTooMuchError
from .tx import Transaction
from .wire import WirePsbt

logger = logging.getLogger(__name__)


class TransactionExtractor:

    def extract(self, psbt: WirePsbt, max_fee_rate: Optional[float]) -> Transaction:
        """
        Build the network transaction

        Args:
            psbt: Finalized v0 wire document
            max_fee_rate: Upper bound in sat/vB, None to skip the check

        Returns:
            Signed transaction

        Raises:
            ExtractTxError: If the document has no unsigned tx or an input
                value is unknown
            SendingTooMuchError: If outputs exceed inputs
            FeeTooHighError: If the fee rate exceeds max_fee_rate
        """
        if psbt.unsigned_tx is None:
            raise ExtractTxError("PSBT has no unsigned transaction")

        tx = copy.deepcopy(psbt.unsigned_tx)
        for txin, inp in zip(tx.inputs, psbt.inputs):
            txin.script_sig = inp.final_script_sig or b''
            txin.witness = list(inp.final_script_witness or [])

        if max_fee_rate is None:
            return tx

        input_total = 0
        for index, (txin, inp) in enumerate(zip(tx.inputs, psbt.inputs)):
            if inp.witness_utxo is not None:
                input_total += inp.witness_utxo.value
            elif inp.non_witness_utxo is not None and txin.prevout.vout < len(inp.non_witness_utxo.outputs):
                input_total += inp.non_witness_utxo.outputs[txin.prevout.vout].value
            else:
                raise ExtractTxError(f"input {index} value is unknown")

        output_total = sum(out.value for out in tx.outputs)
        if output_total > input_total:
            raise SendingTooMuchError(input_total, output_total)

        fee_rate = (input_total - output_total) / tx.vsize()
        logger.debug("Extracted tx %s, fee %d sat, %.2f sat/vB",
                     tx.txid_hex(), input_total - output_total, fee_rate)
        if fee_rate > max_fee_rate:
            raise FeeTooHighError(fee_rate, max_fee_rate)
        return tx
