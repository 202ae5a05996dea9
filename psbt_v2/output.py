#!/usr/bin/env python3
"""
PSBT v2 Output

Strict per-output map: amount and script are always present.
"""

from dataclasses import dataclass, fields as dataclass_fields

from .input import merge_maps
from .tx import TxOut
from .wire import OutputFields


@dataclass(kw_only=True)
class Output(OutputFields):
    amount: int
    script_pubkey: bytes

    @classmethod
    def from_txout(cls, txout: TxOut, **kwargs) -> "Output":
        return cls(amount=txout.value, script_pubkey=txout.script_pubkey, **kwargs)

    @property
    def txout(self) -> TxOut:
        return TxOut(self.amount, self.script_pubkey)

    def combine(self, other: "Output") -> "Output":
        """Merge two views of the same output, preferring values set here"""
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
        return Output(**values)
