#!/usr/bin/env python3
"""
PSBT v2 (psbt_v2) Package

Python package for BIP 370 - PSBT Version 2.
Provides the strict PSBT v2 model, v0/v2 conversion, the Combiner, lock time
resolution and the typestate role workflow from Creator to Extractor.
"""

# Constants
from .constants import (
    DEFAULT_MAX_FEE_RATE,
    LOCK_TIME_THRESHOLD,
    SEQUENCE_FINAL,
    PSBTFieldType,
    TxModifiable,
)

# Errors
from . import errors
from .errors import (
    PsbtError,
    SerializationError,
    InvalidPsbtError,
    InvalidFieldValueError,
    UnsupportedVersionError,
    RoleConsumedError,
    PsbtNotModifiableError,
    InputsNotModifiableError,
    OutputsNotModifiableError,
    DetermineLockTimeError,
    FundingUtxoError,
    CombineError,
    InconsistentKeySourcesError,
    PartialSigsSighashTypeError,
    SigningError,
    FinalizeError,
    PsbtNotFinalizedError,
    ExtractTxError,
    FeeTooHighError,
)

# Core PSBT functionality
from .bip32 import KeySource
from .taproot import TapKeyOrigin, TapLeaf
from .tx import OutPoint, Transaction, TxIn, TxOut
from .input import Input
from .output import Output
from .psbt import Psbt

# Wire format and version conversion
from .wire import WireInput, WireOutput, WirePsbt, parse_psbt, serialize_psbt
from .adapter import from_legacy, from_strict, from_wire, to_legacy, to_strict

# Combiner and lock time
from .combine import combine
from .locktime import determine_lock_time

# Collaborators
from .protocols import ExtractionBackend, FinalizationBackend, SigningBackend
from .finalize import ScriptFinalizer
from .extract import TransactionExtractor

# File I/O
from .psbt_io import save_psbt_to_file, load_psbt_from_file

# Role-based classes
from .roles import (
    PSBTCreator,
    PSBTConstructor,
    ModifiableConstructor,
    InputsOnlyConstructor,
    OutputsOnlyConstructor,
    PSBTUpdater,
    PSBTSigner,
    PSBTInputFinalizer,
    PSBTExtractor,
    clear_tx_modifiable,
)

__version__ = "1.0.0"
__author__ = "PSBT v2 Implementation"
__description__ = "BIP 370 PSBT version 2 roles, combiner and v0/v2 conversion"

# Public API - what gets imported with "from psbt_v2 import *"
__all__ = [
    # Constants
    "PSBTFieldType",
    "TxModifiable",
    "DEFAULT_MAX_FEE_RATE",
    "LOCK_TIME_THRESHOLD",
    "SEQUENCE_FINAL",

    # Core classes
    "Psbt",
    "Input",
    "Output",
    "KeySource",
    "TapKeyOrigin",
    "TapLeaf",
    "OutPoint",
    "Transaction",
    "TxIn",
    "TxOut",

    # Wire format
    "WirePsbt",
    "WireInput",
    "WireOutput",
    "parse_psbt",
    "serialize_psbt",
    "to_strict",
    "from_strict",
    "from_legacy",
    "to_legacy",
    "from_wire",

    # Combiner and lock time
    "combine",
    "determine_lock_time",

    # Collaborators
    "SigningBackend",
    "FinalizationBackend",
    "ExtractionBackend",
    "ScriptFinalizer",
    "TransactionExtractor",

    # Role-based classes
    "PSBTCreator",
    "PSBTConstructor",
    "ModifiableConstructor",
    "InputsOnlyConstructor",
    "OutputsOnlyConstructor",
    "PSBTUpdater",
    "PSBTSigner",
    "PSBTInputFinalizer",
    "PSBTExtractor",
    "clear_tx_modifiable",

    # File I/O functions
    "save_psbt_to_file",
    "load_psbt_from_file",

    # Errors
    "errors",
    "PsbtError",
    "SerializationError",
    "InvalidPsbtError",
    "InvalidFieldValueError",
    "UnsupportedVersionError",
    "RoleConsumedError",
    "PsbtNotModifiableError",
    "InputsNotModifiableError",
    "OutputsNotModifiableError",
    "DetermineLockTimeError",
    "FundingUtxoError",
    "CombineError",
    "InconsistentKeySourcesError",
    "PartialSigsSighashTypeError",
    "SigningError",
    "FinalizeError",
    "PsbtNotFinalizedError",
    "ExtractTxError",
    "FeeTooHighError",

    # Package metadata
    "__version__",
    "__author__",
    "__description__",
]
