#!/usr/bin/env python3
"""
PSBT File I/O Utilities

Functions for saving and loading PSBTs to/from JSON files with metadata, so
parties in a multi-role workflow can hand the document on.
"""

import datetime
import json
from typing import TYPE_CHECKING, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .psbt import Psbt


def save_psbt_to_file(psbt: "Psbt", filename: str, metadata: Optional[Dict] = None) -> None:
    """
    Save PSBT to JSON file with metadata

    Args:
        psbt: PSBT to save; stored as base64 (source of truth)
        filename: File path to save to
        metadata: Optional metadata dict with step info, completed_by, etc.

    Note:
        A psbt.to_json() rendering is included only for human readability.
        All programmatic operations should use the base64 'psbt' field.
    """
    metadata = dict(metadata or {})
    metadata['timestamp'] = datetime.datetime.now(datetime.timezone.utc).isoformat()

    json_data = {
        'psbt': psbt.to_base64(),
        'metadata': metadata,
        'psbt_json': psbt.to_json(),
    }

    with open(filename, 'w') as f:
        json.dump(json_data, f, indent=2)


def load_psbt_from_file(filename: str) -> Tuple["Psbt", Dict]:
    """
    Load PSBT from JSON file with metadata

    Args:
        filename: File path to load from

    Returns:
        Tuple of (Psbt, metadata)

    Raises:
        SerializationError: If the stored PSBT is invalid
    """
    from .psbt import Psbt

    with open(filename, 'r') as f:
        json_data = json.load(f)

    psbt = Psbt.from_base64(json_data['psbt'])
    metadata = json_data.get('metadata', {})

    return psbt, metadata
