#!/usr/bin/env python3
"""
Lock time resolution (BIP 370)

The nLockTime of a PSBT v2 transaction is not stored directly. It is derived
from the per-input PSBT_IN_REQUIRED_TIME_LOCKTIME / PSBT_IN_REQUIRED_HEIGHT_LOCKTIME
fields and the global PSBT_GLOBAL_FALLBACK_LOCKTIME.
"""

from typing import Iterable

from .errors import DetermineLockTimeError
from .input import Input


def determine_lock_time(inputs: Iterable[Input], fallback_lock_time: int = 0) -> int:
    """
    Compute the transaction lock time

    Rules:
    1. If one input requires a time based lock and another a height based
       lock, no lock time satisfies both.
    2. If no input has a lock time requirement, use the fallback.
    3. If every input can be satisfied by a height, use the largest
       required height; otherwise use the largest required time.

    Args:
        inputs: PSBT inputs
        fallback_lock_time: PSBT_GLOBAL_FALLBACK_LOCKTIME, 0 when absent

    Returns:
        The nLockTime value

    Raises:
        DetermineLockTimeError: If inputs mix time-only and height-only locks
    """
    inputs = list(inputs)

    require_time = any(inp.requires_time_based_lock_time() for inp in inputs)
    require_height = any(inp.requires_height_based_lock_time() for inp in inputs)
    if require_time and require_height:
        raise DetermineLockTimeError()

    if not any(inp.has_lock_time() for inp in inputs):
        return fallback_lock_time

    if all(inp.is_satisfied_with_height_based_lock_time() for inp in inputs):
        return max((inp.min_height for inp in inputs if inp.min_height is not None), default=0)

    return max((inp.min_time for inp in inputs if inp.min_time is not None), default=0)
