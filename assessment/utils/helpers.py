"""
Utility helpers for the assessment engine

Simple utility functions for timestamps, run IDs and recovery codes.
"""

import itertools
import random
from datetime import datetime, timezone

# Excludes characters that are easy to misread (0/O, 1/I/L)
RECOVERY_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
RECOVERY_CODE_LENGTH = 8

_run_sequence = itertools.count(1)


def utc_now_iso():
    """
    Current UTC time as ISO 8601 string.

    Returns:
        str: e.g. '2025-11-26T15:30:45.123456+00:00'
    """
    return datetime.now(timezone.utc).isoformat()


def generate_run_id(now=None):
    """
    Generate a creation-time-derived run identifier.

    IDs sort in creation order: the timestamp is zero-padded to microseconds
    and a process-wide sequence number breaks ties within one microsecond.

    Args:
        now (datetime): Creation time (defaults to current UTC time)

    Returns:
        str: Run ID

    Examples:
        >>> generate_run_id()
        'run-20251126153045123456-000001'
    """
    if now is None:
        now = datetime.now(timezone.utc)
    stamp = now.strftime("%Y%m%d%H%M%S%f")
    return f"run-{stamp}-{next(_run_sequence):06d}"


def generate_recovery_code(length=RECOVERY_CODE_LENGTH):
    """
    Generate a human-readable recovery code for a deleted run backup.

    Args:
        length (int): Number of characters

    Returns:
        str: e.g. 'K7MPQ2XR'
    """
    rng = random.SystemRandom()
    return "".join(rng.choice(RECOVERY_CODE_ALPHABET) for _ in range(length))
