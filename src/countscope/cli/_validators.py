"""Shared argparse type validators for CLI parameter checking.

These validators produce clear error messages when users pass invalid
values (e.g., ``--min-samples 0``, ``--reference Genotype``).  They are
intended to be used as the ``type=`` argument in ``add_argument()``.
"""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """argparse type for positive integers (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _non_negative_float(value: str) -> float:
    """argparse type for floats >= 0."""
    fvalue = float(value)
    if fvalue < 0:
        raise argparse.ArgumentTypeError(f"{value} is not a non-negative number")
    return fvalue


def _reference_level(value: str) -> tuple[str, str | list[str]]:
    """argparse type for ``FIELD=LEVEL`` or ``FIELD=L1,L2,L3`` (full order)."""
    field, sep, levels = value.partition("=")
    if not sep or not field.strip() or not levels.strip():
        raise argparse.ArgumentTypeError(
            f"{value!r} is not FIELD=LEVEL or FIELD=LEVEL1,LEVEL2,..."
        )
    parts = [p.strip() for p in levels.split(",") if p.strip()]
    if len(parts) == 1:
        return field.strip(), parts[0]
    return field.strip(), parts
