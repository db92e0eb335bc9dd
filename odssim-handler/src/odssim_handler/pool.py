"""Simulated DUT pool generation.

The pool is generated once at startup and then only indexed by the
allocation table.
"""

from __future__ import annotations

import logging
import random

from odssim_core.types import DutRecord

logger = logging.getLogger(__name__)

BARCODE_PREFIX = "MSFT"

_ECID_MIN = 10_000_000
_ECID_MAX = 99_999_999
_WARPAGE_BASE = 0.1
_WARPAGE_SPAN = 0.15
_TEST_COUNT_MAX = 5


def _format_warpage(value: float) -> str:
    """Format a warpage value with up to four decimals, dropping trailing zeros."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return text or "0"


def make_dut(index: int, rng: random.Random) -> DutRecord:
    """Create the DUT record for a 1-based pool index.

    Args:
        index: 1-based position in the pool.
        rng: Random source for ECID, warpage and test count.

    Returns:
        A new DUT record.
    """
    return DutRecord(
        uid=f"{index:05d}",
        barcode=f"{BARCODE_PREFIX}{index:04d}",
        ecid=str(rng.randint(_ECID_MIN, _ECID_MAX)),
        warpage=_format_warpage(_WARPAGE_BASE + rng.random() * _WARPAGE_SPAN),
        test_count=rng.randint(1, _TEST_COUNT_MAX),
    )


def generate_dut_pool(count: int, seed: int | None = None) -> tuple[DutRecord, ...]:
    """Generate an ordered pool of DUT records.

    Args:
        count: Number of records (>= 1).
        seed: Optional seed for reproducible pools.

    Returns:
        Tuple of ``count`` records with UIDs ``00001``..``count``.

    Raises:
        ValueError: If count is less than 1.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    rng = random.Random(seed)
    pool = tuple(make_dut(i, rng) for i in range(1, count + 1))
    logger.info("Generated %d DUT entries", count)
    return pool
