"""Shared state mutated by the command dispatcher.

Each store guards its own state with its own lock. Every operation is a
single critical section and never waits on another store's lock, so sessions
cannot deadlock across stores.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from odssim_core.types import DEFAULT_SITE_TEMPERATURE, DutRecord, SummaryEntry


class AllocationTable:
    """Maps a client IP to the DUT currently checked out to it.

    The table owns the pool cursor. The cursor only moves forward; a released
    DUT is discarded and never handed out again.

    Args:
        pool: Ordered DUT pool, generated once at startup.
    """

    def __init__(self, pool: Sequence[DutRecord]) -> None:
        self._pool = tuple(pool)
        self._lock = threading.Lock()
        self._cursor = 0
        self._held: dict[str, DutRecord] = {}

    @property
    def pool_size(self) -> int:
        """Total number of DUTs in the pool."""
        return len(self._pool)

    @property
    def remaining(self) -> int:
        """Number of DUTs not yet handed out."""
        with self._lock:
            return len(self._pool) - self._cursor

    def acquire(self, ip: str) -> DutRecord | None:
        """Return the DUT held by ``ip``, assigning the next one if it holds none.

        Args:
            ip: Client IP address.

        Returns:
            The held DUT, or None if the IP holds nothing and the pool is
            exhausted.
        """
        with self._lock:
            dut = self._held.get(ip)
            if dut is not None:
                return dut
            if self._cursor >= len(self._pool):
                return None
            dut = self._pool[self._cursor]
            self._cursor += 1
            self._held[ip] = dut
            return dut

    def held_by(self, ip: str) -> DutRecord | None:
        """Return the DUT held by ``ip`` without assigning one."""
        with self._lock:
            return self._held.get(ip)

    def release(self, ip: str) -> DutRecord | None:
        """Drop whatever ``ip`` holds.

        Returns:
            The released DUT, or None if the IP held nothing.
        """
        with self._lock:
            return self._held.pop(ip, None)

    def release_if_matches(self, ip: str, barcode: str) -> DutRecord | None:
        """Release the DUT held by ``ip`` only if its barcode equals ``barcode``.

        Returns:
            The released DUT, or None if nothing was held or the barcode
            did not match (in which case the allocation is kept).
        """
        with self._lock:
            dut = self._held.get(ip)
            if dut is None or dut.barcode != barcode:
                return None
            del self._held[ip]
            return dut

    def snapshot(self) -> dict[str, DutRecord]:
        """Return a copy of the current allocations."""
        with self._lock:
            return dict(self._held)


class SiteTemperatureStore:
    """Last-set temperature per site. Unset sites report the default."""

    def __init__(self, default: float = DEFAULT_SITE_TEMPERATURE) -> None:
        self._default = default
        self._lock = threading.Lock()
        self._temperatures: dict[str, float] = {}

    def get(self, site: str) -> float:
        with self._lock:
            return self._temperatures.get(site, self._default)

    def set(self, site: str, value: float) -> None:
        with self._lock:
            self._temperatures[site] = value

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._temperatures)


class SummaryLog:
    """Append-only log of completed test results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[SummaryEntry] = []

    def append(self, entry: SummaryEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> tuple[SummaryEntry, ...]:
        """Return the entries recorded so far, in append order."""
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
