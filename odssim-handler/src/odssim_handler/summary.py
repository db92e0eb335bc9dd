"""Overall test summary persistence.

The summary is written as CSV with one row per completed test::

    SiteNo,Barcode,Bin
    11,MSFT0001,1
    12,MSFT0002,3

It is rewritten whenever the DUT pool runs out and again at shutdown, and
each flush also logs the summary as a fixed-width table.
"""

from __future__ import annotations

import csv
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from odssim_core.types import SummaryEntry

from odssim_handler.stores import SummaryLog

logger = logging.getLogger(__name__)

CSV_HEADER = ("SiteNo", "Barcode", "Bin")


def format_summary_table(entries: Iterable[SummaryEntry]) -> list[str]:
    """Render summary entries as fixed-width table lines."""
    lines = [
        "==== OVERALL TEST SUMMARY ====",
        f"{'Site':<8} {'Barcode':<15} {'Bin':<5}",
        "-" * 35,
    ]
    lines.extend(f"{e.site:<8} {e.barcode:<15} {e.bin:<5}" for e in entries)
    return lines


def write_summary_csv(entries: Iterable[SummaryEntry], path: str | Path) -> Path:
    """Write summary entries to a CSV file, replacing any previous content.

    Args:
        entries: Entries to write, in order.
        path: Destination file. Parent directories are created.

    Returns:
        The path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for entry in entries:
            writer.writerow([entry.site, entry.barcode, entry.bin])
    return path


def read_summary_csv(path: str | Path) -> list[SummaryEntry]:
    """Read a summary file written by :func:`write_summary_csv`.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the header is not ``SiteNo,Barcode,Bin``.
    """
    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None or tuple(header) != CSV_HEADER:
            raise ValueError(f"Not a summary file: {path}")
        return [SummaryEntry(site=row[0], barcode=row[1], bin=row[2]) for row in reader if row]


class SummaryWriter:
    """Serializes summary flushes to a single file.

    Args:
        path: Destination of the summary CSV.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def flush(self, log: SummaryLog) -> Path | None:
        """Log and persist a snapshot of the summary.

        The snapshot is taken under the writer's lock, so the last flush to
        finish always writes the newest entries.

        Args:
            log: Summary log to snapshot.

        Returns:
            The file written, or None if there was nothing to write.
        """
        with self._lock:
            snapshot = log.entries()
            if not snapshot:
                logger.info("No test results to summarize.")
                return None
            for line in format_summary_table(snapshot):
                logger.info(line)
            write_summary_csv(snapshot, self._path)
        logger.info("Overall summary saved to %s", self._path)
        return self._path
