"""Process-wide server context.

All state shared between sessions lives in one ServerContext, which is
injected into the dispatcher, the TCP server and the monitoring API.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from odssim_handler.config import DEFAULT_LOT_ID, HandlerConfig
from odssim_handler.pool import generate_dut_pool
from odssim_handler.stores import AllocationTable, SiteTemperatureStore, SummaryLog
from odssim_handler.summary import SummaryWriter


@dataclass
class ServerContext:
    """Shared state of one handler simulator.

    Attributes:
        allocations: DUT pool and per-IP allocations.
        temperatures: Per-site temperatures.
        summary: Completed test results.
        summary_writer: Persists the summary file.
        lot_id: Lot identifier reported by ``GetLotInfo``.
        started_at: Monotonic start time, for uptime reporting.
    """

    allocations: AllocationTable
    summary_writer: SummaryWriter
    temperatures: SiteTemperatureStore = field(default_factory=SiteTemperatureStore)
    summary: SummaryLog = field(default_factory=SummaryLog)
    lot_id: str = DEFAULT_LOT_ID
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_config(cls, config: HandlerConfig, seed: int | None = None) -> ServerContext:
        """Create a context with a freshly generated DUT pool.

        Args:
            config: Handler configuration (pool size, lot id, log directory).
            seed: Optional seed for a reproducible pool.
        """
        return cls(
            allocations=AllocationTable(generate_dut_pool(config.units, seed=seed)),
            summary_writer=SummaryWriter(config.summary_path),
            lot_id=config.lot_id,
        )

    @property
    def uptime(self) -> float:
        """Seconds since the context was created."""
        return time.monotonic() - self.started_at

    def flush_summary(self) -> Path | None:
        """Log and persist the current summary."""
        return self.summary_writer.flush(self.summary)
