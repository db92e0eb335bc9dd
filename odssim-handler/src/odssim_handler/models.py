"""Pydantic models for the monitoring REST API.

All models are read-only views of the shared server context.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok"]
    version: str
    uptime_seconds: float


class DutModel(BaseModel):
    """A DUT record."""

    uid: str
    barcode: str
    ecid: str
    warpage: str
    test_count: int


class AllocationModel(BaseModel):
    """A DUT checked out to a client."""

    client_ip: str
    site: str
    dut: DutModel


class HandlerStatus(BaseModel):
    """Overall handler status.

    Attributes:
        lot_id: Lot identifier.
        pool_size: Total DUTs in the pool.
        pool_remaining: DUTs not yet handed out.
        lot_end: True once every DUT has been handed out.
        active_connections: Client IPs with a live session.
        allocations: DUTs currently checked out.
        results_recorded: Number of completed tests.
    """

    lot_id: str
    pool_size: int
    pool_remaining: int = Field(..., ge=0)
    lot_end: bool
    active_connections: list[str] = Field(default_factory=list)
    allocations: list[AllocationModel] = Field(default_factory=list)
    results_recorded: int


class SiteTemperatureModel(BaseModel):
    """Last-set temperature of a site."""

    site: str
    temperature: float


class SummaryEntryModel(BaseModel):
    """A completed test result."""

    site: str
    barcode: str
    bin: str
