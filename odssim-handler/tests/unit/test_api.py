"""Unit tests for the monitoring REST API."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from odssim_core.types import SummaryEntry
from odssim_handler.api import create_app
from odssim_handler.context import ServerContext
from odssim_handler.pool import generate_dut_pool
from odssim_handler.server import ConnectionRegistry
from odssim_handler.stores import AllocationTable
from odssim_handler.summary import SummaryWriter


@pytest.fixture
def context(tmp_path: Path) -> ServerContext:
    return ServerContext(
        allocations=AllocationTable(generate_dut_pool(3, seed=5)),
        summary_writer=SummaryWriter(tmp_path / "OverallSummary.txt"),
        lot_id="LOT42",
    )


@pytest.fixture
def client(context: ServerContext) -> TestClient:
    return TestClient(create_app(context))


class TestHealthEndpoint:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert data["uptime_seconds"] >= 0


class TestStatusEndpoint:
    def test_fresh_lot(self, client: TestClient) -> None:
        data = client.get("/status").json()
        assert data["lot_id"] == "LOT42"
        assert data["pool_size"] == 3
        assert data["pool_remaining"] == 3
        assert data["lot_end"] is False
        assert data["allocations"] == []
        assert data["active_connections"] == []
        assert data["results_recorded"] == 0

    def test_allocations(self, client: TestClient, context: ServerContext) -> None:
        context.allocations.acquire("192.168.1.12")
        context.allocations.acquire("192.168.1.11")
        data = client.get("/status").json()
        assert data["pool_remaining"] == 1
        assert [a["client_ip"] for a in data["allocations"]] == ["192.168.1.11", "192.168.1.12"]
        assert data["allocations"][0]["site"] == "11"
        assert data["allocations"][0]["dut"]["uid"] == "00002"

    def test_lot_end(self, client: TestClient, context: ServerContext) -> None:
        for i in range(3):
            context.allocations.acquire(f"10.0.0.{i}")
        assert client.get("/status").json()["lot_end"] is True

    def test_active_connections(self, context: ServerContext) -> None:
        registry = ConnectionRegistry()
        a, b = socket.socketpair()
        try:
            registry.register("192.168.1.11", a)
            client = TestClient(create_app(context, registry))
            assert client.get("/status").json()["active_connections"] == ["192.168.1.11"]
        finally:
            a.close()
            b.close()


class TestSitesEndpoint:
    def test_sites(self, client: TestClient, context: ServerContext) -> None:
        context.temperatures.set("2", 25.0)
        context.temperatures.set("1", 85.5)
        assert client.get("/sites").json() == [
            {"site": "1", "temperature": 85.5},
            {"site": "2", "temperature": 25.0},
        ]


class TestSummaryEndpoint:
    def test_summary(self, client: TestClient, context: ServerContext) -> None:
        context.summary.append(SummaryEntry("11", "MSFT0001", "1"))
        context.summary.append(SummaryEntry("12", "MSFT0002", "5"))
        assert client.get("/summary").json() == [
            {"site": "11", "barcode": "MSFT0001", "bin": "1"},
            {"site": "12", "barcode": "MSFT0002", "bin": "5"},
        ]
