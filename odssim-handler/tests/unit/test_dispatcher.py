"""Tests for the handler command dispatcher."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from odssim_handler.context import ServerContext
from odssim_handler.dispatcher import (
    INVALID_FORMAT_NO_SITENO,
    LOT_END,
    UNKNOWN_COMMAND,
    CommandDispatcher,
)
from odssim_handler.pool import generate_dut_pool
from odssim_handler.stores import AllocationTable
from odssim_handler.summary import SummaryWriter

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

IP_A = "192.168.1.11"
IP_B = "192.168.1.12"


def _make_dispatcher(tmp_path: Path, units: int = 3, lot_id: str = "TY08") -> CommandDispatcher:
    context = ServerContext(
        allocations=AllocationTable(generate_dut_pool(units, seed=7)),
        summary_writer=SummaryWriter(tmp_path / "OverallSummary.txt"),
        lot_id=lot_id,
    )
    return CommandDispatcher(context)


def _fields(response: str) -> dict[str, str]:
    """Extract the field=value payload of a response frame."""
    payload = response.rstrip(">").split("%", 2)[2]
    return dict(part.split("=", 1) for part in payload.split(";"))


def _get_dut(dispatcher: CommandDispatcher, ip: str, site: str = "1") -> dict[str, str]:
    return _fields(dispatcher.dispatch(f"<<{site}%GetDUTInfo%>>", ip))


def _submit(dispatcher: CommandDispatcher, ip: str, barcode: str, bin_code: str = "1") -> str:
    return dispatcher.dispatch(f"<<*%SetTestResult%BIN={bin_code};BCD={barcode}%*>>", ip)


# ---------------------------------------------------------------------------
# GetDUTInfo
# ---------------------------------------------------------------------------


class TestGetDutInfo:
    def test_response_format(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        dut = generate_dut_pool(3, seed=7)[0]
        response = dispatcher.dispatch("<<11%GetDUTInfo%>>", IP_A)
        assert response == (
            f"<<11%GETDUTINFO%UID=00001;BCD=MSFT0001;"
            f"WARPAGE={dut.warpage};TESTCOUNT={dut.test_count}>>"
        )

    def test_sentinel_prefix_accepted(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("$<<1%GetDUTInfo%>>", IP_A).startswith("<<1%GETDUTINFO%")

    def test_wildcard_site_echoed(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<*%GetDUTInfo%*>>", IP_A).startswith("<<*%GETDUTINFO%")

    def test_missing_site(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<%GetDUTInfo%>>", IP_A) == INVALID_FORMAT_NO_SITENO
        assert dispatcher.context.allocations.remaining == 3

    def test_distinct_connections_get_pool_order(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path, units=3)
        ips = [f"10.0.0.{i}" for i in range(1, 4)]
        uids = [_get_dut(dispatcher, ip)["UID"] for ip in ips]
        assert uids == ["00001", "00002", "00003"]
        assert dispatcher.dispatch("<<1%GetDUTInfo%>>", "10.0.0.4") == LOT_END

    def test_repeat_returns_same_dut(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        first = _get_dut(dispatcher, IP_A)
        second = _get_dut(dispatcher, IP_A)
        assert first == second
        assert dispatcher.context.allocations.remaining == 2

    def test_exhaustion_after_release(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path, units=1)
        dut = _get_dut(dispatcher, IP_A)
        assert _submit(dispatcher, IP_A, dut["BCD"]) == "<<*%SETTESTRESULT%ACK>>"
        assert dispatcher.dispatch("<<1%GetDUTInfo%>>", IP_A) == LOT_END

    def test_exhaustion_flushes_summary(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path, units=1)
        dut = _get_dut(dispatcher, IP_A)
        _submit(dispatcher, IP_A, dut["BCD"], bin_code="4")

        assert dispatcher.dispatch("<<1%GetDUTInfo%>>", IP_B) == LOT_END
        summary = (tmp_path / "OverallSummary.txt").read_text(encoding="utf-8")
        assert summary == "SiteNo,Barcode,Bin\n11,MSFT0001,4\n"


# ---------------------------------------------------------------------------
# SetTestResult
# ---------------------------------------------------------------------------


class TestSetTestResult:
    def test_matching_barcode(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        dut = _get_dut(dispatcher, IP_A)
        assert _submit(dispatcher, IP_A, dut["BCD"], bin_code="2") == "<<*%SETTESTRESULT%ACK>>"

        entries = dispatcher.context.summary.entries()
        assert len(entries) == 1
        assert (entries[0].site, entries[0].barcode, entries[0].bin) == ("11", dut["BCD"], "2")
        assert dispatcher.context.allocations.held_by(IP_A) is None

    def test_release_then_new_dut(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        first = _get_dut(dispatcher, IP_A)
        _submit(dispatcher, IP_A, first["BCD"])
        second = _get_dut(dispatcher, IP_A)
        assert second["UID"] != first["UID"]
        assert second["UID"] == "00002"

    def test_mismatched_barcode(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        dut = _get_dut(dispatcher, IP_A)
        assert _submit(dispatcher, IP_A, "MSFT9999") == "<<*%SETTESTRESULT%NAK;INVALID_BCD>>"
        assert len(dispatcher.context.summary) == 0
        assert dispatcher.context.allocations.held_by(IP_A).barcode == dut["BCD"]

    def test_other_connections_barcode(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        dut_a = _get_dut(dispatcher, IP_A)
        _get_dut(dispatcher, IP_B)
        assert _submit(dispatcher, IP_B, dut_a["BCD"]) == "<<*%SETTESTRESULT%NAK;INVALID_BCD>>"
        assert len(dispatcher.context.summary) == 0

    def test_no_allocation(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert _submit(dispatcher, IP_A, "MSFT0001") == "<<*%SETTESTRESULT%NAK;INVALID_BCD>>"

    @pytest.mark.parametrize(
        "body", ["BIN=1", "BCD=MSFT0001", "BIN=;BCD=MSFT0001", "BIN=1;BCD=", ""]
    )
    def test_missing_parameters(self, tmp_path: Path, body: str) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        _get_dut(dispatcher, IP_A)
        response = dispatcher.dispatch(f"<<*%SetTestResult%{body}%*>>", IP_A)
        assert response == "<<*%SETTESTRESULT%NAK;MISSING_PARAMETERS>>"
        assert dispatcher.context.allocations.held_by(IP_A) is not None


# ---------------------------------------------------------------------------
# SetSiteTemp / GetStatus
# ---------------------------------------------------------------------------


class TestSiteTemperature:
    def test_default_status(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<3%GetStatus%>>", IP_A) == (
            "<<3%GETSITESTATUS%ST=75.0;TSD=ENABLE;TC=80.0;TJ=65.0;DUT=READYTOTEST;ERR=>>"
        )

    def test_set_then_status(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<3%SetSiteTemp%85.5>>", IP_A) == "<<3%SETSITETEMP%ACK>>"
        fields = _fields(dispatcher.dispatch("<<3%GetStatus%>>", IP_A))
        assert fields["ST"] == "85.5"
        assert fields["TC"] == "90.5"
        assert fields["TJ"] == "75.5"

    def test_wildcard_uses_caller_site(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<*%SetSiteTemp%-10%*>>", IP_A) == "<<11%SETSITETEMP%ACK>>"
        assert dispatcher.context.temperatures.get("11") == -10.0
        assert dispatcher.dispatch("<<*%GetStatus%*>>", IP_A).startswith(
            "<<11%GETSITESTATUS%ST=-10.0;"
        )
        assert dispatcher.dispatch("<<%GetStatus%>>", IP_A).startswith("<<11%GETSITESTATUS%")

    def test_sites_are_independent(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        dispatcher.dispatch("<<1%SetSiteTemp%100>>", IP_A)
        dispatcher.dispatch("<<2%SetSiteTemp%25>>", IP_A)
        assert _fields(dispatcher.dispatch("<<1%GetStatus%>>", IP_A))["ST"] == "100.0"
        assert _fields(dispatcher.dispatch("<<2%GetStatus%>>", IP_A))["ST"] == "25.0"

    @pytest.mark.parametrize("value", ["200", "150.01", "-40.5"])
    def test_out_of_range(self, tmp_path: Path, value: str) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        response = dispatcher.dispatch(f"<<1%SetSiteTemp%{value}>>", IP_A)
        assert response == "<<1%SETSITETEMP%TIMEOUT;OUT_OF_RANGE>>"
        assert dispatcher.context.temperatures.snapshot() == {}

    @pytest.mark.parametrize("value", ["-40", "150"])
    def test_range_bounds_accepted(self, tmp_path: Path, value: str) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch(f"<<1%SetSiteTemp%{value}>>", IP_A) == "<<1%SETSITETEMP%ACK>>"

    @pytest.mark.parametrize("value", ["abc", "", "nan", "inf"])
    def test_invalid_value(self, tmp_path: Path, value: str) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        response = dispatcher.dispatch(f"<<1%SetSiteTemp%{value}>>", IP_A)
        assert response == "<<1%SETSITETEMP%TIMEOUT;INVALID_VALUE>>"


# ---------------------------------------------------------------------------
# GetSiteNo and canned commands
# ---------------------------------------------------------------------------


class TestFixedCommands:
    def test_get_site_no(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch("<<*%GetSiteNo%*>>", IP_A) == "<<*%GETSITENO%SITENO=11>>"
        assert dispatcher.dispatch("<<*%GetSiteNo%*>>", "::1") == "<<*%GETSITENO%SITENO=0>>"

    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("<<*%GetID%*>>", "<<*%GETID%MODEL=3200;SN=1234567;NAME=SLT001;SWVERSION=1.1.0.1>>"),
            ("<<*%GetLotInfo%*>>", "<<*%GETLOTINFO%LOTID=TY08;OPERATORID=0001>>"),
            ("<<*%GetHandlerStatus%*>>", "<<*%GETHANDLERSTATUS%STATUS=CYCLE>>"),
            ("<<*%EnableTempLog%*>>", "<<*%ENABLETEMPLOG%ACK>>"),
            ("<<*%DisableTempLog%*>>", "<<*%DISABLETEMPLOG%ACK>>"),
            ("<<*%EnableTSD%*>>", "<<*%ENABLETSD%ACK>>"),
            ("<<*%DisableTSD%*>>", "<<*%DISABLETSD%ACK>>"),
        ],
    )
    def test_canned(self, tmp_path: Path, command: str, expected: str) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        assert dispatcher.dispatch(command, IP_A) == expected
        assert dispatcher.dispatch(command, IP_B) == expected

    def test_lot_id_from_context(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path, lot_id="LOT42")
        assert dispatcher.dispatch("<<*%GetLotInfo%*>>", IP_A) == (
            "<<*%GETLOTINFO%LOTID=LOT42;OPERATORID=0001>>"
        )


class TestUnknownAndErrors:
    @pytest.mark.parametrize(
        "command", ["HELLO", "<<*%Reboot%*>>", "<<*%getid%*>>", ">>", "<<1"]
    )
    def test_unknown(self, tmp_path: Path, command: str) -> None:
        assert _make_dispatcher(tmp_path).dispatch(command, IP_A) == UNKNOWN_COMMAND

    def test_empty_command_has_no_response(self, tmp_path: Path) -> None:
        assert _make_dispatcher(tmp_path).dispatch("   ", IP_A) == ""

    def test_internal_error_is_answered(self, tmp_path: Path) -> None:
        dispatcher = _make_dispatcher(tmp_path)
        with patch.object(
            dispatcher.context.allocations, "acquire", side_effect=RuntimeError("boom")
        ):
            response = dispatcher.dispatch("<<1%GetDUTInfo%>>", IP_A)
        assert response == "<<*%GETDUTINFO%TIMEOUT;INTERNAL_ERROR>>"
