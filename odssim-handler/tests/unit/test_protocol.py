"""Unit tests for command frame parsing."""

from __future__ import annotations

import pytest

from odssim_core.errors import ProtocolError
from odssim_handler.protocol import (
    CommandFrame,
    format_fields,
    format_response,
    parse_frame,
    parse_params,
)


class TestParseFrame:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("<<1%GetDUTInfo%>>", CommandFrame("1", "GetDUTInfo", "")),
            ("$<<1%GetDUTInfo%>>", CommandFrame("1", "GetDUTInfo", "")),
            ("<<*%GetID%*>>", CommandFrame("*", "GetID", "")),
            ("<<%GetStatus%>>", CommandFrame(None, "GetStatus", "")),
            ("<<3%SetSiteTemp%85.5>>", CommandFrame("3", "SetSiteTemp", "85.5")),
            (
                "<<*%SetTestResult%BIN=1;BCD=MSFT0001%*>>",
                CommandFrame("*", "SetTestResult", "BIN=1;BCD=MSFT0001"),
            ),
            ("  <<2%GetStatus  ", CommandFrame("2", "GetStatus", "")),
        ],
    )
    def test_valid(self, text: str, expected: CommandFrame) -> None:
        assert parse_frame(text) == expected

    @pytest.mark.parametrize("text", ["", "GetID", ">>GetID<<", "<<>>", "<<*%%*>>", "<<1"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ProtocolError):
            parse_frame(text)

    def test_wildcard(self) -> None:
        assert parse_frame("<<*%GetStatus%>>").is_wildcard
        assert parse_frame("<<%GetStatus%>>").is_wildcard
        assert not parse_frame("<<4%GetStatus%>>").is_wildcard


class TestParams:
    def test_parse_params(self) -> None:
        assert parse_params("BIN=1; BCD=MSFT0001 ;junk") == {"BIN": "1", "BCD": "MSFT0001"}

    def test_empty_body(self) -> None:
        assert parse_params("") == {}


class TestFormat:
    def test_format_response(self) -> None:
        payload = format_fields({"UID": "00001", "TESTCOUNT": 2})
        assert format_response("1", "GETDUTINFO", payload) == (
            "<<1%GETDUTINFO%UID=00001;TESTCOUNT=2>>"
        )
