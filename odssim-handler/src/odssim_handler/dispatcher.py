"""Command dispatcher for the handler protocol.

Turns one command string from a test-site controller into one response
string. Every failure is answered with a protocol-level negative response;
nothing raised while handling a command reaches the session.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

from odssim_core.errors import ProtocolError
from odssim_core.types import DutRecord, SummaryEntry, site_from_ip

from odssim_handler.context import ServerContext
from odssim_handler.protocol import (
    WILDCARD_SITE,
    CommandFrame,
    format_fields,
    format_response,
    parse_frame,
    parse_params,
)

logger = logging.getLogger(__name__)

UNKNOWN_COMMAND = ">>UNKNOWN_COMMAND"
INVALID_FORMAT_NO_SITENO = ">>INVALID_FORMAT_NO_SITENO"
LOT_END = "<<*%UID=LOTEND%*>>"

MIN_SITE_TEMPERATURE = -40.0
MAX_SITE_TEMPERATURE = 150.0
JUNCTION_OFFSET = -10.0
CASE_OFFSET = 5.0

HANDLER_MODEL = "3200"
HANDLER_SERIAL = "1234567"
HANDLER_NAME = "SLT001"
HANDLER_SW_VERSION = "1.1.0.1"
OPERATOR_ID = "0001"

Handler = Callable[[CommandFrame, str], str]


def _ack(name: str, site: str = WILDCARD_SITE) -> str:
    return format_response(site, name, "ACK")


class CommandDispatcher:
    """Dispatches handler commands against a shared ServerContext.

    Safe to call from many session threads at once; all shared state is
    reached through the context's locked stores.

    Args:
        context: Shared server state.
    """

    def __init__(self, context: ServerContext) -> None:
        self._context = context

        self._handlers: dict[str, Handler] = {
            "GetDUTInfo": self._get_dut_info,
            "GetStatus": self._get_status,
            "SetTestResult": self._set_test_result,
            "SetSiteTemp": self._set_site_temp,
            "GetSiteNo": self._get_site_no,
        }

        # Fixed replies, independent of the caller
        self._canned: dict[str, str] = {
            "GetID": format_response(
                WILDCARD_SITE,
                "GETID",
                format_fields(
                    {
                        "MODEL": HANDLER_MODEL,
                        "SN": HANDLER_SERIAL,
                        "NAME": HANDLER_NAME,
                        "SWVERSION": HANDLER_SW_VERSION,
                    }
                ),
            ),
            "GetLotInfo": format_response(
                WILDCARD_SITE,
                "GETLOTINFO",
                format_fields({"LOTID": context.lot_id, "OPERATORID": OPERATOR_ID}),
            ),
            "GetHandlerStatus": format_response(WILDCARD_SITE, "GETHANDLERSTATUS", "STATUS=CYCLE"),
            "EnableTempLog": _ack("ENABLETEMPLOG"),
            "DisableTempLog": _ack("DISABLETEMPLOG"),
            "EnableTSD": _ack("ENABLETSD"),
            "DisableTSD": _ack("DISABLETSD"),
        }

    @property
    def context(self) -> ServerContext:
        return self._context

    def dispatch(self, command: str, client_ip: str) -> str:
        """Process one command from ``client_ip``.

        Args:
            command: Trimmed command text.
            client_ip: Source IP of the connection.

        Returns:
            The response frame, or an empty string for an empty command.
        """
        if not command.strip():
            return ""

        try:
            frame = parse_frame(command)
        except ProtocolError as exc:
            logger.debug("[%s] %s", client_ip, exc)
            return UNKNOWN_COMMAND

        canned = self._canned.get(frame.name)
        if canned is not None:
            return canned

        handler = self._handlers.get(frame.name)
        if handler is None:
            return UNKNOWN_COMMAND

        try:
            return handler(frame, client_ip)
        except Exception:  # pylint: disable=broad-except
            logger.exception("[%s] Failed to process %s", client_ip, frame.name)
            return format_response(WILDCARD_SITE, frame.name.upper(), "TIMEOUT;INTERNAL_ERROR")

    # -- Helpers ------------------------------------------------------------

    @staticmethod
    def _resolve_site(frame: CommandFrame, client_ip: str) -> str:
        """Return the frame's site, or the caller's site for ``*``/absent."""
        if frame.site is None or frame.is_wildcard:
            return site_from_ip(client_ip)
        return frame.site

    @staticmethod
    def _format_dut(site: str, dut: DutRecord) -> str:
        return format_response(
            site,
            "GETDUTINFO",
            format_fields(
                {
                    "UID": dut.uid,
                    "BCD": dut.barcode,
                    "WARPAGE": dut.warpage,
                    "TESTCOUNT": dut.test_count,
                }
            ),
        )

    # -- Command handlers ---------------------------------------------------

    def _get_dut_info(self, frame: CommandFrame, client_ip: str) -> str:
        if frame.site is None:
            return INVALID_FORMAT_NO_SITENO

        dut = self._context.allocations.acquire(client_ip)
        if dut is None:
            logger.info("[%s] DUT pool exhausted, lot end", client_ip)
            self._context.flush_summary()
            return LOT_END

        return self._format_dut(frame.site, dut)

    def _get_status(self, frame: CommandFrame, client_ip: str) -> str:
        site = self._resolve_site(frame, client_ip)
        st = self._context.temperatures.get(site)
        tj = st + JUNCTION_OFFSET
        tc = st + CASE_OFFSET
        return format_response(
            site,
            "GETSITESTATUS",
            format_fields(
                {
                    "ST": f"{st:.1f}",
                    "TSD": "ENABLE",
                    "TC": f"{tc:.1f}",
                    "TJ": f"{tj:.1f}",
                    "DUT": "READYTOTEST",
                    "ERR": "",
                }
            ),
        )

    def _set_test_result(self, frame: CommandFrame, client_ip: str) -> str:
        params = parse_params(frame.body)
        bin_code = params.get("BIN", "")
        barcode = params.get("BCD", "")
        if not bin_code or not barcode:
            return format_response(WILDCARD_SITE, "SETTESTRESULT", "NAK;MISSING_PARAMETERS")

        dut = self._context.allocations.release_if_matches(client_ip, barcode)
        if dut is None:
            logger.warning("[%s] [SetTestResult] BCD mismatch or no DUT assigned.", client_ip)
            return format_response(WILDCARD_SITE, "SETTESTRESULT", "NAK;INVALID_BCD")

        logger.info("[%s] [SetTestResult] BCD matched. BIN=%s, BCD=%s", client_ip, bin_code, barcode)
        self._context.summary.append(
            SummaryEntry(site=site_from_ip(client_ip), barcode=barcode, bin=bin_code)
        )
        return _ack("SETTESTRESULT")

    def _set_site_temp(self, frame: CommandFrame, client_ip: str) -> str:
        site = self._resolve_site(frame, client_ip)
        try:
            value = float(frame.body)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            return format_response(site, "SETSITETEMP", "TIMEOUT;INVALID_VALUE")

        if value < MIN_SITE_TEMPERATURE or value > MAX_SITE_TEMPERATURE:
            return format_response(site, "SETSITETEMP", "TIMEOUT;OUT_OF_RANGE")

        self._context.temperatures.set(site, value)
        logger.info("[Site %s] Temperature set to %s°C", site, value)
        return _ack("SETSITETEMP", site)

    def _get_site_no(self, frame: CommandFrame, client_ip: str) -> str:
        return format_response(WILDCARD_SITE, "GETSITENO", f"SITENO={site_from_ip(client_ip)}")
