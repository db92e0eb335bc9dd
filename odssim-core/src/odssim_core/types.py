"""Common types used across odssim modules.

Classes:
    DutRecord: Simulated device-under-test issued to a site.
    SummaryEntry: One completed test result.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SITE_TEMPERATURE = 75.0
"""Temperature reported for a site that has never been set."""


@dataclass(frozen=True)
class DutRecord:
    """A simulated device-under-test.

    Records are created once when the pool is generated and are never
    modified afterwards.

    Attributes:
        uid: Index-derived unique identifier (e.g. ``"00001"``).
        barcode: Barcode (BCD) printed on the unit (e.g. ``"MSFT0001"``).
        ecid: Electronic chip identifier.
        warpage: Warpage measurement, pre-formatted for the wire.
        test_count: Number of times the unit has been tested.
    """

    uid: str
    barcode: str
    ecid: str
    warpage: str
    test_count: int

    def __post_init__(self) -> None:
        if not self.uid:
            raise ValueError("uid must be non-empty")
        if not self.barcode:
            raise ValueError("barcode must be non-empty")
        if self.test_count < 0:
            raise ValueError("test_count must be >= 0")


@dataclass(frozen=True)
class SummaryEntry:
    """A completed test result.

    Attributes:
        site: Site that reported the result.
        barcode: Barcode of the tested DUT.
        bin: Bin code assigned by the tester.
    """

    site: str
    barcode: str
    bin: str


def site_from_ip(ip: str) -> str:
    """Derive a site number from the last dot-separated part of an IP address.

    Args:
        ip: Client IP address.

    Returns:
        The site number as a string, or ``"0"`` if the last component is
        not numeric.
    """
    last = ip.split(".")[-1]
    try:
        return str(int(last))
    except ValueError:
        return "0"
