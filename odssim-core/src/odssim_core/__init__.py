"""Core types for the odssim test-handler simulator.

This package provides the data types and error types shared by the odssim
packages. It is stdlib-only so it can serve as the base layer for the
handler server and any host-side tooling.

Key components:
    - Types: Device-under-test records (DutRecord), completed test results
      (SummaryEntry) and the IP-to-site mapping used by the handler protocol.
    - Errors: Hierarchy of exception types for the failure modes of the
      simulator.

Example:
    >>> from odssim_core import DutRecord, site_from_ip
    >>> dut = DutRecord(uid="00001", barcode="MSFT0001", ecid="12345678",
    ...                 warpage="0.1234", test_count=3)
    >>> site_from_ip("192.168.1.17")
    '17'
"""

from odssim_core.errors import (
    ConfigurationError,
    DeploymentError,
    OdsSimError,
    ProtocolError,
)
from odssim_core.types import (
    DEFAULT_SITE_TEMPERATURE,
    DutRecord,
    SummaryEntry,
    site_from_ip,
)

__all__ = [
    # Errors
    "OdsSimError",
    "ConfigurationError",
    "ProtocolError",
    "DeploymentError",
    # Types
    "DutRecord",
    "SummaryEntry",
    "DEFAULT_SITE_TEMPERATURE",
    "site_from_ip",
]
