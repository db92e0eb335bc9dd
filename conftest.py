"""Root conftest.py for the odssim repository.

This provides shared pytest configuration across all packages.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from _pytest.config import Config


# Add all package src directories to path so tests run without installing
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("odssim-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))


def pytest_report_header(config: Config) -> list[str]:
    """Add the package list to the pytest header.

    Args:
        config: pytest configuration object.

    Returns:
        List of header lines.
    """
    packages = sorted(p.parent.name for p in PROJECT_ROOT.glob("odssim-*/src"))
    return [f"odssim test suite: {', '.join(packages)}"]
