"""Handler PC configuration loading.

The handler configuration is the ``handlerpc.json`` file that sits next to the
deployment script on the handler PC. It is read with ``yaml.safe_load`` so both
the JSON file and a hand-written YAML equivalent are accepted.

Example configuration:
    {
      "LotId": "TY08",
      "Units": 25,
      "AcceptanceIp": ["192.168.1.11", "192.168.1.12"],
      "Port": 5000,
      "WorkingDirectory": "/srv/releases",
      "SshHosts": ["192.168.1.11:2222", "192.168.1.12:2222"]
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from odssim_core.errors import ConfigurationError

DEFAULT_LOT_ID = "TY08"
DEFAULT_UNITS = 25
DEFAULT_PORT = 5000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_LOG_DIRNAME = "Logs"

RELEASE_ARCHIVE_NAME = "SLT_TestProgram_release.zip"
RELEASE_CHECKSUM_NAME = "SLT_TestProgram_release.sha1"


@dataclass(frozen=True)
class HandlerConfig:
    """Configuration for one handler simulator process.

    Attributes:
        accepted_ips: IP allowlist; connections from any other address are
            closed without a response.
        lot_id: Lot identifier reported by ``GetLotInfo``.
        units: Number of DUTs in the pool.
        port: TCP port to listen on (``0`` for an ephemeral port).
        host: Bind address.
        log_directory: Directory for the run log and the summary file.
        working_directory: Directory holding the release archive and checksum
            handed to the deployment script.
        ssh_hosts: ``host:port`` deployment targets.
        deploy_script: External deployment script, or None to skip deployment.
    """

    accepted_ips: frozenset[str]
    lot_id: str = DEFAULT_LOT_ID
    units: int = DEFAULT_UNITS
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    log_directory: Path = field(default_factory=lambda: Path(DEFAULT_LOG_DIRNAME))
    working_directory: Path | None = None
    ssh_hosts: tuple[str, ...] = ()
    deploy_script: Path | None = None

    def __post_init__(self) -> None:
        if not self.lot_id:
            raise ValueError("lot_id must be non-empty")
        if self.units < 1:
            raise ValueError("units must be >= 1")
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be in range 0-65535")
        for target in self.ssh_hosts:
            host, sep, port = target.rpartition(":")
            if not sep or not host or not port.isdigit():
                raise ValueError(f"ssh host must be 'host:port', got {target!r}")

    @property
    def summary_path(self) -> Path:
        """Path of the persisted overall summary."""
        return self.log_directory / "OverallSummary.txt"

    @property
    def release_archive(self) -> Path | None:
        """Release archive handed to the deployment script."""
        if self.working_directory is None:
            return None
        return self.working_directory / RELEASE_ARCHIVE_NAME

    @property
    def release_checksum(self) -> Path | None:
        """Checksum file handed to the deployment script."""
        if self.working_directory is None:
            return None
        return self.working_directory / RELEASE_CHECKSUM_NAME


def _require_type(data: dict[str, Any], key: str, expected: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    # bool is an int subclass; reject it where a number is expected
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise ConfigurationError(f"{key} must be of type {expected.__name__}")
    return value


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{key} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _resolve(base: Path, value: str | None) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def parse_config(data: Any, base_dir: str | Path = ".") -> HandlerConfig:
    """Build a HandlerConfig from already-parsed configuration data.

    Args:
        data: Parsed configuration mapping.
        base_dir: Directory that relative paths are resolved against.

    Returns:
        Parsed handler configuration.

    Raises:
        ConfigurationError: If the data is not a mapping or a field is invalid.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a mapping")
    base = Path(base_dir)

    if "AcceptanceIp" not in data:
        raise ConfigurationError("Missing required field: AcceptanceIp")
    accepted_ips = _string_list(data, "AcceptanceIp")

    lot_id = _require_type(data, "LotId", str, DEFAULT_LOT_ID)
    units = _require_type(data, "Units", int, DEFAULT_UNITS)
    port = _require_type(data, "Port", int, DEFAULT_PORT)
    host = _require_type(data, "Host", str, DEFAULT_HOST)
    log_dir = _require_type(data, "LogDirectory", str, None)
    working_dir = _require_type(data, "WorkingDirectory", str, None)
    deploy_script = _require_type(data, "DeployScript", str, None)

    try:
        return HandlerConfig(
            accepted_ips=frozenset(accepted_ips),
            lot_id=lot_id,
            units=units,
            port=port,
            host=host,
            log_directory=_resolve(base, log_dir) or base / DEFAULT_LOG_DIRNAME,
            working_directory=_resolve(base, working_dir),
            ssh_hosts=tuple(_string_list(data, "SshHosts")),
            deploy_script=_resolve(base, deploy_script),
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_config(path: str | Path) -> HandlerConfig:
    """Load the handler configuration from a JSON or YAML file.

    Relative paths inside the file are resolved against the file's directory.

    Args:
        path: Path to ``handlerpc.json``.

    Returns:
        Parsed handler configuration.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON/YAML: {exc}") from exc

    return parse_config(data, base_dir=path.resolve().parent)
