"""Fire-and-forget trigger for the external deployment script.

At startup the handler PC pushes the latest test-program release to the
test-site hosts. The copy, checksum verification and remote restart are done
by an external script; this module only starts it and logs what it prints.

The script receives the release files and targets both as arguments::

    <script> <checksum-file> <archive> <host:port> [<host:port> ...]

and as ``ODSSIM_CHECKSUM``, ``ODSSIM_ARCHIVE`` and ``ODSSIM_SSH_HOSTS``
(comma-separated) in its environment.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from pathlib import Path

from odssim_core.errors import DeploymentError

from odssim_handler.config import HandlerConfig

logger = logging.getLogger(__name__)


def build_deploy_command(config: HandlerConfig) -> list[str]:
    """Build the deployment command line.

    Raises:
        DeploymentError: If no deployment script or working directory is configured.
    """
    if config.deploy_script is None:
        raise DeploymentError("No deployment script configured")
    if config.release_archive is None or config.release_checksum is None:
        raise DeploymentError("WorkingDirectory missing; cannot locate release archive")
    return [
        str(config.deploy_script),
        str(config.release_checksum),
        str(config.release_archive),
        *config.ssh_hosts,
    ]


def _pump_output(process: subprocess.Popen[str], name: str) -> None:
    """Log each line the script prints, then its exit status."""
    assert process.stdout is not None
    for line in process.stdout:
        logger.info("[deploy] %s", line.rstrip())
    returncode = process.wait()
    if returncode == 0:
        logger.info("Deployment script %s finished", name)
    else:
        logger.error("Deployment script %s exited with status %d", name, returncode)


def trigger_deployment(config: HandlerConfig) -> threading.Thread:
    """Start the deployment script without waiting for it.

    Args:
        config: Handler configuration naming the script, release directory
            and SSH targets.

    Returns:
        The daemon thread logging the script's combined output. Joining it
        waits for the script to finish.

    Raises:
        DeploymentError: If the script is not configured, missing, or cannot
            be started.
    """
    cmd = build_deploy_command(config)
    script = Path(cmd[0])
    if not script.is_file():
        raise DeploymentError(f"Deployment script not found: {script}")

    env = dict(os.environ)
    env["ODSSIM_CHECKSUM"] = cmd[1]
    env["ODSSIM_ARCHIVE"] = cmd[2]
    env["ODSSIM_SSH_HOSTS"] = ",".join(config.ssh_hosts)

    logger.info("Starting deployment to %d host(s): %s", len(config.ssh_hosts), script)
    try:
        process = subprocess.Popen(
            cmd,
            cwd=script.parent,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as exc:
        raise DeploymentError(f"Failed to start deployment script {script}: {exc}") from exc

    thread = threading.Thread(
        target=_pump_output, args=(process, script.name), name="odssim-deploy", daemon=True
    )
    thread.start()
    return thread
