"""Host-level helpers: file installs, service restarts and IPv4 forwarding."""

import logging
import posixpath
import shlex
import uuid
from typing import Optional

from .connection import Connection
from .errors import BackendError

logger = logging.getLogger(__name__)

FORWARDING_MARKER = "/etc/sysctl.d/routed-ap.conf"
FORWARDING_SETTING = "net.ipv4.ip_forward=1\n"
STAGING_DIR = "/tmp"


def run_command(connection: Connection, command: str, backend: str, sudo: bool = True) -> str:
    """
    Run a command and fail loudly.

    Args:
        connection: Where to run the command
        command: Shell command (without sudo)
        backend: Backend name reported in errors
        sudo: Prefix the command with sudo

    Returns:
        Command stdout

    Raises:
        BackendError: If the command exits non-zero
    """
    cmd = f"sudo {command}" if sudo else command
    logger.debug("Running %s", cmd)
    stdout, stderr, exit_code = connection.execute(cmd)
    if exit_code != 0:
        detail = stderr.strip() or stdout.strip()
        raise BackendError(f"{backend}: '{cmd}' failed: {detail}", backend=backend, command=cmd, detail=detail)
    return stdout


def read_file(connection: Connection, path: str, backend: str, sudo: bool = True) -> Optional[str]:
    """Read a configuration file on the router, or return None if it does not exist."""
    if not sudo:
        return connection.read_file(path)
    if not connection.file_exists(path):
        return None
    return run_command(connection, f"cat {shlex.quote(path)}", backend=backend)


def write_file(connection: Connection, path: str, content: str, backend: str, sudo: bool = True,
               mode: str = "0644") -> None:
    """
    Write a configuration file on the router.

    Without sudo the file is written directly as the connecting user. With
    sudo it is staged in /tmp and moved into place with ``sudo install``, so
    a non-root login can still write under /etc.

    Args:
        connection: Where to write
        path: Destination path
        content: File content
        backend: Backend name reported in errors
        sudo: Install the file with sudo
        mode: Permissions of the installed file

    Raises:
        BackendError: If the file cannot be written or installed
    """
    target = path if not sudo else posixpath.join(STAGING_DIR, f"routerkit-{uuid.uuid4().hex}")
    try:
        connection.write_file(target, content)
    except OSError as e:
        raise BackendError(f"Could not write {path}: {e}", backend=backend, detail=str(e)) from e
    if not sudo:
        return
    try:
        run_command(
            connection,
            f"install -D -m {mode} {shlex.quote(target)} {shlex.quote(path)}",
            backend=backend,
        )
    finally:
        run_command(connection, f"rm -f {shlex.quote(target)}", backend=backend, sudo=False)


def restart_service(connection: Connection, unit: str, sudo: bool = True) -> None:
    """Restart a systemd unit."""
    logger.info("Restarting %s", unit)
    run_command(connection, f"systemctl restart {shlex.quote(unit)}", backend=unit, sudo=sudo)


def enable_forwarding(connection: Connection, sudo: bool = True) -> bool:
    """
    Enable IPv4 forwarding persistently.

    The sysctl drop-in doubles as a marker: when it already exists nothing
    is written or restarted.

    Returns:
        True if forwarding was enabled, False if the marker was present
    """
    if connection.file_exists(FORWARDING_MARKER):
        logger.info("IPv4 forwarding already enabled (%s exists)", FORWARDING_MARKER)
        return False
    write_file(connection, FORWARDING_MARKER, FORWARDING_SETTING, backend="sysctl", sudo=sudo)
    restart_service(connection, "procps", sudo=sudo)
    logger.info("IPv4 forwarding enabled")
    return True
