"""Command execution on the router host."""

import subprocess
from pathlib import Path
from typing import Optional, Protocol, Tuple


class Connection(Protocol):
    """What the backends need from the host they configure."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def execute(self, command: str) -> Tuple[str, str, int]: ...

    def read_file(self, path: str) -> Optional[str]: ...

    def write_file(self, path: str, content: str) -> None: ...

    def file_exists(self, path: str) -> bool: ...


class LocalConnection:
    """Runs commands and file operations on the local machine."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        """
        Initialize a local connection.

        Args:
            timeout: Per-command timeout in seconds (None waits indefinitely)
        """
        self.timeout = timeout
        self.host = "localhost"

    def connect(self) -> None:
        """Nothing to establish for local execution."""

    def disconnect(self) -> None:
        """Nothing to release for local execution."""

    def execute(self, command: str) -> Tuple[str, str, int]:
        """
        Execute a shell command locally.

        Args:
            command: The command to execute

        Returns:
            Tuple of (stdout, stderr, exit_code)
        """
        result = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        return result.stdout, result.stderr, result.returncode

    def read_file(self, path: str) -> Optional[str]:
        """Return the content of a file, or None if it does not exist."""
        p = Path(path)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def write_file(self, path: str, content: str) -> None:
        """Write a file, creating parent directories as needed."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")

    def file_exists(self, path: str) -> bool:
        return Path(path).exists()

    def __enter__(self) -> "LocalConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
