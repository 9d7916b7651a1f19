"""SSH connection management for remote routers."""

import posixpath
import threading
from typing import Optional, Tuple

import paramiko


class SSHConnection:
    """Runs commands and file operations on a router over SSH."""

    def __init__(
        self,
        host: str,
        port: int = 22,
        username: str = "root",
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        timeout: int = 30,
    ):
        """
        Initialize SSH connection parameters.

        Args:
            host: The hostname or IP address of the router
            port: SSH port (default: 22)
            username: SSH username (default: root)
            password: SSH password
            key_filename: Path to SSH private key file
            timeout: Connection timeout in seconds
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.key_filename = key_filename
        self.timeout = timeout
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        # One SFTP session is shared by every thread; requests on it are serialized.
        self._sftp_lock = threading.Lock()
        self._connect_lock = threading.Lock()

    def connect(self) -> None:
        """Establish SSH connection to the router."""
        with self._connect_lock:
            if self._client is not None:
                return

            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            try:
                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    key_filename=self.key_filename,
                    timeout=self.timeout,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to {self.host}: {e}")
            self._client = client

    def disconnect(self) -> None:
        """Close the SSH connection."""
        with self._sftp_lock:
            if self._sftp is not None:
                self._sftp.close()
                self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def execute(self, command: str) -> Tuple[str, str, int]:
        """
        Execute a command on the router.

        Args:
            command: The command to execute

        Returns:
            Tuple of (stdout, stderr, exit_code)
        """
        if self._client is None:
            self.connect()

        stdin, stdout, stderr = self._client.exec_command(command)  # type: ignore[union-attr]
        exit_code = stdout.channel.recv_exit_status()

        return (
            stdout.read().decode("utf-8"),
            stderr.read().decode("utf-8"),
            exit_code,
        )

    def _sftp_client(self) -> paramiko.SFTPClient:
        """Return the shared SFTP session. Callers must hold ``_sftp_lock``."""
        if self._client is None:
            self.connect()
        if self._sftp is None:
            self._sftp = self._client.open_sftp()  # type: ignore[union-attr]
        return self._sftp

    def read_file(self, path: str) -> Optional[str]:
        """Return the content of a remote file, or None if it does not exist."""
        with self._sftp_lock:
            sftp = self._sftp_client()
            try:
                with sftp.open(path, "r") as f:
                    return f.read().decode("utf-8")
            except FileNotFoundError:
                return None

    def write_file(self, path: str, content: str) -> None:
        """Write a remote file, creating its parent directory if needed."""
        parent = posixpath.dirname(path)
        if parent:
            stdout, stderr, exit_code = self.execute(f"mkdir -p '{parent}'")
            if exit_code != 0:
                raise OSError(f"Failed to create {parent} on {self.host}: {stderr}")
        with self._sftp_lock:
            sftp = self._sftp_client()
            with sftp.open(path, "w") as f:
                f.write(content.encode("utf-8"))

    def file_exists(self, path: str) -> bool:
        with self._sftp_lock:
            sftp = self._sftp_client()
            try:
                sftp.stat(path)
                return True
            except FileNotFoundError:
                return False

    def __enter__(self) -> "SSHConnection":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()
