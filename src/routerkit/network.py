"""Interface configuration through netplan."""

import logging
from typing import Any, Dict, Optional

import yaml

from .config import NetplanSettings
from .connection import Connection
from .errors import BackendError
from .system import read_file, run_command, write_file

logger = logging.getLogger(__name__)


class NetplanBackend:
    """
    Manages the ``ethernets`` section of a netplan YAML file.

    Everything else in the loaded file (bridges, vlans, bonds, wifis and
    interfaces not configured through this backend) is written back as is.
    """

    def __init__(self, connection: Connection, settings: Optional[NetplanSettings] = None, sudo: bool = True):
        self.connection = connection
        self.settings = settings or NetplanSettings()
        self.sudo = sudo
        self.network: Dict[str, Any] = {}
        self.ethernets: Dict[str, Dict[str, Any]] = {}
        self.renderer = self.settings.renderer

    @property
    def path(self) -> str:
        return self.settings.path

    def load_config(self) -> Dict[str, Dict[str, Any]]:
        """
        Read the current netplan file, if any.

        Returns:
            The interfaces defined in the file

        Raises:
            BackendError: If the file exists but is not valid netplan YAML
        """
        content = read_file(self.connection, self.path, backend="netplan", sudo=self.sudo)
        if content is None:
            logger.info("%s does not exist yet", self.path)
            self.network = {}
            self.ethernets = {}
            return self.ethernets

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise BackendError(f"Invalid YAML in {self.path}: {e}", backend="netplan", detail=str(e)) from e
        if not isinstance(data, dict):
            raise BackendError(f"{self.path} is not a netplan document", backend="netplan")

        network = data.get("network") or {}
        if not isinstance(network, dict):
            raise BackendError(f"{self.path}: network is not a mapping", backend="netplan")
        self.network = dict(network)
        self.ethernets = dict(network.get("ethernets") or {})
        if self.renderer is None:
            self.renderer = network.get("renderer")
        return self.ethernets

    def configure_interface(self, name: str, definition: Dict[str, Any]) -> None:
        """
        Set the definition of one interface.

        Args:
            name: Interface name (eth0, wlan0, ...)
            definition: netplan definition, e.g. {"dhcp4": True} or {"addresses": ["10.0.0.1/24"]}
        """
        self.ethernets[name] = dict(definition)

    def to_dict(self) -> Dict[str, Any]:
        network: Dict[str, Any] = {"version": self.network.get("version", 2)}
        if self.renderer:
            network["renderer"] = self.renderer
        network["ethernets"] = self.ethernets
        for key, value in self.network.items():
            network.setdefault(key, value)
        return {"network": network}

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def apply(self) -> None:
        """
        Write the netplan file and apply it.

        Raises:
            BackendError: If the file cannot be written or netplan fails
        """
        write_file(self.connection, self.path, self.to_yaml(), backend="netplan", sudo=self.sudo, mode="0600")
        run_command(self.connection, "netplan apply", backend="netplan", sudo=self.sudo)
        logger.info("Applied netplan configuration for %s", ", ".join(self.ethernets))
