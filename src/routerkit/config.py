"""Router configuration models."""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException
from pydantic import Field, model_validator

from .base import RouterModel
from .errors import ConfigValidationError

DEFAULT_NETPLAN_PATH = "/etc/netplan/config.yaml"


class NetplanSettings(RouterModel):
    """Where the declarative interface configuration lives."""

    path: str = Field(default=DEFAULT_NETPLAN_PATH, description="Netplan YAML file to manage")
    renderer: Optional[str] = Field(default=None, description="Netplan renderer (networkd, NetworkManager)")


class WanConfig(RouterModel):
    """Upstream interface configuration."""

    iface: str = Field(default="eth0", min_length=1, description="WAN interface name")
    mode: Literal["dhcp", "static"] = Field(default="dhcp", description="Address mode")
    address: Optional[str] = Field(default=None, description="Static address")
    prefix: Optional[int] = Field(default=None, ge=0, le=32, description="Static prefix length")
    gateway: Optional[str] = Field(default=None, description="Static default gateway")
    nameservers: List[str] = Field(default_factory=list, description="Static DNS servers")

    @model_validator(mode="after")
    def _check_static(self) -> "WanConfig":
        if self.mode == "static" and (self.address is None or self.prefix is None):
            raise ValueError("static WAN requires both address and prefix")
        return self

    def with_dhcp(self) -> "WanConfig":
        """Use DHCP on the WAN interface (returns new copy)."""
        return self.model_copy(update={"mode": "dhcp"})

    def with_static(
        self,
        address: str,
        prefix: int,
        gateway: Optional[str] = None,
        nameservers: Optional[List[str]] = None,
    ) -> "WanConfig":
        """Use a static address on the WAN interface (returns new copy)."""
        return WanConfig.model_validate({
            **self.to_dict(),
            "mode": "static",
            "address": address,
            "prefix": prefix,
            "gateway": gateway,
            "nameservers": list(nameservers or []),
        })


class DhcpPoolConfig(RouterModel):
    """DHCP pool options for a LAN. Unset bounds are derived from the block."""

    begin_ip: Optional[str] = Field(default=None, description="First leased address")
    end_ip: Optional[str] = Field(default=None, description="Last leased address")
    domain: Optional[str] = Field(default=None, description="Domain name handed to clients")
    nameservers: Optional[List[str]] = Field(
        default=None, description="DNS servers handed to clients (default: the gateway)"
    )


class AccessPointConfig(RouterModel):
    """Wireless access point served on a LAN interface."""

    ssid: str = Field(..., min_length=1, max_length=32, description="Network name")
    password: Optional[str] = Field(
        default=None, min_length=8, max_length=63, description="WPA2 passphrase (open network if unset)"
    )
    channel: int = Field(default=6, ge=1, le=196, description="Radio channel")
    hw_mode: Literal["a", "b", "g"] = Field(default="g", description="hostapd hw_mode")
    country_code: Optional[str] = Field(default=None, min_length=2, max_length=2)


class LanConfig(RouterModel):
    """A LAN interface with its address block and optional services."""

    iface: str = Field(..., min_length=1, description="LAN interface name")
    network: str = Field(..., description="Network address of the block")
    prefix: int = Field(default=24, ge=0, le=32, description="Prefix length of the block")
    ip: Optional[str] = Field(default=None, description="Router address on the LAN (default: first usable)")
    dhcp_server: Optional[DhcpPoolConfig] = None
    access_point: Optional[AccessPointConfig] = None

    def with_ip(self, value: str) -> "LanConfig":
        """Set an explicit gateway address (returns new copy)."""
        return self.model_copy(update={"ip": value})

    def with_dhcp_server(self, pool: Optional[DhcpPoolConfig] = None) -> "LanConfig":
        """Serve DHCP on this LAN (returns new copy)."""
        return self.model_copy(update={"dhcp_server": pool or DhcpPoolConfig()})

    def with_access_point(self, ssid: str, password: Optional[str] = None, **options: Any) -> "LanConfig":
        """Run an access point on this LAN (returns new copy)."""
        ap = AccessPointConfig(ssid=ssid, password=password, **options)
        return self.model_copy(update={"access_point": ap})


class FirewallSettings(RouterModel):
    """Packet filter settings."""

    rules_file: Optional[str] = Field(default=None, description="Custom rule document (JSON)")
    sudo: bool = Field(default=True, description="Prefix packet filter commands with sudo")


class RouterConfig(RouterModel):
    """Complete router topology: one WAN, any number of LANs."""

    netplan: NetplanSettings = Field(default_factory=NetplanSettings)
    wan: WanConfig = Field(default_factory=WanConfig)
    lans: List[LanConfig] = Field(default_factory=list)
    firewall: FirewallSettings = Field(default_factory=FirewallSettings)

    def with_wan(self, wan: WanConfig) -> "RouterConfig":
        """Replace the WAN configuration (returns new copy)."""
        return self.model_copy(update={"wan": wan})

    def with_lan(self, lan: LanConfig) -> "RouterConfig":
        """Append a LAN (returns new copy)."""
        return self.model_copy(update={"lans": [*self.lans, lan]})


def load_config(filename: str) -> RouterConfig:
    """
    Load a router configuration file.

    YAML files are read through OmegaConf so values can interpolate
    environment variables, e.g. ``password: ${oc.env:WIFI_PASSWORD}``.
    Files ending in ``.json`` are parsed as plain JSON.

    Args:
        filename: Path to the YAML or JSON file

    Returns:
        RouterConfig instance

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigValidationError: If the file content is not a valid configuration
    """
    path = Path(filename)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {filename}")

    if path.suffix == ".json":
        return RouterConfig.from_json_file(str(path))

    with open(path, "r") as f:
        yaml_content = f.read()

    try:
        omega_conf = OmegaConf.create(yaml_content)
        data: Dict[str, Any] = OmegaConf.to_container(omega_conf, resolve=True)  # type: ignore[assignment]
    except (OmegaConfBaseException, yaml.YAMLError) as e:
        raise ConfigValidationError(f"Could not load {filename}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError("Configuration file must be a YAML dictionary")

    return RouterConfig.from_dict(data)
