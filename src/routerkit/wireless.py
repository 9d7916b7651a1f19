"""Wireless access points (one hostapd instance per interface)."""

import logging

from .connection import Connection
from .system import restart_service, write_file
from .topology import AccessPointSpec

logger = logging.getLogger(__name__)

HOSTAPD_DIR = "/etc/hostapd"


class Hostapd:
    """An access point served by the ``hostapd@<iface>`` unit."""

    def __init__(self, connection: Connection, spec: AccessPointSpec, sudo: bool = True):
        self.connection = connection
        self.spec = spec
        self.sudo = sudo

    @property
    def iface(self) -> str:
        return self.spec.iface

    @property
    def config_path(self) -> str:
        return f"{HOSTAPD_DIR}/hostapd-{self.spec.iface}.conf"

    @property
    def unit(self) -> str:
        return f"hostapd@{self.spec.iface}"

    def render(self) -> str:
        spec = self.spec
        settings = {
            "interface": spec.iface,
            "driver": "nl80211",
            "ssid": spec.ssid,
            "hw_mode": spec.hw_mode,
            "channel": spec.channel,
        }
        if spec.country_code:
            settings["country_code"] = spec.country_code
        settings.update({"wmm_enabled": 1, "auth_algs": 1, "ignore_broadcast_ssid": 0})
        if spec.password:
            settings.update({
                "wpa": 2,
                "wpa_passphrase": spec.password,
                "wpa_key_mgmt": "WPA-PSK",
                "rsn_pairwise": "CCMP",
            })
        # Unknown access point options are passed straight to hostapd.
        for key, value in spec.options.items():
            if isinstance(value, bool):
                value = int(value)
            settings[key] = value
        return "".join(f"{key}={value}\n" for key, value in settings.items())

    def restart(self) -> None:
        """
        Write the configuration and (re)start the access point.

        Raises:
            BackendError: If the file cannot be written or the unit fails
        """
        write_file(self.connection, self.config_path, self.render(), backend="hostapd", sudo=self.sudo, mode="0600")
        restart_service(self.connection, self.unit, sudo=self.sudo)
        logger.info("Access point %r up on %s", self.spec.ssid, self.spec.iface)
