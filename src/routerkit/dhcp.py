"""DHCP service configuration (isc-dhcp-server)."""

import logging
from typing import List

from .connection import Connection
from .system import restart_service, write_file
from .topology import DhcpRange

logger = logging.getLogger(__name__)

DHCPD_CONF = "/etc/dhcp/dhcpd.conf"
DHCPD_DEFAULTS = "/etc/default/isc-dhcp-server"
SERVICE = "isc-dhcp-server"


def render_subnet(pool: DhcpRange) -> str:
    """Render one subnet declaration."""
    lines = [
        f"subnet {pool.subnet} netmask {pool.netmask} {{",
        f"  range {pool.begin_ip} {pool.end_ip};",
        f"  option routers {pool.router_ip};",
        f"  option subnet-mask {pool.netmask};",
    ]
    if pool.domain:
        lines.append(f'  option domain-name "{pool.domain}";')
    if pool.nameservers:
        lines.append(f"  option domain-name-servers {', '.join(pool.nameservers)};")
    lines.append("}")
    return "\n".join(lines)


class DhcpServer:
    """Serves every configured pool from a single dhcpd instance."""

    def __init__(self, connection: Connection, pools: List[DhcpRange], sudo: bool = True):
        self.connection = connection
        self.pools = list(pools)
        self.sudo = sudo

    def render_config(self) -> str:
        header = [
            "# Generated by routerkit",
            "default-lease-time 600;",
            "max-lease-time 7200;",
            "authoritative;",
        ]
        blocks = [render_subnet(pool) for pool in self.pools]
        return "\n\n".join(["\n".join(header)] + blocks) + "\n"

    def render_defaults(self) -> str:
        interfaces = " ".join(pool.iface for pool in self.pools)
        return f'INTERFACESv4="{interfaces}"\nINTERFACESv6=""\n'

    def deploy(self) -> None:
        """
        Write the dhcpd configuration and restart the service.

        Raises:
            BackendError: If a file cannot be written or the restart fails
        """
        for path, content in ((DHCPD_CONF, self.render_config()), (DHCPD_DEFAULTS, self.render_defaults())):
            write_file(self.connection, path, content, backend="dhcpd", sudo=self.sudo)
        restart_service(self.connection, SERVICE, sudo=self.sudo)
        logger.info("DHCP serving %d pool(s)", len(self.pools))
