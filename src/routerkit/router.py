"""Deployment orchestration: bring a router topology up and tear it down."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import RouterConfig
from .connection import Connection, LocalConnection
from .dhcp import DhcpServer
from .errors import BackendError, DeploymentError
from .firewall import FirewallManager
from .iptables import Iptables
from .network import NetplanBackend
from .rules import RuleDocument, load_rule_document
from .system import enable_forwarding
from .topology import ResolvedLan, WanPlan, resolve
from .wireless import Hostapd

logger = logging.getLogger(__name__)


@dataclass
class AccessPointResult:
    """Result of starting a single access point."""

    iface: str
    ssid: str
    success: bool
    error: Optional[str] = None


@dataclass
class DeploymentResult:
    """What a deployment did."""

    steps: List[str] = field(default_factory=list)
    access_points: Dict[str, AccessPointResult] = field(default_factory=dict)
    forwarding_enabled: bool = False
    chain_rules_applied: int = 0

    @property
    def failed_access_points(self) -> Dict[str, AccessPointResult]:
        return {name: ap for name, ap in self.access_points.items() if not ap.success}

    @property
    def all_successful(self) -> bool:
        return not self.failed_access_points


class Router:
    """
    A router topology bound to the host it configures.

    The configuration is resolved when the router is created, so an invalid
    topology raises before any backend is touched.

    Example:
        >>> config = load_config("router.yaml")
        >>> router = Router(config, SSHConnection("10.0.0.1"))
        >>> router.deploy()
    """

    def __init__(
        self,
        config: RouterConfig,
        connection: Optional[Connection] = None,
        rules: Optional[RuleDocument] = None,
        max_workers: int = 5,
    ):
        """
        Resolve the topology and build the backends.

        Args:
            config: Router configuration
            connection: Host to configure (default: the local machine)
            rules: Firewall rule document (default: config.firewall.rules_file
                or the packaged rule set)
            max_workers: Maximum access points started in parallel

        Raises:
            ConfigValidationError: If the topology is invalid
        """
        self.config = config
        self._lans, self._wan = resolve(config)
        self.connection: Connection = connection if connection is not None else LocalConnection()
        self.rules = rules if rules is not None else load_rule_document(config.firewall.rules_file)
        self.max_workers = max_workers

        sudo = config.firewall.sudo
        self.netplan = NetplanBackend(self.connection, config.netplan, sudo=sudo)
        pools = [lan.dhcp for lan in self._lans if lan.dhcp is not None]
        self.dhcp = DhcpServer(self.connection, pools, sudo=sudo) if pools else None
        self.access_points = [
            Hostapd(self.connection, lan.access_point, sudo=sudo)
            for lan in self._lans
            if lan.access_point is not None
        ]
        self.firewall = FirewallManager(Iptables(self.connection, sudo=sudo), self.rules)

    @property
    def lans(self) -> List[ResolvedLan]:
        return list(self._lans)

    @property
    def wan(self) -> WanPlan:
        return self._wan

    def _configure_interfaces(self) -> None:
        self.netplan.load_config()
        self.netplan.configure_interface(self._wan.iface, self._wan.definition)
        for lan in self._lans:
            self.netplan.configure_interface(lan.iface, lan.interface_definition())
        self.netplan.apply()

    def _start_access_points(self, result: DeploymentResult) -> None:
        def start(ap: Hostapd) -> AccessPointResult:
            try:
                ap.restart()
                return AccessPointResult(iface=ap.iface, ssid=ap.spec.ssid, success=True)
            except Exception as e:
                logger.error("Access point on %s failed: %s", ap.iface, e)
                return AccessPointResult(iface=ap.iface, ssid=ap.spec.ssid, success=False, error=str(e))

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(start, ap): ap for ap in self.access_points}
            for future in as_completed(futures):
                ap_result = future.result()
                result.access_points[ap_result.iface] = ap_result

        failed = result.failed_access_points
        if failed:
            names = ", ".join(sorted(failed))
            raise DeploymentError(
                f"{len(failed)} of {len(self.access_points)} access point(s) failed: {names}",
                failures={name: ap.error or "" for name, ap in failed.items()},
                result=result,
            )

    def deploy(self) -> DeploymentResult:
        """
        Bring the configured topology up.

        Steps run in order; the first failing step aborts the rest and
        nothing is rolled back:

        1. interfaces (netplan)
        2. DHCP server, if any LAN serves DHCP
        3. access points, started in parallel
        4. IPv4 forwarding
        5. firewall chains created, then flushed
        6. ingress rules for each LAN, in configuration order
        7. egress rules for the WAN

        Returns:
            DeploymentResult describing the run

        Raises:
            BackendError: If a backend fails
            DeploymentError: If any access point failed (all are attempted)
        """
        result = DeploymentResult()

        logger.info("Configuring interfaces")
        self._configure_interfaces()
        result.steps.append("interfaces")

        if self.dhcp is not None:
            logger.info("Starting DHCP server")
            self.dhcp.deploy()
            result.steps.append("dhcp")

        if self.access_points:
            logger.info("Starting %d access point(s)", len(self.access_points))
            self._start_access_points(result)
            result.steps.append("access_points")

        result.forwarding_enabled = enable_forwarding(self.connection, sudo=self.config.firewall.sudo)
        result.steps.append("forwarding")

        result.chain_rules_applied = self.firewall.init_chains()
        self.firewall.flush_all()
        result.steps.append("chains")

        for lan in self._lans:
            self.firewall.apply_ingress(self._wan.iface, lan)
        result.steps.append("ingress")

        self.firewall.apply_egress(self._wan.iface)
        result.steps.append("egress")

        logger.info("Deployment complete")
        return result

    def teardown(self) -> List[BackendError]:
        """
        Remove the managed firewall chains.

        Returns:
            Errors reported while removing; never raises them
        """
        errors = self.firewall.remove_chains()
        if errors:
            logger.warning("Teardown finished with %d error(s)", len(errors))
        return errors
