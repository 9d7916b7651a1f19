"""Topology resolution: turn a RouterConfig into a per-interface plan."""

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .addressing import derive_dhcp_range, derive_gateway, parse_block
from .config import LanConfig, RouterConfig, WanConfig
from .errors import ConfigConflictError, ConfigValidationError, InvalidRangeError


@dataclass(frozen=True)
class DhcpRange:
    """A DHCP pool ready to hand to the DHCP backend."""

    iface: str
    begin_ip: str
    end_ip: str
    netmask: str
    subnet: str
    router_ip: str
    domain: Optional[str] = None
    nameservers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessPointSpec:
    """Access point configuration stamped with the interface it serves."""

    iface: str
    ssid: str
    password: Optional[str] = None
    channel: int = 6
    hw_mode: str = "g"
    country_code: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedLan:
    """Derived, immutable parameters of one LAN."""

    iface: str
    gateway_ip: str
    prefix: int
    netmask: str
    subnet: str
    dhcp: Optional[DhcpRange] = None
    access_point: Optional[AccessPointSpec] = None

    @property
    def address(self) -> str:
        """Gateway address in CIDR notation (192.168.4.1/24)."""
        return f"{self.gateway_ip}/{self.prefix}"

    def interface_definition(self) -> Dict[str, Any]:
        """Static interface definition for the interface backend."""
        return {"addresses": [self.address]}


@dataclass(frozen=True)
class WanPlan:
    """How the WAN interface gets its address."""

    iface: str
    definition: Dict[str, Any]


def _wan_plan(wan: WanConfig) -> WanPlan:
    if wan.mode == "dhcp":
        return WanPlan(iface=wan.iface, definition={"dhcp4": True})

    definition: Dict[str, Any] = {"addresses": [f"{wan.address}/{wan.prefix}"]}
    if wan.gateway:
        definition["routes"] = [{"to": "default", "via": wan.gateway}]
    if wan.nameservers:
        definition["nameservers"] = {"addresses": list(wan.nameservers)}
    return WanPlan(iface=wan.iface, definition=definition)


def _access_point_spec(lan: LanConfig) -> Optional[AccessPointSpec]:
    ap = lan.access_point
    if ap is None:
        return None
    return AccessPointSpec(
        iface=lan.iface,
        ssid=ap.ssid,
        password=ap.password,
        channel=ap.channel,
        hw_mode=ap.hw_mode,
        country_code=ap.country_code,
        options=dict(ap.model_extra or {}),
    )


def resolve_lan(lan: LanConfig) -> ResolvedLan:
    """
    Derive gateway, netmask and DHCP pool for a single LAN.

    Raises:
        ConfigValidationError: If the block or gateway is invalid
        InvalidRangeError: If the DHCP pool is invalid or contains the gateway
        UnsupportedPrefixError: If the default pool start needs an octet carry
    """
    block = parse_block(lan.network, lan.prefix)
    gateway = derive_gateway(lan.network, lan.prefix, lan.ip)
    netmask = str(block.netmask)
    subnet = str(block.network_address)

    dhcp = None
    if lan.dhcp_server is not None:
        pool = lan.dhcp_server
        begin, end = derive_dhcp_range(lan.network, lan.prefix, pool.begin_ip, pool.end_ip)
        gw = ipaddress.IPv4Address(gateway)
        if ipaddress.IPv4Address(begin) <= gw <= ipaddress.IPv4Address(end):
            raise InvalidRangeError(
                f"{lan.iface}: gateway {gateway} lies inside the DHCP range {begin}-{end}"
            )
        dhcp = DhcpRange(
            iface=lan.iface,
            begin_ip=begin,
            end_ip=end,
            netmask=netmask,
            subnet=subnet,
            router_ip=gateway,
            domain=pool.domain,
            nameservers=tuple(pool.nameservers or [gateway]),
        )

    return ResolvedLan(
        iface=lan.iface,
        gateway_ip=gateway,
        prefix=lan.prefix,
        netmask=netmask,
        subnet=subnet,
        dhcp=dhcp,
        access_point=_access_point_spec(lan),
    )


def _interface_conflicts(config: RouterConfig) -> List[ConfigValidationError]:
    errors: List[ConfigValidationError] = []
    wan_iface = config.wan.iface
    seen: Dict[str, int] = {}
    for index, lan in enumerate(config.lans):
        if lan.iface == wan_iface:
            errors.append(ConfigConflictError(f'WAN iface "{wan_iface}" same as LAN iface'))
        if lan.iface in seen:
            errors.append(ConfigConflictError(
                f'LAN iface "{lan.iface}" is configured twice (lans[{seen[lan.iface]}] and lans[{index}])'
            ))
        else:
            seen[lan.iface] = index
    return errors


def _wan_errors(wan: WanConfig) -> Tuple[List[ConfigValidationError], Optional[ipaddress.IPv4Network]]:
    if wan.mode != "static":
        return [], None
    errors: List[ConfigValidationError] = []
    block = None
    try:
        block = parse_block(wan.address, wan.prefix)  # type: ignore[arg-type]
    except ConfigValidationError as e:
        errors.append(ConfigValidationError(f"WAN {wan.iface}: {e}"))
    for value in ([wan.gateway] if wan.gateway else []) + list(wan.nameservers):
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            errors.append(ConfigValidationError(f"WAN {wan.iface}: invalid IPv4 address {value!r}"))
    return errors, block


def validate(config: RouterConfig) -> List[ConfigValidationError]:
    """
    Check a configuration and collect every problem found.

    Interface collisions are checked first, before any address arithmetic,
    so they are always reported. Nothing is raised.

    Returns:
        List of errors, empty if the configuration is valid
    """
    errors = _interface_conflicts(config)

    wan_errors, wan_block = _wan_errors(config.wan)
    errors.extend(wan_errors)

    blocks: List[Tuple[str, ipaddress.IPv4Network]] = []
    for lan in config.lans:
        try:
            resolve_lan(lan)
        except ConfigValidationError as e:
            errors.append(e)
            continue
        block = parse_block(lan.network, lan.prefix)
        for other_iface, other in blocks:
            if block.overlaps(other):
                errors.append(ConfigConflictError(
                    f"LAN {lan.iface} ({block}) overlaps LAN {other_iface} ({other})"
                ))
        if wan_block is not None and block.overlaps(wan_block):
            errors.append(ConfigConflictError(
                f"LAN {lan.iface} ({block}) overlaps the WAN network ({wan_block})"
            ))
        blocks.append((lan.iface, block))

    return errors


def resolve(config: RouterConfig) -> Tuple[List[ResolvedLan], WanPlan]:
    """
    Resolve a configuration into per-LAN parameters and the WAN plan.

    The returned LANs keep the input order; firewall rules are applied in
    that order.

    Raises:
        ConfigValidationError: The first problem reported by ``validate``
    """
    errors = validate(config)
    if errors:
        raise errors[0]

    lans = [resolve_lan(lan) for lan in config.lans]
    return lans, _wan_plan(config.wan)
