"""Network parameter calculation for LAN blocks.

Pure functions that turn a network address and prefix length into the values
the rest of the router needs: the gateway address the router takes on the LAN
and the bounds of the DHCP pool.
"""

import ipaddress
from typing import Optional, Tuple

from .errors import ConfigValidationError, InvalidRangeError, UnsupportedPrefixError


def parse_block(network: str, prefix: int) -> ipaddress.IPv4Network:
    """
    Parse a network address and prefix length into an IPv4 block.

    Host bits in ``network`` are masked off, so ``192.168.4.7`` with prefix 24
    describes ``192.168.4.0/24``.

    Raises:
        ConfigValidationError: If the address or prefix is not valid IPv4
    """
    if isinstance(prefix, bool) or not isinstance(prefix, int) or not 0 <= prefix <= 32:
        raise ConfigValidationError(f"Invalid prefix length {prefix!r}: must be 0-32")
    try:
        ipaddress.IPv4Address(network)
        return ipaddress.IPv4Network(f"{network}/{prefix}", strict=False)
    except ValueError as e:
        raise ConfigValidationError(f"Invalid IPv4 network {network!r}: {e}")


def netmask_of(prefix: int) -> str:
    """Return the dotted netmask for a prefix length (24 -> 255.255.255.0)."""
    return str(parse_block("0.0.0.0", prefix).netmask)


def first_usable(block: ipaddress.IPv4Network) -> ipaddress.IPv4Address:
    """First host address of a block; /31 and /32 have no network address to skip."""
    if block.prefixlen >= 31:
        return block.network_address
    return block.network_address + 1


def last_usable(block: ipaddress.IPv4Network) -> ipaddress.IPv4Address:
    """Last host address of a block (the one before broadcast)."""
    if block.prefixlen >= 31:
        return block.broadcast_address
    return block.broadcast_address - 1


def is_usable(block: ipaddress.IPv4Network, address: ipaddress.IPv4Address) -> bool:
    """Check that an address is a host address of the block."""
    return first_usable(block) <= address <= last_usable(block)


def increment_ip(ip: str) -> str:
    """
    Return the address following ``ip``.

    Only the fourth octet is incremented. Blocks are sized so that the address
    after the gateway never needs to carry into the third octet; if it would,
    this raises instead of producing a wrong address.

    Raises:
        UnsupportedPrefixError: If the fourth octet is already 255
    """
    try:
        octets = ipaddress.IPv4Address(ip).packed
    except ValueError as e:
        raise ConfigValidationError(f"Invalid IPv4 address {ip!r}: {e}")
    if octets[3] == 255:
        raise UnsupportedPrefixError(
            f"Cannot increment {ip}: the next address crosses into the third octet"
        )
    return str(ipaddress.IPv4Address(ip) + 1)


def _parse_address(value: str, what: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(value)
    except ValueError as e:
        raise ConfigValidationError(f"Invalid {what} {value!r}: {e}")


def derive_gateway(network: str, prefix: int, explicit: Optional[str] = None) -> str:
    """
    Derive the router's address on a LAN block.

    Args:
        network: Network address of the block
        prefix: Prefix length of the block
        explicit: Gateway address from the configuration, if any

    Returns:
        The explicit gateway once validated, else the block's first usable address

    Raises:
        ConfigValidationError: If the explicit gateway is not a host of the block
    """
    block = parse_block(network, prefix)
    if explicit is None:
        return str(first_usable(block))

    gateway = _parse_address(explicit, "gateway address")
    if not is_usable(block, gateway):
        raise ConfigValidationError(
            f"Gateway {explicit} is not a usable address of {block}"
        )
    return str(gateway)


def derive_dhcp_range(
    network: str,
    prefix: int,
    begin_ip: Optional[str] = None,
    end_ip: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Derive the DHCP pool bounds for a LAN block.

    By default the pool starts right after the block's first usable address
    (the default gateway) and ends at the last usable address.

    Returns:
        Tuple of (begin_ip, end_ip)

    Raises:
        InvalidRangeError: If the block has no room for a pool, or the bounds
            are inverted or outside the block
        UnsupportedPrefixError: If the default begin address needs an octet carry
    """
    block = parse_block(network, prefix)
    if block.prefixlen >= 31:
        raise InvalidRangeError(f"{block} has no addresses left for a DHCP pool")

    begin = begin_ip if begin_ip is not None else increment_ip(str(first_usable(block)))
    end = end_ip if end_ip is not None else str(last_usable(block))

    begin_addr = _parse_address(begin, "DHCP range start")
    end_addr = _parse_address(end, "DHCP range end")

    for label, addr in (("start", begin_addr), ("end", end_addr)):
        if not is_usable(block, addr):
            raise InvalidRangeError(f"DHCP range {label} {addr} is outside {block}")
    if begin_addr > end_addr:
        raise InvalidRangeError(f"DHCP range start {begin} is after end {end}")

    return str(begin_addr), str(end_addr)
