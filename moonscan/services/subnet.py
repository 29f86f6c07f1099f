"""Subnet expansion into candidate host addresses."""

import ipaddress
import logging
from collections.abc import Iterable

from ..errors import InvalidSubnet
from ..models.config import SubnetConfig

logger = logging.getLogger(__name__)

# Largest network we enumerate eagerly (a /16 for IPv4, a /112 for IPv6).
MAX_SUBNET_HOSTS = 65536


def _parse_network(cidr: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    raw = cidr.strip()
    if not raw:
        raise InvalidSubnet(cidr, "empty range")
    try:
        return ipaddress.ip_network(raw, strict=False)
    except ValueError as e:
        raise InvalidSubnet(cidr, str(e)) from e


def expand_subnet(cidr: str) -> list[str]:
    """Return every address of ``cidr`` except its network and broadcast addresses.

    Networks too small to have host addresses (/31, /32) expand to an empty
    list. Networks larger than ``MAX_SUBNET_HOSTS`` are rejected rather than
    truncated.
    """
    network = _parse_network(cidr)
    if network.num_addresses - 2 > MAX_SUBNET_HOSTS:
        raise InvalidSubnet(
            cidr,
            f"{network.num_addresses} addresses exceeds the limit of {MAX_SUBNET_HOSTS}",
        )

    excluded = {network.network_address, network.broadcast_address}
    return [str(ip) for ip in network if ip not in excluded]


def expand_subnets(subnets: Iterable[SubnetConfig]) -> dict[str, str]:
    """Expand all enabled subnets into an address -> subnet range map.

    Every subnet is validated before anything is returned, so a single bad
    range fails the whole call. Addresses shared by overlapping subnets are
    attributed to the first subnet listing them.
    """
    address_map: dict[str, str] = {}
    for subnet in subnets:
        if not subnet.enabled:
            continue
        addresses = expand_subnet(subnet.range)
        logger.debug(f"Subnet {subnet.label} expands to {len(addresses)} addresses")
        for address in addresses:
            address_map.setdefault(address, subnet.range)
    return address_map


def is_valid_ip(ip: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return True


def is_valid_subnet(cidr: str) -> bool:
    """Check if a string is a valid subnet in CIDR notation."""
    try:
        _parse_network(cidr)
    except InvalidSubnet:
        return False
    return True
