"""
Local interface topology: which addresses are on-link for this host.

Interface data is read from the OS on every call. Interfaces come and go
(VPNs, Wi-Fi roaming), so nothing here is cached between scans.
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

# Widest network "scan my network" will cover
LOCAL_SCAN_PREFIX = 24


@dataclass(frozen=True)
class InterfaceSubnet:
    """An IPv4 unicast address bound to an interface, with its mask."""
    interface: str
    address: str
    netmask: str

    def contains(self, candidate: ipaddress.IPv4Address) -> bool:
        mask = int(ipaddress.IPv4Address(self.netmask))
        local = int(ipaddress.IPv4Address(self.address))
        return (int(candidate) & mask) == (local & mask)

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Interface(f"{self.address}/{self.netmask}").network


class LocalTopologyResolver:
    """Answers on-link questions from the live interface table."""

    def interface_subnets(self) -> list[InterfaceSubnet]:
        """Enumerate IPv4 address/mask pairs on interfaces that are up."""
        stats = psutil.net_if_stats()
        subnets = []
        for name, addrs in psutil.net_if_addrs().items():
            iface_stats = stats.get(name)
            if iface_stats is None or not iface_stats.isup:
                continue
            for addr in addrs:
                if addr.family != socket.AF_INET or not addr.netmask:
                    continue
                subnets.append(InterfaceSubnet(name, addr.address, addr.netmask))
        return subnets

    def is_on_link(self, candidate: str) -> bool:
        """
        Whether ``candidate`` shares a subnet with any active local interface.

        Never raises: on any failure the answer is False, which only means
        MAC resolution is skipped for this address.
        """
        try:
            target = ipaddress.IPv4Address(candidate)
            for subnet in self.interface_subnets():
                if subnet.contains(target):
                    return True
        except Exception as e:
            logger.debug("On-link test for %s failed: %s", candidate, e)
        return False

    def local_subnet(self) -> Optional[str]:
        """
        CIDR of the first active non-loopback interface, if any.

        Networks wider than a /24 are narrowed to the /24 around the local
        address, so a 10.0.0.0/8 LAN scans the host's own neighbourhood.
        """
        try:
            for subnet in self.interface_subnets():
                if ipaddress.IPv4Address(subnet.address).is_loopback:
                    continue
                network = subnet.network
                if network.prefixlen < LOCAL_SCAN_PREFIX:
                    network = ipaddress.IPv4Interface(f"{subnet.address}/{LOCAL_SCAN_PREFIX}").network
                return str(network)
        except Exception as e:
            logger.warning("Error detecting local subnet: %s", e)
        return None
