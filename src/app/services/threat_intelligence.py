"""
Threat intelligence lookups for source IP addresses.
"""

import ipaddress
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set, Union

from src.app.services.dtos import ThreatIntelligence

logger = logging.getLogger(__name__)


class ThreatIntelligenceProvider(ABC):
    @abstractmethod
    async def lookup(self, ip_address: Optional[str]) -> Optional[ThreatIntelligence]:
        """None when there is no address to look up"""
        pass

    @abstractmethod
    def block_ip(self, ip_address: str) -> None:
        """Mark an address as malicious for subsequent lookups"""
        pass


def _parse_networks(entries: Iterable[str]) -> List[Union[ipaddress.IPv4Network, ipaddress.IPv6Network]]:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid threat intelligence entry: {entry}")
    return networks


class StaticThreatIntelligence(ThreatIntelligenceProvider):
    """
    Threat intelligence backed by configured address lists.

    - Private, loopback and link-local addresses are always clean
    - Denylist and blocked addresses are malicious, known attackers
    - Tor exit nodes are suspicious
    - VPN ranges only set the VPN flag
    """

    def __init__(
        self,
        denylist: Iterable[str] = (),
        tor_exit_nodes: Iterable[str] = (),
        vpn_ranges: Iterable[str] = (),
    ):
        self.denylist = _parse_networks(denylist)
        self.tor_exit_nodes = _parse_networks(tor_exit_nodes)
        self.vpn_ranges = _parse_networks(vpn_ranges)
        self.blocked_ips: Set[str] = set()

    def block_ip(self, ip_address: str) -> None:
        self.blocked_ips.add(ip_address)
        logger.warning(f"IP address blocked: {ip_address}")

    async def lookup(self, ip_address: Optional[str]) -> Optional[ThreatIntelligence]:
        if not ip_address:
            return None

        intel = ThreatIntelligence()

        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            intel.bot_detection = "suspicious"
            return intel

        if address.is_private or address.is_loopback or address.is_link_local:
            return intel

        if ip_address in self.blocked_ips or any(address in n for n in self.denylist):
            intel.ip_reputation = "malicious"
            intel.known_attacker = True

        if any(address in n for n in self.tor_exit_nodes):
            intel.tor_detection = True
            if intel.ip_reputation == "clean":
                intel.ip_reputation = "suspicious"

        if any(address in n for n in self.vpn_ranges):
            intel.vpn_detection = True

        return intel
