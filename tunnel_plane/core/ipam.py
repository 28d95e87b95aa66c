# tunnel_plane/core/ipam.py
"""
IP Address Management (IPAM) Service
Allocates tunnel addresses for peers inside an interface's subnet
"""

import ipaddress
from typing import Iterable, Set
from sqlalchemy.orm import Session
import logging

from tunnel_plane.database.models import Peer, TunnelInterface
from .exceptions import AddressPoolExhaustedError, InvalidNetworkError

logger = logging.getLogger(__name__)

# Host suffixes handed out to peers; .0 is the network, .255 broadcast
FIRST_HOST_SUFFIX = 2
LAST_HOST_SUFFIX = 254


class AddressAllocator:
    """
    Lowest-free-suffix allocator for /24 tunnel subnets

    Features:
    - Reserved IPs (network, server, broadcast)
    - Scoped per interface: peers of other interfaces never collide
    - Deterministic: same exclusion set, same answer
    """

    @staticmethod
    def _network(wg_interface: TunnelInterface) -> ipaddress.IPv4Network:
        try:
            network = ipaddress.IPv4Network(wg_interface.tunnel_cidr, strict=False)
        except ValueError as e:
            raise InvalidNetworkError(
                f"Interface '{wg_interface.name}' has an invalid tunnel subnet: {e}",
                details={"interface": wg_interface.name, "tunnel_cidr": wg_interface.tunnel_cidr},
            ) from e
        if network.prefixlen != 24:
            raise InvalidNetworkError(
                f"Interface '{wg_interface.name}' uses {wg_interface.tunnel_cidr}; "
                f"only /24 tunnel subnets are supported",
                details={"interface": wg_interface.name, "tunnel_cidr": wg_interface.tunnel_cidr},
            )
        return network

    def reserved_addresses(self, wg_interface: TunnelInterface) -> Set[str]:
        """Addresses that are never handed to a peer"""
        network = self._network(wg_interface)
        return {
            str(network.network_address),
            str(network.broadcast_address),
            wg_interface.server_tunnel_ip,
        }

    def allocate_next(self, wg_interface: TunnelInterface, existing_addresses: Iterable[str]) -> str:
        """
        Return the lowest free address in .2 - .254

        Args:
            wg_interface: Interface whose subnet is used
            existing_addresses: Addresses already assigned to its peers

        Raises:
            InvalidNetworkError: If the interface subnet is not a /24
            AddressPoolExhaustedError: If every suffix is taken
        """
        network = self._network(wg_interface)
        prefix = ".".join(str(network.network_address).split(".")[:3])

        used = self.reserved_addresses(wg_interface)
        used.update(ip.split("/")[0] for ip in existing_addresses if ip)

        for suffix in range(FIRST_HOST_SUFFIX, LAST_HOST_SUFFIX + 1):
            candidate = f"{prefix}.{suffix}"
            if candidate not in used:
                return candidate

        logger.error(f"Tunnel address pool exhausted for interface {wg_interface.name}")
        raise AddressPoolExhaustedError(
            f"No free tunnel addresses left in {wg_interface.tunnel_cidr}",
            details={"interface": wg_interface.name, "tunnel_cidr": wg_interface.tunnel_cidr},
        )

    def used_addresses(self, db: Session, wg_interface: TunnelInterface) -> Set[str]:
        """Addresses held by peers of this interface, in any status"""
        rows = db.query(Peer.tunnel_ip).filter(Peer.interface_id == wg_interface.id).all()
        return {row[0] for row in rows if row[0]}

    def allocate_for_interface(self, db: Session, wg_interface: TunnelInterface) -> str:
        """Allocate against the peers currently stored for the interface"""
        tunnel_ip = self.allocate_next(wg_interface, self.used_addresses(db, wg_interface))
        logger.info(f"Allocated tunnel IP {tunnel_ip} on interface {wg_interface.name}")
        return tunnel_ip

    def get_allocation_stats(self, db: Session, wg_interface: TunnelInterface) -> dict:
        """
        Get tunnel address usage for one interface

        Returns:
            Dictionary with allocation stats
        """
        total = LAST_HOST_SUFFIX - FIRST_HOST_SUFFIX + 1
        if wg_interface.server_tunnel_ip in self._host_range(wg_interface):
            total -= 1
        used = len(self.used_addresses(db, wg_interface))

        return {
            "interface": wg_interface.name,
            "network": wg_interface.tunnel_cidr,
            "server": wg_interface.server_tunnel_ip,
            "total_hosts": total,
            "used": used,
            "available": total - used,
            "utilization_percent": round((used / total) * 100, 2) if total > 0 else 0,
        }

    def _host_range(self, wg_interface: TunnelInterface) -> Set[str]:
        prefix = ".".join(str(self._network(wg_interface).network_address).split(".")[:3])
        return {f"{prefix}.{i}" for i in range(FIRST_HOST_SUFFIX, LAST_HOST_SUFFIX + 1)}


# Singleton instance
address_allocator = AddressAllocator()
