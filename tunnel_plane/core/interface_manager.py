# tunnel_plane/core/interface_manager.py
"""
Interface Manager - provisions and retires tunnel interfaces on the gateway
"""

import ipaddress
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from tunnel_plane.config import GatewayDefaults, settings
from tunnel_plane.database.models import Peer, TunnelInterface
from tunnel_plane.database.session import transaction
from .exceptions import (
    ConflictError,
    InvalidNetworkError,
    InvalidRequestError,
    ProtectedInterfaceError,
    RemoteOperationError,
)
from .gateway_client import GatewayControlClient, RemoteInterface, gateway_client
from .interface_registry import InterfaceRegistry, interface_registry
from .ipam import AddressAllocator, address_allocator

logger = logging.getLogger(__name__)

# Fields that may change after creation; name and port are fixed
UPDATABLE_FIELDS = (
    "tunnel_cidr",
    "server_tunnel_ip",
    "default_dns",
    "default_keepalive",
    "endpoint_host",
)


def validate_network(tunnel_cidr: str, server_tunnel_ip: str) -> None:
    """
    Check that the subnet is a /24 and holds the server address

    Raises:
        InvalidNetworkError: On any mismatch
    """
    try:
        network = ipaddress.IPv4Network(tunnel_cidr, strict=False)
        server = ipaddress.IPv4Address(server_tunnel_ip)
    except ValueError as e:
        raise InvalidNetworkError(f"Invalid tunnel network: {e}", details={"tunnel_cidr": tunnel_cidr}) from e

    details = {"tunnel_cidr": tunnel_cidr, "server_tunnel_ip": server_tunnel_ip}
    if network.prefixlen != 24:
        raise InvalidNetworkError(f"Tunnel subnet {tunnel_cidr} must be a /24", details=details)
    if server not in network:
        raise InvalidNetworkError(f"Server address {server_tunnel_ip} is not in {tunnel_cidr}", details=details)
    if server in (network.network_address, network.broadcast_address):
        raise InvalidNetworkError(f"Server address {server_tunnel_ip} is reserved in {tunnel_cidr}", details=details)


class InterfaceManager:
    """
    Interface Manager

    Responsibilities:
    1. Create interfaces on the gateway first, then persist them
    2. Update network-shape fields
    3. Tear an interface down with all of its peers
    4. Seed the default interface from settings
    """

    def __init__(
        self,
        gateway: GatewayControlClient,
        registry: InterfaceRegistry,
        defaults: GatewayDefaults,
        allocator: AddressAllocator = address_allocator,
    ):
        self.gateway = gateway
        self.registry = registry
        self.defaults = defaults
        self.allocator = allocator

    def create_interface(
        self,
        db: Session,
        name: str,
        listen_port: int,
        tunnel_cidr: str,
        server_tunnel_ip: str,
        default_dns: str,
        default_keepalive: int = 25,
        endpoint_host: Optional[str] = None,
    ) -> TunnelInterface:
        """
        Create an interface on the gateway and store it with the gateway's keys

        Raises:
            InvalidNetworkError: If the network shape is invalid
            ConflictError: If the name is taken locally
            RemoteOperationError: If the interface cannot be read back from the gateway
        """
        validate_network(tunnel_cidr, server_tunnel_ip)

        if db.query(TunnelInterface).filter(TunnelInterface.name == name).first():
            raise ConflictError(f"Interface '{name}' already exists", details={"interface": name})

        self._provision_on_gateway(name, listen_port, tunnel_cidr, server_tunnel_ip, tolerate_existing=True)
        remote = self._read_back(name)

        with transaction(db):
            wg_interface = TunnelInterface(
                name=name,
                listen_port=listen_port,
                tunnel_cidr=tunnel_cidr,
                server_tunnel_ip=server_tunnel_ip,
                default_dns=default_dns,
                default_keepalive=default_keepalive,
                endpoint_host=endpoint_host or "",
                public_key=remote.public_key,
                private_key=remote.private_key,
            )
            db.add(wg_interface)

        logger.info(f"Interface created: {name} ({tunnel_cidr}, port {listen_port})")
        return wg_interface

    def _provision_on_gateway(
        self,
        name: str,
        listen_port: int,
        tunnel_cidr: str,
        server_tunnel_ip: str,
        tolerate_existing: bool,
    ) -> None:
        try:
            self.gateway.add_interface(name=name, listen_port=listen_port)
        except RemoteOperationError as e:
            if not tolerate_existing:
                raise
            # Importing an interface that already exists on the gateway is allowed
            logger.warning(f"Gateway interface creation warning for {name}: {e}")
            return

        mask = tunnel_cidr.split("/")[1]
        try:
            self.gateway.add_address(
                address=f"{server_tunnel_ip}/{mask}",
                interface_name=name,
                comment=self.defaults.managed_by,
            )
        except RemoteOperationError as e:
            logger.warning(f"Failed to assign {server_tunnel_ip}/{mask} to {name} (might exist): {e}")

    def _read_back(self, name: str) -> RemoteInterface:
        remote = self.gateway.find_interface_by_name(name)
        if remote is None:
            raise RemoteOperationError(
                f"Failed to verify interface '{name}' on gateway",
                details={"interface": name},
            )
        return remote

    def update_interface(self, db: Session, interface_id: str, **changes) -> TunnelInterface:
        """
        Update network-shape fields of an interface

        Raises:
            NotFoundError: If the interface does not exist
            InvalidRequestError: If an immutable field is passed or the result is invalid
        """
        immutable = set(changes) - set(UPDATABLE_FIELDS)
        if immutable:
            raise InvalidRequestError(
                f"Fields cannot be changed after creation: {', '.join(sorted(immutable))}",
                details={"fields": sorted(immutable)},
            )

        with transaction(db):
            wg_interface = self.registry.get(db, interface_id)
            updates = {k: v for k, v in changes.items() if v is not None}

            validate_network(
                updates.get("tunnel_cidr", wg_interface.tunnel_cidr),
                updates.get("server_tunnel_ip", wg_interface.server_tunnel_ip),
            )
            for field, value in updates.items():
                setattr(wg_interface, field, value)

        logger.info(f"Interface {wg_interface.name} updated: {', '.join(sorted(updates)) or 'no changes'}")
        return wg_interface

    def get_interface(self, db: Session, interface_id: str) -> TunnelInterface:
        return self.registry.get(db, interface_id)

    def list_interfaces(self, db: Session) -> List[Tuple[TunnelInterface, int]]:
        """All interfaces, newest first, with their peer counts"""
        counts: Dict[str, int] = dict(
            db.query(Peer.interface_id, func.count(Peer.id)).group_by(Peer.interface_id).all()
        )
        interfaces = db.query(TunnelInterface).order_by(TunnelInterface.created_at.desc()).all()
        return [(wg_interface, counts.get(wg_interface.id, 0)) for wg_interface in interfaces]

    def get_allocation_stats(self, db: Session, interface_id: str) -> dict:
        return self.allocator.get_allocation_stats(db, self.registry.get(db, interface_id))

    def delete_interface(self, db: Session, interface_id: str) -> None:
        """
        Retire an interface and everything on it

        Gateway cleanup is best-effort and step by step: one failing call is
        logged and the remaining steps, including the local deletion, still run.

        Raises:
            NotFoundError: If the interface does not exist
            ProtectedInterfaceError: If it is the default interface
        """
        with transaction(db):
            wg_interface = self.registry.get(db, interface_id)
            name = wg_interface.name

            if self.registry.is_default(wg_interface):
                raise ProtectedInterfaceError(
                    "Cannot delete the default system interface.",
                    details={"interface": name},
                )

            peers = db.query(Peer).filter(Peer.interface_id == interface_id).all()
            logger.info(f"Removing {len(peers)} peers for interface {name}")

            for peer in peers:
                comment = peer.router_comment or self.defaults.peer_comment(peer.id)
                try:
                    remote_peer = self.gateway.find_peer_by_comment(name, comment)
                    if remote_peer:
                        self.gateway.remove_peer(remote_peer.id)
                except RemoteOperationError as e:
                    logger.warning(f"Failed to remove peer {peer.id} from gateway: {e}")

            db.query(Peer).filter(Peer.interface_id == interface_id).delete(synchronize_session="fetch")

            try:
                remote_address = self.gateway.find_address_by_interface(name)
                if remote_address:
                    self.gateway.remove_address(remote_address.id)
            except RemoteOperationError as e:
                logger.warning(f"Failed to remove address of {name} from gateway: {e}")

            try:
                remote_interface = self.gateway.find_interface_by_name(name)
                if remote_interface:
                    self.gateway.remove_interface(remote_interface.id)
            except RemoteOperationError as e:
                logger.warning(f"Failed to remove interface {name} from gateway: {e}")

            db.delete(wg_interface)

        logger.info(f"Interface deleted: {name}")

    def seed_default_interface(self, db: Session) -> TunnelInterface:
        """
        Make sure the default interface exists on the gateway and locally

        Creates it on the gateway when missing, then upserts the local record
        from settings with the gateway's key pair.

        Raises:
            RemoteOperationError: If the gateway cannot be reached or the
                interface cannot be read back
        """
        d = self.defaults
        validate_network(d.tunnel_cidr, d.server_tunnel_ip)

        remote = self.gateway.find_interface_by_name(d.interface_name)
        if remote is None:
            logger.warning(f"Interface '{d.interface_name}' not found on gateway. Creating it now...")
            self._provision_on_gateway(
                d.interface_name, d.listen_port, d.tunnel_cidr, d.server_tunnel_ip,
                tolerate_existing=False,
            )
            remote = self._read_back(d.interface_name)

        with transaction(db):
            wg_interface = db.query(TunnelInterface).filter(
                TunnelInterface.name == d.interface_name
            ).first()
            if wg_interface is None:
                wg_interface = TunnelInterface(name=d.interface_name)
                db.add(wg_interface)

            wg_interface.listen_port = d.listen_port
            wg_interface.tunnel_cidr = d.tunnel_cidr
            wg_interface.server_tunnel_ip = d.server_tunnel_ip
            wg_interface.default_dns = d.dns
            wg_interface.default_keepalive = d.keepalive
            wg_interface.endpoint_host = d.endpoint_host
            wg_interface.public_key = remote.public_key
            wg_interface.private_key = remote.private_key

        logger.info(f"Database seeded with interface: {wg_interface.name} (ID: {wg_interface.id})")
        return wg_interface


# Singleton instance
interface_manager = InterfaceManager(
    gateway=gateway_client,
    registry=interface_registry,
    defaults=settings.gateway_defaults(),
)
