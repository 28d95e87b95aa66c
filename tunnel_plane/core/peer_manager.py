# tunnel_plane/core/peer_manager.py
"""
Peer Lifecycle Manager - create/revoke/reactivate/delete peers on both the
local store and the gateway
"""

from typing import Callable, List, Optional
from sqlalchemy.orm import Session
import logging

from tunnel_plane.config import GatewayDefaults, settings
from tunnel_plane.database.models import (
    ActivityType,
    ConfigType,
    Peer,
    PeerActivityLog,
    PeerStatus,
    TunnelInterface,
    new_id,
)
from tunnel_plane.database.session import transaction
from .activity import list_activity, record_activity
from .exceptions import NotFoundError, RemoteDriftError, RemoteOperationError
from .gateway_client import GatewayControlClient, gateway_client
from .interface_registry import InterfaceRegistry, interface_registry
from .ipam import AddressAllocator, address_allocator
from .keys import generate_key_pair, validate_public_key

logger = logging.getLogger(__name__)

FULL_TUNNEL_ALLOWED_IPS = "0.0.0.0/0"
SPLIT_TUNNEL_ALLOWED_IPS = "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16"


def default_allowed_ips(config_type: str) -> str:
    if config_type == ConfigType.FULL_TUNNEL.value:
        return FULL_TUNNEL_ALLOWED_IPS
    return SPLIT_TUNNEL_ALLOWED_IPS


class PeerLifecycleManager:
    """
    Peer Lifecycle Manager

    Responsibilities:
    1. Create peers (keys, tunnel address, gateway mirror)
    2. Revoke / reactivate / delete peers
    3. Record one activity entry per transition

    The local row is the source of truth. Creation aborts when the gateway
    refuses the peer; every other transition mirrors to the gateway on a
    best-effort basis and completes locally even when the gateway is down.
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

    def create_peer(
        self,
        db: Session,
        name: str,
        config_type: str = ConfigType.FULL_TUNNEL.value,
        public_key: Optional[str] = None,
        user_label: Optional[str] = None,
        allowed_ips: Optional[str] = None,
        notes: Optional[str] = None,
        interface_name: Optional[str] = None,
    ) -> Peer:
        """
        Create a peer and push it to the gateway

        Args:
            db: Database session
            name: Peer name (also written as the gateway peer name)
            config_type: FULL_TUNNEL or SPLIT_TUNNEL
            public_key: Client-supplied key; a key pair is generated when omitted
            user_label: Owner label
            allowed_ips: Client AllowedIPs, defaults from config_type
            notes: Free text
            interface_name: Target interface, the default interface when omitted

        Returns:
            The committed Peer

        Raises:
            NotFoundError: If the interface does not exist
            InvalidKeyFormatError: If the public key is malformed
            InvalidNetworkError: If the interface subnet is not a /24
            AddressPoolExhaustedError: If the subnet is full
            RemoteOperationError: If the gateway rejects the peer (nothing is stored)
        """
        with transaction(db):
            wg_interface = self.registry.resolve(db, interface_name, for_update=True)

            private_key = None
            if not public_key:
                key_pair = generate_key_pair()
                public_key, private_key = key_pair.public_key, key_pair.private_key
            validate_public_key(public_key)

            tunnel_ip = self.allocator.allocate_for_interface(db, wg_interface)

            peer = Peer(
                id=new_id(),
                name=name,
                user_label=user_label,
                public_key=public_key,
                private_key=private_key,
                tunnel_ip=tunnel_ip,
                config_type=config_type,
                allowed_ips=allowed_ips or default_allowed_ips(config_type),
                notes=notes,
                status=PeerStatus.ACTIVE.value,
                router_comment="",
                interface_id=wg_interface.id,
            )
            db.add(peer)
            db.flush()

            comment = self.defaults.peer_comment(peer.id)
            try:
                router_peer_id = self.gateway.add_peer(
                    interface_name=wg_interface.name,
                    public_key=public_key,
                    allowed_address=f"{tunnel_ip}/32",
                    persistent_keepalive=wg_interface.default_keepalive,
                    comment=comment,
                    name=name,
                    disabled=False,
                )
            except RemoteOperationError as e:
                logger.error(f"Failed to create peer {name} on gateway: {e}")
                raise RemoteOperationError(
                    f"Failed to create peer on gateway: {e.message}",
                    command=e.command,
                ) from e

            if not router_peer_id:
                router_peer_id = self._lookup_created_peer(wg_interface.name, comment)

            peer.router_peer_id = router_peer_id
            peer.router_comment = comment

            record_activity(db, peer.id, ActivityType.CREATED, "Peer created and pushed to gateway.")

        logger.info(f"Peer created: {name} -> {tunnel_ip} on {wg_interface.name} (gateway id {peer.router_peer_id})")
        return peer

    def _lookup_created_peer(self, interface_name: str, comment: str) -> Optional[str]:
        # The peer exists on the gateway by now, so a failed lookup only
        # costs the stored id; the comment still finds it later.
        try:
            remote_peer = self.gateway.find_peer_by_comment(interface_name, comment)
        except RemoteOperationError as e:
            logger.warning(f"Created peer {comment} but could not read back its gateway id: {e}")
            return None
        return remote_peer.id if remote_peer else None

    def revoke_peer(self, db: Session, peer_id: str) -> Peer:
        """
        Revoke a peer; idempotent

        The gateway copy is disabled best-effort. A gateway failure is logged
        and the peer is still revoked locally.
        """
        with transaction(db):
            peer = self._get_for_update(db, peer_id)
            if peer.status == PeerStatus.REVOKED.value:
                return peer

            mirrored = self._mirror(peer, "disable", self.gateway.disable_peer)
            peer.status = PeerStatus.REVOKED.value

            message = (
                "Peer revoked and disabled on gateway." if mirrored
                else "Peer revoked locally; gateway was not updated."
            )
            record_activity(db, peer.id, ActivityType.REVOKED, message)

        logger.info(f"Peer revoked: {peer.name} ({peer.id})")
        return peer

    def reactivate_peer(self, db: Session, peer_id: str) -> Peer:
        """
        Reactivate a revoked peer; idempotent

        Mirror of revoke_peer: gateway enable is best-effort, the local
        status is always set to ACTIVE.
        """
        with transaction(db):
            peer = self._get_for_update(db, peer_id)
            if peer.status == PeerStatus.ACTIVE.value:
                return peer

            mirrored = self._mirror(peer, "enable", self.gateway.enable_peer)
            peer.status = PeerStatus.ACTIVE.value

            message = (
                "Peer reactivated and enabled on gateway." if mirrored
                else "Peer reactivated locally; gateway was not updated."
            )
            record_activity(db, peer.id, ActivityType.UPDATED, message)

        logger.info(f"Peer reactivated: {peer.name} ({peer.id})")
        return peer

    def delete_peer(self, db: Session, peer_id: str) -> bool:
        """
        Delete a peer from the gateway (best-effort) and from the store

        Returns:
            False if the peer was already gone, True otherwise
        """
        with transaction(db):
            peer = db.query(Peer).filter(Peer.id == peer_id).with_for_update().populate_existing().first()
            if not peer:
                return False

            name = peer.name
            self._mirror(peer, "remove", self.gateway.remove_peer)
            db.delete(peer)

        logger.info(f"Peer deleted: {name} ({peer_id})")
        return True

    def update_peer(
        self,
        db: Session,
        peer_id: str,
        name: Optional[str] = None,
        user_label: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Peer:
        """
        Update peer metadata

        Keys, tunnel address and routing mode are fixed at creation.
        """
        with transaction(db):
            peer = self._get_for_update(db, peer_id)

            changed = []
            if name is not None and name != peer.name:
                peer.name = name
                changed.append("name")
            if user_label is not None and user_label != peer.user_label:
                peer.user_label = user_label
                changed.append("user_label")
            if notes is not None and notes != peer.notes:
                peer.notes = notes
                changed.append("notes")

            if changed:
                record_activity(db, peer.id, ActivityType.UPDATED, f"Peer updated: {', '.join(changed)}.")

        if changed:
            logger.info(f"Peer {peer.id} updated: {', '.join(changed)}")
        return peer

    def find_peer(self, db: Session, peer_id: str) -> Optional[Peer]:
        """Get a peer by ID"""
        return db.query(Peer).filter(Peer.id == peer_id).first()

    def get_peer(self, db: Session, peer_id: str) -> Peer:
        peer = self.find_peer(db, peer_id)
        if not peer:
            raise NotFoundError(f"Peer with id {peer_id} not found", details={"peer_id": peer_id})
        return peer

    def list_peers(
        self,
        db: Session,
        interface_name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Peer]:
        """List peers, newest first, with optional filtering"""
        query = db.query(Peer)

        if interface_name:
            query = query.join(TunnelInterface, Peer.interface_id == TunnelInterface.id).filter(
                TunnelInterface.name == interface_name
            )
        if status:
            query = query.filter(Peer.status == status)

        return query.order_by(Peer.created_at.desc()).all()

    def get_activity(self, db: Session, peer_id: str) -> List[PeerActivityLog]:
        self.get_peer(db, peer_id)
        return list_activity(db, peer_id)

    def _get_for_update(self, db: Session, peer_id: str) -> Peer:
        # Row lock (where supported) so concurrent transitions on one peer queue
        peer = db.query(Peer).filter(Peer.id == peer_id).with_for_update().populate_existing().first()
        if not peer:
            raise NotFoundError(f"Peer with id {peer_id} not found", details={"peer_id": peer_id})
        return peer

    def _interface_name(self, peer: Peer) -> str:
        return peer.wg_interface.name if peer.wg_interface else self.defaults.interface_name

    def locate_remote_peer(self, peer: Peer) -> str:
        """
        Gateway .id for a peer: the stored id, else a lookup by comment tag

        Raises:
            RemoteDriftError: If neither finds the peer
            RemoteOperationError: If the lookup itself fails
        """
        if peer.router_peer_id:
            return peer.router_peer_id

        if peer.router_comment:
            remote_peer = self.gateway.find_peer_by_comment(self._interface_name(peer), peer.router_comment)
            if remote_peer and remote_peer.id:
                return remote_peer.id

        raise RemoteDriftError(
            f"Peer {peer.id} not found on gateway",
            details={"peer_id": peer.id, "comment": peer.router_comment},
        )

    def _mirror(self, peer: Peer, action: str, call: Callable[[str], None]) -> bool:
        """Apply a gateway call to the peer; failures are logged, never raised"""
        try:
            call(self.locate_remote_peer(peer))
            return True
        except RemoteDriftError as e:
            logger.warning(f"Gateway drift: cannot {action} peer {peer.id}: {e}")
        except RemoteOperationError as e:
            logger.warning(f"Failed to {action} peer {peer.id} on gateway: {e}")
        return False


# Singleton instance
peer_manager = PeerLifecycleManager(
    gateway=gateway_client,
    registry=interface_registry,
    defaults=settings.gateway_defaults(),
)
