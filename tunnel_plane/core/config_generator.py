# tunnel_plane/core/config_generator.py
"""
Client configuration generator
Renders the wg-quick style config handed to a peer
"""

from typing import Optional
from sqlalchemy.orm import Session
import logging

from tunnel_plane.config import GatewayDefaults, settings
from tunnel_plane.database.models import ActivityType, Peer, TunnelInterface
from tunnel_plane.database.session import transaction
from .activity import record_activity
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)

CLIENT_PRIVATE_KEY_PLACEHOLDER = "<CLIENT_PRIVATE_KEY_PLACEHOLDER>"
SERVER_PUBLIC_KEY_PLACEHOLDER = "<SERVER_PUBLIC_KEY_PLACEHOLDER>"


class ConfigGenerator:
    """
    Builds client configs from interface defaults and peer attributes

    Rendering is pure; every generate() call is still audited.
    """

    def __init__(self, defaults: GatewayDefaults):
        self.defaults = defaults

    def render(self, peer: Peer, wg_interface: Optional[TunnelInterface] = None) -> str:
        """
        Render the config text for a peer

        Falls back to process-wide defaults only when the interface is missing.
        Peers created with a client-supplied key get a private key placeholder.
        """
        if wg_interface is not None:
            server_public_key = wg_interface.public_key
            endpoint_host = wg_interface.endpoint_host or self.defaults.endpoint_host
            port = wg_interface.listen_port
            dns = wg_interface.default_dns
            keepalive = wg_interface.default_keepalive
        else:
            server_public_key = SERVER_PUBLIC_KEY_PLACEHOLDER
            endpoint_host = self.defaults.endpoint_host
            port = self.defaults.listen_port
            dns = self.defaults.dns
            keepalive = self.defaults.keepalive

        config_lines = [
            "[Interface]",
            f"PrivateKey = {peer.private_key or CLIENT_PRIVATE_KEY_PLACEHOLDER}",
            f"Address = {peer.tunnel_ip}/32",
            f"DNS = {dns}",
            "",
            "[Peer]",
            f"PublicKey = {server_public_key}",
            f"Endpoint = {endpoint_host}:{port}",
            f"AllowedIPs = {peer.allowed_ips}",
            f"PersistentKeepalive = {keepalive}",
        ]
        return "\n".join(config_lines)

    def generate(self, db: Session, peer_id: str) -> str:
        """
        Render a peer's config and record a CONFIG_GENERATED entry

        Raises:
            NotFoundError: If the peer does not exist
        """
        with transaction(db):
            peer = db.query(Peer).filter(Peer.id == peer_id).first()
            if not peer:
                raise NotFoundError(f"Peer with id {peer_id} not found", details={"peer_id": peer_id})

            if peer.wg_interface is None:
                logger.warning(f"Peer {peer_id} has no interface; rendering with defaults")

            config_text = self.render(peer, peer.wg_interface)
            record_activity(db, peer.id, ActivityType.CONFIG_GENERATED, "Config generated.")

        logger.info(f"Config generated for peer {peer.name} ({peer_id})")
        return config_text


# Singleton instance
config_generator = ConfigGenerator(settings.gateway_defaults())
