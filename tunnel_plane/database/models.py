# tunnel_plane/database/models.py
"""
SQLAlchemy Database Models for Tunnel Plane
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey,
    Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum
import uuid

Base = declarative_base()


def new_id() -> str:
    """Opaque primary key for all records"""
    return str(uuid.uuid4())


class PeerStatus(str, enum.Enum):
    """Peer lifecycle status"""
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class ConfigType(str, enum.Enum):
    """Client routing mode"""
    FULL_TUNNEL = "FULL_TUNNEL"      # Route all traffic (0.0.0.0/0)
    SPLIT_TUNNEL = "SPLIT_TUNNEL"    # Only private ranges


class ActivityType(str, enum.Enum):
    """Peer activity log entry types"""
    CREATED = "CREATED"
    REVOKED = "REVOKED"
    UPDATED = "UPDATED"
    CONFIG_GENERATED = "CONFIG_GENERATED"


class TunnelInterface(Base):
    """
    Tunnel Interface table - one WireGuard interface on the gateway device
    Key pair is read back from the device, never generated here
    """
    __tablename__ = "tunnel_interfaces"

    id = Column(String(36), primary_key=True, default=new_id)

    # Identity (immutable after creation)
    name = Column(String(64), unique=True, nullable=False, index=True,
                  comment="Interface name on the gateway")
    listen_port = Column(Integer, nullable=False,
                         comment="WireGuard listen port (1024-65535)")

    # Network shape
    tunnel_cidr = Column(String(18), nullable=False,
                         comment="Tunnel subnet (e.g., 10.77.77.0/24)")
    server_tunnel_ip = Column(String(15), nullable=False,
                              comment="Gateway address inside the tunnel subnet")
    default_dns = Column(String(255), nullable=False, default="1.1.1.1")
    default_keepalive = Column(Integer, nullable=False, default=25,
                               comment="PersistentKeepalive handed to clients (seconds)")
    endpoint_host = Column(String(255), nullable=True,
                           comment="Public host clients connect to")

    # WireGuard Keys (from the gateway)
    public_key = Column(String(44), nullable=False, default="")
    private_key = Column(String(44), nullable=False, default="")

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    peers = relationship("Peer", back_populates="wg_interface", passive_deletes="all")

    def __repr__(self):
        return f"<TunnelInterface(id={self.id}, name={self.name}, cidr={self.tunnel_cidr})>"


class Peer(Base):
    """
    Peer table - one remote device's membership in a tunnel interface
    The local row is authoritative; the gateway copy is a best-effort mirror
    """
    __tablename__ = "peers"

    id = Column(String(36), primary_key=True, default=new_id)

    # Identity
    name = Column(String(64), nullable=False)
    user_label = Column(String(100), nullable=True,
                        comment="Owner / user the peer was issued to")
    notes = Column(Text, nullable=True)

    # WireGuard Keys
    public_key = Column(String(44), nullable=False,
                        comment="WireGuard public key (Base64)")
    private_key = Column(String(44), nullable=True,
                         comment="Only set when the key pair was generated server-side")

    # Network
    tunnel_ip = Column(String(15), nullable=False,
                       comment="Tunnel address without mask (e.g., 10.77.77.2)")
    config_type = Column(String(20), default=ConfigType.FULL_TUNNEL.value, nullable=False)
    allowed_ips = Column(String(255), nullable=False,
                         comment="AllowedIPs written into the client config")

    # Status
    status = Column(String(20), default=PeerStatus.ACTIVE.value, nullable=False, index=True)

    # Gateway mirror references
    router_peer_id = Column(String(32), nullable=True,
                            comment="Gateway internal .id (best effort)")
    router_comment = Column(String(100), nullable=False, default="",
                            comment="Deterministic comment tag for lookups")

    interface_id = Column(String(36), ForeignKey("tunnel_interfaces.id"), nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    wg_interface = relationship("TunnelInterface", back_populates="peers")
    activity = relationship(
        "PeerActivityLog",
        back_populates="peer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PeerActivityLog.id",
    )

    __table_args__ = (
        UniqueConstraint('interface_id', 'tunnel_ip', name='uq_peers_interface_tunnel_ip'),
        Index('ix_peers_interface_status', 'interface_id', 'status'),
    )

    def __repr__(self):
        return f"<Peer(id={self.id}, name={self.name}, tunnel_ip={self.tunnel_ip}, status={self.status})>"

    @property
    def has_private_key(self) -> bool:
        """Key pair was generated server-side"""
        return bool(self.private_key)


class PeerActivityLog(Base):
    """
    Peer Activity Log table - append-only audit trail of peer transitions
    """
    __tablename__ = "peer_activity_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    peer_id = Column(String(36), ForeignKey("peers.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False,
                  comment="CREATED, REVOKED, UPDATED, CONFIG_GENERATED")
    message = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    peer = relationship("Peer", back_populates="activity")

    __table_args__ = (
        Index('ix_peer_activity_peer_type', 'peer_id', 'type'),
    )

    def __repr__(self):
        return f"<PeerActivityLog(id={self.id}, peer={self.peer_id}, type={self.type})>"
