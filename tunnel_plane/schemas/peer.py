# tunnel_plane/schemas/peer.py
"""
Peer-related Pydantic schemas
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PeerStatus(str, Enum):
    """Peer lifecycle status"""
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class ConfigType(str, Enum):
    """Client routing mode"""
    FULL_TUNNEL = "FULL_TUNNEL"      # Route all traffic through the tunnel
    SPLIT_TUNNEL = "SPLIT_TUNNEL"    # Only private ranges


class ActivityType(str, Enum):
    CREATED = "CREATED"
    REVOKED = "REVOKED"
    UPDATED = "UPDATED"
    CONFIG_GENERATED = "CONFIG_GENERATED"


# === Request Schemas ===

class PeerCreate(BaseModel):
    """
    Schema for creating a peer
    Omit public_key to have the server generate the key pair
    """
    name: str = Field(..., min_length=1, max_length=64, examples=["alice-laptop"])
    user_label: Optional[str] = Field(None, max_length=100, examples=["alice@example.com"])
    public_key: Optional[str] = Field(
        None,
        description="Client WireGuard public key (Base64). Generated server-side when omitted",
        examples=["aB3dE5fG7hI9jK1lM3nO5pQ7rS9tU1vW3xY5zA7bC9dE="]
    )
    config_type: ConfigType = Field(default=ConfigType.FULL_TUNNEL)
    allowed_ips: Optional[str] = Field(
        None,
        max_length=255,
        description="Client AllowedIPs; derived from config_type when omitted"
    )
    notes: Optional[str] = None
    interface_name: Optional[str] = Field(
        None,
        max_length=64,
        description="Target interface; the default interface when omitted"
    )

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Peer name cannot be blank')
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "alice-laptop",
                "user_label": "alice@example.com",
                "config_type": "FULL_TUNNEL",
                "notes": "Travel laptop"
            }
        }
    )


class PeerUpdate(BaseModel):
    """Metadata-only peer update"""
    name: Optional[str] = Field(None, min_length=1, max_length=64)
    user_label: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


# === Response Schemas ===

class PeerResponse(BaseModel):
    """Peer as returned by the API; the private key is never exposed here"""
    id: str
    name: str
    user_label: Optional[str] = None
    public_key: str
    tunnel_ip: str
    status: PeerStatus
    config_type: ConfigType
    allowed_ips: str
    notes: Optional[str] = None
    router_peer_id: Optional[str] = None
    router_comment: str
    interface_id: str
    has_private_key: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PeerListResponse(BaseModel):
    """Response for listing peers"""
    peers: List[PeerResponse]
    total: int


class PeerConfigResponse(BaseModel):
    """Rendered client configuration"""
    peer_id: str
    config_text: str = Field(..., description="Complete client .conf content")


class PeerActivityResponse(BaseModel):
    id: int
    peer_id: str
    type: ActivityType
    message: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PeerActivityListResponse(BaseModel):
    entries: List[PeerActivityResponse]
    total: int
