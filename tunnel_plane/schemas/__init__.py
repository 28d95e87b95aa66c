"""
Pydantic Schemas for the Tunnel Plane API
Organized by domain: peers, interfaces
"""

from .base import BaseResponse, ErrorResponse, HealthResponse
from .peer import (
    PeerStatus,
    ConfigType,
    ActivityType,
    PeerCreate,
    PeerUpdate,
    PeerResponse,
    PeerListResponse,
    PeerConfigResponse,
    PeerActivityResponse,
    PeerActivityListResponse,
)
from .interface import (
    InterfaceCreate,
    InterfaceUpdate,
    InterfaceResponse,
    InterfaceListResponse,
)

__all__ = [
    # Base
    "BaseResponse",
    "ErrorResponse",
    "HealthResponse",
    # Peer
    "PeerStatus",
    "ConfigType",
    "ActivityType",
    "PeerCreate",
    "PeerUpdate",
    "PeerResponse",
    "PeerListResponse",
    "PeerConfigResponse",
    "PeerActivityResponse",
    "PeerActivityListResponse",
    # Interface
    "InterfaceCreate",
    "InterfaceUpdate",
    "InterfaceResponse",
    "InterfaceListResponse",
]
