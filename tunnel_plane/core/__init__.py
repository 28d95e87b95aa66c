"""
Core business logic modules
"""

from .exceptions import (
    TunnelPlaneError,
    NotFoundError,
    InvalidKeyFormatError,
    InvalidRequestError,
    InvalidNetworkError,
    AddressPoolExhaustedError,
    ConflictError,
    ProtectedInterfaceError,
    RemoteOperationError,
    RemoteDriftError,
)
from .ipam import address_allocator, AddressAllocator
from .keys import generate_key_pair, validate_public_key, KeyPair
from .gateway_client import gateway_client, GatewayControlClient, RemoteInterface, RemotePeer, RemoteAddress
from .interface_registry import interface_registry, InterfaceRegistry
from .peer_manager import peer_manager, PeerLifecycleManager
from .interface_manager import interface_manager, InterfaceManager
from .config_generator import config_generator, ConfigGenerator

__all__ = [
    # Errors
    "TunnelPlaneError",
    "NotFoundError",
    "InvalidKeyFormatError",
    "InvalidRequestError",
    "InvalidNetworkError",
    "AddressPoolExhaustedError",
    "ConflictError",
    "ProtectedInterfaceError",
    "RemoteOperationError",
    "RemoteDriftError",
    # IPAM
    "address_allocator",
    "AddressAllocator",
    # Keys
    "generate_key_pair",
    "validate_public_key",
    "KeyPair",
    # Gateway
    "gateway_client",
    "GatewayControlClient",
    "RemoteInterface",
    "RemotePeer",
    "RemoteAddress",
    # Interfaces
    "interface_registry",
    "InterfaceRegistry",
    "interface_manager",
    "InterfaceManager",
    # Peers
    "peer_manager",
    "PeerLifecycleManager",
    # Config
    "config_generator",
    "ConfigGenerator",
]
