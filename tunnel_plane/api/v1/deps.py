# tunnel_plane/api/v1/deps.py
"""
Shared API dependencies
"""

from fastapi import Header, HTTPException, status
import logging

from tunnel_plane.config import settings
from tunnel_plane.core.config_generator import ConfigGenerator, config_generator
from tunnel_plane.core.interface_manager import InterfaceManager, interface_manager
from tunnel_plane.core.peer_manager import PeerLifecycleManager, peer_manager

logger = logging.getLogger(__name__)


async def verify_admin_token(x_admin_token: str = Header(..., alias="X-Admin-Token")):
    """Verify admin authentication token"""
    if x_admin_token != settings.ADMIN_SECRET:
        logger.warning("Invalid admin token attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid or missing admin token",
                "error_code": "UNAUTHORIZED"
            },
            headers={"WWW-Authenticate": "Bearer"}
        )
    return True


def get_peer_manager() -> PeerLifecycleManager:
    return peer_manager


def get_interface_manager() -> InterfaceManager:
    return interface_manager


def get_config_generator() -> ConfigGenerator:
    return config_generator
