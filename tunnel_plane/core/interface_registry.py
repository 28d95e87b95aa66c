# tunnel_plane/core/interface_registry.py
"""
Interface Registry - resolves the tunnel interface an operation runs against
"""

from typing import Optional
from sqlalchemy.orm import Session

from tunnel_plane.config import GatewayDefaults, settings
from tunnel_plane.database.models import TunnelInterface
from .exceptions import NotFoundError


class InterfaceRegistry:
    """Read-only lookups of TunnelInterface records"""

    def __init__(self, defaults: GatewayDefaults):
        self.defaults = defaults

    def resolve(self, db: Session, name: Optional[str] = None, for_update: bool = False) -> TunnelInterface:
        """
        Named interface, or the configured default when no name is given

        With for_update the row stays locked until the caller commits, which
        serializes address allocation on the interface.

        Raises:
            NotFoundError: If no such record exists (database not seeded)
        """
        interface_name = name or self.defaults.interface_name
        query = db.query(TunnelInterface).filter(TunnelInterface.name == interface_name)
        if for_update:
            query = query.with_for_update()
        wg_interface = query.first()

        if not wg_interface:
            raise NotFoundError(
                f"WireGuard interface '{interface_name}' not found in database. "
                f"Please seed the database.",
                details={"interface": interface_name},
            )
        return wg_interface

    def find(self, db: Session, interface_id: str) -> Optional[TunnelInterface]:
        return db.query(TunnelInterface).filter(TunnelInterface.id == interface_id).first()

    def get(self, db: Session, interface_id: str) -> TunnelInterface:
        wg_interface = self.find(db, interface_id)
        if not wg_interface:
            raise NotFoundError(
                f"Interface with id {interface_id} not found",
                details={"interface_id": interface_id},
            )
        return wg_interface

    def is_default(self, wg_interface: TunnelInterface) -> bool:
        return wg_interface.name == self.defaults.interface_name


# Singleton instance
interface_registry = InterfaceRegistry(settings.gateway_defaults())
