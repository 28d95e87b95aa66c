# tunnel_plane/seed.py
"""
Seed the default tunnel interface from settings and the gateway

Usage: tunnel-plane-seed
"""

import logging
import sys

from tunnel_plane.config import settings
from tunnel_plane.core.exceptions import InvalidNetworkError, RemoteOperationError
from tunnel_plane.core.interface_manager import interface_manager
from tunnel_plane.database.session import SessionLocal, init_db

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger.info(f"Seeding interface {settings.DEFAULT_INTERFACE_NAME} from settings and gateway {settings.ROUTER_HOST}")

    init_db()
    db = SessionLocal()
    try:
        wg_interface = interface_manager.seed_default_interface(db)
    except (RemoteOperationError, InvalidNetworkError) as e:
        logger.error(f"Failed to synchronize with gateway: {e}")
        return 1
    finally:
        db.close()

    logger.info(f"Interface {wg_interface.name} ready (public key {wg_interface.public_key})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
