"""
Database modules
"""

from .session import get_db, init_db, transaction, db_manager, SessionLocal, engine, build_engine
from .models import (
    Base,
    TunnelInterface,
    Peer,
    PeerActivityLog,
    PeerStatus,
    ConfigType,
    ActivityType,
)

__all__ = [
    # Session
    "get_db",
    "init_db",
    "transaction",
    "db_manager",
    "SessionLocal",
    "engine",
    "build_engine",
    # Models
    "Base",
    "TunnelInterface",
    "Peer",
    "PeerActivityLog",
    "PeerStatus",
    "ConfigType",
    "ActivityType",
]
