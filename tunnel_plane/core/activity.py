# tunnel_plane/core/activity.py
"""
Peer activity log helpers
"""

from typing import List
from sqlalchemy.orm import Session

from tunnel_plane.database.models import ActivityType, PeerActivityLog


def record_activity(db: Session, peer_id: str, activity_type: ActivityType, message: str) -> PeerActivityLog:
    """
    Append an activity entry to the current transaction

    Never commits: the entry lands together with the transition it describes.
    """
    entry = PeerActivityLog(peer_id=peer_id, type=activity_type.value, message=message)
    db.add(entry)
    return entry


def list_activity(db: Session, peer_id: str) -> List[PeerActivityLog]:
    """Entries for one peer, oldest first"""
    return db.query(PeerActivityLog).filter(
        PeerActivityLog.peer_id == peer_id
    ).order_by(PeerActivityLog.id.asc()).all()
