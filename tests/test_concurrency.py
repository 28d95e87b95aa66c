"""Concurrent transitions on one peer, each thread with its own session"""

import threading

from tunnel_plane.database.models import Peer, PeerActivityLog

from .conftest import CLIENT_PUBLIC_KEY


def _run_concurrently(session_factory, action, count=2):
    barrier = threading.Barrier(count)
    errors = []

    def worker():
        session = session_factory()
        try:
            barrier.wait()
            action(session)
        except Exception as e:  # collected for the assertion below
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return errors


def test_concurrent_revokes_record_one_entry(db, session_factory, wg_interface, peer_manager, gateway):
    peer = peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)
    peer_id = peer.id
    db.close()

    errors = _run_concurrently(session_factory, lambda session: peer_manager.revoke_peer(session, peer_id))

    assert errors == []
    check = session_factory()
    try:
        assert check.get(Peer, peer_id).status == "REVOKED"
        revoked = check.query(PeerActivityLog).filter(
            PeerActivityLog.peer_id == peer_id, PeerActivityLog.type == "REVOKED"
        ).count()
        assert revoked == 1
    finally:
        check.close()
    assert gateway.disable_peer.call_count == 1


def test_concurrent_creates_get_distinct_addresses(db, session_factory, wg_interface, peer_manager):
    db.close()

    errors = _run_concurrently(
        session_factory,
        lambda session: peer_manager.create_peer(session, name="worker", public_key=CLIENT_PUBLIC_KEY),
        count=4,
    )

    assert errors == []
    check = session_factory()
    try:
        addresses = sorted(row[0] for row in check.query(Peer.tunnel_ip).all())
        assert addresses == ["10.77.77.2", "10.77.77.3", "10.77.77.4", "10.77.77.5"]
    finally:
        check.close()
