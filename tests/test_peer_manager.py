"""Tests for the peer lifecycle manager"""

import logging
from unittest.mock import patch

import pytest

from tunnel_plane.core.exceptions import (
    AddressPoolExhaustedError,
    InvalidKeyFormatError,
    InvalidNetworkError,
    NotFoundError,
    RemoteOperationError,
)
from tunnel_plane.core.gateway_client import GatewayControlClient, RemotePeer
from tunnel_plane.core.ipam import AddressAllocator
from tunnel_plane.core.keys import public_key_from_private
from tunnel_plane.core.peer_manager import SPLIT_TUNNEL_ALLOWED_IPS, PeerLifecycleManager
from tunnel_plane.database.models import Peer, PeerActivityLog

from .conftest import CLIENT_PUBLIC_KEY, make_interface


def _remote_peer(peer_id="*7", comment=""):
    return RemotePeer(
        id=peer_id,
        interface="TEST_WG",
        public_key=CLIENT_PUBLIC_KEY,
        allowed_address="10.77.77.2/32",
        comment=comment,
    )


def _activity_types(db, peer_id):
    rows = db.query(PeerActivityLog).filter(PeerActivityLog.peer_id == peer_id).order_by(PeerActivityLog.id).all()
    return [row.type for row in rows]


class TestCreatePeer:

    def test_client_key_peer(self, db, wg_interface, peer_manager, gateway):
        peer = peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

        assert peer.tunnel_ip == "10.77.77.2"
        assert peer.status == "ACTIVE"
        assert peer.private_key is None
        assert peer.allowed_ips == "0.0.0.0/0"
        assert peer.router_peer_id == "*1"
        assert peer.router_comment == f"test:{peer.id}"
        assert peer.interface_id == wg_interface.id
        assert _activity_types(db, peer.id) == ["CREATED"]

        gateway.add_peer.assert_called_once_with(
            interface_name="TEST_WG",
            public_key=CLIENT_PUBLIC_KEY,
            allowed_address="10.77.77.2/32",
            persistent_keepalive=25,
            comment=f"test:{peer.id}",
            name="laptop",
            disabled=False,
        )

    def test_generates_key_pair_when_no_key_given(self, db, wg_interface, peer_manager):
        peer = peer_manager.create_peer(db, name="phone")

        assert len(peer.private_key) == 44
        assert public_key_from_private(peer.private_key) == peer.public_key

    def test_addresses_increase(self, db, wg_interface, peer_manager):
        first = peer_manager.create_peer(db, name="a", public_key=CLIENT_PUBLIC_KEY)
        second = peer_manager.create_peer(db, name="b", public_key=CLIENT_PUBLIC_KEY)
        assert (first.tunnel_ip, second.tunnel_ip) == ("10.77.77.2", "10.77.77.3")

    def test_split_tunnel_defaults(self, db, wg_interface, peer_manager):
        peer = peer_manager.create_peer(db, name="office", config_type="SPLIT_TUNNEL", public_key=CLIENT_PUBLIC_KEY)
        assert peer.allowed_ips == SPLIT_TUNNEL_ALLOWED_IPS

    def test_explicit_allowed_ips_win(self, db, wg_interface, peer_manager):
        peer = peer_manager.create_peer(db, name="lab", public_key=CLIENT_PUBLIC_KEY, allowed_ips="10.1.0.0/16")
        assert peer.allowed_ips == "10.1.0.0/16"

    def test_named_interface(self, db, wg_interface, peer_manager, gateway):
        make_interface(db, name="wg-branch", tunnel_cidr="10.88.0.0/24", server_tunnel_ip="10.88.0.1")
        peer_manager.create_peer(db, name="a", public_key=CLIENT_PUBLIC_KEY)

        peer = peer_manager.create_peer(db, name="b", public_key=CLIENT_PUBLIC_KEY, interface_name="wg-branch")

        assert peer.tunnel_ip == "10.88.0.2"
        assert gateway.add_peer.call_args.kwargs["interface_name"] == "wg-branch"

    def test_invalid_key_stores_nothing(self, db, wg_interface, peer_manager, gateway):
        with pytest.raises(InvalidKeyFormatError):
            peer_manager.create_peer(db, name="bad", public_key="not-a-key")

        gateway.add_peer.assert_not_called()
        assert db.query(Peer).count() == 0

    def test_unknown_interface(self, db, wg_interface, peer_manager):
        with pytest.raises(NotFoundError):
            peer_manager.create_peer(db, name="x", public_key=CLIENT_PUBLIC_KEY, interface_name="missing")

    def test_unseeded_database(self, db, peer_manager):
        with pytest.raises(NotFoundError) as exc_info:
            peer_manager.create_peer(db, name="x", public_key=CLIENT_PUBLIC_KEY)
        assert "seed" in exc_info.value.message

    def test_pool_exhausted(self, db, wg_interface, peer_manager, gateway):
        db.add_all([
            Peer(
                name=f"p{i}", public_key=CLIENT_PUBLIC_KEY, tunnel_ip=f"10.77.77.{i}",
                config_type="FULL_TUNNEL", allowed_ips="0.0.0.0/0", status="ACTIVE",
                interface_id=wg_interface.id,
            )
            for i in range(2, 255)
        ])
        db.commit()

        with pytest.raises(AddressPoolExhaustedError):
            peer_manager.create_peer(db, name="one-too-many", public_key=CLIENT_PUBLIC_KEY)

        gateway.add_peer.assert_not_called()
        assert db.query(Peer).count() == 253

    def test_wide_subnet_rejected_before_gateway(self, db, wg_interface, peer_manager, gateway):
        make_interface(db, name="wg-wide", tunnel_cidr="10.99.0.0/16", server_tunnel_ip="10.99.0.1")

        with pytest.raises(InvalidNetworkError):
            peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY, interface_name="wg-wide")

        gateway.add_peer.assert_not_called()
        assert db.query(Peer).count() == 0

    def test_gateway_failure_rolls_back(self, db, wg_interface, peer_manager, gateway):
        gateway.add_peer.side_effect = RemoteOperationError("connection refused", command="/interface/wireguard/peers/add")

        with pytest.raises(RemoteOperationError) as exc_info:
            peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

        assert "Failed to create peer on gateway" in exc_info.value.message
        assert db.query(Peer).count() == 0
        assert db.query(PeerActivityLog).count() == 0

    def test_address_reused_after_failed_create(self, db, wg_interface, peer_manager, gateway):
        gateway.add_peer.side_effect = [RemoteOperationError("trap"), "*2"]

        with pytest.raises(RemoteOperationError):
            peer_manager.create_peer(db, name="first", public_key=CLIENT_PUBLIC_KEY)
        peer = peer_manager.create_peer(db, name="second", public_key=CLIENT_PUBLIC_KEY)

        assert peer.tunnel_ip == "10.77.77.2"

    def test_gateway_id_found_by_comment(self, db, wg_interface, peer_manager, gateway):
        gateway.add_peer.return_value = None
        gateway.find_peer_by_comment.return_value = _remote_peer("*9")

        peer = peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

        assert peer.router_peer_id == "*9"
        gateway.find_peer_by_comment.assert_called_once_with("TEST_WG", f"test:{peer.id}")

    def test_failed_id_lookup_keeps_peer(self, db, wg_interface, peer_manager, gateway):
        gateway.add_peer.return_value = None
        gateway.find_peer_by_comment.side_effect = RemoteOperationError("timeout")

        peer = peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

        assert peer.router_peer_id is None
        assert peer.router_comment == f"test:{peer.id}"
        assert db.query(Peer).count() == 1


class TestRevokeAndReactivate:

    @pytest.fixture
    def peer(self, db, wg_interface, peer_manager):
        return peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

    def test_revoke_disables_on_gateway(self, db, peer, peer_manager, gateway):
        revoked = peer_manager.revoke_peer(db, peer.id)

        assert revoked.status == "REVOKED"
        gateway.disable_peer.assert_called_once_with("*1")
        assert _activity_types(db, peer.id) == ["CREATED", "REVOKED"]

    def test_revoke_is_idempotent(self, db, peer, peer_manager, gateway):
        peer_manager.revoke_peer(db, peer.id)
        peer_manager.revoke_peer(db, peer.id)

        assert gateway.disable_peer.call_count == 1
        assert _activity_types(db, peer.id).count("REVOKED") == 1

    def test_revoke_with_gateway_down(self, db, peer, peer_manager, gateway, caplog):
        gateway.disable_peer.side_effect = RemoteOperationError("no route to host")

        with caplog.at_level(logging.WARNING):
            revoked = peer_manager.revoke_peer(db, peer.id)

        assert revoked.status == "REVOKED"
        entries = db.query(PeerActivityLog).filter(PeerActivityLog.type == "REVOKED").all()
        assert len(entries) == 1
        assert "not updated" in entries[0].message
        assert "Failed to disable peer" in caplog.text

    def test_revoke_falls_back_to_comment(self, db, peer, peer_manager, gateway):
        peer.router_peer_id = None
        db.commit()
        gateway.find_peer_by_comment.return_value = _remote_peer("*7", peer.router_comment)

        peer_manager.revoke_peer(db, peer.id)

        gateway.find_peer_by_comment.assert_called_with("TEST_WG", peer.router_comment)
        gateway.disable_peer.assert_called_once_with("*7")

    def test_revoke_with_drift_completes_locally(self, db, peer, peer_manager, gateway, caplog):
        peer.router_peer_id = None
        db.commit()
        gateway.find_peer_by_comment.return_value = None

        with caplog.at_level(logging.WARNING):
            revoked = peer_manager.revoke_peer(db, peer.id)

        assert revoked.status == "REVOKED"
        gateway.disable_peer.assert_not_called()
        assert "drift" in caplog.text

    def test_revoke_unknown_peer(self, db, wg_interface, peer_manager):
        with pytest.raises(NotFoundError):
            peer_manager.revoke_peer(db, "does-not-exist")

    def test_reactivate(self, db, peer, peer_manager, gateway):
        peer_manager.revoke_peer(db, peer.id)
        reactivated = peer_manager.reactivate_peer(db, peer.id)

        assert reactivated.status == "ACTIVE"
        gateway.enable_peer.assert_called_once_with("*1")
        assert _activity_types(db, peer.id) == ["CREATED", "REVOKED", "UPDATED"]

    def test_reactivate_active_peer_is_noop(self, db, peer, peer_manager, gateway):
        peer_manager.reactivate_peer(db, peer.id)

        gateway.enable_peer.assert_not_called()
        assert _activity_types(db, peer.id) == ["CREATED"]

    def test_reactivate_with_gateway_down(self, db, peer, peer_manager, gateway):
        peer_manager.revoke_peer(db, peer.id)
        gateway.enable_peer.side_effect = RemoteOperationError("timeout")

        assert peer_manager.reactivate_peer(db, peer.id).status == "ACTIVE"


class TestDeleteAndUpdate:

    @pytest.fixture
    def peer(self, db, wg_interface, peer_manager):
        return peer_manager.create_peer(db, name="laptop", public_key=CLIENT_PUBLIC_KEY)

    def test_delete_removes_everything(self, db, peer, peer_manager, gateway):
        assert peer_manager.delete_peer(db, peer.id) is True

        gateway.remove_peer.assert_called_once_with("*1")
        assert db.query(Peer).count() == 0
        assert db.query(PeerActivityLog).count() == 0

    def test_delete_missing_peer(self, db, wg_interface, peer_manager, gateway):
        assert peer_manager.delete_peer(db, "does-not-exist") is False
        gateway.remove_peer.assert_not_called()

    def test_delete_with_gateway_down(self, db, peer, peer_manager, gateway):
        gateway.remove_peer.side_effect = RemoteOperationError("timeout")

        assert peer_manager.delete_peer(db, peer.id) is True
        assert db.query(Peer).count() == 0

    def test_freed_address_is_reused(self, db, peer, peer_manager):
        peer_manager.delete_peer(db, peer.id)
        again = peer_manager.create_peer(db, name="again", public_key=CLIENT_PUBLIC_KEY)
        assert again.tunnel_ip == "10.77.77.2"

    def test_update_records_activity(self, db, peer, peer_manager):
        updated = peer_manager.update_peer(db, peer.id, name="work-laptop", notes="issued 2024")

        assert updated.name == "work-laptop"
        assert updated.notes == "issued 2024"
        assert _activity_types(db, peer.id) == ["CREATED", "UPDATED"]

    def test_update_without_changes(self, db, peer, peer_manager):
        peer_manager.update_peer(db, peer.id, name="laptop")
        assert _activity_types(db, peer.id) == ["CREATED"]


class TestQueries:

    def test_list_filters(self, db, wg_interface, peer_manager):
        make_interface(db, name="wg-branch", tunnel_cidr="10.88.0.0/24", server_tunnel_ip="10.88.0.1")
        a = peer_manager.create_peer(db, name="a", public_key=CLIENT_PUBLIC_KEY)
        peer_manager.create_peer(db, name="b", public_key=CLIENT_PUBLIC_KEY, interface_name="wg-branch")
        peer_manager.revoke_peer(db, a.id)

        assert len(peer_manager.list_peers(db)) == 2
        assert [p.name for p in peer_manager.list_peers(db, interface_name="wg-branch")] == ["b"]
        assert [p.name for p in peer_manager.list_peers(db, status="REVOKED")] == ["a"]

    def test_get_activity(self, db, wg_interface, peer_manager):
        peer = peer_manager.create_peer(db, name="a", public_key=CLIENT_PUBLIC_KEY)
        peer_manager.revoke_peer(db, peer.id)

        assert [e.type for e in peer_manager.get_activity(db, peer.id)] == ["CREATED", "REVOKED"]

    def test_get_activity_unknown_peer(self, db, wg_interface, peer_manager):
        with pytest.raises(NotFoundError):
            peer_manager.get_activity(db, "nope")


class TestCreateWithRealClient:
    """Create path through GatewayControlClient with the RouterOS connection patched"""

    @pytest.fixture
    def api(self):
        with patch("librouteros.connect") as connect:
            yield connect.return_value

    @pytest.fixture
    def manager(self, registry, defaults):
        client = GatewayControlClient(host="192.0.2.1", username="admin", password="secret")
        return PeerLifecycleManager(gateway=client, registry=registry, defaults=defaults, allocator=AddressAllocator())

    def test_non_ascii_name(self, db, wg_interface, manager, api):
        api.rawCmd.return_value = iter([{"ret": "*5"}])

        peer = manager.create_peer(db, name="Zoë phone", public_key=CLIENT_PUBLIC_KEY)

        assert peer.name == "Zoë phone"
        assert peer.router_peer_id == "*5"
        assert "=name=Zoë phone" in api.rawCmd.call_args.args

    def test_encoding_failure_rolls_back(self, db, wg_interface, manager, api):
        api.rawCmd.side_effect = UnicodeEncodeError("ascii", "Zoë phone", 2, 3, "ordinal not in range(128)")

        with pytest.raises(RemoteOperationError):
            manager.create_peer(db, name="Zoë phone", public_key=CLIENT_PUBLIC_KEY)

        assert db.query(Peer).count() == 0
