"""Pytest configuration and fixtures.

Each test gets its own SQLite file database so transactions, row locking
(BEGIN IMMEDIATE) and cascades behave as they do in production. The gateway
is a MagicMock shaped like GatewayControlClient.
"""

import os
from unittest.mock import MagicMock

# Set test environment variables before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["DEFAULT_INTERFACE_NAME"] = "TEST_WG"

import pytest
from sqlalchemy.orm import sessionmaker

from tunnel_plane.config import GatewayDefaults
from tunnel_plane.core.config_generator import ConfigGenerator
from tunnel_plane.core.gateway_client import GatewayControlClient, RemoteInterface
from tunnel_plane.core.interface_manager import InterfaceManager
from tunnel_plane.core.interface_registry import InterfaceRegistry
from tunnel_plane.core.ipam import AddressAllocator
from tunnel_plane.core.peer_manager import PeerLifecycleManager
from tunnel_plane.database.models import Base, TunnelInterface
from tunnel_plane.database.session import build_engine

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-secret"}

# 44-char keys in canonical WireGuard shape
CLIENT_PUBLIC_KEY = "A" * 42 + "=="
SERVER_PUBLIC_KEY = "S" * 43 + "="
SERVER_PRIVATE_KEY = "P" * 43 + "="


@pytest.fixture
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'tunnelplane-test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def defaults():
    return GatewayDefaults(
        interface_name="TEST_WG",
        listen_port=51820,
        tunnel_cidr="10.77.77.0/24",
        server_tunnel_ip="10.77.77.1",
        dns="9.9.9.9",
        keepalive=30,
        endpoint_host="fallback.example.com",
        comment_namespace="test",
        managed_by="Managed by Tunnel Plane",
    )


@pytest.fixture
def gateway():
    mock = MagicMock(spec=GatewayControlClient)
    mock.add_peer.return_value = "*1"
    mock.find_peer_by_comment.return_value = None
    mock.find_interface_by_name.return_value = None
    mock.find_address_by_interface.return_value = None
    return mock


@pytest.fixture
def registry(defaults):
    return InterfaceRegistry(defaults)


@pytest.fixture
def peer_manager(gateway, registry, defaults):
    return PeerLifecycleManager(gateway=gateway, registry=registry, defaults=defaults, allocator=AddressAllocator())


@pytest.fixture
def interface_manager(gateway, registry, defaults):
    return InterfaceManager(gateway=gateway, registry=registry, defaults=defaults, allocator=AddressAllocator())


@pytest.fixture
def config_generator(defaults):
    return ConfigGenerator(defaults)


def make_interface(db, name="TEST_WG", tunnel_cidr="10.77.77.0/24", server_tunnel_ip="10.77.77.1", **overrides):
    """Create a TunnelInterface directly in the DB for test isolation."""
    values = dict(
        name=name,
        listen_port=51820,
        tunnel_cidr=tunnel_cidr,
        server_tunnel_ip=server_tunnel_ip,
        default_dns="1.1.1.1",
        default_keepalive=25,
        endpoint_host="vpn.test.example",
        public_key=SERVER_PUBLIC_KEY,
        private_key=SERVER_PRIVATE_KEY,
    )
    values.update(overrides)
    wg_interface = TunnelInterface(**values)
    db.add(wg_interface)
    db.commit()
    return wg_interface


def remote_interface(name="wg-branch", listen_port=51821):
    return RemoteInterface(
        id="*A",
        name=name,
        listen_port=listen_port,
        public_key=SERVER_PUBLIC_KEY,
        private_key=SERVER_PRIVATE_KEY,
    )


@pytest.fixture
def wg_interface(db):
    return make_interface(db)
