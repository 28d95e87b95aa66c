# tunnel_plane/core/gateway_client.py
"""
Gateway Control Client
Request/response client for the RouterOS API of the WireGuard gateway
"""

import ssl
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import librouteros
from librouteros.exceptions import LibRouterosError

from tunnel_plane.config import Settings, settings
from .exceptions import RemoteOperationError

logger = logging.getLogger(__name__)

INTERFACE_PATH = "/interface/wireguard"
PEER_PATH = "/interface/wireguard/peers"
ADDRESS_PATH = "/ip/address"


def _flag(value: Any) -> bool:
    """RouterOS booleans arrive as bool or as 'true'/'yes' strings"""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "yes")


@dataclass(frozen=True)
class RemoteInterface:
    """WireGuard interface as reported by the gateway"""
    id: str
    name: str
    listen_port: int
    public_key: str
    private_key: str
    disabled: bool = False

    @classmethod
    def from_reply(cls, reply: Dict[str, Any]) -> "RemoteInterface":
        return cls(
            id=str(reply.get(".id", "")),
            name=str(reply.get("name", "")),
            listen_port=int(reply.get("listen-port") or 0),
            public_key=str(reply.get("public-key", "")),
            private_key=str(reply.get("private-key", "")),
            disabled=_flag(reply.get("disabled", False)),
        )


@dataclass(frozen=True)
class RemotePeer:
    """WireGuard peer as reported by the gateway"""
    id: str
    interface: str
    public_key: str
    allowed_address: str
    disabled: bool = False
    comment: str = ""
    name: str = ""

    @classmethod
    def from_reply(cls, reply: Dict[str, Any]) -> "RemotePeer":
        return cls(
            id=str(reply.get(".id", "")),
            interface=str(reply.get("interface", "")),
            public_key=str(reply.get("public-key", "")),
            allowed_address=str(reply.get("allowed-address", "")),
            disabled=_flag(reply.get("disabled", False)),
            comment=str(reply.get("comment", "")),
            name=str(reply.get("name", "")),
        )


@dataclass(frozen=True)
class RemoteAddress:
    """IP address bound to a gateway interface"""
    id: str
    address: str
    interface: str

    @classmethod
    def from_reply(cls, reply: Dict[str, Any]) -> "RemoteAddress":
        return cls(
            id=str(reply.get(".id", "")),
            address=str(reply.get("address", "")),
            interface=str(reply.get("interface", "")),
        )


class GatewayControlClient:
    """
    One connection per command

    Every call connects, logs in, sends exactly one command and closes the
    connection whether the command succeeded or not. Failures are raised as
    RemoteOperationError without retrying; retry policy belongs to callers.
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = 8728,
        timeout: float = 10.0,
        use_tls: bool = False,
    ):
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.use_tls = use_tls

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "GatewayControlClient":
        if not config.ROUTER_HOST or not config.ROUTER_USERNAME:
            logger.warning("Gateway connection is not fully configured (ROUTER_HOST, ROUTER_USERNAME)")
        return cls(
            host=config.ROUTER_HOST,
            username=config.ROUTER_USERNAME,
            password=config.ROUTER_PASSWORD,
            port=config.ROUTER_PORT,
            timeout=config.ROUTER_TIMEOUT,
            use_tls=config.router_uses_tls,
        )

    def _connect(self):
        kwargs = {
            "host": self.host,
            "username": self.username,
            "password": self.password,
            "port": self.port,
            "timeout": self.timeout,
            # Peer and interface names may be any Unicode text
            "encoding": "utf-8",
        }
        if self.use_tls:
            # RouterOS ships a self-signed certificate for api-ssl
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            kwargs["ssl_wrapper"] = context.wrap_socket
        return librouteros.connect(**kwargs)

    def _run(self, command: str, *words: str) -> List[Dict[str, Any]]:
        """Run a single API sentence and return every reply"""
        api = None
        logger.debug(f"Running: {command} {' '.join(words)}")
        try:
            api = self._connect()
            return list(api.rawCmd(command, *words))
        except (LibRouterosError, OSError, UnicodeError) as e:
            logger.error(f"RouterOS command failed: {command}: {e}")
            raise RemoteOperationError(
                f"RouterOS command {command} failed: {e}",
                command=command,
            ) from e
        finally:
            if api is not None:
                try:
                    api.close()
                except (LibRouterosError, OSError) as e:
                    logger.error(f"Error closing RouterOS connection: {e}")

    @staticmethod
    def _returned_id(replies: List[Dict[str, Any]]) -> Optional[str]:
        for reply in replies:
            if reply.get("ret"):
                return str(reply["ret"])
        return None

    # === Interfaces ===

    def list_interfaces(self) -> List[RemoteInterface]:
        return [RemoteInterface.from_reply(r) for r in self._run(f"{INTERFACE_PATH}/print")]

    def find_interface_by_name(self, name: str) -> Optional[RemoteInterface]:
        replies = self._run(f"{INTERFACE_PATH}/print", f"?name={name}")
        return RemoteInterface.from_reply(replies[0]) if replies else None

    def add_interface(self, name: str, listen_port: int, mtu: Optional[int] = None) -> Optional[str]:
        words = [f"=name={name}", f"=listen-port={listen_port}"]
        if mtu:
            words.append(f"=mtu={mtu}")
        interface_id = self._returned_id(self._run(f"{INTERFACE_PATH}/add", *words))
        logger.info(f"Added gateway interface {name} (port {listen_port})")
        return interface_id

    def remove_interface(self, interface_id: str) -> None:
        self._run(f"{INTERFACE_PATH}/remove", f"=.id={interface_id}")
        logger.info(f"Removed gateway interface {interface_id}")

    # === Peers ===

    def list_peers(self, interface_name: str) -> List[RemotePeer]:
        replies = self._run(f"{PEER_PATH}/print", f"?interface={interface_name}")
        return [RemotePeer.from_reply(r) for r in replies]

    def find_peer_by_comment(self, interface_name: str, comment: str) -> Optional[RemotePeer]:
        replies = self._run(
            f"{PEER_PATH}/print",
            f"?interface={interface_name}",
            f"?comment={comment}",
        )
        return RemotePeer.from_reply(replies[0]) if replies else None

    def add_peer(
        self,
        interface_name: str,
        public_key: str,
        allowed_address: str,
        persistent_keepalive: int,
        comment: Optional[str] = None,
        name: Optional[str] = None,
        disabled: bool = False,
    ) -> Optional[str]:
        """
        Create a peer and return its gateway .id when the reply carries one

        Args:
            allowed_address: Host route for the peer (e.g., "10.77.77.2/32")
            comment: Tag used to find the peer again (e.g., "tunnelplane:<id>")
        """
        words = [
            f"=interface={interface_name}",
            f"=public-key={public_key}",
            f"=allowed-address={allowed_address}",
            f"=persistent-keepalive={persistent_keepalive}s",
        ]
        if comment:
            words.append(f"=comment={comment}")
        if name:
            words.append(f"=name={name}")
        words.append(f"=disabled={'yes' if disabled else 'no'}")

        peer_id = self._returned_id(self._run(f"{PEER_PATH}/add", *words))
        logger.info(f"Added gateway peer: {public_key[:20]}... -> {allowed_address}")
        return peer_id

    def enable_peer(self, peer_id: str) -> None:
        self._run(f"{PEER_PATH}/set", f"=.id={peer_id}", "=disabled=no")

    def disable_peer(self, peer_id: str) -> None:
        self._run(f"{PEER_PATH}/set", f"=.id={peer_id}", "=disabled=yes")

    def remove_peer(self, peer_id: str) -> None:
        self._run(f"{PEER_PATH}/remove", f"=.id={peer_id}")

    # === IP Addresses ===

    def find_address_by_interface(self, interface_name: str) -> Optional[RemoteAddress]:
        replies = self._run(f"{ADDRESS_PATH}/print", f"?interface={interface_name}")
        return RemoteAddress.from_reply(replies[0]) if replies else None

    def add_address(self, address: str, interface_name: str, comment: Optional[str] = None) -> Optional[str]:
        words = [f"=address={address}", f"=interface={interface_name}"]
        if comment:
            words.append(f"=comment={comment}")
        return self._returned_id(self._run(f"{ADDRESS_PATH}/add", *words))

    def remove_address(self, address_id: str) -> None:
        self._run(f"{ADDRESS_PATH}/remove", f"=.id={address_id}")


# Singleton instance
gateway_client = GatewayControlClient.from_settings()
