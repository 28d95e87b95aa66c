# tunnel_plane/config.py
"""
Settings for the service, the RouterOS connection and tunnel defaults
All keys can be set in the environment or in a .env file
"""

from dataclasses import dataclass
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


@dataclass(frozen=True)
class GatewayDefaults:
    """
    Process-wide tunnel defaults, resolved once from settings and handed to
    the registry, managers and config generator at construction time
    """
    interface_name: str
    listen_port: int
    tunnel_cidr: str
    server_tunnel_ip: str
    dns: str
    keepalive: int
    endpoint_host: str
    comment_namespace: str
    managed_by: str

    def peer_comment(self, peer_id: str) -> str:
        """Deterministic tag used to re-locate a peer on the gateway"""
        return f"{self.comment_namespace}:{peer_id}"


class Settings(BaseSettings):
    """Environment-driven settings; names are the variable names"""

    # === Application ===
    APP_NAME: str = "Tunnel Plane"
    APP_VERSION: str = "1.0.0"
    ENV: str = "development"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # === API ===
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_PREFIX: str = "/api/v1"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # === Database ===
    DATABASE_URL: str = "sqlite:///./tunnelplane.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # === Security ===
    ADMIN_SECRET: str = "change-me-admin-secret"

    # === Gateway (RouterOS API) ===
    ROUTER_HOST: str = "192.168.88.1"
    ROUTER_PORT: int = 8728
    ROUTER_USERNAME: str = "admin"
    ROUTER_PASSWORD: str = ""
    ROUTER_TIMEOUT: float = 10.0  # seconds, per call
    ROUTER_USE_TLS: bool = False

    # Comment tag written on every peer we create: "<namespace>:<peer id>"
    PEER_COMMENT_NAMESPACE: str = "tunnelplane"

    # === WireGuard Defaults ===
    DEFAULT_INTERFACE_NAME: str = "TUNNELPLANE_WG"
    WG_LISTEN_PORT: int = 51820
    WG_TUNNEL_CIDR: str = "10.77.77.0/24"
    WG_SERVER_TUNNEL_IP: str = "10.77.77.1"
    WG_DEFAULT_DNS: str = "1.1.1.1"
    WG_DEFAULT_KEEPALIVE: int = 25
    WG_ENDPOINT_HOST: str = "vpn.example.com"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.ENV.lower() == "development"

    @property
    def router_uses_tls(self) -> bool:
        """API-SSL is served on 8729 by default"""
        return self.ROUTER_USE_TLS or self.ROUTER_PORT == 8729

    def gateway_defaults(self) -> GatewayDefaults:
        """Snapshot of the tunnel defaults as an immutable value object"""
        return GatewayDefaults(
            interface_name=self.DEFAULT_INTERFACE_NAME,
            listen_port=self.WG_LISTEN_PORT,
            tunnel_cidr=self.WG_TUNNEL_CIDR,
            server_tunnel_ip=self.WG_SERVER_TUNNEL_IP,
            dns=self.WG_DEFAULT_DNS,
            keepalive=self.WG_DEFAULT_KEEPALIVE,
            endpoint_host=self.WG_ENDPOINT_HOST,
            comment_namespace=self.PEER_COMMENT_NAMESPACE,
            managed_by=f"Managed by {self.APP_NAME}",
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
