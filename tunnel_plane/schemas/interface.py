# tunnel_plane/schemas/interface.py
"""
Tunnel interface Pydantic schemas
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime


class InterfaceCreate(BaseModel):
    """Schema for provisioning a new tunnel interface"""
    name: str = Field(..., min_length=1, max_length=64, examples=["wg-branch"])
    listen_port: int = Field(..., ge=1024, le=65535, examples=[51821])
    tunnel_cidr: str = Field(..., max_length=18, examples=["10.88.0.0/24"])
    server_tunnel_ip: str = Field(..., max_length=15, examples=["10.88.0.1"])
    default_dns: str = Field(..., max_length=255, examples=["1.1.1.1"])
    default_keepalive: int = Field(default=25, ge=0, le=65535)
    endpoint_host: Optional[str] = Field(None, max_length=255, examples=["vpn.example.com"])


class InterfaceUpdate(BaseModel):
    """Network-shape fields only; name and listen port are fixed"""
    tunnel_cidr: Optional[str] = Field(None, max_length=18)
    server_tunnel_ip: Optional[str] = Field(None, max_length=15)
    default_dns: Optional[str] = Field(None, max_length=255)
    default_keepalive: Optional[int] = Field(None, ge=0, le=65535)
    endpoint_host: Optional[str] = Field(None, max_length=255)

    model_config = ConfigDict(extra="forbid")


class InterfaceResponse(BaseModel):
    """Interface as returned by the API; the gateway private key is not exposed"""
    id: str
    name: str
    listen_port: int
    tunnel_cidr: str
    server_tunnel_ip: str
    default_dns: str
    default_keepalive: int
    endpoint_host: Optional[str] = None
    public_key: str
    peer_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InterfaceListResponse(BaseModel):
    interfaces: List[InterfaceResponse]
    total: int
