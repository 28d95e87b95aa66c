# tunnel_plane/schemas/base.py
"""
Response envelopes shared by every router
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import TypeVar, Generic, Optional
from datetime import datetime

T = TypeVar("T")


class BaseResponse(BaseModel, Generic[T]):
    """Envelope for actions (revoke, delete, ...) with an optional payload"""
    success: bool = True
    message: str = "OK"
    data: Optional[T] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    """
    Body of every 4xx/5xx answer

    error_code is the stable TunnelPlaneError code (NOT_FOUND,
    REMOTE_OPERATION_FAILED, ...) or VALIDATION_ERROR / INTERNAL_ERROR.
    """
    success: bool = False
    error: str
    error_code: str
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error": "Peer with id 3f0c... not found",
                "error_code": "NOT_FOUND",
                "details": {"peer_id": "3f0c..."},
                "timestamp": "2026-10-18T10:00:00Z"
            }
        }
    )


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str = "tunnel-plane"
    version: str
    uptime_seconds: Optional[float] = None
    database: str
    gateway: str = Field(..., description="Configured RouterOS API address (not contacted)")
    default_interface: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
