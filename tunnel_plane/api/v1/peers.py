# tunnel_plane/api/v1/peers.py
"""
Peer API Endpoints
Thin HTTP surface over the Peer Lifecycle Manager
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from tunnel_plane.database.session import get_db
from tunnel_plane.schemas.base import BaseResponse, ErrorResponse
from tunnel_plane.schemas.peer import (
    PeerCreate,
    PeerUpdate,
    PeerResponse,
    PeerListResponse,
    PeerConfigResponse,
    PeerActivityResponse,
    PeerActivityListResponse,
    PeerStatus,
)
from tunnel_plane.core.config_generator import ConfigGenerator
from tunnel_plane.core.peer_manager import PeerLifecycleManager
from .deps import get_config_generator, get_peer_manager, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_token)])

NOT_FOUND = {404: {"description": "Peer not found", "model": ErrorResponse}}


@router.post(
    "/peers",
    response_model=PeerResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid key or input", "model": ErrorResponse},
        404: {"description": "Interface not found", "model": ErrorResponse},
        409: {"description": "Address pool exhausted", "model": ErrorResponse},
        502: {"description": "Gateway rejected the peer", "model": ErrorResponse},
    },
    summary="Create peer",
    description="Create a peer, allocate its tunnel address and push it to the gateway"
)
def create_peer(
    peer_in: PeerCreate,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    peer = manager.create_peer(
        db=db,
        name=peer_in.name,
        config_type=peer_in.config_type.value,
        public_key=peer_in.public_key,
        user_label=peer_in.user_label,
        allowed_ips=peer_in.allowed_ips,
        notes=peer_in.notes,
        interface_name=peer_in.interface_name
    )
    return PeerResponse.model_validate(peer)


@router.get(
    "/peers",
    response_model=PeerListResponse,
    summary="List peers",
    description="All peers, newest first"
)
def list_peers(
    interface: Optional[str] = Query(None, description="Filter by interface name"),
    status_filter: Optional[PeerStatus] = Query(None, alias="status", description="Filter by status"),
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    peers = manager.list_peers(
        db,
        interface_name=interface,
        status=status_filter.value if status_filter else None
    )
    return PeerListResponse(
        peers=[PeerResponse.model_validate(p) for p in peers],
        total=len(peers)
    )


@router.get("/peers/{peer_id}", response_model=PeerResponse, responses=NOT_FOUND, summary="Get peer")
def get_peer(
    peer_id: str,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    return PeerResponse.model_validate(manager.get_peer(db, peer_id))


@router.patch(
    "/peers/{peer_id}",
    response_model=PeerResponse,
    responses=NOT_FOUND,
    summary="Update peer",
    description="Update peer metadata (name, user label, notes)"
)
def update_peer(
    peer_id: str,
    peer_update: PeerUpdate,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    peer = manager.update_peer(
        db,
        peer_id,
        name=peer_update.name,
        user_label=peer_update.user_label,
        notes=peer_update.notes
    )
    return PeerResponse.model_validate(peer)


@router.delete(
    "/peers/{peer_id}",
    response_model=BaseResponse,
    summary="Delete peer",
    description="Remove the peer from the gateway (best effort) and from the database"
)
def delete_peer(
    peer_id: str,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    deleted = manager.delete_peer(db, peer_id)
    return BaseResponse(
        success=True,
        message="Peer deleted" if deleted else "Peer already absent"
    )


@router.post(
    "/peers/{peer_id}/revoke",
    response_model=BaseResponse[PeerResponse],
    responses=NOT_FOUND,
    summary="Revoke peer",
    description="Disable the peer on the gateway (best effort) and mark it REVOKED"
)
def revoke_peer(
    peer_id: str,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    peer = manager.revoke_peer(db, peer_id)
    return BaseResponse(
        success=True,
        message=f"Peer {peer.name} revoked",
        data=PeerResponse.model_validate(peer)
    )


@router.post(
    "/peers/{peer_id}/reactivate",
    response_model=BaseResponse[PeerResponse],
    responses=NOT_FOUND,
    summary="Reactivate peer",
    description="Enable the peer on the gateway (best effort) and mark it ACTIVE"
)
def reactivate_peer(
    peer_id: str,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    peer = manager.reactivate_peer(db, peer_id)
    return BaseResponse(
        success=True,
        message=f"Peer {peer.name} reactivated",
        data=PeerResponse.model_validate(peer)
    )


@router.get(
    "/peers/{peer_id}/config",
    response_model=PeerConfigResponse,
    responses=NOT_FOUND,
    summary="Generate client config"
)
def generate_config(
    peer_id: str,
    db: Session = Depends(get_db),
    generator: ConfigGenerator = Depends(get_config_generator)
):
    return PeerConfigResponse(peer_id=peer_id, config_text=generator.generate(db, peer_id))


@router.get(
    "/peers/{peer_id}/activity",
    response_model=PeerActivityListResponse,
    responses=NOT_FOUND,
    summary="Peer activity log"
)
def peer_activity(
    peer_id: str,
    db: Session = Depends(get_db),
    manager: PeerLifecycleManager = Depends(get_peer_manager)
):
    entries = manager.get_activity(db, peer_id)
    return PeerActivityListResponse(
        entries=[PeerActivityResponse.model_validate(e) for e in entries],
        total=len(entries)
    )
