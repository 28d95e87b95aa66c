# tunnel_plane/api/v1/interfaces.py
"""
Tunnel Interface API Endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from tunnel_plane.database.session import get_db
from tunnel_plane.schemas.base import BaseResponse, ErrorResponse
from tunnel_plane.schemas.interface import (
    InterfaceCreate,
    InterfaceUpdate,
    InterfaceResponse,
    InterfaceListResponse,
)
from tunnel_plane.core.interface_manager import InterfaceManager
from .deps import get_interface_manager, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_token)])

NOT_FOUND = {404: {"description": "Interface not found", "model": ErrorResponse}}


@router.get(
    "/interfaces",
    response_model=InterfaceListResponse,
    summary="List interfaces",
    description="All tunnel interfaces with their peer counts"
)
def list_interfaces(
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    rows = manager.list_interfaces(db)
    return InterfaceListResponse(
        interfaces=[
            InterfaceResponse.model_validate(wg_interface).model_copy(update={"peer_count": count})
            for wg_interface, count in rows
        ],
        total=len(rows)
    )


@router.post(
    "/interfaces",
    response_model=InterfaceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid network shape", "model": ErrorResponse},
        409: {"description": "Name already in use", "model": ErrorResponse},
        502: {"description": "Gateway did not confirm the interface", "model": ErrorResponse},
    },
    summary="Create interface",
    description="Create the interface on the gateway, bind its server address and store it"
)
def create_interface(
    interface_in: InterfaceCreate,
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    wg_interface = manager.create_interface(
        db=db,
        name=interface_in.name,
        listen_port=interface_in.listen_port,
        tunnel_cidr=interface_in.tunnel_cidr,
        server_tunnel_ip=interface_in.server_tunnel_ip,
        default_dns=interface_in.default_dns,
        default_keepalive=interface_in.default_keepalive,
        endpoint_host=interface_in.endpoint_host
    )

    return InterfaceResponse.model_validate(wg_interface)


@router.get(
    "/interfaces/{interface_id}",
    response_model=InterfaceResponse,
    responses=NOT_FOUND,
    summary="Get interface"
)
def get_interface(
    interface_id: str,
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    return InterfaceResponse.model_validate(manager.get_interface(db, interface_id))


@router.get(
    "/interfaces/{interface_id}/allocation",
    responses=NOT_FOUND,
    summary="Tunnel address usage"
)
def get_allocation(
    interface_id: str,
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    return manager.get_allocation_stats(db, interface_id)


@router.patch(
    "/interfaces/{interface_id}",
    response_model=InterfaceResponse,
    responses=NOT_FOUND,
    summary="Update interface",
    description="Update network-shape fields; name and listen port cannot change"
)
def update_interface(
    interface_id: str,
    interface_update: InterfaceUpdate,
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    wg_interface = manager.update_interface(
        db,
        interface_id,
        **interface_update.model_dump(exclude_unset=True)
    )

    return InterfaceResponse.model_validate(wg_interface)


@router.delete(
    "/interfaces/{interface_id}",
    response_model=BaseResponse,
    responses={
        **NOT_FOUND,
        403: {"description": "Default interface cannot be deleted", "model": ErrorResponse},
    },
    summary="Delete interface",
    description="Remove all peers, the bound address and the interface from the gateway and the database"
)
def delete_interface(
    interface_id: str,
    db: Session = Depends(get_db),
    manager: InterfaceManager = Depends(get_interface_manager)
):
    manager.delete_interface(db, interface_id)
    return BaseResponse(success=True, message="Interface deleted")
