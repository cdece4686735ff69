# inklink/api/v1/endpoints/requests.py
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from inklink.api import deps
from inklink.constants.statuses import RequestStatus
from inklink.schemas.tattoo_request import (
    TattooRequest,
    TattooRequestCreate,
    TattooRequestUpdate,
)
from inklink.schemas.token import TokenPayload
from inklink.services.negotiation_service import NegotiationService

router = APIRouter(prefix="/requests", tags=["Tattoo Requests"])


@router.post("", response_model=TattooRequest, status_code=status.HTTP_201_CREATED)
def create_request(
    request_in: TattooRequestCreate,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Open a new tattoo request. Only clients can create requests.
    """
    return service.create_request(caller=current_user, obj_in=request_in)


@router.get("", response_model=List[TattooRequest])
def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    style: Optional[str] = None,
    mine: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    List active requests, newest first. `mine=true` narrows to the caller's own.
    """
    return service.list_requests(
        caller=current_user,
        status=status_filter.value if status_filter else None,
        style=style,
        mine=mine,
        skip=skip,
        limit=limit,
    )


@router.get("/{request_id}", response_model=TattooRequest)
def get_request(
    request_id: str,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_request(request_id=request_id)


@router.put("/{request_id}", response_model=TattooRequest)
def update_request(
    request_id: str,
    request_in: TattooRequestUpdate,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Edit descriptive fields or cancel the request. Owner only.
    """
    return service.update_request(
        caller=current_user, request_id=request_id, obj_in=request_in
    )


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_request(
    request_id: str,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Delete a request. Requests that already received offers are deactivated
    instead of removed.
    """
    service.delete_request(caller=current_user, request_id=request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
