# inklink/api/v1/endpoints/offers.py
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from inklink.api import deps
from inklink.constants.statuses import OfferStatus
from inklink.schemas.tattoo_offer import TattooOffer, TattooOfferCreate, TattooOfferUpdate
from inklink.schemas.token import TokenPayload
from inklink.services.negotiation_service import NegotiationService

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.post("", response_model=TattooOffer, status_code=status.HTTP_201_CREATED)
def create_offer(
    offer_in: TattooOfferCreate,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Respond to an open tattoo request. Artists and studios only.
    """
    return service.create_offer(caller=current_user, obj_in=offer_in)


@router.get("", response_model=List[TattooOffer])
def list_offers(
    type: Optional[Literal["sent", "received"]] = None,
    request_id: Optional[str] = None,
    status_filter: Optional[OfferStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Offers the caller sent or received on their own requests.
    """
    return service.list_offers(
        caller=current_user,
        direction=type,
        request_id=request_id,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )


@router.get("/{offer_id}", response_model=TattooOffer)
def get_offer(
    offer_id: str,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_offer(caller=current_user, offer_id=offer_id)


@router.put("/{offer_id}", response_model=TattooOffer)
def update_offer(
    offer_id: str,
    offer_in: TattooOfferUpdate,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Change the offer status or edit its content (not both in one call).

    - **accepted / rejected / completed / cancelled**: request owner
    - **withdrawn**: the responder, while pending
    - content edits: the responder, while pending
    """
    return service.update_offer(caller=current_user, offer_id=offer_id, obj_in=offer_in)


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_offer(
    offer_id: str,
    service: NegotiationService = Depends(deps.get_negotiation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    service.delete_offer(caller=current_user, offer_id=offer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
