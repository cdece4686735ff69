# inklink/services/negotiation_service.py
"""
Request and offer lifecycle.

Each public method is one transaction script: it re-reads the rows it
decides on (locking the parent request where siblings are involved),
applies guarded status updates, stages notifications in the same session
and commits once. Any failure rolls the whole script back.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inklink import crud
from inklink.constants.statuses import (
    OFFER_TRANSITIONS,
    REQUEST_TRANSITIONS,
    OfferStatus,
    RequestStatus,
    UserRole,
    can_transition,
)
from inklink.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DuplicateOfferError,
    IntegrityFailure,
    InvalidTransitionError,
    NotFoundError,
    RequestClosedError,
    ValidationError,
)
from inklink.models.tattoo_offer import TattooOffer
from inklink.models.tattoo_request import TattooRequest
from inklink.schemas.tattoo_offer import TattooOfferCreate, TattooOfferUpdate
from inklink.schemas.tattoo_request import TattooRequestCreate, TattooRequestUpdate
from inklink.schemas.token import TokenPayload
from inklink.services.notification_emitter import NotificationEmitter
from inklink.utils.time import as_utc

logger = logging.getLogger(__name__)

# Who may drive an offer into each target status
CLIENT_OFFER_TARGETS = {
    OfferStatus.ACCEPTED,
    OfferStatus.REJECTED,
    OfferStatus.COMPLETED,
    OfferStatus.CANCELLED,
}
RESPONDER_OFFER_TARGETS = {OfferStatus.WITHDRAWN}


def validate_budget(budget_min: Optional[int], budget_max: Optional[int]) -> None:
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        raise ValidationError(
            "Minimum budget cannot be greater than maximum budget", field="budget_min"
        )


def complete_request(db: Session, request: TattooRequest) -> None:
    """
    Close an in-progress request together with its completed offer. The
    request row must already be locked by the caller.
    """
    moved = crud.tattoo_request.set_status_if(
        db,
        request_id=request.id,
        from_statuses=[RequestStatus.IN_PROGRESS.value],
        to_status=RequestStatus.COMPLETED.value,
    )
    if not moved:
        raise InvalidTransitionError(
            "tattoo_request", request.status, RequestStatus.COMPLETED.value
        )


class NegotiationService:
    def __init__(self, db: Session, emitter: Optional[NotificationEmitter] = None):
        self.db = db
        self.emitter = emitter or NotificationEmitter(db)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_request(
        self, *, caller: TokenPayload, obj_in: TattooRequestCreate
    ) -> TattooRequest:
        if caller.role != UserRole.CLIENT:
            raise AuthorizationError("Only clients can create tattoo requests")
        validate_budget(obj_in.budget_min, obj_in.budget_max)

        request = crud.tattoo_request.create_with_client(
            self.db, obj_in=obj_in, client_id=caller.sub
        )
        logger.info(f"Client {caller.sub} opened tattoo request {request.id}")
        return request

    def get_request(self, *, request_id: str) -> TattooRequest:
        request = crud.tattoo_request.get_active(self.db, id=request_id)
        if not request:
            raise NotFoundError("Tattoo request", request_id)
        return request

    def list_requests(
        self,
        *,
        caller: TokenPayload,
        status: Optional[str] = None,
        style: Optional[str] = None,
        mine: bool = False,
        skip: int = 0,
        limit: int = 20,
    ) -> List[TattooRequest]:
        return crud.tattoo_request.get_multi_filtered(
            self.db,
            status=status,
            style=style,
            client_id=caller.sub if mine else None,
            skip=skip,
            limit=limit,
        )

    def update_request(
        self, *, caller: TokenPayload, request_id: str, obj_in: TattooRequestUpdate
    ) -> TattooRequest:
        try:
            request = crud.tattoo_request.get_for_update(self.db, request_id)
            if not request or not request.is_active:
                raise NotFoundError("Tattoo request", request_id)
            if request.client_id != caller.sub:
                raise AuthorizationError("You can only modify your own tattoo requests")

            changes = obj_in.model_dump(exclude_unset=True)
            target = changes.pop("status", None)

            if target is not None:
                target = RequestStatus(target).value
                if target != request.status:
                    # Every other request transition is driven by its offers
                    if target != RequestStatus.CANCELLED.value or not can_transition(
                        REQUEST_TRANSITIONS, request.status, target
                    ):
                        raise InvalidTransitionError("tattoo_request", request.status, target)

            validate_budget(
                changes.get("budget_min", request.budget_min),
                changes.get("budget_max", request.budget_max),
            )

            for field, value in changes.items():
                setattr(request, field, value)
            self.db.add(request)
            self.db.flush()

            if target is not None and target != request.status:
                previous = request.status
                moved = crud.tattoo_request.set_status_if(
                    self.db,
                    request_id=request.id,
                    from_statuses=[RequestStatus.OPEN.value, RequestStatus.IN_PROGRESS.value],
                    to_status=target,
                )
                if not moved:
                    raise InvalidTransitionError("tattoo_request", request.status, target)
                if previous == RequestStatus.IN_PROGRESS.value:
                    self._cancel_accepted_offer(request)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        if target is not None:
            logger.info(f"Tattoo request {request.id} is now {request.status}")
        return request

    def _cancel_accepted_offer(self, request: TattooRequest) -> None:
        """A cancelled engagement takes its accepted offer down with it. Caller commits."""
        offer = crud.tattoo_offer.get_accepted_for_request(self.db, request_id=request.id)
        if not offer:
            return
        self._guarded_offer_transition(offer, OfferStatus.ACCEPTED, OfferStatus.CANCELLED)
        logger.info(f"Offer {offer.id} cancelled with tattoo request {request.id}")

    def delete_request(self, *, caller: TokenPayload, request_id: str) -> bool:
        """
        Remove a request. Returns True for a hard delete, False when offers
        exist and the request was only deactivated.
        """
        request = self.get_request(request_id=request_id)
        if request.client_id != caller.sub:
            raise AuthorizationError("You can only delete your own tattoo requests")

        if crud.tattoo_offer.count_by_request(self.db, request_id=request.id):
            crud.tattoo_request.soft_delete(self.db, db_obj=request)
            logger.info(f"Tattoo request {request_id} deactivated (has offers)")
            return False

        crud.tattoo_request.remove(self.db, id=request.id)
        logger.info(f"Tattoo request {request_id} deleted")
        return True

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def create_offer(self, *, caller: TokenPayload, obj_in: TattooOfferCreate) -> TattooOffer:
        try:
            # The request lock keeps the open-status check valid until commit
            request = crud.tattoo_request.get_for_update(self.db, obj_in.request_id)
            if not request or not request.is_active:
                raise NotFoundError("Tattoo request", obj_in.request_id)
            if not caller.is_responder:
                raise AuthorizationError("Only artists and studios can make offers")
            if request.status != RequestStatus.OPEN.value:
                raise RequestClosedError(request.id, request.status)
            if request.client_id == caller.sub:
                raise ValidationError("You cannot make an offer on your own tattoo request")
            if request.artist_id and request.artist_id != caller.sub:
                raise AuthorizationError("This tattoo request is directed to a specific artist")
            if request.studio_id and request.studio_id != caller.sub:
                raise AuthorizationError("This tattoo request is directed to a specific studio")
            if crud.tattoo_offer.get_by_request_and_responder(
                self.db, request_id=request.id, responder_id=caller.sub
            ):
                raise DuplicateOfferError(request.id)

            offer = TattooOffer(
                **obj_in.model_dump(),
                responder_id=caller.sub,
                responder_type=caller.role.value,
                status=OfferStatus.PENDING.value,
            )
            self.db.add(offer)
            self.db.flush()
            self.emitter.new_offer(offer, request)
            self.db.commit()
        except IntegrityError:
            # Unique (request_id, responder_id) lost a race with a parallel submit
            self.db.rollback()
            raise DuplicateOfferError(obj_in.request_id)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(offer)
        logger.info(f"{caller.role.value} {caller.sub} made offer {offer.id} on request {request.id}")
        return offer

    def get_offer(self, *, caller: TokenPayload, offer_id: str) -> TattooOffer:
        offer = crud.tattoo_offer.get(self.db, offer_id)
        if not offer:
            raise NotFoundError("Offer", offer_id)
        if caller.sub not in (offer.responder_id, offer.request.client_id):
            raise AuthorizationError("You do not have access to this offer")
        return offer

    def list_offers(
        self,
        *,
        caller: TokenPayload,
        direction: Optional[str] = None,
        request_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[TattooOffer]:
        return crud.tattoo_offer.get_multi_for_user(
            self.db,
            user_id=caller.sub,
            direction=direction,
            request_id=request_id,
            status=status,
            skip=skip,
            limit=limit,
        )

    def update_offer(
        self, *, caller: TokenPayload, offer_id: str, obj_in: TattooOfferUpdate
    ) -> TattooOffer:
        content = obj_in.content_fields()
        if obj_in.status is not None and content:
            raise ValidationError("Update either the offer status or its content, not both")
        if obj_in.status is None and not content:
            raise ValidationError("No changes provided")

        if obj_in.status is not None:
            return self.change_offer_status(
                caller=caller, offer_id=offer_id, target=OfferStatus(obj_in.status)
            )
        return self.edit_offer(caller=caller, offer_id=offer_id, changes=content)

    def change_offer_status(
        self, *, caller: TokenPayload, offer_id: str, target: OfferStatus
    ) -> TattooOffer:
        offer = crud.tattoo_offer.get(self.db, offer_id)
        if not offer:
            raise NotFoundError("Offer", offer_id)
        request = offer.request
        if caller.sub not in (offer.responder_id, request.client_id):
            raise AuthorizationError("You do not have access to this offer")

        if not can_transition(OFFER_TRANSITIONS, offer.status, target.value):
            raise InvalidTransitionError("offer", offer.status, target.value)

        if target in CLIENT_OFFER_TARGETS and caller.sub != request.client_id:
            raise AuthorizationError(f"Only the request owner can mark an offer {target.value}")
        if target in RESPONDER_OFFER_TARGETS and caller.sub != offer.responder_id:
            raise AuthorizationError("Only the responder can withdraw an offer")

        handlers = {
            OfferStatus.ACCEPTED: self._accept,
            OfferStatus.REJECTED: self._reject,
            OfferStatus.WITHDRAWN: self._withdraw,
            OfferStatus.COMPLETED: self._complete,
            OfferStatus.CANCELLED: self._cancel,
        }

        try:
            handlers[target](offer)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity failure moving offer {offer_id} to {target.value}: {e}")
            raise IntegrityFailure(f"offer_{target.value}")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(offer)
        logger.info(f"Offer {offer.id} is now {offer.status} (by {caller.sub})")
        return offer

    def _guarded_offer_transition(
        self, offer: TattooOffer, from_status: OfferStatus, to_status: OfferStatus
    ) -> None:
        moved = crud.tattoo_offer.transition_if(
            self.db,
            offer_id=offer.id,
            from_statuses=[from_status.value],
            to_status=to_status.value,
        )
        if not moved:
            # Someone else moved it first; report what is actually stored
            self.db.refresh(offer)
            raise InvalidTransitionError("offer", offer.status, to_status.value)

    def _accept(self, offer: TattooOffer) -> None:
        # Lock order: request first, then its offers
        request = crud.tattoo_request.get_for_update(self.db, offer.request_id)
        if not request.is_active:
            raise NotFoundError("Tattoo request", offer.request_id)

        self._guarded_offer_transition(offer, OfferStatus.PENDING, OfferStatus.ACCEPTED)

        moved = crud.tattoo_request.set_status_if(
            self.db,
            request_id=request.id,
            from_statuses=[RequestStatus.OPEN.value],
            to_status=RequestStatus.IN_PROGRESS.value,
        )
        if not moved:
            raise ConflictError(
                f"Cannot accept an offer on a {request.status} tattoo request",
                details={"request_id": request.id, "status": request.status},
            )

        rejected = crud.tattoo_offer.reject_pending_siblings(
            self.db, request_id=request.id, accepted_offer_id=offer.id
        )
        self.emitter.offer_accepted(offer, request)
        logger.info(
            f"Accepting offer {offer.id} on request {request.id}; "
            f"rejecting {len(rejected)} sibling offer(s)"
        )

    def _reject(self, offer: TattooOffer) -> None:
        self._guarded_offer_transition(offer, OfferStatus.PENDING, OfferStatus.REJECTED)
        self.emitter.offer_rejected(offer, offer.request)

    def _withdraw(self, offer: TattooOffer) -> None:
        self._guarded_offer_transition(offer, OfferStatus.PENDING, OfferStatus.WITHDRAWN)

    def _complete(self, offer: TattooOffer) -> None:
        request = crud.tattoo_request.get_for_update(self.db, offer.request_id)
        self._guarded_offer_transition(offer, OfferStatus.ACCEPTED, OfferStatus.COMPLETED)
        complete_request(self.db, request)

    def _cancel(self, offer: TattooOffer) -> None:
        # The request stays in_progress; its owner decides whether to cancel it too
        self._guarded_offer_transition(offer, OfferStatus.ACCEPTED, OfferStatus.CANCELLED)

    def edit_offer(self, *, caller: TokenPayload, offer_id: str, changes: dict) -> TattooOffer:
        try:
            offer = crud.tattoo_offer.get_for_update(self.db, offer_id)
            if not offer:
                raise NotFoundError("Offer", offer_id)
            if offer.responder_id != caller.sub:
                raise AuthorizationError("Only the responder can edit an offer")
            if offer.status != OfferStatus.PENDING.value:
                raise ValidationError("Only pending offers can be edited")

            start = as_utc(changes.get("availability_start", offer.availability_start))
            end = as_utc(changes.get("availability_end", offer.availability_end))
            if start and end and end <= start:
                raise ValidationError(
                    "availability_end must be after availability_start",
                    field="availability_end",
                )

            for field, value in changes.items():
                setattr(offer, field, value)
            self.db.add(offer)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(offer)
        logger.info(f"Offer {offer.id} edited by {caller.sub}")
        return offer

    def delete_offer(self, *, caller: TokenPayload, offer_id: str) -> None:
        try:
            offer = crud.tattoo_offer.get_for_update(self.db, offer_id)
            if not offer:
                raise NotFoundError("Offer", offer_id)
            if offer.responder_id != caller.sub:
                raise AuthorizationError("Only the responder can delete an offer")
            if offer.status != OfferStatus.PENDING.value:
                raise ValidationError("Only pending offers can be deleted")

            self.db.delete(offer)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Offer {offer_id} deleted by {caller.sub}")
