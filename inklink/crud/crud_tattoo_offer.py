# inklink/crud/crud_tattoo_offer.py
from typing import List, Optional, Sequence
from datetime import datetime
from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from .base import CRUDBase
from inklink.constants.statuses import OfferStatus, PAYABLE_OFFER_STATUSES
from inklink.models.tattoo_offer import TattooOffer
from inklink.models.tattoo_request import TattooRequest
from inklink.schemas.tattoo_offer import TattooOfferCreate, TattooOfferUpdate


class CRUDTattooOffer(CRUDBase[TattooOffer, TattooOfferCreate, TattooOfferUpdate]):
    def get_by_request_and_responder(
        self, db: Session, *, request_id: str, responder_id: str
    ) -> Optional[TattooOffer]:
        return (
            db.query(self.model)
            .filter(
                self.model.request_id == request_id,
                self.model.responder_id == responder_id,
            )
            .first()
        )

    def count_by_request(self, db: Session, *, request_id: str) -> int:
        return db.query(self.model).filter(self.model.request_id == request_id).count()

    def get_accepted_for_request(
        self, db: Session, *, request_id: str
    ) -> Optional[TattooOffer]:
        return (
            db.query(self.model)
            .filter(
                self.model.request_id == request_id,
                self.model.status == OfferStatus.ACCEPTED.value,
            )
            .first()
        )

    def get_multi_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        direction: Optional[str] = None,
        request_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[TattooOffer]:
        """
        Offers visible to a user: the ones they sent as responder and the ones
        received on their own requests. ``direction`` narrows to 'sent' or
        'received'.
        """
        query = db.query(self.model).join(
            TattooRequest, TattooRequest.id == self.model.request_id
        )

        if direction == "sent":
            query = query.filter(self.model.responder_id == user_id)
        elif direction == "received":
            query = query.filter(TattooRequest.client_id == user_id)
        else:
            query = query.filter(
                or_(
                    self.model.responder_id == user_id,
                    TattooRequest.client_id == user_id,
                )
            )

        if request_id:
            query = query.filter(self.model.request_id == request_id)
        if status:
            query = query.filter(self.model.status == status)

        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def transition_if(
        self,
        db: Session,
        *,
        offer_id: str,
        from_statuses: Sequence[str],
        to_status: str,
    ) -> int:
        """
        Conditional status update. The WHERE clause re-checks the current
        status inside the transaction, so a stale read can never win.
        Returns rows changed. Caller commits.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == offer_id,
                self.model.status.in_(list(from_statuses)),
            )
            .values(status=to_status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def reject_pending_siblings(
        self, db: Session, *, request_id: str, accepted_offer_id: str
    ) -> List[TattooOffer]:
        """Reject every other pending offer on the request. Caller commits."""
        siblings = (
            db.query(self.model)
            .filter(
                self.model.request_id == request_id,
                self.model.id != accepted_offer_id,
                self.model.status == OfferStatus.PENDING.value,
            )
            .populate_existing()
            .with_for_update()
            .all()
        )
        for sibling in siblings:
            sibling.status = OfferStatus.REJECTED.value
            db.add(sibling)
        db.flush()
        return siblings

    def mark_paid_if_payable(
        self, db: Session, *, offer_id: str, paid_at: datetime
    ) -> int:
        """
        Set the paid marker, but only on an accepted/completed offer that is
        not already paid. Returns rows changed. Caller commits.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == offer_id,
                self.model.status.in_(list(PAYABLE_OFFER_STATUSES)),
                self.model.is_paid == False,
            )
            .values(is_paid=True, paid_at=paid_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount


tattoo_offer = CRUDTattooOffer(TattooOffer)
