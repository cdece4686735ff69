# inklink/crud/crud_payment_intent.py
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import delete, update, func, case, or_
from sqlalchemy.orm import Session

from inklink.constants.statuses import PaymentIntentStatus
from inklink.models.payment_intent import PaymentIntent


class CRUDPaymentIntent:
    """CRUD operations for PaymentIntent model."""

    def __init__(self, model):
        self.model = model

    def get(self, db: Session, *, id: str) -> Optional[PaymentIntent]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_by_external_id(
        self, db: Session, *, external_id: str
    ) -> Optional[PaymentIntent]:
        """Get a payment intent by the processor's reference."""
        return (
            db.query(self.model)
            .filter(self.model.external_id == external_id)
            .populate_existing()
            .first()
        )

    def create_pending(
        self,
        db: Session,
        *,
        user_id: str,
        amount: int,
        currency: str,
        processor: str,
        description: Optional[str],
        metadata: Dict[str, Any],
    ) -> PaymentIntent:
        db_obj = self.model(
            user_id=user_id,
            amount=amount,
            currency=currency,
            processor=processor,
            description=description,
            intent_metadata=metadata,
            status=PaymentIntentStatus.PENDING.value,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def transition_by_external_id(
        self,
        db: Session,
        *,
        external_id: str,
        from_statuses: Sequence[str],
        values: Dict[str, Any],
    ) -> int:
        """
        Atomic read-modify-write keyed on the external reference.

        Concurrent deliveries for the same reference serialize on the row;
        only the first one still sees a status in ``from_statuses`` and gets
        a rowcount of 1. Caller commits.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.external_id == external_id,
                self.model.status.in_(list(from_statuses)),
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def remove_if(self, db: Session, *, id: str, statuses: Sequence[str]) -> int:
        """Delete the intent only while it is in one of ``statuses``. Caller commits."""
        result = db.execute(
            delete(self.model)
            .where(self.model.id == id, self.model.status.in_(list(statuses)))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def get_multi_by_user(
        self,
        db: Session,
        *,
        user_id: str,
        direction: Optional[str] = None,
        status: Optional[str] = None,
        processor: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[PaymentIntent]:
        query = self._user_query(
            db, user_id=user_id, direction=direction, status=status, processor=processor
        )
        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_user(
        self,
        db: Session,
        *,
        user_id: str,
        direction: Optional[str] = None,
        status: Optional[str] = None,
        processor: Optional[str] = None,
    ) -> int:
        return self._user_query(
            db, user_id=user_id, direction=direction, status=status, processor=processor
        ).count()

    def _party_filter(self, user_id: str, direction: Optional[str] = None):
        """
        'sent' matches the paying client, 'received' the artist or studio
        named in the metadata; no direction matches either side.
        """
        sent = self.model.user_id == user_id
        received = self.model.intent_metadata["artist_id"].as_string() == user_id
        if direction == "sent":
            return sent
        if direction == "received":
            return received
        return or_(sent, received)

    def _user_query(
        self, db: Session, *, user_id: str, direction=None, status=None, processor=None
    ):
        query = db.query(self.model).filter(self._party_filter(user_id, direction))
        if status:
            query = query.filter(self.model.status == status)
        if processor:
            query = query.filter(self.model.processor == processor)
        return query

    def get_stats(self, db: Session, *, user_id: str, direction: str = "sent") -> Dict[str, Any]:
        """Aggregate counts and completed volume on one side of the user's payments."""
        party = self._party_filter(user_id, direction)
        completed = PaymentIntentStatus.COMPLETED.value
        row = (
            db.query(
                func.count(self.model.id),
                func.sum(case((self.model.status == completed, 1), else_=0)),
                func.sum(
                    case(
                        (
                            self.model.status.in_(
                                [
                                    PaymentIntentStatus.PENDING.value,
                                    PaymentIntentStatus.PROCESSING.value,
                                ]
                            ),
                            1,
                        ),
                        else_=0,
                    )
                ),
                func.sum(
                    case(
                        (self.model.status == PaymentIntentStatus.FAILED.value, 1),
                        else_=0,
                    )
                ),
                func.sum(case((self.model.status == completed, self.model.amount), else_=0)),
            )
            .filter(party)
            .one()
        )
        by_processor = dict(
            db.query(self.model.processor, func.count(self.model.id))
            .filter(party)
            .group_by(self.model.processor)
            .all()
        )
        return {
            "total_count": row[0] or 0,
            "completed_count": int(row[1] or 0),
            "pending_count": int(row[2] or 0),
            "failed_count": int(row[3] or 0),
            "total_completed_amount": int(row[4] or 0),
            "by_processor": by_processor,
        }


payment_intent = CRUDPaymentIntent(PaymentIntent)
