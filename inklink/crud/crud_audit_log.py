# inklink/crud/crud_audit_log.py
from typing import List, Optional, Any, Dict
from sqlalchemy.orm import Session

from inklink.models.payment_audit_log import PaymentAuditLog


class CRUDAuditLog:
    """
    CRUD operations for PaymentAuditLog model.

    Note: This is a special CRUD class that only allows create and read operations.
    Audit logs are immutable and cannot be updated or deleted.
    """

    def __init__(self, model):
        self.model = model

    def get(self, db: Session, *, id: str) -> Optional[PaymentAuditLog]:
        """Get an audit log entry by ID."""
        return db.query(self.model).filter(self.model.id == id).first()

    def log_action(
        self,
        db: Session,
        *,
        action: str,
        actor_type: str,
        entity_type: str,
        entity_id: str,
        actor_id: Optional[str] = None,
        external_id: Optional[str] = None,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
        change_details: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> PaymentAuditLog:
        """
        Record an action. With ``commit=False`` the row joins the caller's
        transaction and lands (or not) together with the change it describes.
        """
        db_obj = self.model(
            action=action,
            actor_type=actor_type,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            external_id=external_id,
            previous_state=previous_state,
            new_state=new_state,
            change_details=change_details,
        )
        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def get_by_entity(
        self,
        db: Session,
        *,
        entity_type: str,
        entity_id: str,
        limit: int = 100,
    ) -> List[PaymentAuditLog]:
        """Get audit logs for a specific entity."""
        return (
            db.query(self.model)
            .filter(
                self.model.entity_type == entity_type,
                self.model.entity_id == entity_id,
            )
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_by_action(
        self, db: Session, *, action: str, limit: int = 100
    ) -> List[PaymentAuditLog]:
        return (
            db.query(self.model)
            .filter(self.model.action == action)
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .all()
        )


audit_log = CRUDAuditLog(PaymentAuditLog)
