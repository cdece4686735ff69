# inklink/crud/crud_notification.py
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from inklink.models.notification import Notification


class CRUDNotification:
    """
    Notifications are written by the emitter and read by recipients.

    There is no generic update: the read flag is the only mutable column.
    """

    def __init__(self, model):
        self.model = model

    def get(self, db: Session, *, id: str) -> Optional[Notification]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_by_dedupe_key(self, db: Session, *, dedupe_key: str) -> Optional[Notification]:
        return (
            db.query(self.model).filter(self.model.dedupe_key == dedupe_key).first()
        )

    def add(
        self,
        db: Session,
        *,
        recipient_id: str,
        type: str,
        title: str,
        message: str,
        sender_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
    ) -> Notification:
        """Stage a notification in the caller's transaction. Caller commits."""
        db_obj = self.model(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type,
            title=title,
            message=message,
            payload=payload or {},
            dedupe_key=dedupe_key,
            is_read=False,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_multi_for_recipient(
        self,
        db: Session,
        *,
        recipient_id: str,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        query = db.query(self.model).filter(self.model.recipient_id == recipient_id)
        if unread_only:
            query = query.filter(self.model.is_read == False)
        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_unread(self, db: Session, *, recipient_id: str) -> int:
        return (
            db.query(self.model)
            .filter(
                self.model.recipient_id == recipient_id,
                self.model.is_read == False,
            )
            .count()
        )

    def set_read_many(
        self,
        db: Session,
        *,
        recipient_id: str,
        ids: Optional[List[str]] = None,
        is_read: bool = True,
    ) -> int:
        """
        Flip the read flag on the recipient's notifications, all of them or
        only ``ids``. Ids belonging to someone else are ignored.
        """
        query = db.query(self.model).filter(
            self.model.recipient_id == recipient_id,
            self.model.is_read == (not is_read),
        )
        if ids is not None:
            query = query.filter(self.model.id.in_(ids))
        updated = query.update({self.model.is_read: is_read}, synchronize_session="fetch")
        db.commit()
        return updated

    def set_read(self, db: Session, *, db_obj: Notification, is_read: bool = True) -> Notification:
        db_obj.is_read = is_read
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


notification = CRUDNotification(Notification)
