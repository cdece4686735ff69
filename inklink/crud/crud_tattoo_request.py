# inklink/crud/crud_tattoo_request.py
from typing import List, Optional, Sequence
from sqlalchemy import update
from sqlalchemy.orm import Session

from .base import CRUDBase
from inklink.models.tattoo_request import TattooRequest
from inklink.schemas.tattoo_request import TattooRequestCreate, TattooRequestUpdate


class CRUDTattooRequest(CRUDBase[TattooRequest, TattooRequestCreate, TattooRequestUpdate]):
    def get_active(self, db: Session, *, id: str) -> Optional[TattooRequest]:
        return (
            db.query(self.model)
            .filter(self.model.id == id, self.model.is_active == True)
            .first()
        )

    def create_with_client(
        self, db: Session, *, obj_in: TattooRequestCreate, client_id: str
    ) -> TattooRequest:
        db_obj = self.model(
            **obj_in.model_dump(),
            client_id=client_id,
            status="open",
            is_active=True,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_multi_filtered(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        style: Optional[str] = None,
        client_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[TattooRequest]:
        query = db.query(self.model).filter(self.model.is_active == True)

        if status:
            query = query.filter(self.model.status == status)
        if style:
            query = query.filter(self.model.style.ilike(f"%{style}%"))
        if client_id:
            query = query.filter(self.model.client_id == client_id)

        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def set_status_if(
        self,
        db: Session,
        *,
        request_id: str,
        from_statuses: Sequence[str],
        to_status: str,
    ) -> int:
        """
        Guarded transition: only applies while the request is still in one of
        ``from_statuses``. Returns the number of rows changed (0 or 1).
        Caller commits.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == request_id,
                self.model.status.in_(list(from_statuses)),
            )
            .values(status=to_status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def soft_delete(self, db: Session, *, db_obj: TattooRequest) -> TattooRequest:
        db_obj.is_active = False
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


tattoo_request = CRUDTattooRequest(TattooRequest)
