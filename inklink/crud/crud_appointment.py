# inklink/crud/crud_appointment.py
from typing import List, Optional
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .base import CRUDBase
from inklink.constants.statuses import BLOCKING_APPOINTMENT_STATUSES
from inklink.models.appointment import Appointment
from inklink.schemas.appointment import AppointmentCreate, AppointmentUpdate


class CRUDAppointment(CRUDBase[Appointment, AppointmentCreate, AppointmentUpdate]):
    def get_overlapping(
        self,
        db: Session,
        *,
        profile_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Blocking appointments whose [start_at, end_at) overlaps the given
        interval. Touching endpoints do not overlap.
        """
        query = db.query(self.model).filter(
            self.model.profile_id == profile_id,
            self.model.status.in_(BLOCKING_APPOINTMENT_STATUSES),
            self.model.start_at < end_at,
            self.model.end_at > start_at,
        )
        if exclude_id:
            query = query.filter(self.model.id != exclude_id)
        return query.all()

    def get_multi_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Appointment]:
        query = db.query(self.model).filter(
            or_(self.model.client_id == user_id, self.model.profile_id == user_id)
        )

        if status:
            query = query.filter(self.model.status == status)
        if date_from:
            query = query.filter(self.model.start_at >= date_from)
        if date_to:
            query = query.filter(self.model.start_at <= date_to)

        return (
            query.order_by(self.model.start_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )


appointment = CRUDAppointment(Appointment)
