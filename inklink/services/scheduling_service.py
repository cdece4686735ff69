# inklink/services/scheduling_service.py
"""
Appointment booking and rescheduling.

Bookings for one profile are serialized on the profile row
(``crud.profile.lock_for_booking``): the overlap check and the insert or
update run under that lock and commit together, so two requests racing for
the same slot cannot both see it free.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from inklink import crud
from inklink.constants.statuses import (
    APPOINTMENT_TRANSITIONS,
    AppointmentStatus,
    BLOCKING_APPOINTMENT_STATUSES,
    OfferStatus,
    can_transition,
)
from inklink.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingConflictError,
    ValidationError,
)
from inklink.models.appointment import Appointment
from inklink.schemas.appointment import AppointmentCreate, AppointmentUpdate
from inklink.schemas.token import TokenPayload
from inklink.services.negotiation_service import complete_request
from inklink.services.notification_emitter import NotificationEmitter
from inklink.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

# Interval edits are allowed while the slot is still held
RESCHEDULABLE_STATUSES = BLOCKING_APPOINTMENT_STATUSES


def find_conflicts(
    db: Session,
    profile_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_appointment_id: Optional[str] = None,
) -> List[Appointment]:
    """
    Pending/confirmed appointments of the profile overlapping
    [proposed_start, proposed_end). Raises ValidationError for an interval
    that starts in the past or is empty, before touching the store.
    """
    start = as_utc(proposed_start)
    end = as_utc(proposed_end)
    if start <= utcnow():
        raise ValidationError("Appointment date must be in the future", field="appointment_date")
    if end <= start:
        raise ValidationError("Appointment must end after it starts", field="duration_hours")

    return crud.appointment.get_overlapping(
        db,
        profile_id=profile_id,
        start_at=start,
        end_at=end,
        exclude_id=exclude_appointment_id,
    )


def has_conflict(
    db: Session,
    profile_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_appointment_id: Optional[str] = None,
) -> bool:
    return bool(
        find_conflicts(db, profile_id, proposed_start, proposed_end, exclude_appointment_id)
    )


class SchedulingService:
    def __init__(self, db: Session, emitter: Optional[NotificationEmitter] = None):
        self.db = db
        self.emitter = emitter or NotificationEmitter(db)

    def book(self, *, caller: TokenPayload, obj_in: AppointmentCreate) -> Appointment:
        start_at = as_utc(obj_in.appointment_date)
        if start_at <= utcnow():
            raise ValidationError("Appointment date must be in the future", field="appointment_date")

        if caller.sub not in (obj_in.client_id, obj_in.profile_id):
            raise AuthorizationError("You can only book appointments for yourself")

        profile = crud.profile.get(self.db, id=obj_in.profile_id)
        if not profile:
            raise NotFoundError("Profile", obj_in.profile_id)
        if not profile.is_active:
            raise ValidationError("Profile is not accepting appointments", field="profile_id")

        duration_hours = obj_in.duration_hours
        if obj_in.offer_id:
            offer = crud.tattoo_offer.get(self.db, obj_in.offer_id)
            if not offer:
                raise NotFoundError("Offer", obj_in.offer_id)
            if offer.status != OfferStatus.ACCEPTED.value:
                raise ValidationError(
                    "Appointments can only be booked against an accepted offer",
                    field="offer_id",
                )
            if offer.responder_id != obj_in.profile_id:
                raise ValidationError("Offer does not belong to this profile", field="offer_id")
            if offer.request.client_id != obj_in.client_id:
                raise AuthorizationError("Offer does not belong to this client")
            if duration_hours is None:
                duration_hours = offer.estimated_duration

        if duration_hours is None:
            raise ValidationError("duration_hours is required", field="duration_hours")

        end_at = start_at + timedelta(hours=duration_hours)

        try:
            # Per-profile serialization point; held until commit/rollback
            locked = crud.profile.lock_for_booking(self.db, id=obj_in.profile_id)
            if not locked or not locked.is_active:
                raise ValidationError("Profile is not accepting appointments", field="profile_id")

            conflicts = find_conflicts(self.db, obj_in.profile_id, start_at, end_at)
            if conflicts:
                raise SchedulingConflictError(obj_in.profile_id, [a.id for a in conflicts])

            db_obj = Appointment(
                profile_id=obj_in.profile_id,
                client_id=obj_in.client_id,
                offer_id=obj_in.offer_id,
                start_at=start_at,
                end_at=end_at,
                duration_hours=duration_hours,
                status=AppointmentStatus.PENDING.value,
                service_type=obj_in.service_type,
                description=obj_in.description,
                estimated_price=obj_in.estimated_price,
                notes=obj_in.notes,
            )
            self.db.add(db_obj)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(db_obj)
        logger.info(
            f"Booked appointment {db_obj.id} for profile {db_obj.profile_id} "
            f"[{start_at.isoformat()}, {end_at.isoformat()})"
        )
        return db_obj

    def update(
        self, *, caller: TokenPayload, appointment_id: str, obj_in: AppointmentUpdate
    ) -> Appointment:
        appointment = crud.appointment.get(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        if caller.sub not in (appointment.client_id, appointment.profile_id):
            raise AuthorizationError("You can only modify your own appointments")

        changes = obj_in.model_dump(exclude_unset=True)
        target_status = changes.pop("status", None)
        if target_status is not None:
            target_status = AppointmentStatus(target_status).value
        new_date = changes.pop("appointment_date", None)
        new_duration = changes.pop("duration_hours", None)
        interval_changed = new_date is not None or new_duration is not None

        try:
            if interval_changed:
                crud.profile.lock_for_booking(self.db, id=appointment.profile_id)

            # Re-read under lock; the earlier read only resolved ownership
            appointment = crud.appointment.get_for_update(self.db, appointment_id)
            current_status = appointment.status

            if target_status is not None and target_status != current_status:
                if not can_transition(APPOINTMENT_TRANSITIONS, current_status, target_status):
                    raise InvalidTransitionError("appointment", current_status, target_status)
            elif (changes or interval_changed) and current_status not in RESCHEDULABLE_STATUSES:
                raise ValidationError(f"Cannot modify a {current_status} appointment")

            if interval_changed:
                if current_status not in RESCHEDULABLE_STATUSES:
                    raise ValidationError(f"Cannot reschedule a {current_status} appointment")
                start_at = as_utc(new_date) if new_date is not None else as_utc(appointment.start_at)
                duration = new_duration if new_duration is not None else appointment.duration_hours
                end_at = start_at + timedelta(hours=duration)
                conflicts = find_conflicts(
                    self.db, appointment.profile_id, start_at, end_at, appointment.id
                )
                if conflicts:
                    raise SchedulingConflictError(
                        appointment.profile_id, [a.id for a in conflicts]
                    )
                appointment.start_at = start_at
                appointment.end_at = end_at
                appointment.duration_hours = duration

            for field, value in changes.items():
                setattr(appointment, field, value)

            if target_status is not None and target_status != current_status:
                appointment.status = target_status
                self._apply_status_side_effects(appointment, target_status)

            self.db.add(appointment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        if target_status and target_status != current_status:
            logger.info(
                f"Appointment {appointment.id} moved {current_status} -> {target_status}"
            )
        return appointment

    def _apply_status_side_effects(self, appointment: Appointment, target_status: str) -> None:
        if target_status == AppointmentStatus.CONFIRMED.value:
            self.emitter.appointment_confirmed(appointment)
            return

        if target_status != AppointmentStatus.COMPLETED.value or not appointment.offer_id:
            return

        # Finishing the engagement closes the offer and its request with it
        offer = crud.tattoo_offer.get(self.db, appointment.offer_id)
        if not offer:
            return
        request = crud.tattoo_request.get_for_update(self.db, offer.request_id)
        moved = crud.tattoo_offer.transition_if(
            self.db,
            offer_id=offer.id,
            from_statuses=[OfferStatus.ACCEPTED.value],
            to_status=OfferStatus.COMPLETED.value,
        )
        if moved:
            complete_request(self.db, request)
            logger.info(f"Offer {offer.id} completed through appointment {appointment.id}")

    def delete(self, *, caller: TokenPayload, appointment_id: str) -> None:
        appointment = crud.appointment.get(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        if caller.sub not in (appointment.client_id, appointment.profile_id):
            raise AuthorizationError("You can only delete your own appointments")
        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise ValidationError("Cannot delete completed appointments")
        if (
            as_utc(appointment.start_at) < utcnow()
            and appointment.status != AppointmentStatus.CANCELLED.value
        ):
            raise ValidationError("Cannot delete past appointments that are not cancelled")

        self.db.delete(appointment)
        self.db.commit()
        logger.info(f"Deleted appointment {appointment_id}")
