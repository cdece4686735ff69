# inklink/api/v1/endpoints/appointments.py
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from inklink import crud
from inklink.api import deps
from inklink.constants.statuses import AppointmentStatus
from inklink.core.exceptions import AuthorizationError, NotFoundError
from inklink.schemas.appointment import Appointment, AppointmentCreate, AppointmentUpdate
from inklink.schemas.token import TokenPayload
from inklink.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.post("", response_model=Appointment, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_in: AppointmentCreate,
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Book a slot with a profile. Returns 409 when the slot overlaps another
    pending or confirmed appointment of that profile.
    """
    return service.book(caller=current_user, obj_in=appointment_in)


@router.get("", response_model=List[Appointment])
def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return crud.appointment.get_multi_for_user(
        db,
        user_id=current_user.sub,
        status=status_filter.value if status_filter else None,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )


@router.get("/{appointment_id}", response_model=Appointment)
def get_appointment(
    appointment_id: str,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    appointment = crud.appointment.get(db, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)
    if current_user.sub not in (appointment.client_id, appointment.profile_id):
        raise AuthorizationError("You do not have access to this appointment")
    return appointment


@router.put("/{appointment_id}", response_model=Appointment)
def update_appointment(
    appointment_id: str,
    appointment_in: AppointmentUpdate,
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Reschedule or move the appointment through its lifecycle:
    pending -> confirmed | cancelled; confirmed -> completed | cancelled | no_show.
    """
    return service.update(
        caller=current_user, appointment_id=appointment_id, obj_in=appointment_in
    )


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: str,
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    service.delete(caller=current_user, appointment_id=appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
