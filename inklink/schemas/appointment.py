# inklink/schemas/appointment.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from inklink.constants.statuses import AppointmentStatus


class AppointmentCreate(BaseModel):
    profile_id: str = Field(..., json_schema_extra={"example": "prof_a1b2c3d4e5f6"})
    client_id: str = Field(..., json_schema_extra={"example": "user_123"})
    appointment_date: datetime = Field(..., json_schema_extra={"example": "2030-05-01T14:00:00Z"})
    # Defaults to the linked offer's estimated duration when omitted
    duration_hours: Optional[float] = Field(None, gt=0, le=24)
    offer_id: Optional[str] = None
    service_type: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    estimated_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = None


class AppointmentUpdate(BaseModel):
    status: Optional[AppointmentStatus] = None
    appointment_date: Optional[datetime] = None
    duration_hours: Optional[float] = Field(None, gt=0, le=24)
    service_type: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    estimated_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = None


class Appointment(BaseModel):
    id: str
    profile_id: str
    client_id: str
    offer_id: Optional[str] = None
    start_at: datetime
    end_at: datetime
    duration_hours: float
    status: AppointmentStatus
    service_type: Optional[str] = None
    description: Optional[str] = None
    estimated_price: Optional[Decimal] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
