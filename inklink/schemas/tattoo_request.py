# inklink/schemas/tattoo_request.py
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime

from inklink.constants.statuses import RequestStatus


class TattooRequestBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Koi sleeve"})
    description: str = Field(..., min_length=1, json_schema_extra={"example": "Half sleeve, waves and two koi"})
    style: str = Field(..., min_length=1, max_length=100, json_schema_extra={"example": "japanese"})
    size: str = Field(..., min_length=1, max_length=100, json_schema_extra={"example": "large"})
    placement: str = Field(..., min_length=1, max_length=100, json_schema_extra={"example": "left arm"})
    budget_min: Optional[int] = Field(None, ge=0, json_schema_extra={"example": 400})
    budget_max: Optional[int] = Field(None, ge=0, json_schema_extra={"example": 900})
    preferred_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    reference_images: List[str] = []


class TattooRequestCreate(TattooRequestBase):
    artist_id: Optional[str] = None
    studio_id: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.artist_id and self.studio_id:
            raise ValueError("A request can target an artist or a studio, not both")
        return self


class TattooRequestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    style: Optional[str] = Field(None, min_length=1, max_length=100)
    size: Optional[str] = Field(None, min_length=1, max_length=100)
    placement: Optional[str] = Field(None, min_length=1, max_length=100)
    budget_min: Optional[int] = Field(None, ge=0)
    budget_max: Optional[int] = Field(None, ge=0)
    preferred_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    reference_images: Optional[List[str]] = None
    # Only "cancelled" is honoured; every other transition is driven by offers
    status: Optional[RequestStatus] = None


class TattooRequest(TattooRequestBase):
    id: str
    client_id: str
    artist_id: Optional[str] = None
    studio_id: Optional[str] = None
    status: RequestStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
