# inklink/schemas/tattoo_offer.py
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from inklink.constants.statuses import OfferStatus


class TattooOfferBase(BaseModel):
    message: str = Field(..., min_length=1, json_schema_extra={"example": "I'd love to do this piece"})
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, json_schema_extra={"example": "650.00"})
    estimated_duration: float = Field(..., gt=0, json_schema_extra={"example": 6.5})
    availability_start: Optional[datetime] = None
    availability_end: Optional[datetime] = None
    portfolio_images: List[str] = []
    terms_conditions: Optional[str] = None


class TattooOfferCreate(TattooOfferBase):
    request_id: str = Field(..., json_schema_extra={"example": "req_1a2b3c4d5e6f"})

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.availability_start
            and self.availability_end
            and self.availability_end <= self.availability_start
        ):
            raise ValueError("availability_end must be after availability_start")
        return self


class TattooOfferUpdate(BaseModel):
    """
    Either a status change or a content change, never both.

    The split is checked by the negotiation service so the caller gets a
    400 with a readable reason rather than a schema error.
    """

    status: Optional[OfferStatus] = None
    message: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    estimated_duration: Optional[float] = Field(None, gt=0)
    availability_start: Optional[datetime] = None
    availability_end: Optional[datetime] = None
    portfolio_images: Optional[List[str]] = None
    terms_conditions: Optional[str] = None

    def content_fields(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"status"})


class TattooOffer(TattooOfferBase):
    id: str
    request_id: str
    responder_id: str
    responder_type: str
    status: OfferStatus
    is_paid: bool
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
