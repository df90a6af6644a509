"""Period, offer and itinerary Pydantic schemas."""

from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

PeriodStatus = Literal["open", "closed", "sold_out", "cancelled"]
SaleStatus = Literal["available", "book_now", "sold_out", "closed"]


class OfferData(BaseModel):
    """Prices of one period."""

    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO 4217 currency code")
    price_adult: Optional[float] = Field(None, ge=0)
    discount_adult: Optional[float] = Field(None, ge=0)
    price_child: Optional[float] = Field(None, ge=0)
    discount_child_bed: Optional[float] = Field(None, ge=0)
    price_child_nobed: Optional[float] = Field(None, ge=0)
    discount_child_nobed: Optional[float] = Field(None, ge=0)
    price_infant: Optional[float] = Field(None, ge=0)
    price_joinland: Optional[float] = Field(None, ge=0)
    price_single: Optional[float] = Field(None, ge=0)
    discount_single: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)


class Offer(OfferData):
    """Offer response schema."""

    id: int
    currency: str
    net_price_adult: Optional[float] = Field(None, description="Adult price after discount")

    class Config:
        from_attributes = True


class CreatePeriodRequest(BaseModel):
    """Request schema for adding a period to a tour."""

    start_date: date = Field(..., description="Departure date")
    end_date: date = Field(..., description="Return date")
    period_code: Optional[str] = Field(None, max_length=100)
    external_id: Optional[str] = Field(None, max_length=100)
    capacity: int = Field(0, ge=0, description="Total seats")
    booked: int = Field(0, ge=0, description="Seats already sold")
    available: Optional[int] = Field(None, ge=0, description="Seats left; derived from capacity and booked when omitted")
    status: PeriodStatus = "open"
    is_visible: bool = True
    sale_status: SaleStatus = "available"
    offer: Optional[OfferData] = None

    @model_validator(mode="after")
    def check_dates(self) -> "CreatePeriodRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class UpdatePeriodRequest(BaseModel):
    """Request schema for a partial period update."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    period_code: Optional[str] = Field(None, max_length=100)
    capacity: Optional[int] = Field(None, ge=0)
    booked: Optional[int] = Field(None, ge=0)
    available: Optional[int] = Field(None, ge=0)
    status: Optional[PeriodStatus] = None
    is_visible: Optional[bool] = None
    sale_status: Optional[SaleStatus] = None
    offer: Optional[OfferData] = None


class Period(BaseModel):
    """Period response schema."""

    id: int
    tour_id: int
    external_id: Optional[str] = None
    period_code: Optional[str] = None
    start_date: date
    end_date: date
    capacity: int
    booked: int
    available: int
    status: str
    is_visible: bool
    sale_status: str
    offer: Optional[Offer] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Itinerary(BaseModel):
    """Itinerary day response schema."""

    id: int
    day_number: int
    title: Optional[str] = None
    description: Optional[str] = None
    places: Optional[list[Any]] = None
    hotel_name: Optional[str] = None
    hotel_star: Optional[int] = None
    has_breakfast: bool = False
    has_lunch: bool = False
    has_dinner: bool = False
    sort_order: int = 0
    data_source: str = "manual"

    class Config:
        from_attributes = True
