"""Tour-related Pydantic schemas."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .period import Itinerary, Period

TourStatus = Literal["draft", "active", "inactive", "closed", "disabled"]


class TourFields(BaseModel):
    """Editable tour fields shared by create and update."""

    wholesaler_id: Optional[int] = Field(None, description="Supplying wholesaler")
    wholesaler_tour_code: Optional[str] = Field(None, max_length=100)
    external_id: Optional[str] = Field(None, max_length=100)
    slug: Optional[str] = Field(None, max_length=500, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    description: Optional[str] = None
    short_description: Optional[str] = None
    highlights: Optional[list[str]] = None
    themes: Optional[list[str]] = None
    primary_country_id: Optional[int] = None
    transport_id: Optional[int] = None
    duration_days: Optional[int] = Field(None, ge=1, le=365)
    duration_nights: Optional[int] = Field(None, ge=0, le=365)
    cover_image_url: Optional[str] = Field(None, max_length=1000)
    pdf_url: Optional[str] = Field(None, max_length=1000)
    meta_title: Optional[str] = Field(None, max_length=500)
    meta_description: Optional[str] = None


class CreateTourRequest(TourFields):
    """Request schema for creating a tour."""

    title: str = Field(..., min_length=1, max_length=500, description="Tour title")
    tour_code: Optional[str] = Field(None, max_length=50, description="Generated when omitted")
    status: TourStatus = "draft"


class UpdateTourRequest(TourFields):
    """Request schema for a partial tour update."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    status: Optional[TourStatus] = None


class SyncLockRequest(BaseModel):
    """Request schema for protecting a tour from sync overwrites."""

    sync_locked: bool = Field(..., description="True keeps sync from touching this tour")


class TourSummary(BaseModel):
    """Tour list item."""

    id: int
    tour_code: str
    wholesaler_id: Optional[int] = None
    wholesaler_tour_code: Optional[str] = None
    title: str
    slug: Optional[str] = None
    status: str
    data_source: str
    sync_locked: bool
    sync_status: Optional[str] = None
    primary_country_id: Optional[int] = None
    duration_days: Optional[int] = None
    duration_nights: Optional[int] = None
    cover_image_url: Optional[str] = None
    price_adult: Optional[float] = None
    discount_adult: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    display_price: Optional[float] = None
    has_promotion: bool = False
    promotion_type: str = "none"
    max_discount_percent: Optional[float] = None
    hotel_star: Optional[int] = None
    next_departure_date: Optional[date] = None
    total_departures: int = 0
    available_seats: int = 0
    last_synced_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TourDetail(TourSummary):
    """Tour with its periods, offers and itinerary."""

    external_id: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    highlights: Optional[list[str]] = None
    themes: Optional[list[str]] = None
    transport_id: Optional[int] = None
    pdf_url: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    discount_amount: Optional[float] = None
    discount_label: Optional[str] = None
    hotel_star_min: Optional[int] = None
    hotel_star_max: Optional[int] = None
    periods: list[Period] = Field(default_factory=list)
    itineraries: list[Itinerary] = Field(default_factory=list)


class TourFilters(BaseModel):
    """Query filters for the tour list."""

    search: Optional[str] = Field(None, max_length=255, description="Matches title, tour code or wholesaler code")
    status: Optional[str] = None
    wholesaler_id: Optional[int] = None
    country_id: Optional[int] = None
    data_source: Optional[str] = None
    page: int = Field(1, ge=1)
    per_page: int = Field(20, ge=1, le=100)
