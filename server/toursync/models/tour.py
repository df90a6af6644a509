"""Tour and itinerary model definitions."""

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .location import City, Country, Transport
    from .period import Period
    from .wholesaler import Wholesaler


TOUR_STATUSES = ("draft", "active", "closed", "inactive", "disabled")
DATA_SOURCES = ("api", "manual")
PROMOTION_TYPES = ("none", "normal", "fire_sale")

Money = Numeric(12, 2, asdecimal=False)


class Tour(Base):
    """Tour package, either synced from a wholesaler or entered manually."""

    __tablename__ = "tours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wholesaler_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("wholesalers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Identity
    tour_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    wholesaler_tour_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    short_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    highlights: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    shopping_highlights: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    food_highlights: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    themes: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    suitable_for: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    primary_country_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    transport_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("transports.id", ondelete="SET NULL"), nullable=True
    )
    duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration_nights: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Media & SEO
    cover_image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    cover_image_alt: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    pdf_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    gallery: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    meta_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    meta_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    keywords: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    hashtags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    data_source: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")
    sync_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Aggregates over upcoming open periods
    price_adult: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_adult: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    min_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    max_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    display_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_amount: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    has_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_discount_percent: Mapped[Optional[float]] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    promotion_type: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    hotel_star: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hotel_star_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hotel_star_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    next_departure_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_departures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_departures >= 0", name="ck_tour_total_departures_non_negative"),
        CheckConstraint("available_seats >= 0", name="ck_tour_available_seats_non_negative"),
    )

    wholesaler: Mapped[Optional["Wholesaler"]] = relationship("Wholesaler", back_populates="tours")
    primary_country: Mapped[Optional["Country"]] = relationship("Country")
    transport: Mapped[Optional["Transport"]] = relationship("Transport")
    periods: Mapped[list["Period"]] = relationship(
        "Period",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="Period.start_date",
    )
    itineraries: Mapped[list["TourItinerary"]] = relationship(
        "TourItinerary",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourItinerary.sort_order",
    )
    cities: Mapped[list["TourCity"]] = relationship(
        "TourCity",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourCity.sort_order",
    )
    transports: Mapped[list["TourTransport"]] = relationship(
        "TourTransport",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourTransport.sort_order",
    )

    @property
    def is_sync_protected(self) -> bool:
        """Manual tours and tours locked by an editor are never overwritten by sync."""
        return self.data_source == "manual" or self.sync_locked

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, tour_code='{self.tour_code}', title='{self.title}')>"


class TourItinerary(Base):
    """One day of a tour programme."""

    __tablename__ = "tour_itineraries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    places: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)
    hotel_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    hotel_star: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    has_breakfast: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_lunch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_dinner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_source: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("day_number >= 1", name="ck_itinerary_day_number_positive"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="itineraries")

    def __repr__(self) -> str:
        return f"<TourItinerary(tour_id={self.tour_id}, day={self.day_number})>"


class TourCity(Base):
    """A city visited on a tour, in visiting order."""

    __tablename__ = "tour_cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    city_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False
    )
    country_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    days_in_city: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    tour: Mapped["Tour"] = relationship("Tour", back_populates="cities")
    city: Mapped["City"] = relationship("City")

    def __repr__(self) -> str:
        return f"<TourCity(tour_id={self.tour_id}, city_id={self.city_id}, order={self.sort_order})>"


class TourTransport(Base):
    """A carrier serving a tour, with the code and name copied at sync time."""

    __tablename__ = "tour_transports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transport_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transports.id", ondelete="CASCADE"), nullable=False
    )
    transport_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    transport_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    transport_type: Mapped[str] = mapped_column(String(20), nullable=False, default="outbound")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tour_id", "transport_id", "transport_type", name="uq_tour_transport"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="transports")

    def __repr__(self) -> str:
        return f"<TourTransport(tour_id={self.tour_id}, transport_id={self.transport_id})>"
