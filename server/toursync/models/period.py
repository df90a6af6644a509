"""Period (departure) and offer model definitions."""

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .tour import Money

if TYPE_CHECKING:
    from .promotion import OfferPromotion, Promotion
    from .tour import Tour


PERIOD_STATUSES = ("open", "closed", "sold_out", "cancelled")
SALE_STATUSES = ("available", "booking", "sold_out", "closed")


class Period(Base):
    """A bookable departure date range of a tour."""

    __tablename__ = "periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    period_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open", index=True)
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sale_status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_period_capacity_non_negative"),
        CheckConstraint("booked >= 0", name="ck_period_booked_non_negative"),
        CheckConstraint("available >= 0", name="ck_period_available_non_negative"),
        CheckConstraint("end_date >= start_date", name="ck_period_end_after_start"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="periods")
    offer: Mapped[Optional["Offer"]] = relationship(
        "Offer",
        back_populates="period",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def update_availability(self) -> None:
        """Recompute seats left and flip an open period to sold_out at zero."""
        self.available = max(0, (self.capacity or 0) - (self.booked or 0))
        if self.available == 0 and self.status == "open":
            self.status = "sold_out"

    def is_available(self, today: date) -> bool:
        return self.status == "open" and self.available > 0 and self.start_date >= today

    def __repr__(self) -> str:
        return (
            f"<Period(id={self.id}, tour_id={self.tour_id}, start={self.start_date}, "
            f"seats={self.available}/{self.capacity}, status='{self.status}')>"
        )


class Offer(Base):
    """Pricing attached to a period."""

    __tablename__ = "offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    promotion_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("promotions.id", ondelete="SET NULL"), nullable=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="THB")
    price_adult: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_adult: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    price_child: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_child_bed: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    price_child_nobed: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_child_nobed: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    price_infant: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    price_joinland: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    price_single: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    discount_single: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    deposit: Mapped[Optional[float]] = mapped_column(Money, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(currency) = 3", name="ck_offer_currency_length"),
    )

    period: Mapped["Period"] = relationship("Period", back_populates="offer")
    promotion: Mapped[Optional["Promotion"]] = relationship("Promotion")
    promotions: Mapped[list["OfferPromotion"]] = relationship(
        "OfferPromotion",
        back_populates="offer",
        cascade="all, delete-orphan",
    )

    @property
    def net_price_adult(self) -> Optional[float]:
        if self.price_adult is None:
            return None
        return round(self.price_adult - (self.discount_adult or 0), 2)

    def __repr__(self) -> str:
        return f"<Offer(period_id={self.period_id}, price_adult={self.price_adult} {self.currency})>"
