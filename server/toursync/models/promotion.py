"""Promotion catalogue and per-offer promotion model definitions."""

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .tour import Money

if TYPE_CHECKING:
    from .period import Offer


def promotion_discount(promotion_type: str, value: Optional[float], price: Optional[float]) -> float:
    """Baht off one adult seat; percentages need the adult price, gifts are worth nothing."""
    if not value or value <= 0:
        return 0.0
    if promotion_type == "discount_amount":
        return float(value)
    if promotion_type == "discount_percent":
        return round((price or 0) * float(value) / 100, 2)
    return 0.0


class Promotion(Base):
    """Shared promotion an offer can be linked to, such as a fixed baht discount."""

    __tablename__ = "promotions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="discount_amount")
    discount_value: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    badge_text: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def is_valid(self, today: date) -> bool:
        if not self.is_active:
            return False
        if self.start_date and today < self.start_date:
            return False
        return not (self.end_date and today > self.end_date)

    def __repr__(self) -> str:
        return f"<Promotion(id={self.id}, code='{self.code}', type='{self.type}')>"


class OfferPromotion(Base):
    """Promotion attached directly to one offer, with its own validity window."""

    __tablename__ = "offer_promotions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    promo_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="discount_amount")
    value: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    apply_to: Mapped[str] = mapped_column(String(20), nullable=False, default="all")
    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    conditions: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    offer: Mapped["Offer"] = relationship("Offer", back_populates="promotions")

    def is_valid(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.start_at and now < self.start_at:
            return False
        return not (self.end_at and now > self.end_at)

    def __repr__(self) -> str:
        return f"<OfferPromotion(offer_id={self.offer_id}, type='{self.type}', value={self.value})>"
