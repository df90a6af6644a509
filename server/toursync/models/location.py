"""Reference data used by lookups: countries, cities, transports."""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class Country(Base):
    __tablename__ = "countries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    iso2: Mapped[str] = mapped_column(String(2), nullable=False, unique=True)
    iso3: Mapped[Optional[str]] = mapped_column(String(3), nullable=True, unique=True)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name_th: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    flag_emoji: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    cities: Mapped[list["City"]] = relationship("City", back_populates="country")

    @property
    def display_name(self) -> str:
        return self.name_th or self.name_en

    def __repr__(self) -> str:
        return f"<Country(id={self.id}, iso2='{self.iso2}', name_en='{self.name_en}')>"


class City(Base):
    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    country_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name_en: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name_th: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_popular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    country: Mapped[Optional["Country"]] = relationship("Country", back_populates="cities")

    def __repr__(self) -> str:
        return f"<City(id={self.id}, name_en='{self.name_en}')>"


class Transport(Base):
    """Airline or other carrier, matched by IATA-style code."""

    __tablename__ = "transports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, index=True)
    code1: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="airline")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Transport(id={self.id}, code='{self.code}', name='{self.name}')>"
