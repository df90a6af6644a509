"""Field mapping and section definition models."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .wholesaler import Wholesaler


MAPPING_SECTIONS = (
    "tour", "departure", "itinerary", "city", "content", "media", "seo", "period", "pricing"
)
TRANSFORM_TYPES = ("direct", "value_map", "formula", "split", "concat", "lookup", "date_format", "custom")
DATA_TYPES = (
    "TEXT", "INT", "DECIMAL", "DATE", "DATETIME", "BOOLEAN", "ENUM",
    "ARRAY_TEXT", "ARRAY_INT", "ARRAY_DECIMAL", "JSON",
)


class WholesalerFieldMapping(Base):
    """Maps one field of a wholesaler's payload onto one of our fields."""

    __tablename__ = "wholesaler_field_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wholesaler_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wholesalers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    section_name: Mapped[str] = mapped_column(String(20), nullable=False)
    our_field: Mapped[str] = mapped_column(String(100), nullable=False)
    their_field: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    their_field_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    transform_type: Mapped[str] = mapped_column(String(20), nullable=False, default="direct")
    transform_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    default_value: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("wholesaler_id", "section_name", "our_field", name="uq_field_mapping_target"),
    )

    wholesaler: Mapped["Wholesaler"] = relationship("Wholesaler", back_populates="field_mappings")

    @property
    def source_path(self) -> Optional[str]:
        return self.their_field_path or self.their_field

    def __repr__(self) -> str:
        return (
            f"<WholesalerFieldMapping(section='{self.section_name}', "
            f"our_field='{self.our_field}', path='{self.source_path}')>"
        )


class SectionDefinition(Base):
    """Type and lookup rules for one of our fields within a section."""

    __tablename__ = "section_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    section_name: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    data_type: Mapped[str] = mapped_column(String(20), nullable=False, default="TEXT")
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enum_values: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    default_value: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    lookup_table: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    lookup_match_fields: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    lookup_return_field: Mapped[str] = mapped_column(String(50), nullable=False, default="id")
    lookup_create_if_not_found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("section_name", "field_name", name="uq_section_definition_field"),
    )

    @property
    def has_lookup(self) -> bool:
        return bool(self.lookup_table)

    def __repr__(self) -> str:
        return f"<SectionDefinition({self.section_name}.{self.field_name}: {self.data_type})>"
