"""Country Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel


class Country(BaseModel):
    """Country response schema."""

    id: int
    iso2: str
    iso3: Optional[str] = None
    name_en: str
    name_th: Optional[str] = None
    slug: str
    region: Optional[str] = None
    flag_emoji: Optional[str] = None

    class Config:
        from_attributes = True


class PopularCountry(Country):
    """Country ranked by how many sellable tours it has."""

    tour_count: int
