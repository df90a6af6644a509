"""Adapter registry and construction."""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import NotFoundError, UnsupportedApiFormatError
from ...models.tour import Tour
from ...models.wholesaler import Wholesaler, WholesalerApiConfig
from .base import BaseAdapter
from .generic_rest import GenericRestAdapter

logger = logging.getLogger(__name__)


def build_endpoint(template: str, tour: Tour) -> str:
    """Fill tour placeholders in a per-tour endpoint template."""
    external_id = tour.external_id or ""
    placeholders = {
        "{external_id}": external_id,
        "{tour_id}": external_id,
        "{id}": external_id,
        "{series_id}": external_id,
        "{tour_code}": tour.tour_code or "",
        "{wholesaler_tour_code}": tour.wholesaler_tour_code or "",
        "{code}": tour.wholesaler_tour_code or tour.tour_code or "",
        "{slug}": tour.slug or "",
    }
    for placeholder, value in placeholders.items():
        template = template.replace(placeholder, value)
    return template


class AdapterFactory:
    """
    Creates the adapter for a wholesaler.

    Wholesaler-specific adapters are registered by wholesaler code; everything
    else gets the generic adapter for its ``api_format``.
    """

    _adapters: dict[str, type[BaseAdapter]] = {}

    @classmethod
    def register(cls, wholesaler_code: str, adapter_class: type[BaseAdapter]) -> None:
        cls._adapters[wholesaler_code.upper()] = adapter_class

    @classmethod
    def unregister(cls, wholesaler_code: str) -> None:
        cls._adapters.pop(wholesaler_code.upper(), None)

    @classmethod
    def registered_codes(cls) -> list[str]:
        return list(cls._adapters)

    @classmethod
    async def create(cls, db: AsyncSession, wholesaler_id: int, **kwargs: Any) -> BaseAdapter:
        """
        Build the adapter for ``wholesaler_id``.

        Raises:
            NotFoundError: Wholesaler or its API config is missing
            UnsupportedApiFormatError: No adapter exists for the configured format
        """
        wholesaler = await db.get(Wholesaler, wholesaler_id)
        if not wholesaler:
            raise NotFoundError("wholesaler", str(wholesaler_id))

        config = await cls.get_config(db, wholesaler_id)
        if not config:
            raise NotFoundError(
                "api_config",
                str(wholesaler_id),
                detail=f"No API config found for wholesaler {wholesaler_id}",
            )

        adapter_class = cls._adapters.get(wholesaler.code.upper())
        if adapter_class is not None:
            return adapter_class(config, **kwargs)
        return cls.create_generic(config, **kwargs)

    @staticmethod
    def create_generic(config: WholesalerApiConfig, **kwargs: Any) -> BaseAdapter:
        if config.api_format in ("soap", "graphql"):
            raise UnsupportedApiFormatError(f"{config.api_format} adapters are not implemented")
        return GenericRestAdapter(config, **kwargs)

    @staticmethod
    async def get_config(db: AsyncSession, wholesaler_id: int) -> Optional[WholesalerApiConfig]:
        result = await db.execute(
            select(WholesalerApiConfig).where(WholesalerApiConfig.wholesaler_id == wholesaler_id)
        )
        return result.scalar_one_or_none()
