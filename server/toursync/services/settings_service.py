"""Read and write admin-editable settings."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.setting import Setting

TOUR_AGGREGATIONS = "tour_aggregations"
PROMOTION_THRESHOLDS = "promotion_thresholds"
AUTO_CLOSE = "auto_close"


async def get_setting(db: AsyncSession, key: str, default: Any = None) -> Any:
    """Stored value for ``key``; dict defaults are filled in under the stored keys."""
    setting = await db.get(Setting, key)
    if setting is None or setting.value is None:
        return default
    if isinstance(default, dict) and isinstance(setting.value, dict):
        return {**default, **setting.value}
    return setting.value


async def set_setting(db: AsyncSession, key: str, value: Any) -> Setting:
    setting = await db.get(Setting, key)
    if setting is None:
        setting = Setting(key=key, value=value)
        db.add(setting)
    else:
        setting.value = value
    await db.flush()
    return setting
