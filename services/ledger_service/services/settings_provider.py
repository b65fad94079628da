"""Typed, cached access to runtime-mutable platform settings.

Values live in the ``platform_settings`` table and fall back to the static
defaults in ``libs.common.config.Settings`` (matched by upper-cased key).
Reads are cached per process for ``SETTINGS_CACHE_TTL_SECONDS``; a write
through :meth:`SettingsProvider.set` invalidates the key in the writing
process only. Reads that decide money movement (bonus toggles, TDS, profit
share eligibility) pass ``fresh=True`` so a change made by the API process
is seen by the worker on its next job.
"""

import time
from decimal import Decimal
from typing import Any, Optional

from libs.common.config import Settings, get_settings
from libs.common.currency import to_decimal
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import InvalidArgument
from services.ledger_service.models import PlatformSetting
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

_MISSING = object()
_ABSENT = object()

# Setting keys read by the bonus engine and profit share.
BONUS_PROGRESSIVE_ENABLED = "bonus_progressive_enabled"
BONUS_MILESTONE_ENABLED = "bonus_milestone_enabled"
BONUS_CONSISTENCY_ENABLED = "bonus_consistency_enabled"
BONUS_CELEBRATION_ENABLED = "bonus_celebration_enabled"
TDS_THRESHOLD_PAISE = "tds_threshold_paise"
TDS_RATE_PERCENT = "tds_rate_percent"
PROFIT_SHARE_MIN_TENURE_MONTHS = "profit_share_min_tenure_months"
PROFIT_SHARE_MIN_INVESTMENT_PAISE = "profit_share_min_investment_paise"
REFERRAL_TIERS = "referral_tiers"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class SettingsProvider:
    """Per-session accessor over a process-wide TTL cache."""

    # key -> (expires_at monotonic, value or _ABSENT)
    _cache: dict[str, tuple[float, Any]] = {}

    def __init__(
        self,
        db: AsyncSession,
        *,
        defaults: Optional[Settings] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.db = db
        self.defaults = defaults or get_settings()
        self.ttl_seconds = (
            ttl_seconds
            if ttl_seconds is not None
            else self.defaults.SETTINGS_CACHE_TTL_SECONDS
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @classmethod
    def invalidate(cls, key: Optional[str] = None) -> None:
        """Drop one key from the cache, or everything when ``key`` is None."""
        if key is None:
            cls._cache.clear()
        else:
            cls._cache.pop(key, None)

    async def _load(self, key: str, fresh: bool) -> Any:
        now = time.monotonic()
        cached = None if fresh else self._cache.get(key)
        if cached and cached[0] > now:
            return cached[1]

        result = await self.db.execute(
            select(PlatformSetting.value).where(PlatformSetting.key == key)
        )
        row = result.first()
        value = _ABSENT if row is None or row[0] is None else row[0]
        self._cache[key] = (now + self.ttl_seconds, value)
        return value

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = _MISSING, *, fresh: bool = False) -> Any:
        """Stored value, else ``default``, else the static config default."""
        value = await self._load(key, fresh)
        if value is not _ABSENT:
            return value
        if default is not _MISSING:
            return default
        return getattr(self.defaults, key.upper(), None)

    async def get_bool(self, key: str, default: Any = _MISSING, *, fresh: bool = False) -> bool:
        value = await self.get(key, default, fresh=fresh)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in _TRUE:
                return True
            if normalized in _FALSE:
                return False
        logger.warning("Setting %s has non-boolean value %r, treating as off", key, value)
        return False

    async def get_int(self, key: str, default: Any = _MISSING, *, fresh: bool = False) -> int:
        value = await self.get(key, default, fresh=fresh)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise InvalidArgument(
                f"Setting {key} is not an integer", {"key": key, "value": repr(value)}
            ) from e

    async def get_decimal(
        self, key: str, default: Any = _MISSING, *, fresh: bool = False
    ) -> Decimal:
        value = await self.get(key, default, fresh=fresh)
        try:
            return to_decimal(value)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise InvalidArgument(
                f"Setting {key} is not a decimal", {"key": key, "value": repr(value)}
            ) from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, key: str, value: Any, *, updated_by: Optional[str] = None) -> None:
        """Upsert a setting and invalidate its cache entry."""
        result = await self.db.execute(
            select(PlatformSetting).where(PlatformSetting.key == key)
        )
        setting = result.scalar_one_or_none()
        if setting is None:
            setting = PlatformSetting(key=key, value=value, updated_by=updated_by)
            self.db.add(setting)
        else:
            setting.value = value
            setting.updated_by = updated_by
            setting.updated_at = utc_now()
        await self.db.commit()
        self.invalidate(key)

        logger.info("Setting %s updated by %s", key, updated_by or "system")
