"""Unit tests for the platform settings provider and TDS withholding."""

from decimal import Decimal

import pytest
from libs.common.config import Settings
from services.ledger_service.errors import InvalidArgument
from services.ledger_service.models import PlatformSetting
from services.ledger_service.services import tds
from services.ledger_service.services.settings_provider import (
    BONUS_CELEBRATION_ENABLED,
    TDS_RATE_PERCENT,
    TDS_THRESHOLD_PAISE,
    SettingsProvider,
)
from sqlalchemy import update

# ---------------------------------------------------------------------------
# SettingsProvider
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_falls_back_to_static_defaults(db_session):
    provider = SettingsProvider(db_session, defaults=Settings(TDS_THRESHOLD_PAISE=42))

    assert await provider.get_int(TDS_THRESHOLD_PAISE) == 42
    assert await provider.get_bool(BONUS_CELEBRATION_ENABLED) is True
    assert await provider.get("no_such_setting", "fallback") == "fallback"
    assert await provider.get("no_such_setting") is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_set_writes_through_and_invalidates(db_session):
    provider = SettingsProvider(db_session)
    assert await provider.get_bool(BONUS_CELEBRATION_ENABLED) is True

    await provider.set(BONUS_CELEBRATION_ENABLED, False, updated_by="admin-1")

    assert await provider.get_bool(BONUS_CELEBRATION_ENABLED) is False
    assert await SettingsProvider(db_session).get_bool(BONUS_CELEBRATION_ENABLED) is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reads_are_cached_until_invalidated(db_session):
    provider = SettingsProvider(db_session)
    await provider.set(TDS_RATE_PERCENT, "10")
    assert await provider.get_decimal(TDS_RATE_PERCENT) == Decimal("10")

    # A write that bypasses the provider is not seen until re-read.
    await db_session.execute(
        update(PlatformSetting)
        .where(PlatformSetting.key == TDS_RATE_PERCENT)
        .values(value="5")
    )
    await db_session.commit()

    assert await provider.get_decimal(TDS_RATE_PERCENT) == Decimal("10")
    assert await provider.get_decimal(TDS_RATE_PERCENT, fresh=True) == Decimal("5")

    await provider.set(TDS_RATE_PERCENT, "7.5")
    SettingsProvider.invalidate()
    assert await provider.get_decimal(TDS_RATE_PERCENT) == Decimal("7.5")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_zero_ttl_always_rereads(db_session):
    provider = SettingsProvider(db_session, ttl_seconds=0)
    await provider.set(TDS_THRESHOLD_PAISE, 100)

    await db_session.execute(
        update(PlatformSetting)
        .where(PlatformSetting.key == TDS_THRESHOLD_PAISE)
        .values(value=200)
    )
    await db_session.commit()

    assert await provider.get_int(TDS_THRESHOLD_PAISE) == 200


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "stored,expected",
    [(True, True), ("yes", True), ("1", True), (0, False), ("OFF", False), ("maybe", False)],
)
async def test_get_bool_coercion(db_session, stored, expected):
    provider = SettingsProvider(db_session)
    await provider.set(BONUS_CELEBRATION_ENABLED, stored)

    assert await provider.get_bool(BONUS_CELEBRATION_ENABLED) is expected


@pytest.mark.asyncio
@pytest.mark.unit
async def test_malformed_numbers_raise(db_session):
    provider = SettingsProvider(db_session)
    await provider.set(TDS_THRESHOLD_PAISE, "ten thousand")
    await provider.set(TDS_RATE_PERCENT, "ten")

    with pytest.raises(InvalidArgument):
        await provider.get_int(TDS_THRESHOLD_PAISE)
    with pytest.raises(InvalidArgument):
        await provider.get_decimal(TDS_RATE_PERCENT)


# ---------------------------------------------------------------------------
# TDS
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "gross,tds_paise",
    [
        (999999, 0),  # just under ₹10,000
        (1000000, 100000),  # at the threshold
        (1234567, 123457),  # half-up rounding
    ],
)
def test_compute_tds_threshold_and_rounding(gross, tds_paise):
    result = tds.compute_tds(gross, 1000000, "10")

    assert result.tds_paise == tds_paise
    assert result.net_paise == gross - tds_paise
    assert result.gross_paise == gross


@pytest.mark.unit
def test_compute_tds_rejects_bad_inputs():
    with pytest.raises(InvalidArgument):
        tds.compute_tds(-1, 0, "10")
    with pytest.raises(InvalidArgument):
        tds.compute_tds(100, 0, "101")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_load_tds_policy_uses_settings(db_session):
    provider = SettingsProvider(db_session)
    await provider.set(TDS_RATE_PERCENT, "7.5")

    threshold, rate = await tds.load_tds_policy(provider)

    assert threshold == 1000000
    assert rate == Decimal("7.5")
