"""TDS (tax deducted at source) withholding on bonus and profit-share payouts."""

from dataclasses import dataclass
from decimal import Decimal

from libs.common.currency import Number, percent_of, to_decimal
from services.ledger_service.errors import InvalidArgument
from services.ledger_service.services.settings_provider import (
    TDS_RATE_PERCENT,
    TDS_THRESHOLD_PAISE,
    SettingsProvider,
)


@dataclass(frozen=True)
class TdsResult:
    gross_paise: int
    tds_paise: int
    net_paise: int


def compute_tds(gross_paise: int, threshold_paise: int, rate_percent: Number) -> TdsResult:
    """Withhold ``rate_percent``% when ``gross_paise`` reaches the threshold."""
    rate = to_decimal(rate_percent)
    if gross_paise < 0:
        raise InvalidArgument("Gross amount cannot be negative", {"gross_paise": gross_paise})
    if rate < 0 or rate > 100:
        raise InvalidArgument("TDS rate must be between 0 and 100", {"rate": str(rate)})

    tds = percent_of(gross_paise, rate) if gross_paise >= threshold_paise else 0
    return TdsResult(gross_paise=gross_paise, tds_paise=tds, net_paise=gross_paise - tds)


async def load_tds_policy(settings: SettingsProvider) -> tuple[int, Decimal]:
    """Current ``(threshold_paise, rate_percent)`` from the settings provider."""
    threshold = await settings.get_int(TDS_THRESHOLD_PAISE, fresh=True)
    rate = await settings.get_decimal(TDS_RATE_PERCENT, fresh=True)
    return threshold, rate
