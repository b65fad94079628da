"""Currency conversion utilities.

Internal storage unit: paise (smallest INR unit, 100 paise = ₹1).
API / display unit: Rupees (Decimal, e.g. Decimal("1500.00") = ₹1,500).

Rupee values are only ever a view over paise. Ledger arithmetic never
touches them.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

PAISE_PER_RUPEE: int = 100
HUNDRED = Decimal("100")

Number = Union[int, float, str, Decimal]


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_decimal(value: Number) -> Decimal:
    """Coerce a numeric input to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_paise(value: Number) -> int:
    """Round a fractional paise amount half-up to whole paise."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def rupees_to_paise(rupees: Number) -> int:
    """Convert Rupees to paise (round half-up). ₹1 = 100 paise."""
    return round_paise(to_decimal(rupees) * PAISE_PER_RUPEE)


def paise_to_rupees(paise: int) -> Decimal:
    """Convert paise to Rupees. 100 paise = ₹1."""
    return (Decimal(paise) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))


def percent_of(amount_paise: int, percentage: Number) -> int:
    """Return ``percentage``% of ``amount_paise``, rounded half-up to paise."""
    return round_paise(Decimal(amount_paise) * to_decimal(percentage) / HUNDRED)


def truncate(value: Decimal, places: int) -> Decimal:
    """Truncate (not round) a Decimal to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


def format_inr(paise: int) -> str:
    """Human-readable rupee string for log lines and error messages."""
    return f"₹{paise_to_rupees(paise):,}"
