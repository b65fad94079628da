"""Unit tests for paise/rupee helpers."""

from decimal import Decimal

import pytest
from libs.common.currency import (
    format_inr,
    paise_to_rupees,
    percent_of,
    round_paise,
    rupees_to_paise,
    truncate,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "rupees,paise",
    [("1500", 150000), ("0.01", 1), ("10.005", 1001), (Decimal("99.99"), 9999)],
)
def test_rupees_to_paise(rupees, paise):
    assert rupees_to_paise(rupees) == paise


@pytest.mark.unit
def test_float_input_has_no_binary_noise():
    assert rupees_to_paise(0.1) + rupees_to_paise(0.2) == rupees_to_paise("0.3")


@pytest.mark.unit
def test_rupee_view():
    assert paise_to_rupees(150050) == Decimal("1500.50")
    assert format_inr(12345678) == "₹123,456.78"


@pytest.mark.unit
def test_rounding_helpers():
    assert round_paise(Decimal("2.5")) == 3
    assert percent_of(1000, "0.5") == 5
    assert truncate(Decimal("3.33339"), 4) == Decimal("3.3333")
