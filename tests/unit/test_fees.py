"""Unit tests for the circle fee schedule"""

import pytest
from decimal import Decimal
from savings_engine.domain.fees import circle_fee, tiers_from_config


@pytest.mark.parametrize(
    "amount, fee",
    [
        (100000, "1000"),
        (99999, "500"),
        (50000, "500"),
        (24999, "500"),
        (20000, "500"),
        (19999, "300"),
        (15000, "300"),
        (10000, "200"),
        (9999, "0"),
    ],
)
def test_inclusive_lower_bounds(amount, fee):
    assert circle_fee(amount) == Decimal(fee)


def test_plan_config_overrides_default_tiers():
    config = {"fee_tiers": [{"min": 5000, "fee": 50}, {"min": 20000, "fee": 250}]}
    assert circle_fee(25000, config) == Decimal("250.00")
    assert circle_fee(6000, config) == Decimal("50.00")
    assert circle_fee(4000, config) == Decimal("0.00")


def test_empty_config_uses_default():
    assert tiers_from_config({}) is None
    assert circle_fee(20000, {}) == Decimal("500.00")
