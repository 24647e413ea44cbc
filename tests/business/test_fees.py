"""Fee and contribution calculation tests."""
from decimal import Decimal

import pytest

from business.errors import ValidationError
from business.fees import (
    BillingPlan, compute_contribution, compute_fee, fee_rate, parse_amount,
    to_money,
)


class TestFeeRate:

    def test_enterprise_rate(self):
        assert fee_rate(BillingPlan.ENTERPRISE) == Decimal("0.02")
        assert fee_rate("ENTERPRISE") == Decimal("0.02")

    def test_standard_and_unknown_default_to_three_percent(self):
        assert fee_rate(BillingPlan.STANDARD) == Decimal("0.03")
        assert fee_rate(None) == Decimal("0.03")
        assert fee_rate("GOLD") == Decimal("0.03")


class TestComputeFee:

    def test_standard_hundred(self):
        fee = compute_fee(Decimal("100"), BillingPlan.STANDARD)
        assert fee == Decimal("3.00")
        assert compute_contribution(fee) == Decimal("1.50")

    def test_enterprise_hundred(self):
        fee = compute_fee(Decimal("100"), BillingPlan.ENTERPRISE)
        assert fee == Decimal("2.00")
        assert compute_contribution(fee) == Decimal("1.00")

    def test_eighty_standard(self):
        fee = compute_fee(Decimal("80.00"), "STANDARD")
        assert fee == Decimal("2.40")
        assert compute_contribution(fee) == Decimal("1.20")

    def test_rounds_half_up_to_cent(self):
        # 0.50 * 3% = 0.015
        assert compute_fee(Decimal("0.50"), BillingPlan.STANDARD) == Decimal("0.02")

    def test_zero_amount(self):
        assert compute_fee(Decimal("0"), BillingPlan.STANDARD) == Decimal("0.00")


class TestComputeContribution:

    def test_half_cent_rounds_up(self):
        assert compute_contribution(Decimal("33.335")) == Decimal("16.67")

    def test_odd_cent(self):
        # 0.03 / 2 = 0.015
        assert compute_contribution(Decimal("0.03")) == Decimal("0.02")


class TestToMoney:

    def test_string(self):
        assert to_money("80") == Decimal("80.00")

    def test_float_has_no_binary_noise(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money(19.99) == Decimal("19.99")

    @pytest.mark.parametrize("bad", [None, True, "abc", "NaN", "Infinity", ""])
    def test_rejects_invalid(self, bad):
        with pytest.raises(ValidationError):
            to_money(bad, "subtotal")


class TestParseAmount:

    def test_keeps_sub_cent_precision(self):
        assert parse_amount("49.995") == Decimal("49.995")
        assert parse_amount(49.995) == Decimal("49.995")

    def test_rejects_invalid(self):
        with pytest.raises(ValidationError):
            parse_amount("abc", "cart_total")
