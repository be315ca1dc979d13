"""
Tests for pms/services/price_service.py
Covers: calculate_nights, calculate_total_amount, money, to_naive,
        validate_rate, validate_expected_checkout
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pms.config import settings
from pms.services.errors import ValidationError
from pms.services.price_service import (
    calculate_nights, calculate_total_amount, money, to_naive,
    validate_expected_checkout, validate_rate
)

CHECK_IN = datetime(2026, 3, 1, 14, 0)


class TestCalculateNights:

    def test_whole_days(self):
        assert calculate_nights(CHECK_IN, CHECK_IN + timedelta(days=2)) == 2

    def test_partial_day_rounds_up(self):
        assert calculate_nights(CHECK_IN, CHECK_IN + timedelta(days=2, hours=1)) == 3

    def test_same_day_counts_one_night(self):
        assert calculate_nights(CHECK_IN, CHECK_IN + timedelta(hours=3)) == 1

    def test_checkout_equal_to_checkin_is_one_night(self):
        assert calculate_nights(CHECK_IN, CHECK_IN) == 1

    def test_missing_checkout_is_one_night(self):
        assert calculate_nights(CHECK_IN, None) == 1


class TestMoney:

    def test_total_is_rate_times_nights(self):
        assert calculate_total_amount(Decimal("1000"), 2) == Decimal("2000.00")

    def test_total_rounds_to_cents(self):
        assert calculate_total_amount(Decimal("99.995"), 1) == Decimal("100.00")

    def test_money_accepts_strings_and_ints(self):
        assert money("12.345") == Decimal("12.35")
        assert money(5) == Decimal("5.00")


class TestToNaive:

    def test_naive_passthrough(self):
        assert to_naive(CHECK_IN) is CHECK_IN

    def test_none_passthrough(self):
        assert to_naive(None) is None

    def test_aware_is_converted_to_local(self):
        aware = datetime(2026, 3, 1, 14, 0, tzinfo=timezone.utc)
        result = to_naive(aware)
        assert result.tzinfo is None
        assert result == aware.astimezone().replace(tzinfo=None)


class TestValidateRate:

    def test_positive_rate_is_quantized(self):
        assert validate_rate(Decimal("1500.5")) == Decimal("1500.50")

    @pytest.mark.parametrize("rate", [None, Decimal("0"), Decimal("-1"), Decimal("0.004")])
    def test_non_positive_rate_rejected(self, rate):
        with pytest.raises(ValidationError) as exc:
            validate_rate(rate)
        assert exc.value.field == "actual_room_rate"


class TestValidateExpectedCheckout:

    def test_valid_window(self):
        validate_expected_checkout(CHECK_IN, CHECK_IN + timedelta(days=3))

    def test_checkout_before_checkin(self):
        with pytest.raises(ValidationError) as exc:
            validate_expected_checkout(CHECK_IN, CHECK_IN - timedelta(hours=1))
        assert exc.value.field == "expected_check_out"

    def test_checkout_equal_to_checkin(self):
        with pytest.raises(ValidationError):
            validate_expected_checkout(CHECK_IN, CHECK_IN)

    def test_upper_bound_is_inclusive(self):
        validate_expected_checkout(CHECK_IN, CHECK_IN + timedelta(days=settings.MAX_STAY_DAYS))

    def test_beyond_max_stay(self):
        with pytest.raises(ValidationError) as exc:
            validate_expected_checkout(
                CHECK_IN, CHECK_IN + timedelta(days=settings.MAX_STAY_DAYS, seconds=1)
            )
        assert exc.value.details["value"] is not None
