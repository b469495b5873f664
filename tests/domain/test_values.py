"""
Tests for monetary primitives, sign conventions and the posting policy.

Tests cover:
- Nature normal sides and report precedence
- BalancePair construction from a debit-positive net
- to_decimal coercion (None, float noise, strings)
- natural_amount sign flips per nature
- PostingPolicy validation and visible/matchable status sets
- DeterministicClock movement
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.values import (
    NATURE_PRECEDENCE,
    ZERO,
    BalancePair,
    Nature,
    Side,
    natural_amount,
    signed_amount,
    to_decimal,
    within_tolerance,
)
from ledger_kernel.domain.vouchers import VoucherStatus


class TestNature:
    """Normal sides and ordering of account natures."""

    @pytest.mark.parametrize("nature", [Nature.ASSETS, Nature.EXPENSES])
    def test_debit_normal(self, nature):
        assert nature.is_debit_normal

    @pytest.mark.parametrize("nature", [Nature.LIABILITIES, Nature.INCOME, Nature.EQUITY])
    def test_credit_normal(self, nature):
        assert not nature.is_debit_normal

    def test_precedence_order(self):
        assert [n.value for n in NATURE_PRECEDENCE] == [
            "assets", "liabilities", "income", "expenses", "equity",
        ]
        assert Nature.ASSETS.precedence < Nature.EQUITY.precedence


class TestBalancePair:
    """Debit/credit pair representation."""

    def test_from_positive_net_is_debit(self):
        pair = BalancePair.from_net(Decimal("1000"))
        assert pair.debit == Decimal("1000")
        assert pair.credit == ZERO
        assert pair.side == Side.DEBIT

    def test_from_negative_net_is_credit(self):
        pair = BalancePair.from_net(Decimal("-250.50"))
        assert pair.debit == ZERO
        assert pair.credit == Decimal("250.50")
        assert pair.side == Side.CREDIT
        assert pair.magnitude == Decimal("250.50")

    def test_zero(self):
        pair = BalancePair.from_net(ZERO)
        assert pair.is_zero
        assert pair.side is None

    def test_net_round_trip(self):
        assert BalancePair.from_net(Decimal("-42")).net == Decimal("-42")


class TestDecimalCoercion:
    """to_decimal never lets floats leak binary noise."""

    def test_none_is_zero(self):
        assert to_decimal(None) == ZERO

    def test_decimal_passthrough(self):
        value = Decimal("12.34")
        assert to_decimal(value) is value

    def test_float_noise_quantized(self):
        assert to_decimal(0.1 + 0.2) == Decimal("0.3")

    def test_string_and_int(self):
        assert to_decimal("99.95") == Decimal("99.95")
        assert to_decimal(7) == Decimal("7")


class TestSignConventions:
    """Signed and natural amounts."""

    def test_signed_amount(self):
        assert signed_amount(Decimal("10"), Side.DEBIT) == Decimal("10")
        assert signed_amount(Decimal("10"), Side.CREDIT) == Decimal("-10")

    def test_natural_amount_debit_normal(self):
        assert natural_amount(Nature.ASSETS, Decimal("500")) == Decimal("500")

    def test_natural_amount_credit_normal(self):
        assert natural_amount(Nature.INCOME, Decimal("-500")) == Decimal("500")

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("100.00"), Decimal("100.01"))
        assert not within_tolerance(Decimal("100.00"), Decimal("100.02"))


class TestPostingPolicy:
    """Policy knobs and derived status sets."""

    def test_defaults(self):
        policy = PostingPolicy()
        assert policy.include_unapproved is False
        assert policy.tolerance == Decimal("0.01")
        assert policy.match_window_days == 3

    def test_strict_visibility(self):
        assert PostingPolicy().visible_statuses == frozenset({
            VoucherStatus.APPROVED,
            VoucherStatus.CANCELLED,
        })

    def test_tentative_visibility(self):
        visible = PostingPolicy(include_unapproved=True).visible_statuses
        assert VoucherStatus.DRAFT in visible
        assert VoucherStatus.PENDING_APPROVAL in visible
        assert VoucherStatus.REJECTED not in visible

    def test_cancelled_not_matchable(self):
        assert VoucherStatus.CANCELLED not in PostingPolicy().matchable_statuses
        assert PostingPolicy().matchable_statuses == frozenset({VoucherStatus.APPROVED})

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tolerance": Decimal("-0.01")},
            {"match_window_days": -1},
            {"max_import_lines": 0},
            {"max_auto_match_items": 0},
            {"voucher_number_width": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            PostingPolicy(**kwargs)


class TestDeterministicClock:
    def test_frozen_until_moved(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        assert clock.today() == date(2024, 1, 1)

    def test_advance(self):
        clock = DeterministicClock(datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc))
        clock.advance(timedelta(hours=2))
        assert clock.today() == date(2024, 4, 1)
        assert clock.advance(30).minute == 0
        assert clock.now().second == 30

    def test_set_date(self):
        clock = DeterministicClock()
        clock.set_date(date(2024, 12, 31))
        assert clock.now() == datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc)

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 1, 1))
