from decimal import Decimal

import pytest

from textbook_indents.core.exceptions import ValidationError
from textbook_indents.modules.payments.reconciliation import (
    OverpaymentWarning,
    PaymentStatus,
    payment_status_for,
    reconcile_payment,
)


class TestPaymentStatus:
    @pytest.mark.parametrize(
        "total, paid, expected",
        [
            ("500.00", "0.00", PaymentStatus.PENDING),
            ("500.00", "0.01", PaymentStatus.PARTIAL),
            ("500.00", "499.99", PaymentStatus.PARTIAL),
            ("500.00", "500.00", PaymentStatus.PAID),
            ("0.00", "0.00", PaymentStatus.PAID),
        ],
    )
    def test_status(self, total, paid, expected):
        assert payment_status_for(Decimal(total), Decimal(paid)) == expected


class TestReconcilePayment:
    def test_partial_payment(self):
        state = reconcile_payment(Decimal("500.00"), Decimal("120.50"))

        assert state.balance_amount == Decimal("379.50")
        assert state.status == PaymentStatus.PARTIAL
        assert state.warning is None
        assert state.overpaid_amount == Decimal("0.00")

    def test_overpayment_clamped(self):
        state = reconcile_payment(Decimal("500.00"), Decimal("700.00"))

        assert state.paid_amount == Decimal("500.00")
        assert state.balance_amount == Decimal("0.00")
        assert state.status == PaymentStatus.PAID
        assert state.overpaid_amount == Decimal("200.00")
        assert isinstance(state.warning, OverpaymentWarning)
        assert state.warning.excess_amount == Decimal("200.00")
        assert "clamped to 500.00" in str(state.warning)

    def test_amounts_are_rounded(self):
        state = reconcile_payment("100", "33.335")

        assert state.total_amount == Decimal("100.00")
        assert state.paid_amount == Decimal("33.34")
        assert state.balance_amount == Decimal("66.66")

    @pytest.mark.parametrize("total, paid", [("-1.00", "0.00"), ("10.00", "-0.01")])
    def test_negative_amounts_rejected(self, total, paid):
        with pytest.raises(ValidationError):
            reconcile_payment(Decimal(total), Decimal(paid))
