"""Payment state of an indent, derived from its total and paid amounts."""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from textbook_indents.core.exceptions import ValidationError
from textbook_indents.shared.utils.money import ZERO, round_money


class PaymentStatus(StrEnum):
    """Payment status enumeration."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(StrEnum):
    """How the paid amount was collected."""

    CASH = "cash"
    BANK = "bank"
    ONLINE = "online"
    ADJUSTMENT = "adjustment"


class OverpaymentWarning(UserWarning):
    """Paid amount exceeded the total and was clamped.

    Returned to the caller next to the result, never raised.
    """

    def __init__(self, total_amount: Decimal, attempted_amount: Decimal):
        self.total_amount = total_amount
        self.attempted_amount = attempted_amount
        self.excess_amount = attempted_amount - total_amount
        super().__init__(
            f"Paid amount {attempted_amount} exceeds total {total_amount}; "
            f"clamped to {total_amount} (excess {self.excess_amount})"
        )


@dataclass(frozen=True)
class PaymentState:
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: PaymentStatus
    overpaid_amount: Decimal = ZERO
    warning: OverpaymentWarning | None = None


def payment_status_for(total_amount: Decimal, paid_amount: Decimal) -> PaymentStatus:
    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def reconcile_payment(
    total_amount: Decimal | int | str, paid_amount: Decimal | int | str
) -> PaymentState:
    """
    Compute balance and payment status for ``paid_amount`` against ``total_amount``.

    A paid amount above the total is clamped to the total (balance 0, status
    paid) and the returned state carries an ``OverpaymentWarning``.

    Raises:
        ValidationError: if either amount is negative.
    """
    total = round_money(total_amount)
    paid = round_money(paid_amount)
    if total < 0:
        raise ValidationError("Total amount cannot be negative", field="total_amount")
    if paid < 0:
        raise ValidationError("Paid amount cannot be negative", field="paid_amount")

    warning = None
    overpaid = ZERO
    if paid > total:
        warning = OverpaymentWarning(total, paid)
        overpaid = paid - total
        paid = total

    return PaymentState(
        total_amount=total,
        paid_amount=paid,
        balance_amount=total - paid,
        status=payment_status_for(total, paid),
        overpaid_amount=overpaid,
        warning=warning,
    )
