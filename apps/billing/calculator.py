"""
Bill arithmetic.

Totals are always derived from the current items, discount and amount
received; nothing here stores them. Negative grand totals and negative
amounts due are reported as they are so an over-discounted bill or an
overpayment stays visible to the caller.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from common.money import MAX_AMOUNT, ZERO, format_money, parse_money, quantize
from .choices import BillStatus, ItemType


class AmountError(ValueError):
    """A discount or payment amount that must not be used in a bill"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


@dataclass(frozen=True)
class LineItem:
    name: str
    item_type: str
    unit_price: Decimal

    def __post_init__(self):
        if self.item_type not in ItemType.values:
            raise ValueError(f"Unknown item type: {self.item_type!r}")


@dataclass(frozen=True)
class BillTotals:
    sub_total: Decimal
    discount_amount: Decimal
    grand_total: Decimal
    amount_received: Decimal
    amount_due: Decimal

    @property
    def is_overpaid(self) -> bool:
        return self.amount_due < ZERO

    @property
    def balance_state(self) -> str:
        if self.amount_due > ZERO:
            return 'due'
        if self.amount_due < ZERO:
            return 'overpaid'
        return 'settled'

    def as_dict(self) -> dict:
        return {
            'sub_total': format_money(self.sub_total),
            'discount_amount': format_money(self.discount_amount),
            'grand_total': format_money(self.grand_total),
            'amount_received': format_money(self.amount_received),
            'amount_due': format_money(self.amount_due),
            'is_overpaid': self.is_overpaid,
            'balance_state': self.balance_state,
        }


def validate_amount(value, field: str) -> Decimal:
    """
    Parse a discount or payment amount and reject negatives and amounts
    too large to store.

    Raises:
        AmountError: when the value is not a number, is below zero or above MAX_AMOUNT
    """
    try:
        amount = parse_money(value)
    except ValueError:
        raise AmountError(field, 'A valid amount is required.')
    if amount < ZERO:
        raise AmountError(field, 'Amount cannot be negative.')
    if amount > MAX_AMOUNT:
        raise AmountError(field, f'Amount cannot exceed {MAX_AMOUNT}.')
    return amount


def sum_prices(prices: Iterable) -> Decimal:
    """Sum prices that may arrive as numbers or numeric strings."""
    return quantize(sum((parse_money(price) for price in prices), ZERO))


def compute_totals(items: Iterable[LineItem], discount_amount=ZERO, amount_received=ZERO) -> BillTotals:
    """
    Derive subtotal, grand total and amount due.

    Args:
        items: line items of the bill
        discount_amount: validated, non-negative discount
        amount_received: validated, non-negative payment

    Returns:
        BillTotals with every amount quantized to two places
    """
    return totals_for_subtotal(
        sum_prices(item.unit_price for item in items),
        discount_amount=discount_amount,
        amount_received=amount_received,
    )


def totals_for_subtotal(sub_total, discount_amount=ZERO, amount_received=ZERO) -> BillTotals:
    """Same arithmetic as compute_totals when only the subtotal is known."""
    sub_total = parse_money(sub_total)
    discount_amount = parse_money(discount_amount)
    amount_received = parse_money(amount_received)

    grand_total = sub_total - discount_amount
    amount_due = grand_total - amount_received

    return BillTotals(
        sub_total=sub_total,
        discount_amount=discount_amount,
        grand_total=grand_total,
        amount_received=amount_received,
        amount_due=amount_due,
    )


def derive_status(totals: BillTotals) -> str:
    """Payment status the lab backend assigns for these totals."""
    if totals.amount_due <= ZERO:
        return BillStatus.DONE
    if ZERO < totals.amount_received < totals.grand_total:
        return BillStatus.PARTIAL
    return BillStatus.PENDING
