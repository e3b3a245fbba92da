"""
Sale computation -- pure cart arithmetic.

Responsibility:
    Computes subtotal, tax, total and item count for a cart, and the change
    due for a tender.  Used by callers to present a sale, and by the
    TransactionLedger to re-derive what a submitted sale should add up to.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - tax = round(subtotal x rate / 100), ROUND_HALF_UP at currency precision.
    - total = subtotal + tax (both already rounded, so no second rounding).
"""

from collections.abc import Sequence
from decimal import Decimal

from pos_kernel.domain.dtos import CartLine, SaleTotals
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import EmptyCartError, InvalidCartLineError, ValidationError

HUNDRED = Decimal("100")


def validate_cart(cart: Sequence[CartLine]) -> None:
    """
    Reject carts that cannot be sold.

    Raises:
        EmptyCartError: No lines, or quantities summing to zero.
        InvalidCartLineError: Quantity below 1 or a negative unit price.
    """
    if not cart:
        raise EmptyCartError()
    for index, line in enumerate(cart):
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int):
            raise InvalidCartLineError(index, "quantity must be an integer")
        if line.quantity < 1:
            raise InvalidCartLineError(index, "quantity must be at least 1")
        if not isinstance(line.unit_price, Decimal) or not line.unit_price.is_finite():
            raise InvalidCartLineError(index, "unit price must be a decimal amount")
        if line.unit_price < 0:
            raise InvalidCartLineError(index, "unit price must not be negative")


def cart_subtotal(cart: Sequence[CartLine], currency: Currency) -> Money:
    """Sum of unit_price x quantity, rounded to the currency."""
    amount = sum((line.line_total for line in cart), Decimal("0"))
    return Money(amount, currency).round()


def compute_tax(subtotal: Money, tax_rate_percent: Decimal) -> Money:
    if tax_rate_percent < 0:
        raise ValidationError(f"Tax rate must not be negative: {tax_rate_percent}")
    return (subtotal * (tax_rate_percent / HUNDRED)).round()


def compute_totals(
    cart: Sequence[CartLine],
    tax_rate_percent: Decimal,
    currency: Currency,
) -> SaleTotals:
    """
    Compute what a cart costs.

    Example:
        3 x 10.00 at 8.25% -> subtotal 30.00, tax 2.48, total 32.48
    """
    validate_cart(cart)
    subtotal = cart_subtotal(cart, currency)
    tax = compute_tax(subtotal, Decimal(tax_rate_percent))
    return SaleTotals(
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        quantity_total=sum(line.quantity for line in cart),
    )


def compute_change(total: Money, tendered: Money) -> Money:
    """Change owed to the customer; negative when the tender is short."""
    return (tendered - total).round()
