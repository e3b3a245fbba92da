"""
TransactionLedger -- validated, append-only sale recording.

Responsibility:
    Accepts a candidate sale (cart, totals, tender), re-derives what it
    should add up to, rejects anything inconsistent, and appends the sale
    to the transactions table.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PointOfSaleService.  Reads go through SalesSelector.

Invariants enforced:
    - Nothing is written unless every check passes.
    - subtotal equals the sum of cart lines within one minor unit.
    - total equals round(subtotal + tax) within one minor unit.
    - Cash: tendered >= total.  Card: tendered == total.
    - Items are stored as snapshots; catalog edits never reach them.
    - Flush-only: never commits.

Failure modes:
    - EmptyCartError / InvalidCartLineError: unusable cart.
    - SubtotalMismatchError / TotalMismatchError: inconsistent totals.
    - InsufficientTenderError: tender does not cover the total.
    - CardOverpaymentError: card tender above the total.

Audit relevance:
    Every accepted sale logs ``sale_recorded``; every rejection logs
    ``sale_rejected`` with the error code.
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.orm import Session

from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.dtos import CartLine, PaymentMethod, TransactionRecord
from pos_kernel.domain.sale_computation import cart_subtotal, compute_change, validate_cart
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    CardOverpaymentError,
    InsufficientTenderError,
    SubtotalMismatchError,
    TotalMismatchError,
    ValidationError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.models.transaction import Transaction
from pos_kernel.selectors.sales_selector import Bound, SalesSelector, as_utc
from pos_kernel.services.base import BaseService

logger = get_logger("services.transaction_ledger")

DEFAULT_RECEIPT_PREFIX = "REC-"


class TransactionLedger(BaseService[Transaction]):
    """
    Append-only ledger of completed sales.

    Contract:
        ``record_sale`` validates first and writes second.  A rejected sale
        leaves no trace in the table.

    Non-goals:
        - Does NOT require an open register session.  Sales are attributed
          to sessions by date, not by a foreign key.
        - Does NOT deduplicate caller-supplied receipt numbers.
        - Generated receipt numbers are not unique: two sales recorded in
          the same clock millisecond get the same ``<prefix><epoch millis>``.
          Use the transaction id when a unique key is needed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: Currency | str = "USD",
        receipt_prefix: str = DEFAULT_RECEIPT_PREFIX,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.currency = Currency(currency) if isinstance(currency, str) else currency
        self.receipt_prefix = receipt_prefix
        self._selector = SalesSelector(session, self.currency)

    def record_sale(
        self,
        cart: Sequence[CartLine],
        subtotal: Money,
        tax: Money,
        total: Money,
        method: PaymentMethod | str,
        tendered_amount: Money,
        receipt_number: str | None = None,
        sale_date: datetime | None = None,
    ) -> TransactionRecord:
        """
        Validate and append a sale.

        Args:
            cart: Lines as sold (price at the moment of sale).
            subtotal, tax, total: The totals the caller presented.
            method: "cash" or "card".
            tendered_amount: What the customer handed over.
            receipt_number: Defaults to ``REC-<epoch millis>``.
            sale_date: Defaults to now.

        Raises:
            ValidationError (subclasses listed in the module docstring).
        """
        try:
            payment = PaymentMethod(method)
            amounts = self._validate(cart, subtotal, tax, total, tendered_amount)
            change_due = compute_change(amounts["total"], amounts["tendered"])
            self._check_tender(payment, amounts["total"], amounts["tendered"], change_due)
        except ValueError as exc:
            logger.warning(
                "sale_rejected",
                extra={"error_code": "VALIDATION_FAILED", "reason": str(exc)},
            )
            raise ValidationError(str(exc)) from exc
        except ValidationError as exc:
            logger.warning(
                "sale_rejected",
                extra={"error_code": exc.code, "reason": str(exc)},
            )
            raise

        receipt = receipt_number or f"{self.receipt_prefix}{self._clock.epoch_millis()}"
        date = as_utc(sale_date) if sale_date is not None else self._clock.now_utc()

        row = Transaction(
            receipt_number=receipt,
            date=date,
            quantity=sum(line.quantity for line in cart),
            subtotal=amounts["subtotal"].amount,
            tax=amounts["tax"].amount,
            total=amounts["total"].amount,
            method=payment.value,
            tendered_amount=amounts["tendered"].amount,
            change_due=change_due.amount,
            items=[line.to_snapshot() for line in cart],
        )
        self.session.add(row)
        self.session.flush()

        with LogContext.bind(receipt_number=receipt):
            logger.info(
                "sale_recorded",
                extra={
                    "transaction_id": str(row.id),
                    "total": str(amounts["total"].amount),
                    "method": payment.value,
                    "change_due": str(change_due.amount),
                    "line_count": len(cart),
                },
            )

        return TransactionRecord.from_model(row, self.currency)

    def list(self, start: Bound = None, end: Bound = None) -> list[TransactionRecord]:
        """Transactions in ``[start, end]`` (either bound optional), newest first."""
        return self._selector.sales_in_range(start, end)

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(
        self,
        cart: Sequence[CartLine],
        subtotal: Money,
        tax: Money,
        total: Money,
        tendered: Money,
    ) -> dict[str, Money]:
        for label, amount in (
            ("subtotal", subtotal),
            ("tax", tax),
            ("total", total),
            ("tendered amount", tendered),
        ):
            if amount.currency != self.currency:
                raise ValidationError(
                    f"{label} currency {amount.currency} does not match {self.currency}"
                )
            if amount.is_negative:
                raise ValidationError(f"{label} must not be negative: {amount}")

        validate_cart(cart)

        expected_subtotal = cart_subtotal(cart, self.currency)
        if not expected_subtotal.within_tolerance(subtotal):
            raise SubtotalMismatchError(expected_subtotal.amount, subtotal.amount)

        expected_total = (subtotal + tax).round()
        if not expected_total.within_tolerance(total):
            raise TotalMismatchError(expected_total.amount, total.amount)

        return {
            "subtotal": subtotal.round(),
            "tax": tax.round(),
            "total": total.round(),
            "tendered": tendered.round(),
        }

    @staticmethod
    def _check_tender(
        method: PaymentMethod,
        total: Money,
        tendered: Money,
        change_due: Money,
    ) -> None:
        if change_due.is_negative:
            raise InsufficientTenderError(total.amount, tendered.amount, change_due.amount)
        if method == PaymentMethod.CARD and change_due.is_positive:
            raise CardOverpaymentError(total.amount, tendered.amount)
