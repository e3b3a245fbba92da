"""
Typed Exception Hierarchy for the POS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A register that rejects a sale must tell the caller *which* rule failed.
Callers catch by type and read structured attributes; they never parse
message strings.

    try:
        ledger.record_sale(...)
    except InsufficientTenderError as e:
        show_error(f"Change due would be {e.change_due}")
    except ValidationError as e:
        api_response(code=e.code, message=str(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PosKernelError:

    PosKernelError (base)
    |
    +-- ConflictError
    |   +-- RegisterAlreadyOpenError
    |
    +-- NotFoundError
    |   +-- NoOpenSessionError
    |   +-- SessionNotFoundError
    |
    +-- ValidationError
    |   +-- InsufficientTenderError
    |   +-- CardOverpaymentError
    |   +-- TotalMismatchError
    |   +-- SubtotalMismatchError
    |   +-- EmptyCartError
    |   +-- InvalidCartLineError
    |   +-- InvalidDenominationCountError
    |   +-- InvalidDenominationError
    |   +-- CountAmountMismatchError
    |   +-- InvalidSettingError
    |
    +-- PersistenceError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------
Conflict     | REGISTER_ALREADY_OPEN         | open while a session is open
-------------|-------------------------------|-----------------------------------
Not found    | NO_OPEN_SESSION               | close with no open session
             | SESSION_NOT_FOUND             | session id does not exist
-------------|-------------------------------|-----------------------------------
Validation   | INSUFFICIENT_TENDER           | tendered < total
             | CARD_OVERPAYMENT              | card tendered > total
             | TOTAL_MISMATCH                | total != round2(subtotal + tax)
             | SUBTOTAL_MISMATCH             | subtotal != sum of cart lines
             | EMPTY_CART                    | no lines / zero quantity
             | INVALID_CART_LINE             | bad price or quantity on a line
             | INVALID_DENOMINATION_COUNT    | negative or non-integer count
             | INVALID_DENOMINATION          | face value not positive / sub-cent
             | COUNT_AMOUNT_MISMATCH         | counted drawer != declared amount
             | INVALID_SETTING               | unparsable settings value
-------------|-------------------------------|-----------------------------------
Persistence  | PERSISTENCE_FAILURE           | store unavailable or inconsistent
-------------|-------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION        | UPDATE/DELETE of ledger rows or
             |                               | closed sessions

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation and conflict errors are raised BEFORE any mutation.  Return
   them to the caller verbatim; never retry them automatically.  Retrying a
   ConflictError without re-reading state would be wrong.

2. PersistenceError always chains the original storage exception
   (``raise PersistenceError(...) from exc``) so logs keep the cause.

3. Only the read-only register status probe may swallow a storage failure
   and substitute a default (``is_open=False``).
"""

from decimal import Decimal


class PosKernelError(Exception):
    """
    Base exception for all POS kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "POS_KERNEL_ERROR"


# Conflict exceptions


class ConflictError(PosKernelError):
    """Operation conflicts with current state."""

    code: str = "CONFLICT"


class RegisterAlreadyOpenError(ConflictError):
    """A register session is already open."""

    code: str = "REGISTER_ALREADY_OPEN"

    def __init__(self, open_session_id: str | None = None):
        self.open_session_id = open_session_id
        if open_session_id:
            message = f"Register is already open (session {open_session_id})"
        else:
            message = "Register is already open"
        super().__init__(message)


# Not-found exceptions


class NotFoundError(PosKernelError):
    """Requested state does not exist."""

    code: str = "NOT_FOUND"


class NoOpenSessionError(NotFoundError):
    """No register session is open."""

    code: str = "NO_OPEN_SESSION"

    def __init__(self):
        super().__init__("No open register session")


class SessionNotFoundError(NotFoundError):
    """Register session with given ID was not found."""

    code: str = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Register session not found: {session_id}")


# Validation exceptions


class ValidationError(PosKernelError):
    """Input rejected before any mutation."""

    code: str = "VALIDATION_FAILED"


class InsufficientTenderError(ValidationError):
    """Tendered amount does not cover the sale total."""

    code: str = "INSUFFICIENT_TENDER"

    def __init__(self, total: Decimal, tendered: Decimal, change_due: Decimal):
        self.total = str(total)
        self.tendered = str(tendered)
        self.change_due = str(change_due)
        super().__init__(
            f"insufficient tender: total {total}, tendered {tendered}"
        )


class CardOverpaymentError(ValidationError):
    """Card tender exceeds the sale total."""

    code: str = "CARD_OVERPAYMENT"

    def __init__(self, total: Decimal, tendered: Decimal):
        self.total = str(total)
        self.tendered = str(tendered)
        super().__init__(
            f"overpayment on card: total {total}, tendered {tendered}"
        )


class TotalMismatchError(ValidationError):
    """Supplied total disagrees with subtotal + tax."""

    code: str = "TOTAL_MISMATCH"

    def __init__(self, expected: Decimal, actual: Decimal):
        self.expected = str(expected)
        self.actual = str(actual)
        super().__init__(
            f"Total mismatch: expected {expected} (subtotal + tax), got {actual}"
        )


class SubtotalMismatchError(ValidationError):
    """Supplied subtotal disagrees with the cart lines."""

    code: str = "SUBTOTAL_MISMATCH"

    def __init__(self, expected: Decimal, actual: Decimal):
        self.expected = str(expected)
        self.actual = str(actual)
        super().__init__(
            f"Subtotal mismatch: cart lines sum to {expected}, got {actual}"
        )


class EmptyCartError(ValidationError):
    """Sale has no items."""

    code: str = "EMPTY_CART"

    def __init__(self):
        super().__init__("Cart is empty")


class InvalidCartLineError(ValidationError):
    """A cart line has an invalid price or quantity."""

    code: str = "INVALID_CART_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Invalid cart line {line_index}: {reason}")


class InvalidDenominationCountError(ValidationError):
    """A denomination count is negative or not an integer."""

    code: str = "INVALID_DENOMINATION_COUNT"

    def __init__(self, face_value: str, count: object):
        self.face_value = face_value
        self.count = repr(count)
        super().__init__(
            f"Invalid count for denomination {face_value}: {count!r} "
            "(must be a non-negative integer)"
        )


class InvalidDenominationError(ValidationError):
    """A denomination face value is unusable."""

    code: str = "INVALID_DENOMINATION"

    def __init__(self, face_value: object, reason: str):
        self.face_value = repr(face_value)
        self.reason = reason
        super().__init__(f"Invalid denomination {face_value!r}: {reason}")


class CountAmountMismatchError(ValidationError):
    """Declared amount disagrees with the counted denominations."""

    code: str = "COUNT_AMOUNT_MISMATCH"

    def __init__(self, declared: Decimal, counted: Decimal):
        self.declared = str(declared)
        self.counted = str(counted)
        super().__init__(
            f"Declared amount {declared} does not match counted {counted}"
        )


class InvalidSettingError(ValidationError):
    """A settings value cannot be parsed."""

    code: str = "INVALID_SETTING"

    def __init__(self, key: str, value: str):
        self.key = key
        self.value = value
        super().__init__(f"Invalid value for setting {key!r}: {value!r}")


# Persistence exceptions


class PersistenceError(PosKernelError):
    """Underlying store unavailable or inconsistent.

    The original storage exception is always chained as ``__cause__``.
    """

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        message = f"Storage failure during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Immutability exceptions


class ImmutabilityViolationError(PosKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
