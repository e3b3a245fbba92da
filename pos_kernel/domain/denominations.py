"""
Denominations -- cash drawer counting and pre-fill arithmetic.

Responsibility:
    Turns a bill/coin count into an exact Money total, and turns a target
    amount into a greedy largest-first breakdown for pre-filling the
    opening count.  All arithmetic is done in integer minor units so that
    0.25 x 2 is exactly 0.50, every time.

Architecture position:
    Kernel > Domain -- pure functional core.  The only side effect is a
    WARNING log when a pre-fill cannot place the whole target.

Invariants enforced:
    - Counts are non-negative integers.
    - Face values are positive and representable in the currency's minor
      units (no 0.005 coins for USD).
    - Greedy output never contains zero counts.

Failure modes:
    - InvalidDenominationCountError for negative or non-integer counts.
    - InvalidDenominationError for unusable face values or ladders.
    - ValidationError for a negative pre-fill target.

Canonical ladders:
    Greedy largest-first is only optimal for "canonical" coin systems.
    is_canonical() checks a ladder by comparing greedy against the optimal
    count for every amount below the sum of the two largest faces
    (Kozen & Zaks, 1994: any counterexample is smaller than that).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any

from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    InvalidDenominationCountError,
    InvalidDenominationError,
    ValidationError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("domain.denominations")

DEFAULT_BILLS: tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("100", "50", "20", "10", "5", "2", "1")
)
DEFAULT_COINS: tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("1", "0.50", "0.25", "0.10", "0.05", "0.01")
)


# =============================================================================
# Parsing helpers
# =============================================================================


def parse_face_value(face: Any) -> Decimal:
    """
    Normalize a face value key (Decimal, int, str, or float) to Decimal.

    Floats are read through ``str`` so 0.1 means 0.1, not its binary
    approximation.

    Raises:
        InvalidDenominationError: Not a positive finite number.
    """
    if isinstance(face, bool):
        raise InvalidDenominationError(face, "not a number")
    try:
        value = face if isinstance(face, Decimal) else Decimal(str(face).strip())
    except InvalidOperation as exc:
        raise InvalidDenominationError(face, "not a number") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidDenominationError(face, "must be positive")
    return value


def _face_units(face: Any, currency: Currency) -> int:
    value = parse_face_value(face)
    scaled = value.scaleb(currency.decimal_places)
    if scaled != scaled.to_integral_value():
        raise InvalidDenominationError(
            face, f"not representable in minor units of {currency.code}"
        )
    return int(scaled)


def _validate_count(face: Any, count: Any) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidDenominationCountError(str(face), count)
    if count < 0:
        raise InvalidDenominationCountError(str(face), count)
    return count


def face_label(face: Decimal, currency: Currency | None = None) -> str:
    """
    Canonical string key for a face value: "100", "0.25", "0.50".

    Whole amounts drop their decimals; fractional amounts are written to
    the currency's precision.
    """
    if face == face.to_integral_value():
        return str(int(face))
    places = currency.decimal_places if currency is not None else 2
    return str(face.quantize(Decimal(1).scaleb(-places)))


def _as_currency(currency: Currency | str) -> Currency:
    return Currency(currency) if isinstance(currency, str) else currency


# =============================================================================
# Totals
# =============================================================================


def total_of(
    breakdown: Mapping[Any, int], currency: Currency | str = "USD"
) -> Money:
    """
    Sum face x count over a breakdown, exactly.

    Example:
        total_of({100: 1, 20: 2, "0.25": 2}) -> Money('140.50', USD)

    Raises:
        InvalidDenominationCountError: Negative or non-integer count.
        InvalidDenominationError: Unusable face value.
    """
    currency = _as_currency(currency)
    units = 0
    for face, count in breakdown.items():
        n = _validate_count(face, count)
        units += _face_units(face, currency) * n
    return Money.from_minor_units(units, currency)


# =============================================================================
# Greedy fill
# =============================================================================


def _greedy(
    target_units: int, faces: Sequence[tuple[Decimal, int]]
) -> tuple[dict[Decimal, int], int]:
    counts: dict[Decimal, int] = {}
    remaining = target_units
    for face, units in faces:
        if remaining <= 0:
            break
        n, remaining = divmod(remaining, units)
        if n:
            counts[face] = counts.get(face, 0) + n
    return counts, remaining


def _target_units(target: Money) -> int:
    if target.is_negative:
        raise ValidationError(f"Cannot fill a negative amount: {target}")
    scaled = target.amount.scaleb(target.currency.decimal_places)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def _ladder_units(
    denominations: Iterable[Any], currency: Currency
) -> list[tuple[Decimal, int]]:
    return [(parse_face_value(d), _face_units(d, currency)) for d in denominations]


def fill_greedy(target: Money, denominations: Sequence[Any]) -> dict[Decimal, int]:
    """
    Assign the maximum count of each denomination, largest first.

    Works in integer minor units.  Denominations with a zero count are
    omitted.  Any sub-minor-unit part of the target is left unassigned.

    Example:
        fill_greedy(Money.of("140.50", "USD"), [100, 50, 20, 10, 5, 1, "0.25"])
        -> {Decimal('100'): 1, Decimal('20'): 2, Decimal('0.25'): 2}
    """
    counts, _ = _greedy(_target_units(target), _ladder_units(denominations, target.currency))
    return counts


def is_canonical(denominations: Sequence[Any], currency: Currency | str = "USD") -> bool:
    """
    Check whether greedy largest-first is optimal for every amount.

    A ladder without a one-minor-unit piece cannot make every amount and is
    reported as not canonical.
    """
    currency = _as_currency(currency)
    units = sorted({_face_units(d, currency) for d in denominations}, reverse=True)
    if not units or units[-1] != 1:
        return False
    if len(units) < 3:
        return True

    bound = units[0] + units[1]
    optimal = [0] * bound
    for amount in range(1, bound):
        optimal[amount] = 1 + min(
            optimal[amount - u] for u in units if u <= amount
        )
        greedy_count = 0
        remaining = amount
        for u in units:
            n, remaining = divmod(remaining, u)
            greedy_count += n
        if greedy_count != optimal[amount]:
            return False
    return True


# =============================================================================
# Cash counts and ladders
# =============================================================================


@dataclass(frozen=True)
class CashCount:
    """
    A counted drawer: bills and coins kept apart.

    The $1 bill and the $1 coin share a face value, so a single
    face -> count mapping cannot describe a drawer.  ``remainder`` is only
    set on pre-fills that could not place the whole target.
    """

    bills: Mapping[Decimal, int] = field(default_factory=dict)
    coins: Mapping[Decimal, int] = field(default_factory=dict)
    remainder: Money | None = None

    def total(self, currency: Currency | str = "USD") -> Money:
        return total_of(self.bills, currency) + total_of(self.coins, currency)

    def to_details(self, currency: Currency | str = "USD") -> dict[str, dict[str, int]]:
        """JSON-ready audit payload: {"bills": {"100": 1}, "coins": {"0.25": 2}}."""
        currency = _as_currency(currency)
        return {
            "bills": {face_label(f, currency): n for f, n in self.bills.items() if n},
            "coins": {face_label(f, currency): n for f, n in self.coins.items() if n},
        }

    @classmethod
    def from_details(cls, details: Mapping[str, Any]) -> CashCount:
        """
        Parse and validate a details payload.

        Accepts the canonical ``{"bills": {...}, "coins": {...}}`` shape, or
        a flat ``{face: count}`` mapping in which whole face values are taken
        as bills and fractional ones as coins.

        Raises:
            InvalidDenominationCountError, InvalidDenominationError
        """
        if "bills" in details or "coins" in details:
            unknown = set(details) - {"bills", "coins"}
            if unknown:
                raise InvalidDenominationError(sorted(unknown)[0], "unknown section")
            bills = _parse_section(details.get("bills") or {})
            coins = _parse_section(details.get("coins") or {})
            return cls(bills=bills, coins=coins)

        flat = _parse_section(details)
        bills = {f: n for f, n in flat.items() if f == f.to_integral_value()}
        coins = {f: n for f, n in flat.items() if f != f.to_integral_value()}
        return cls(bills=bills, coins=coins)


def _parse_section(section: Any) -> dict[Decimal, int]:
    if not isinstance(section, Mapping):
        raise InvalidDenominationError(section, "expected a mapping of face value to count")
    parsed: dict[Decimal, int] = {}
    for face, count in section.items():
        value = parse_face_value(face)
        parsed[value] = parsed.get(value, 0) + _validate_count(face, count)
    return parsed


@dataclass(frozen=True)
class DenominationLadder:
    """
    The bills and coins a drawer holds, each strictly descending.

    Contract:
        Every face value is positive and representable in the currency.
    """

    bills: tuple[Decimal, ...] = DEFAULT_BILLS
    coins: tuple[Decimal, ...] = DEFAULT_COINS
    currency: Currency = field(default_factory=lambda: Currency("USD"))

    def __post_init__(self) -> None:
        for name in ("bills", "coins"):
            faces = tuple(parse_face_value(f) for f in getattr(self, name))
            for face in faces:
                _face_units(face, self.currency)
            if any(a <= b for a, b in zip(faces, faces[1:])):
                raise InvalidDenominationError(
                    name, "faces must be strictly descending"
                )
            object.__setattr__(self, name, faces)

    @property
    def faces(self) -> tuple[Decimal, ...]:
        """Distinct face values, largest first."""
        return tuple(sorted(set(self.bills) | set(self.coins), reverse=True))

    def is_canonical(self) -> bool:
        return is_canonical(self.faces, self.currency)

    def prefill(self, target: Money) -> CashCount:
        """
        Greedy breakdown of ``target``: bills first, then coins.

        The unassigned part of the target is reported in ``remainder``
        (zero when the ladder places everything) and logged at WARNING
        when non-zero.
        """
        if target.currency != self.currency:
            raise ValidationError(
                f"Target currency {target.currency} does not match ladder {self.currency}"
            )
        target_units = _target_units(target)
        bills, left = _greedy(target_units, _ladder_units(self.bills, self.currency))
        coins, left = _greedy(left, _ladder_units(self.coins, self.currency))

        placed = Money.from_minor_units(target_units - left, self.currency)
        remainder = target - placed
        if not remainder.is_zero:
            logger.warning(
                "denomination_remainder_unassigned",
                extra={
                    "target": str(target.amount),
                    "remainder": str(remainder.amount),
                    "currency": self.currency.code,
                },
            )
        return CashCount(bills=bills, coins=coins, remainder=remainder)
