"""Line item parsing and invoice total computation."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence

from .errors import InvalidInput
from .models import InvoiceTotals, LineItem

TAX_RATE = Decimal("0.18")

DEFAULT_QUANTITY = 1
DEFAULT_RATE = Decimal("0")

# Amounts must stay well inside the 28-digit decimal context so they can be
# quantized to cents for display.
MAX_QUANTITY = 10**9
MAX_AMOUNT = Decimal("1e15")


def parse_number(value: Any) -> Optional[Decimal]:
    """Return ``value`` as a finite Decimal, or None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float, Decimal)):
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def _item_violations(label: str, name: str, quantity: Any, rate: Any) -> List[str]:
    problems: List[str] = []
    if not name:
        problems.append(f"{label}.name is required")
    quantity_ok = rate_ok = False
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        problems.append(f"{label}.quantity must be a whole number of at least 1")
    elif quantity > MAX_QUANTITY:
        problems.append(f"{label}.quantity must not exceed {MAX_QUANTITY}")
    else:
        quantity_ok = True
    if not isinstance(rate, Decimal) or rate < 0:
        problems.append(f"{label}.rate must be zero or greater")
    elif rate > MAX_AMOUNT:
        problems.append(f"{label}.rate must not exceed {MAX_AMOUNT:f}")
    else:
        rate_ok = True
    if quantity_ok and rate_ok and quantity * rate * (1 + TAX_RATE) > MAX_AMOUNT:
        problems.append(f"{label} amount including tax must not exceed {MAX_AMOUNT:f}")
    return problems


def parse_line_items(rows: Any, lenient: bool = True) -> List[LineItem]:
    """Turn untyped request rows into line items.

    Malformed numbers (missing, non-numeric, NaN) fall back to quantity 1 and
    rate 0 when ``lenient`` is set and are violations otherwise. Numbers that
    parse but are out of range are always violations. Any client-supplied
    line total is ignored.
    """
    if not isinstance(rows, (list, tuple)) or not rows:
        raise InvalidInput(["at least one line item is required"])

    items: List[LineItem] = []
    violations: List[str] = []
    for index, row in enumerate(rows):
        label = f"items[{index}]"
        if not isinstance(row, dict):
            violations.append(f"{label} must be an object")
            continue

        raw_name = row.get("name")
        name = str(raw_name).strip() if raw_name is not None else ""

        malformed: List[str] = []

        quantity_number = parse_number(row.get("quantity", row.get("qty")))
        quantity: Any
        if quantity_number is None:
            malformed.append(f"{label}.quantity must be a number")
            quantity = DEFAULT_QUANTITY
        elif quantity_number != quantity_number.to_integral_value():
            quantity = None
        elif quantity_number > MAX_QUANTITY:
            quantity = MAX_QUANTITY + 1
        else:
            quantity = int(quantity_number)

        rate = parse_number(row.get("rate"))
        if rate is None:
            malformed.append(f"{label}.rate must be a number")
            rate = DEFAULT_RATE

        problems = _item_violations(label, name, quantity, rate)
        if not lenient:
            problems = malformed + problems
        if problems:
            violations.extend(problems)
            continue
        items.append(LineItem(name=name, quantity=quantity, rate=rate))

    if violations:
        raise InvalidInput(violations)
    return items


def compute_totals(items: Sequence[LineItem]) -> InvoiceTotals:
    if not items:
        raise InvalidInput(["at least one line item is required"])

    violations: List[str] = []
    for index, item in enumerate(items):
        violations.extend(_item_violations(f"items[{index}]", item.name, item.quantity, item.rate))
    if violations:
        raise InvalidInput(violations)

    subtotal = sum_line_totals(items)
    tax_amount = subtotal * TAX_RATE
    if subtotal + tax_amount > MAX_AMOUNT:
        raise InvalidInput([f"invoice total including tax must not exceed {MAX_AMOUNT:f}"])
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        grand_total=subtotal + tax_amount,
    )


def sum_line_totals(items: Iterable[LineItem]) -> Decimal:
    subtotal = Decimal("0")
    for item in items:
        subtotal += item.line_total
    return subtotal
