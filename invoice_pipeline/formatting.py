"""Presentation formatting helpers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from dateutil import parser as dateutil_parser

DISPLAY_DATE_FORMAT = "%d/%m/%y"
_CENTS = Decimal("0.01")


def quantize_money(amount: Union[Decimal, int, float]) -> Decimal:
    return Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def fmt_money(amount: Union[Decimal, int, float], symbol: str) -> str:
    return f"{symbol}{quantize_money(amount):,.2f}"


def fmt_qty(qty: Any) -> str:
    if isinstance(qty, int) and not isinstance(qty, bool):
        return str(qty)
    try:
        quantity = float(qty)
        if quantity.is_integer():
            return str(int(quantity))
        return str(quantity)
    except (TypeError, ValueError):
        return str(qty)


def fmt_date(value: Union[date, datetime, str]) -> str:
    """Format a date as 'DD/MM/YY'; unparseable strings are returned as given."""
    if isinstance(value, (date, datetime)):
        return value.strftime(DISPLAY_DATE_FORMAT)
    raw = str(value).strip()
    if not raw:
        return raw
    try:
        dt = dateutil_parser.isoparse(raw)
    except ValueError:
        try:
            dt = dateutil_parser.parse(raw, dayfirst=True)
        except (ValueError, OverflowError):
            return raw
    return dt.strftime(DISPLAY_DATE_FORMAT)


def parse_display_date(raw: str) -> date:
    """Read back a stored 'DD/MM/YY' or ISO date."""
    try:
        return datetime.strptime(raw, DISPLAY_DATE_FORMAT).date()
    except ValueError:
        return dateutil_parser.isoparse(raw).date()
