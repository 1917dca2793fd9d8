"""Invoice HTML template loading and placeholder substitution.

Templates carry ``{{name}}`` scalar placeholders and exactly one
``{{#each products}} ... {{/each}}`` block whose body is repeated once per
line item.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .errors import RenderFailure, RenderReason
from .formatting import fmt_date, fmt_money, fmt_qty
from .models import InvoiceDocument, LineItem

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates" / "invoice.html"

BLOCK_OPEN = "{{#each products}}"
BLOCK_CLOSE = "{{/each}}"
_BLOCK_PATTERN = re.compile(re.escape(BLOCK_OPEN) + r"(.*?)" + re.escape(BLOCK_CLOSE), re.DOTALL)
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class InvoiceTemplate:
    head: str
    row: str
    tail: str


def parse_template(text: str) -> InvoiceTemplate:
    if text.count(BLOCK_OPEN) != 1:
        raise RenderFailure(
            RenderReason.TEMPLATE_UNAVAILABLE,
            f"template must contain exactly one {BLOCK_OPEN} block",
        )
    match = _BLOCK_PATTERN.search(text)
    if match is None:
        raise RenderFailure(RenderReason.TEMPLATE_UNAVAILABLE, f"unterminated {BLOCK_OPEN} block")
    return InvoiceTemplate(
        head=text[: match.start()],
        row=match.group(1),
        tail=text[match.end():],
    )


def load_template(path: Optional[Union[str, Path]] = None) -> InvoiceTemplate:
    template_path = Path(path) if path else DEFAULT_TEMPLATE_PATH
    try:
        text = template_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RenderFailure(
            RenderReason.TEMPLATE_UNAVAILABLE,
            f"cannot read template {template_path}: {exc}",
        ) from exc
    return parse_template(text)


def substitute(text: str, values: Mapping[str, str]) -> str:
    """Replace known placeholders with HTML-escaped values; leave others intact."""

    def replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return html.escape(values[key], quote=True)

    return _PLACEHOLDER_PATTERN.sub(replace, text)


def scalar_values(document: InvoiceDocument, currency_symbol: str, today: date) -> Dict[str, str]:
    totals = document.totals
    return {
        "invoiceNumber": document.invoice_number,
        "customerName": document.issuer.name,
        "customerEmail": document.issuer.email,
        "invoiceDate": fmt_date(document.issued_date),
        "totalCharges": fmt_money(totals.subtotal, currency_symbol),
        "gst": fmt_money(totals.tax_amount, currency_symbol),
        "finalAmount": fmt_money(totals.grand_total, currency_symbol),
        "currentDate": fmt_date(today),
        "currencySymbol": currency_symbol,
    }


def row_values(item: LineItem, currency_symbol: str) -> Dict[str, str]:
    return {
        "name": item.name,
        "quantity": fmt_qty(item.quantity),
        "rate": fmt_money(item.rate, currency_symbol),
        "totalAmount": fmt_money(item.line_total, currency_symbol),
    }


def fill_template(
    template: InvoiceTemplate,
    document: InvoiceDocument,
    currency_symbol: str,
    today: Optional[date] = None,
) -> str:
    scalars = scalar_values(document, currency_symbol, today or date.today())
    rows = "".join(substitute(template.row, row_values(item, currency_symbol)) for item in document.line_items)
    return substitute(template.head, scalars) + rows + substitute(template.tail, scalars)
