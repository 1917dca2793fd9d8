"""Invoice data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class Identity:
    name: str
    email: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email}


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    rate: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.rate * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "rate": float(self.rate),
            "totalAmount": float(self.line_total),
        }


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {
            "totalCharges": float(self.subtotal),
            "gst": float(self.tax_amount),
            "finalAmount": float(self.grand_total),
        }


@dataclass(frozen=True)
class InvoiceDocument:
    """A fully assembled invoice; created once and never mutated."""

    invoice_number: str
    issuer: Identity
    line_items: Tuple[LineItem, ...]
    totals: InvoiceTotals
    issued_date: date
    owner_id: str
    invoice_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.invoice_id,
            "invoiceNumber": self.invoice_number,
            "customerInfo": self.issuer.to_dict(),
            "products": [item.to_dict() for item in self.line_items],
            "invoiceDate": self.issued_date.strftime("%d/%m/%y"),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        payload.update(self.totals.to_dict())
        return payload


@dataclass(frozen=True)
class InvoiceSummary:
    invoice_id: str
    invoice_number: str
    issuer: Identity
    totals: InvoiceTotals
    issued_date: date
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.invoice_id,
            "invoiceNumber": self.invoice_number,
            "customerInfo": self.issuer.to_dict(),
            "invoiceDate": self.issued_date.strftime("%d/%m/%y"),
            "createdAt": self.created_at.isoformat(),
        }
        payload.update(self.totals.to_dict())
        return payload


@dataclass(frozen=True)
class RenderedInvoice:
    invoice_number: str
    pdf: bytes
    invoice_id: Optional[str] = None
    content_type: str = field(default=PDF_CONTENT_TYPE)

    @property
    def filename(self) -> str:
        return f"invoice-{self.invoice_number}.pdf"
