"""SQLite persistence for issued invoices."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .errors import NotFound, StoreFailure
from .formatting import DISPLAY_DATE_FORMAT, parse_display_date
from .models import Identity, InvoiceDocument, InvoiceSummary, InvoiceTotals, LineItem
from .pagination import Pagination, paginate

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    invoice_number TEXT NOT NULL UNIQUE,
    customer_name TEXT NOT NULL,
    customer_email TEXT NOT NULL,
    line_items TEXT NOT NULL DEFAULT '[]',
    subtotal TEXT NOT NULL,
    tax_amount TEXT NOT NULL,
    grand_total TEXT NOT NULL,
    issued_date TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_invoices_owner_created
ON invoices(owner_id, created_at);

CREATE INDEX IF NOT EXISTS idx_invoices_created_at
ON invoices(created_at);

CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""

_SUMMARY_COLUMNS = (
    "id, invoice_number, customer_name, customer_email, "
    "subtotal, tax_amount, grand_total, issued_date, created_at"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_items(items: Tuple[LineItem, ...]) -> str:
    return json.dumps(
        [{"name": item.name, "quantity": item.quantity, "rate": str(item.rate)} for item in items],
        ensure_ascii=False,
    )


def _decode_items(raw: str) -> Tuple[LineItem, ...]:
    return tuple(
        LineItem(name=row["name"], quantity=int(row["quantity"]), rate=Decimal(row["rate"]))
        for row in json.loads(raw or "[]")
    )


def _row_totals(row: sqlite3.Row) -> InvoiceTotals:
    return InvoiceTotals(
        subtotal=Decimal(row["subtotal"]),
        tax_amount=Decimal(row["tax_amount"]),
        grand_total=Decimal(row["grand_total"]),
    )


def _row_to_summary(row: sqlite3.Row) -> InvoiceSummary:
    return InvoiceSummary(
        invoice_id=row["id"],
        invoice_number=row["invoice_number"],
        issuer=Identity(name=row["customer_name"], email=row["customer_email"]),
        totals=_row_totals(row),
        issued_date=parse_display_date(row["issued_date"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_document(row: sqlite3.Row) -> InvoiceDocument:
    return InvoiceDocument(
        invoice_number=row["invoice_number"],
        issuer=Identity(name=row["customer_name"], email=row["customer_email"]),
        line_items=_decode_items(row["line_items"]),
        totals=_row_totals(row),
        issued_date=parse_display_date(row["issued_date"]),
        owner_id=row["owner_id"],
        invoice_id=row["id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class InvoiceStore:
    """Invoice records keyed by owner and id; PDF bytes are never stored."""

    def __init__(self, path: Union[str, Path], clock: Callable[[], datetime] = _utcnow) -> None:
        self.path = Path(path)
        self.clock = clock

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.path, timeout=10.0, isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA journal_mode = WAL;")
        return connection

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            with closing(self._connect()) as connection:
                connection.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
                try:
                    yield connection
                except BaseException:
                    connection.execute("ROLLBACK")
                    raise
                connection.execute("COMMIT")
        except sqlite3.Error as exc:
            logger.exception("Invoice store operation failed on %s", self.path)
            raise StoreFailure(str(exc)) from exc

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(self._connect()) as connection:
                yield connection
        except sqlite3.Error as exc:
            logger.exception("Invoice store read failed on %s", self.path)
            raise StoreFailure(str(exc)) from exc

    def initialize(self) -> None:
        if self.path.parent and not self.path.parent.exists():
            os.makedirs(self.path.parent, exist_ok=True)
        try:
            with closing(self._connect()) as connection:
                connection.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreFailure(str(exc)) from exc

    def save(self, document: InvoiceDocument) -> str:
        invoice_id = uuid.uuid4().hex
        created_at = self.clock()
        with self._transaction() as connection:
            connection.execute(
                """
                INSERT INTO invoices (
                    id,
                    owner_id,
                    invoice_number,
                    customer_name,
                    customer_email,
                    line_items,
                    subtotal,
                    tax_amount,
                    grand_total,
                    issued_date,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    invoice_id,
                    document.owner_id,
                    document.invoice_number,
                    document.issuer.name,
                    document.issuer.email,
                    _encode_items(document.line_items),
                    str(document.totals.subtotal),
                    str(document.totals.tax_amount),
                    str(document.totals.grand_total),
                    document.issued_date.strftime(DISPLAY_DATE_FORMAT),
                    created_at.isoformat(timespec="microseconds"),
                ),
            )
        logger.info("Stored invoice %s as %s for owner %s", document.invoice_number, invoice_id, document.owner_id)
        return invoice_id

    def count(self, owner_id: Optional[str] = None) -> int:
        with self._reader() as connection:
            if owner_id is None:
                row = connection.execute("SELECT COUNT(*) FROM invoices").fetchone()
            else:
                row = connection.execute(
                    "SELECT COUNT(*) FROM invoices WHERE owner_id = ?",
                    (owner_id,),
                ).fetchone()
        return int(row[0])

    def find_history(self, owner_id: str, page: int, page_size: int) -> Tuple[List[InvoiceSummary], Pagination]:
        with self._reader() as connection:
            total = connection.execute(
                "SELECT COUNT(*) FROM invoices WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()[0]
            pagination = paginate(int(total), page, page_size)
            rows = connection.execute(
                f"""
                SELECT {_SUMMARY_COLUMNS}
                FROM invoices
                WHERE owner_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (owner_id, page_size, pagination.offset),
            ).fetchall()
        return [_row_to_summary(row) for row in rows], pagination

    def find_by_id(self, owner_id: str, invoice_id: str) -> InvoiceDocument:
        with self._reader() as connection:
            row = connection.execute(
                "SELECT * FROM invoices WHERE id = ? AND owner_id = ?",
                (invoice_id, owner_id),
            ).fetchone()
        if row is None:
            raise NotFound()
        return _row_to_document(row)

    def last_invoice_number(self) -> Optional[str]:
        with self._reader() as connection:
            row = connection.execute(
                "SELECT invoice_number FROM invoices ORDER BY created_at DESC, rowid DESC LIMIT 1"
            ).fetchone()
        return row["invoice_number"] if row else None

    def next_sequence(self, name: str, seed: Callable[[], int]) -> int:
        """Increment and return the named counter inside one write transaction."""
        with self._transaction(immediate=True) as connection:
            row = connection.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()
            if row is None:
                value = seed() + 1
                connection.execute("INSERT INTO counters (name, value) VALUES (?, ?)", (name, value))
            else:
                value = int(row["value"]) + 1
                connection.execute("UPDATE counters SET value = ? WHERE name = ?", (value, name))
        return value
