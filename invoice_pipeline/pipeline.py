"""Invoice generation and re-download orchestration."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, List, Optional, Tuple

from .config import (
    CURRENCY_SYMBOL,
    DB_PATH,
    HISTORY_MAX_PAGE_SIZE,
    NUMBERING,
    RENDER_ENGINE,
    RENDER_RETRIES,
    RENDER_TIMEOUT_MS,
    STRICT_INPUT,
    TEMPLATE_PATH,
)
from .models import Identity, InvoiceDocument, InvoiceSummary, RenderedInvoice
from .numbering import InvoiceNumberAllocator, build_allocator
from .pagination import Pagination, normalize_page_args
from .rendering import InvoiceRenderer, load_engine
from .store import InvoiceStore
from .totals import compute_totals, parse_line_items

logger = logging.getLogger(__name__)


class InvoicePipeline:
    """Validates, totals, numbers, renders and records invoices.

    ``generate`` is all-or-nothing: a render failure leaves the store
    untouched, and a store failure after a successful render discards the
    bytes and reports ``StoreFailure``.
    """

    def __init__(
        self,
        store: InvoiceStore,
        renderer: InvoiceRenderer,
        allocator: InvoiceNumberAllocator,
        clock: Callable[[], date] = date.today,
        lenient_input: bool = True,
        max_page_size: int = HISTORY_MAX_PAGE_SIZE,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.allocator = allocator
        self.clock = clock
        self.lenient_input = lenient_input
        self.max_page_size = max_page_size

    def generate(self, owner_id: str, issuer: Identity, items: Any) -> RenderedInvoice:
        line_items = parse_line_items(items, lenient=self.lenient_input)
        totals = compute_totals(line_items)
        invoice_number = self.allocator.allocate()

        document = InvoiceDocument(
            invoice_number=invoice_number,
            issuer=issuer,
            line_items=tuple(line_items),
            totals=totals,
            issued_date=self.clock(),
            owner_id=owner_id,
        )
        logger.info(
            "Generating invoice %s for owner %s (%d items, total %s)",
            invoice_number,
            owner_id,
            len(line_items),
            totals.grand_total,
        )

        pdf = self.renderer.render(document)
        invoice_id = self.store.save(document)
        return RenderedInvoice(invoice_number=invoice_number, pdf=pdf, invoice_id=invoice_id)

    def regenerate(self, owner_id: str, invoice_id: str) -> RenderedInvoice:
        document = self.store.find_by_id(owner_id, invoice_id)
        logger.info("Re-rendering invoice %s for owner %s", document.invoice_number, owner_id)
        pdf = self.renderer.render(document)
        return RenderedInvoice(invoice_number=document.invoice_number, pdf=pdf, invoice_id=invoice_id)

    def history(self, owner_id: str, page: Any = 1, page_size: Any = None) -> Tuple[List[InvoiceSummary], Pagination]:
        page_number, size = normalize_page_args(page, page_size, self.max_page_size)
        return self.store.find_history(owner_id, page_number, size)

    def get(self, owner_id: str, invoice_id: str) -> InvoiceDocument:
        return self.store.find_by_id(owner_id, invoice_id)


def build_pipeline(
    db_path: Optional[str] = None,
    engine: Optional[str] = None,
    numbering: Optional[str] = None,
) -> InvoicePipeline:
    """Wire a pipeline from the environment-driven settings."""
    store = InvoiceStore(db_path or DB_PATH)
    store.initialize()
    renderer = InvoiceRenderer(
        load_engine(engine or RENDER_ENGINE),
        template_path=TEMPLATE_PATH,
        currency_symbol=CURRENCY_SYMBOL,
        retries=RENDER_RETRIES,
        timeout_ms=RENDER_TIMEOUT_MS,
    )
    return InvoicePipeline(
        store=store,
        renderer=renderer,
        allocator=build_allocator(numbering or NUMBERING, store),
        lenient_input=not STRICT_INPUT,
    )
