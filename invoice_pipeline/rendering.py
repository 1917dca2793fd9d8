"""Invoice PDF rendering: template filling, engine invocation and retries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Union

from .config import BROWSER_PATH, CURRENCY_SYMBOL, RENDER_RETRIES, RENDER_TIMEOUT_MS
from .errors import DependencyError, RenderFailure, RenderReason
from .models import InvoiceDocument
from .templating import InvoiceTemplate, fill_template, load_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrintOptions:
    page_format: str = "A4"
    margin_px: int = 20
    print_background: bool = True
    timeout_ms: int = RENDER_TIMEOUT_MS

    def margins(self) -> Dict[str, str]:
        value = f"{self.margin_px}px"
        return {"top": value, "right": value, "bottom": value, "left": value}


class RenderEngine(Protocol):
    """Paints filled invoice markup to PDF bytes.

    Implementations own one engine session per call and report failures as
    ``RenderFailure`` with the reason decided at their own boundary.
    """

    name: str

    def print_pdf(self, markup: str, options: PrintOptions) -> bytes:
        ...


class InvoiceRenderer:
    def __init__(
        self,
        engine: RenderEngine,
        template_path: Optional[Union[str, Path]] = None,
        currency_symbol: str = CURRENCY_SYMBOL,
        retries: int = RENDER_RETRIES,
        timeout_ms: int = RENDER_TIMEOUT_MS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.engine = engine
        self.template_path = template_path
        self.currency_symbol = currency_symbol
        self.retries = max(0, retries)
        self.options = PrintOptions(timeout_ms=timeout_ms)
        self.today = today

    def load_template(self) -> InvoiceTemplate:
        return load_template(self.template_path)

    def render_markup(self, document: InvoiceDocument) -> str:
        return fill_template(self.load_template(), document, self.currency_symbol, self.today())

    def render(self, document: InvoiceDocument) -> bytes:
        markup = self._fill(document)
        attempts = self.retries + 1
        attempt = 1
        while True:
            try:
                pdf = self._print(markup)
            except RenderFailure as failure:
                logger.warning(
                    "Render of %s failed on attempt %d/%d with %s: %s",
                    document.invoice_number,
                    attempt,
                    attempts,
                    failure.reason.value,
                    failure.detail,
                )
                if not failure.transient or attempt >= attempts:
                    raise
                attempt += 1
                continue
            logger.info(
                "Rendered %s with %s engine (%d bytes, attempt %d)",
                document.invoice_number,
                self.engine.name,
                len(pdf),
                attempt,
            )
            return pdf

    def _fill(self, document: InvoiceDocument) -> str:
        try:
            return self.render_markup(document)
        except RenderFailure:
            raise
        except Exception as exc:
            logger.exception("Could not fill template for %s", document.invoice_number)
            raise RenderFailure(RenderReason.UNKNOWN, f"{type(exc).__name__}: {exc}") from exc

    def _print(self, markup: str) -> bytes:
        try:
            return bytes(self.engine.print_pdf(markup, self.options))
        except RenderFailure:
            raise
        except Exception as exc:
            logger.exception("Unexpected %s engine error", self.engine.name)
            raise RenderFailure(RenderReason.UNKNOWN, f"{type(exc).__name__}: {exc}") from exc


def load_engine(name: str) -> RenderEngine:
    if name == "chromium":
        try:
            from .browser import ChromiumEngine
        except ModuleNotFoundError as exc:
            if exc.name and exc.name.startswith("playwright"):
                raise DependencyError(
                    "Missing dependency 'playwright'. Install it with 'pip install playwright' "
                    "and run 'playwright install chromium'."
                ) from exc
            raise
        return ChromiumEngine(executable_path=BROWSER_PATH)
    if name == "fpdf":
        try:
            from .fpdf_engine import FpdfEngine
        except ModuleNotFoundError as exc:
            if exc.name == "fpdf":
                raise DependencyError(
                    "Missing dependency 'fpdf2'. Install project dependencies with 'pip install -e .'."
                ) from exc
            raise
        return FpdfEngine()
    raise ValueError(f"Unknown render engine: {name!r}")
