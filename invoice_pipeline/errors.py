"""Error taxonomy shared by the pipeline, the store and the HTTP layer."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional


class InvoiceError(Exception):
    """Base class for failures reported to callers of the pipeline."""

    code = "invoice_error"
    public_message = "Invoice request failed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)


class InvalidInput(InvoiceError):
    code = "invalid_input"
    public_message = "Invoice line items are invalid."

    def __init__(self, violations: Iterable[str]) -> None:
        self.violations: List[str] = list(violations)
        super().__init__("; ".join(self.violations) or self.public_message)


class NotFound(InvoiceError):
    code = "not_found"
    public_message = "Invoice not found."


class RenderReason(str, Enum):
    ENGINE_UNAVAILABLE = "EngineUnavailable"
    RENDER_TIMEOUT = "RenderTimeout"
    ENGINE_COMM_ERROR = "EngineCommError"
    TEMPLATE_UNAVAILABLE = "TemplateUnavailable"
    UNKNOWN = "Unknown"


TRANSIENT_REASONS = frozenset({RenderReason.RENDER_TIMEOUT, RenderReason.ENGINE_COMM_ERROR})


class RenderFailure(InvoiceError):
    code = "render_failed"
    public_message = "Invoice PDF could not be generated."

    def __init__(self, reason: RenderReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = f"{reason.value}: {detail}" if detail else reason.value
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return self.reason in TRANSIENT_REASONS


class StoreFailure(InvoiceError):
    code = "store_failed"
    public_message = "Invoice record could not be stored."


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""
