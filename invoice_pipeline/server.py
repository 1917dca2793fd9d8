"""HTTP server entrypoints for invoice generation, history and re-download."""

from __future__ import annotations

import errno
import json
import logging
import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from .config import (
    DIAGNOSTICS,
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    RENDER_QUEUE_TIMEOUT_MS,
)
from .errors import InvalidInput, InvoiceError, NotFound, RenderFailure
from .logging_setup import setup_logging
from .models import Identity, RenderedInvoice

logger = logging.getLogger(__name__)

RENDER_SEMAPHORE = threading.BoundedSemaphore(MAX_CONCURRENT_RENDERS)
ValidationError = Tuple[int, Dict[str, Any]]

GENERATE_PATHS = ("/invoices", "/invoices/generate-pdf", "/api/invoices/generate-pdf")
HISTORY_PATHS = ("/invoices/history", "/api/invoices/history")
HEALTH_PATHS = ("/", "/health", "/healthz", "/ready")
_INVOICE_PATH = re.compile(r"^/(?:api/)?invoices/([A-Za-z0-9_-]+)(/download)?$")

OWNER_ID_HEADER = "X-Owner-Id"
OWNER_NAME_HEADER = "X-Owner-Name"
OWNER_EMAIL_HEADER = "X-Owner-Email"

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
}


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def validate_invoice_payload(body: bytes) -> Tuple[Optional[List[Any]], Optional[ValidationError]]:
    """Decode a generate request body and return its raw line item rows."""
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (
            400,
            {"success": False, "error": "invalid_encoding", "message": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "success": False,
                "error": "invalid_json",
                "message": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )
    except ValueError as exc:
        # e.g. integer literals beyond the interpreter's digit limit
        return None, (
            400,
            {"success": False, "error": "invalid_json", "message": str(exc)},
        )

    if not isinstance(payload, dict):
        return None, (
            400,
            {"success": False, "error": "invalid_payload", "message": "JSON root must be an object."},
        )

    items = payload.get("products", payload.get("items"))
    if items is None:
        items = []
    if not isinstance(items, list):
        return None, (
            400,
            {"success": False, "error": "invalid_payload", "message": "'products' must be an array."},
        )

    return items, None


def error_response(exc: InvoiceError, diagnostics: bool = DIAGNOSTICS) -> Tuple[int, Dict[str, Any]]:
    body: Dict[str, Any] = {"success": False, "error": exc.code, "message": exc.public_message}
    if isinstance(exc, InvalidInput):
        body["errors"] = exc.violations
        return 400, body
    if isinstance(exc, NotFound):
        return 404, body
    if diagnostics:
        if isinstance(exc, RenderFailure):
            body["reason"] = exc.reason.value
            body["detail"] = exc.detail
        else:
            body["detail"] = str(exc)
    return 500, body


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    DIAGNOSTICS = DIAGNOSTICS

    server: "InvoiceHTTPServer"

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_pdf(self, rendered: RenderedInvoice) -> bool:
        headers = {"Content-Disposition": f"attachment; filename={rendered.filename}"}
        if rendered.invoice_id:
            headers["X-Invoice-Id"] = rendered.invoice_id
        return self._write_response(200, rendered.content_type, rendered.pdf, headers)

    def _send_error(self, exc: InvoiceError) -> bool:
        status, payload = error_response(exc, self.DIAGNOSTICS)
        if status >= 500:
            logger.error("%s %s failed: %r", self.command, self.path, exc)
        return self._send_json(status, payload)

    def _send_unexpected(self, exc: Exception) -> bool:
        logger.exception("Unhandled error on %s %s", self.command, self.path)
        payload: Dict[str, Any] = {"success": False, "error": "internal_error", "message": "Server error."}
        if self.DIAGNOSTICS:
            payload["detail"] = f"{type(exc).__name__}: {exc}"
        return self._send_json(500, payload)

    def _owner(self) -> Optional[Tuple[str, Identity]]:
        owner_id = (self.headers.get(OWNER_ID_HEADER) or "").strip()
        if not owner_id:
            self._send_json(
                401,
                {"success": False, "error": "unauthenticated", "message": "Authenticated owner is required."},
            )
            return None
        identity = Identity(
            name=(self.headers.get(OWNER_NAME_HEADER) or "").strip(),
            email=(self.headers.get(OWNER_EMAIL_HEADER) or "").strip(),
        )
        return owner_id, identity

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "success": False,
                    "error": "missing_content_length",
                    "message": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "success": False,
                    "error": "invalid_content_length",
                    "message": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(
                400,
                {"success": False, "error": "empty_body", "message": "Request body cannot be empty."},
            )
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "success": False,
                    "error": "payload_too_large",
                    "message": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _acquire_render_slot(self) -> bool:
        if RENDER_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0):
            return True
        retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
        self._send_json(
            503,
            {
                "success": False,
                "error": "server_busy",
                "message": "Render queue is full; retry shortly.",
                "retry_after_seconds": retry_after_seconds,
                "max_concurrent_renders": MAX_CONCURRENT_RENDERS,
            },
        )
        return False

    def do_POST(self) -> None:
        path = urlsplit(self.path).path.rstrip("/")
        if path not in GENERATE_PATHS:
            self._send_json(404, {"success": False, "error": "not_found", "message": "Unsupported endpoint."})
            return

        owner = self._owner()
        if owner is None:
            return
        owner_id, identity = owner

        body = self._read_body()
        if body is None:
            return

        items, validation_error = validate_invoice_payload(body)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        if not self._acquire_render_slot():
            return
        try:
            rendered = self.server.pipeline.generate(owner_id, identity, items)
        except InvoiceError as exc:
            self._send_error(exc)
            return
        except Exception as exc:
            self._send_unexpected(exc)
            return
        finally:
            RENDER_SEMAPHORE.release()

        self._send_pdf(rendered)

    def do_GET(self) -> None:
        parts = urlsplit(self.path)
        path = parts.path.rstrip("/") or "/"
        if path in HEALTH_PATHS:
            self._send_json(200, {"status": "ok"})
            return

        match = _INVOICE_PATH.match(path)
        if path not in HISTORY_PATHS and match is None:
            self._send_json(404, {"success": False, "error": "not_found", "message": "Unsupported endpoint."})
            return

        owner = self._owner()
        if owner is None:
            return
        owner_id, _ = owner

        try:
            if path in HISTORY_PATHS:
                self._send_history(owner_id, parse_qs(parts.query))
            elif match.group(2):
                self._send_download(owner_id, match.group(1))
            else:
                document = self.server.pipeline.get(owner_id, match.group(1))
                self._send_json(200, {"success": True, "invoice": document.to_dict()})
        except InvoiceError as exc:
            self._send_error(exc)
        except Exception as exc:
            self._send_unexpected(exc)

    def _send_history(self, owner_id: str, query: Dict[str, List[str]]) -> None:
        page = (query.get("page") or [None])[0]
        limit = (query.get("limit") or query.get("pageSize") or [None])[0]
        summaries, pagination = self.server.pipeline.history(owner_id, page, limit)
        self._send_json(
            200,
            {
                "success": True,
                "invoices": [summary.to_dict() for summary in summaries],
                "pagination": pagination.to_dict(),
            },
        )

    def _send_download(self, owner_id: str, invoice_id: str) -> None:
        if not self._acquire_render_slot():
            return
        try:
            rendered = self.server.pipeline.regenerate(owner_id, invoice_id)
        finally:
            RENDER_SEMAPHORE.release()
        self._send_pdf(rendered)

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG

    def __init__(self, server_address, handler_class, pipeline) -> None:
        self.pipeline = pipeline
        super().__init__(server_address, handler_class)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .pipeline import build_pipeline

    setup_logging()
    pipeline = build_pipeline()
    server = InvoiceHTTPServer((host, port), InvoiceHandler, pipeline)
    logger.info("Invoice API server listening on http://%s:%d", host, port)
    server.serve_forever()
