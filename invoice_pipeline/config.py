"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from typing import Optional


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str, choices: Optional[tuple] = None) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip()
    if choices is not None and value.lower() not in choices:
        return default
    return value.lower() if choices is not None else value


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


HOST = env_str("INVOICE_HOST", "0.0.0.0")
PORT = env_int("INVOICE_PORT", 8080, minimum=0)

DB_PATH = env_str("INVOICE_DB_PATH", os.path.join("data", "invoices.db"))
TEMPLATE_PATH = os.getenv("INVOICE_TEMPLATE_PATH") or None

RENDER_ENGINE = env_str("INVOICE_RENDER_ENGINE", "chromium", choices=("chromium", "fpdf"))
RENDER_TIMEOUT_MS = env_int("INVOICE_RENDER_TIMEOUT_MS", 30000, minimum=1000)
RENDER_RETRIES = env_int("INVOICE_RENDER_RETRIES", 1, minimum=0)
BROWSER_PATH = os.getenv("INVOICE_BROWSER_PATH") or None

CURRENCY_SYMBOL = env_str("INVOICE_CURRENCY_SYMBOL", "₹")
NUMBERING = env_str("INVOICE_NUMBERING", "sequential", choices=("sequential", "opaque"))
STRICT_INPUT = env_flag("INVOICE_STRICT_INPUT")
DIAGNOSTICS = env_flag("INVOICE_DIAGNOSTICS")

DEFAULT_PAGE_SIZE = 10
HISTORY_MAX_PAGE_SIZE = env_int("INVOICE_HISTORY_MAX_PAGE_SIZE", 100, minimum=1)

DEFAULT_MAX_CONCURRENT_RENDERS = max(1, min(4, os.cpu_count() or 1))
MAX_CONCURRENT_RENDERS = env_int(
    "INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("INVOICE_RENDER_QUEUE_TIMEOUT_MS", 15000, minimum=0)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 1024 * 1024, minimum=1024)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 128, minimum=1)
