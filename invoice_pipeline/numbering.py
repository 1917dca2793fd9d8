"""Invoice number allocation strategies."""

from __future__ import annotations

import logging
import random
import re
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV-"
SEQUENCE_NAME = "invoice_number"
_TRAILING_DIGITS = re.compile(r"(\d+)$")


class InvoiceNumberAllocator(Protocol):
    def allocate(self) -> str:
        ...


class SequenceSource(Protocol):
    def last_invoice_number(self) -> Optional[str]:
        ...

    def next_sequence(self, name: str, seed: Callable[[], int]) -> int:
        ...


def parse_sequence(invoice_number: Optional[str]) -> int:
    """Return the trailing numeric suffix of ``invoice_number``, or 0."""
    if not invoice_number:
        return 0
    match = _TRAILING_DIGITS.search(invoice_number.strip())
    if match is None:
        return 0
    return int(match.group(1))


def format_sequential(number: int) -> str:
    return f"{INVOICE_PREFIX}{number:03d}"


class SequentialAllocator:
    """Allocates INV-001, INV-002, ... from the store's atomic counter.

    The counter starts from the newest stored invoice number the first time
    it is used, so numbering continues across an existing invoice table.
    Numbers taken by a render that later fails are not handed out again.
    """

    def __init__(self, source: SequenceSource) -> None:
        self.source = source

    def _seed(self) -> int:
        last = self.source.last_invoice_number()
        seed = parse_sequence(last)
        logger.info("Seeding invoice sequence from %r (start=%d)", last, seed)
        return seed

    def allocate(self) -> str:
        return format_sequential(self.source.next_sequence(SEQUENCE_NAME, self._seed))


class OpaqueAllocator:
    """Allocates INV-<epoch ms>-<0..999> without consulting the store."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.clock = clock
        self.rng = rng or random.SystemRandom()

    def allocate(self) -> str:
        millis = int(self.clock() * 1000)
        return f"{INVOICE_PREFIX}{millis}-{self.rng.randint(0, 999)}"


def build_allocator(strategy: str, source: SequenceSource) -> InvoiceNumberAllocator:
    if strategy == "opaque":
        return OpaqueAllocator()
    if strategy == "sequential":
        return SequentialAllocator(source)
    raise ValueError(f"Unknown invoice numbering strategy: {strategy!r}")
