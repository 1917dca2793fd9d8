"""Module entrypoint for running the invoice API server."""

from __future__ import annotations

import sys

from .config import HOST, PORT
from .errors import DependencyError, StoreFailure
from .server import run


def main() -> None:
    try:
        run(HOST, PORT)
    except (DependencyError, StoreFailure) as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
