"""Simple span helper for recording collaborator timings."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def span(session_id: str | None, name: str, **fields: Any) -> Iterator[None]:
    start = time.time()
    try:
        yield
    finally:
        elapsed_ms = int((time.time() - start) * 1000)
        log_event("span", session_id, level=logging.DEBUG, op=name, ms=elapsed_ms, **fields)


__all__ = ["span"]
