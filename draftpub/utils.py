from __future__ import annotations
import logging
from typing import Iterator, List, Sequence, TypeVar
from rich.logging import RichHandler

_logger_initialized = False

T = TypeVar("T")


def get_logger(name: str = "draftpub") -> logging.Logger:
    global _logger_initialized
    if not _logger_initialized:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            datefmt="%H:%M:%S",
            handlers=[RichHandler(rich_tracebacks=True)],
        )
        _logger_initialized = True
    return logging.getLogger(name)


def chunked(rows: Sequence[T], size: int = 200) -> Iterator[List[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(rows), size):
        yield list(rows[start:start + size])
