"""Helper functions for chunking iterables."""
from collections.abc import Iterable, Iterator
from itertools import islice
from typing import TypeVar

T = TypeVar("T")


def chunked(iterable: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield successive chunks to bound DB writes and progress updates.

    The source is consumed lazily; the last chunk may be shorter than ``size``.
    """
    if size < 1:
        raise ValueError("Chunk size must be a positive integer")
    iterator = iter(iterable)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk
